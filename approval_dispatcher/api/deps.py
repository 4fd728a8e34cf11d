from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from approval_dispatcher.config import Settings, get_settings
from approval_dispatcher.dispatch.registry import RunRegistry
from approval_dispatcher.dispatch.step_client import AbsenceResendStepClient, SessionApprovalStepClient
from approval_dispatcher.services.approvals import ApprovalsService
from approval_dispatcher.services.backend import BackendClient


@lru_cache(maxsize=1)
def get_run_registry() -> RunRegistry:
  """Return the process-wide run registry."""
  backend = BackendClient.from_settings(get_settings())
  return RunRegistry({"session_approval": SessionApprovalStepClient(backend), "absence_resend": AbsenceResendStepClient(backend)})


def get_approvals_service(settings: Settings = Depends(get_settings)) -> ApprovalsService:  # noqa: B008
  return ApprovalsService(BackendClient.from_settings(settings))
