"""Paced dispatch core: step clients, pacing, progress and the batch driver."""

from approval_dispatcher.dispatch.driver import BatchDriver
from approval_dispatcher.dispatch.models import AbsenceResendTarget, Cursor, Phase, RunProgress, SessionApprovalTarget, StepResult, WorkTarget
from approval_dispatcher.dispatch.pacing import PAUSE_MAX_SECONDS, PAUSE_MIN_SECONDS, Decision, PacingGovernor, uniform_pause_seconds
from approval_dispatcher.dispatch.progress import ProgressAggregator

__all__ = [
  "PAUSE_MAX_SECONDS",
  "PAUSE_MIN_SECONDS",
  "AbsenceResendTarget",
  "BatchDriver",
  "Cursor",
  "Decision",
  "PacingGovernor",
  "Phase",
  "ProgressAggregator",
  "RunProgress",
  "SessionApprovalTarget",
  "StepResult",
  "WorkTarget",
  "uniform_pause_seconds",
]
