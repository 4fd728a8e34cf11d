"""One-shot approval collaborators that need no pacing."""

from __future__ import annotations

import logging

import msgspec

from approval_dispatcher.dispatch.models import SessionApprovalTarget
from approval_dispatcher.services.backend import BackendClient, BackendError

logger = logging.getLogger(__name__)

APPROVE_ALL_PENDING_PATH = "/admin/attendance-reports/approve-all-pending"
REJECT_SESSION_PATH = "/admin/attendance-reports/reject-session"


class ApproveAllResult(msgspec.Struct):
  """Counts reported by the approve-all-pending endpoint."""

  approved_count: int
  failed_count: int


class ApprovalsService:
  """Approve every pending session at once, or reject a single session.

  Like the paced runs, neither call is retried; failures surface as `BackendError`.
  """

  def __init__(self, backend: BackendClient) -> None:
    self._backend = backend

  async def approve_all_pending(self) -> ApproveAllResult:
    result = await self._backend.post(APPROVE_ALL_PENDING_PATH, None, data_type=ApproveAllResult, error_message="Failed to approve all pending sessions")
    if result is None:
      raise BackendError("Approve-all response carried no data")
    logger.info("Approved all pending sessions approved=%s failed=%s", result.approved_count, result.failed_count)
    return result

  async def reject_session(self, target: SessionApprovalTarget, reason: str | None = None) -> bool:
    """Reject a session's attendance for one day; returns True once the backend confirms."""

    payload = {"session_id": target.session_id, "date": target.date.isoformat(), "reason": reason}
    await self._backend.post(REJECT_SESSION_PATH, payload, data_type=dict, error_message="Failed to reject attendance session")
    logger.info("Rejected session %s for %s", target.session_id, target.date.isoformat())
    return True
