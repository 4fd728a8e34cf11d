"""Step clients: one remote batch-step call per invocation, no policy."""

from __future__ import annotations

import logging
from typing import Protocol

import msgspec

from approval_dispatcher.dispatch.errors import StepError
from approval_dispatcher.dispatch.models import AbsenceResendTarget, Cursor, SessionApprovalTarget, StepResult, WorkTarget
from approval_dispatcher.services.backend import BackendClient, BackendError

logger = logging.getLogger(__name__)

APPROVE_SESSION_PATH = "/admin/attendance-reports/approve-session"
RESEND_ABSENCE_PATH = "/admin/attendance-reports/resend-absence-messages"


class StepClient(Protocol):
  """Contract for executing one remote batch step."""

  async def execute_step(self, target: WorkTarget, cursor: Cursor) -> StepResult:
    """Run one step starting at `cursor`; raise `StepError` on any failure."""


class ApproveSessionPayload(msgspec.Struct):
  """Fields of the approve-session response that drive pacing and progress."""

  records_approved: int
  total_messages_sent: int
  messages_skipped: int
  next_offset: int
  has_more: bool
  needs_break: bool
  messages_sent: int | None = None
  remaining_count: int | None = None
  batch_size: int | None = None


class ResendAbsencePayload(msgspec.Struct):
  """Fields of the resend-absence-messages response; counts are step-local."""

  messages_sent: int
  messages_skipped: int
  next_offset: int
  has_more: bool
  needs_break: bool
  messages_failed: int = 0
  total_absent: int | None = None
  remaining_count: int | None = None
  batch_size: int | None = None


class SessionApprovalStepClient:
  """Approves one slice of a session's pending attendance per call."""

  def __init__(self, backend: BackendClient) -> None:
    self._backend = backend

  async def execute_step(self, target: WorkTarget, cursor: Cursor) -> StepResult:
    if not isinstance(target, SessionApprovalTarget):
      raise TypeError(f"SessionApprovalStepClient cannot run {type(target).__name__}")

    request = {"session_id": target.session_id, "date": target.date.isoformat(), "offset": cursor.offset, "total_sent": cursor.cumulative_sent}
    logger.debug("Approve-session step session_id=%s offset=%s total_sent=%s", target.session_id, cursor.offset, cursor.cumulative_sent)

    try:
      payload = await self._backend.post(APPROVE_SESSION_PATH, request, data_type=ApproveSessionPayload, error_message="Failed to approve attendance session")
    except BackendError as exc:
      raise StepError(exc.message, status_code=exc.status_code) from exc

    if payload is None:
      raise StepError("Approve-session response carried no data")

    return StepResult(
      records_approved=payload.records_approved,
      messages_sent=payload.total_messages_sent,
      messages_skipped=payload.messages_skipped,
      next_cursor=Cursor(offset=payload.next_offset, cumulative_sent=payload.total_messages_sent),
      has_more=payload.has_more,
      needs_break=payload.needs_break,
    )


class AbsenceResendStepClient:
  """Resends one slice of a day's absence notifications per call."""

  def __init__(self, backend: BackendClient) -> None:
    self._backend = backend

  async def execute_step(self, target: WorkTarget, cursor: Cursor) -> StepResult:
    if not isinstance(target, AbsenceResendTarget):
      raise TypeError(f"AbsenceResendStepClient cannot run {type(target).__name__}")

    request = {"date": target.date.isoformat(), "skip_sent": target.skip_sent, "offset": cursor.offset}
    logger.debug("Resend-absence step date=%s offset=%s", target.date.isoformat(), cursor.offset)

    try:
      payload = await self._backend.post(RESEND_ABSENCE_PATH, request, data_type=ResendAbsencePayload, error_message="Failed to resend absence messages")
    except BackendError as exc:
      raise StepError(exc.message, status_code=exc.status_code) from exc

    if payload is None:
      raise StepError("Resend-absence response carried no data")

    # The server does not track cumulative sends for this endpoint; the cursor carries them.
    cumulative_sent = cursor.cumulative_sent + payload.messages_sent
    return StepResult(
      records_approved=payload.messages_sent + payload.messages_skipped + payload.messages_failed,
      messages_sent=cumulative_sent,
      messages_skipped=payload.messages_skipped + payload.messages_failed,
      next_cursor=Cursor(offset=payload.next_offset, cumulative_sent=cumulative_sent),
      has_more=payload.has_more,
      needs_break=payload.needs_break,
    )
