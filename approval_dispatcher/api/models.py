from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt

from approval_dispatcher.dispatch.models import AbsenceResendTarget, PhaseName, RunKind, SessionApprovalTarget
from approval_dispatcher.dispatch.registry import RunRecord


class SessionApprovalRunRequest(BaseModel):
  """Start a paced approval run for one class session and day."""

  session_id: StrictInt = Field(gt=0, description="Class session whose pending attendance is approved.")
  date: dt.date = Field(description="Attendance day (YYYY-MM-DD).")
  model_config = ConfigDict(extra="forbid")

  def to_target(self) -> SessionApprovalTarget:
    return SessionApprovalTarget(session_id=self.session_id, date=self.date)


class AbsenceResendRunRequest(BaseModel):
  """Start a paced resend of a day's absence notifications."""

  date: dt.date = Field(description="Attendance day (YYYY-MM-DD).")
  skip_sent: StrictBool = Field(default=True, description="Skip students whose guardians were already notified.")
  model_config = ConfigDict(extra="forbid")

  def to_target(self) -> AbsenceResendTarget:
    return AbsenceResendTarget(date=self.date, skip_sent=self.skip_sent)


class RejectSessionRequest(BaseModel):
  """Reject a session's attendance for one day."""

  session_id: StrictInt = Field(gt=0)
  date: dt.date
  reason: str | None = Field(default=None, max_length=500)
  model_config = ConfigDict(extra="forbid")

  def to_target(self) -> SessionApprovalTarget:
    return SessionApprovalTarget(session_id=self.session_id, date=self.date)


class CursorResponse(BaseModel):
  offset: int
  cumulative_sent: int


class RunStatusResponse(BaseModel):
  """Run identity plus its latest progress snapshot."""

  run_id: str
  kind: RunKind
  target: dict[str, Any]
  created_at: str
  phase: PhaseName
  remaining_seconds: int | None = None
  failure_reason: str | None = None
  total_approved: int
  total_sent_messages: int
  total_skipped_messages: int
  current_cursor: CursorResponse
  steps_taken: int
  pauses_taken: int
  started_at: str | None = None
  finished_at: str | None = None

  @classmethod
  def from_record(cls, record: RunRecord) -> RunStatusResponse:
    return cls.model_validate(record.as_dict())


class RunListResponse(BaseModel):
  runs: list[RunStatusResponse]


class ApproveAllResponse(BaseModel):
  approved_count: int
  failed_count: int


class RejectSessionResponse(BaseModel):
  success: bool
