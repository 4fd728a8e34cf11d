"""Domain models for paced bulk-approval runs."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Literal

PhaseName = Literal["idle", "running", "cooling", "completed", "failed", "cancelled"]
RunKind = Literal["session_approval", "absence_resend"]

TERMINAL_PHASES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})
ACTIVE_PHASES: frozenset[str] = frozenset({"running", "cooling"})


@dataclass(frozen=True)
class SessionApprovalTarget:
  """Approve the pending attendance of one class session on one day."""

  session_id: int
  date: dt.date

  @property
  def key(self) -> str:
    return f"session_approval:{self.session_id}:{self.date.isoformat()}"

  def as_dict(self) -> dict[str, Any]:
    return {"session_id": self.session_id, "date": self.date.isoformat()}


@dataclass(frozen=True)
class AbsenceResendTarget:
  """Resend absence notifications for every absent student on one day."""

  date: dt.date
  skip_sent: bool = True

  @property
  def key(self) -> str:
    # Both skip_sent variants touch the same guardians, so they share a key.
    return f"absence_resend:{self.date.isoformat()}"

  def as_dict(self) -> dict[str, Any]:
    return {"date": self.date.isoformat(), "skip_sent": self.skip_sent}


WorkTarget = SessionApprovalTarget | AbsenceResendTarget


@dataclass(frozen=True, order=True)
class Cursor:
  """Server-issued queue position plus the cumulative sends used for pacing."""

  offset: int = 0
  cumulative_sent: int = 0

  @classmethod
  def zero(cls) -> Cursor:
    return cls(offset=0, cumulative_sent=0)

  def as_dict(self) -> dict[str, int]:
    return {"offset": self.offset, "cumulative_sent": self.cumulative_sent}


@dataclass(frozen=True)
class StepResult:
  """Outcome of one remote batch step."""

  records_approved: int
  messages_sent: int
  messages_skipped: int
  next_cursor: Cursor
  has_more: bool
  needs_break: bool


@dataclass(frozen=True)
class Phase:
  """Run phase with the payload carried by cooling and failed phases."""

  name: PhaseName
  remaining_seconds: int | None = None
  reason: str | None = None

  @classmethod
  def idle(cls) -> Phase:
    return cls("idle")

  @classmethod
  def running(cls) -> Phase:
    return cls("running")

  @classmethod
  def cooling(cls, remaining_seconds: int) -> Phase:
    return cls("cooling", remaining_seconds=remaining_seconds)

  @classmethod
  def completed(cls) -> Phase:
    return cls("completed")

  @classmethod
  def failed(cls, reason: str) -> Phase:
    return cls("failed", reason=reason)

  @classmethod
  def cancelled(cls) -> Phase:
    return cls("cancelled")

  @property
  def is_terminal(self) -> bool:
    return self.name in TERMINAL_PHASES

  @property
  def is_active(self) -> bool:
    return self.name in ACTIVE_PHASES


@dataclass(frozen=True)
class RunProgress:
  """Read-only snapshot of a run's cumulative counters and phase."""

  total_approved: int = 0
  total_sent_messages: int = 0
  total_skipped_messages: int = 0
  current_cursor: Cursor = Cursor()
  phase: Phase = Phase("idle")
  steps_taken: int = 0
  pauses_taken: int = 0
  started_at: dt.datetime | None = None
  finished_at: dt.datetime | None = None

  def as_dict(self) -> dict[str, Any]:
    """Serialize the snapshot for API responses and logs."""
    return {
      "phase": self.phase.name,
      "remaining_seconds": self.phase.remaining_seconds,
      "failure_reason": self.phase.reason,
      "total_approved": self.total_approved,
      "total_sent_messages": self.total_sent_messages,
      "total_skipped_messages": self.total_skipped_messages,
      "current_cursor": self.current_cursor.as_dict(),
      "steps_taken": self.steps_taken,
      "pauses_taken": self.pauses_taken,
      "started_at": self.started_at.isoformat() if self.started_at else None,
      "finished_at": self.finished_at.isoformat() if self.finished_at else None,
    }
