"""Fold step results into cumulative run progress."""

from __future__ import annotations

import datetime as dt
from collections.abc import Callable
from dataclasses import replace

from approval_dispatcher.dispatch.errors import InvalidTransitionError
from approval_dispatcher.dispatch.models import Cursor, Phase, RunProgress, StepResult

Clock = Callable[[], dt.datetime]


def utc_now() -> dt.datetime:
  return dt.datetime.now(dt.UTC)


def _count_step(current: RunProgress, result: StepResult) -> RunProgress:
  return replace(
    current,
    total_approved=current.total_approved + result.records_approved,
    total_sent_messages=result.messages_sent,
    total_skipped_messages=current.total_skipped_messages + result.messages_skipped,
    current_cursor=result.next_cursor,
    steps_taken=current.steps_taken + 1,
  )


class ProgressAggregator:
  """Hold the current `RunProgress` snapshot and apply the fold rules.

  Every mutation swaps in a new frozen snapshot, so observers holding an older one never see it
  change. Once the phase is terminal the snapshot is final and further mutations raise.
  """

  def __init__(self, *, clock: Clock = utc_now) -> None:
    self._clock = clock
    self._snapshot = RunProgress()

  @property
  def snapshot(self) -> RunProgress:
    return self._snapshot

  def _ensure_open(self, action: str) -> None:
    if self._snapshot.phase.is_terminal:
      raise InvalidTransitionError(f"Cannot {action}: run already {self._snapshot.phase.name}.")

  def begin(self) -> RunProgress:
    """Move from idle to running at the zero cursor."""

    if self._snapshot.phase.name != "idle":
      raise InvalidTransitionError(f"Cannot start a run that is {self._snapshot.phase.name}.")
    self._snapshot = RunProgress(current_cursor=Cursor.zero(), phase=Phase.running(), started_at=self._clock())
    return self._snapshot

  def fold(self, result: StepResult, *, pause_seconds: int | None = None) -> RunProgress:
    """Apply one step result.

    `pause_seconds` is the cool-down drawn for this step and is required when the result asks for
    a break while more work remains.
    """

    self._ensure_open("fold a step result")
    current = self._snapshot
    if current.phase.name != "running":
      raise InvalidTransitionError(f"Cannot fold a step result while {current.phase.name}.")

    if result.has_more:
      if result.needs_break:
        if pause_seconds is None:
          raise ValueError("pause_seconds is required when a step needs a break.")
        phase = Phase.cooling(pause_seconds)
      else:
        phase = Phase.running()
    else:
      phase = Phase.completed()

    self._snapshot = replace(
      _count_step(current, result),
      phase=phase,
      pauses_taken=current.pauses_taken + (1 if phase.name == "cooling" else 0),
      finished_at=self._clock() if phase.is_terminal else None,
    )
    return self._snapshot

  def tick(self, remaining_seconds: int) -> RunProgress:
    """Update the cool-down countdown shown to observers."""

    self._ensure_open("tick the countdown")
    if self._snapshot.phase.name != "cooling":
      raise InvalidTransitionError(f"Cannot tick a countdown while {self._snapshot.phase.name}.")
    self._snapshot = replace(self._snapshot, phase=Phase.cooling(remaining_seconds))
    return self._snapshot

  def resume(self) -> RunProgress:
    """Leave cooling once the countdown elapses."""

    self._ensure_open("resume")
    if self._snapshot.phase.name != "cooling":
      raise InvalidTransitionError(f"Cannot resume a run that is {self._snapshot.phase.name}.")
    self._snapshot = replace(self._snapshot, phase=Phase.running())
    return self._snapshot

  def fail(self, reason: str, *, result: StepResult | None = None) -> RunProgress:
    """Move to failed; `result` is a validated step whose counters are kept before failing."""

    self._ensure_open("fail")
    current = self._snapshot
    if result is not None:
      current = _count_step(current, result)
    self._snapshot = replace(current, phase=Phase.failed(reason), finished_at=self._clock())
    return self._snapshot

  def cancel(self) -> RunProgress:
    self._ensure_open("cancel")
    self._snapshot = replace(self._snapshot, phase=Phase.cancelled(), finished_at=self._clock())
    return self._snapshot
