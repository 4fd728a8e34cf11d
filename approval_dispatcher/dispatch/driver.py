"""Batch driver: the state machine that walks a work queue in paced steps.

States: idle -> running <-> cooling -> completed, with failed and cancelled reachable from running
or cooling. Every transition after `start` funnels through `_advance`, driven either by a step
outcome or by the cool-down countdown elapsing.

At most one step task and one countdown exist at any moment. Step n+1 is always issued with the
cursor returned by step n, and no offset is issued twice, so the remote side never sees a repeated
slice (which would resend notifications).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from types import TracebackType

from approval_dispatcher.dispatch.errors import InvalidTransitionError, MalformedStepResultError, StepError
from approval_dispatcher.dispatch.models import Cursor, RunProgress, StepResult, WorkTarget
from approval_dispatcher.dispatch.pacing import PacingGovernor
from approval_dispatcher.dispatch.progress import ProgressAggregator
from approval_dispatcher.dispatch.step_client import StepClient

logger = logging.getLogger(__name__)

ProgressListener = Callable[[RunProgress], None]


@dataclass(frozen=True)
class StepSucceeded:
  cursor: Cursor
  result: StepResult


@dataclass(frozen=True)
class StepFailed:
  cursor: Cursor
  reason: str


@dataclass(frozen=True)
class CountdownElapsed:
  pass


DriverEvent = StepSucceeded | StepFailed | CountdownElapsed


def validate_step_result(cursor: Cursor, result: StepResult, previous: RunProgress) -> None:
  """Reject results that would corrupt totals or loop over the same slice."""

  counts = {"records_approved": result.records_approved, "messages_sent": result.messages_sent, "messages_skipped": result.messages_skipped}
  for name, value in counts.items():
    if value < 0:
      raise MalformedStepResultError(f"{name} must not be negative (got {value}).")

  if result.messages_sent < previous.total_sent_messages:
    raise MalformedStepResultError(f"Cumulative messages_sent went backwards ({previous.total_sent_messages} -> {result.messages_sent}).")

  if result.next_cursor.offset < cursor.offset:
    raise MalformedStepResultError(f"next offset {result.next_cursor.offset} regresses from {cursor.offset}.")

  if result.has_more and result.next_cursor.offset <= cursor.offset:
    raise MalformedStepResultError(f"Step reported more work without advancing past offset {cursor.offset}.")


class BatchDriver:
  """Drive one paced run against a step client.

  A driver runs exactly once: `start` is legal only while idle. `cancel` is legal at any time and is
  a no-op unless the run is active. Observers get a fresh `RunProgress` snapshot through
  `on_progress` after every change and the terminal snapshot once through `on_finished`.
  """

  def __init__(self, step_client: StepClient, *, governor: PacingGovernor | None = None, aggregator: ProgressAggregator | None = None, on_progress: ProgressListener | None = None, on_finished: ProgressListener | None = None, name: str = "run") -> None:
    self._step_client = step_client
    self._governor = governor or PacingGovernor()
    self._aggregator = aggregator or ProgressAggregator()
    self._on_progress = on_progress
    self._on_finished = on_finished
    self._name = name
    self._target: WorkTarget | None = None
    self._step_task: asyncio.Task[None] | None = None
    self._finished = asyncio.Event()

  @property
  def progress(self) -> RunProgress:
    """Current read-only snapshot."""
    return self._aggregator.snapshot

  @property
  def target(self) -> WorkTarget | None:
    return self._target

  @property
  def step_in_flight(self) -> bool:
    return self._step_task is not None and not self._step_task.done()

  async def start(self, target: WorkTarget) -> RunProgress:
    """Begin the run at the zero cursor and issue the first step."""

    if self.progress.phase.name != "idle":
      raise InvalidTransitionError(f"Run {self._name} cannot start while {self.progress.phase.name}.")

    self._target = target
    snapshot = self._aggregator.begin()
    logger.info("Run %s started for %s", self._name, target.key)
    self._publish(snapshot)
    if self.progress.phase.is_active:
      self._issue_step(snapshot.current_cursor)
    return snapshot

  def cancel(self) -> RunProgress:
    """Stop the run; late step outcomes are discarded. Idempotent."""

    if not self.progress.phase.is_active:
      return self.progress

    self._governor.release()
    self._abandon_step()
    snapshot = self._aggregator.cancel()
    logger.info("Run %s cancelled at offset %s (approved=%s)", self._name, snapshot.current_cursor.offset, snapshot.total_approved)
    self._finish(snapshot)
    return snapshot

  async def wait(self) -> RunProgress:
    """Wait for the run to reach a terminal phase and return the final snapshot."""

    await self._finished.wait()
    return self.progress

  async def aclose(self) -> None:
    """Tear the run down, releasing its countdown and any in-flight step."""

    self.cancel()
    self._governor.release()
    self._abandon_step()

  async def __aenter__(self) -> BatchDriver:
    return self

  async def __aexit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: TracebackType | None) -> None:
    await self.aclose()

  def _issue_step(self, cursor: Cursor) -> None:
    if self._target is None:
      raise InvalidTransitionError("Cannot issue a step before the run has a target.")
    if self.step_in_flight:
      raise InvalidTransitionError("A step is already in flight.")
    self._step_task = asyncio.create_task(self._execute_step(self._target, cursor), name=f"{self._name}-step-{cursor.offset}")

  async def _execute_step(self, target: WorkTarget, cursor: Cursor) -> None:
    try:
      result = await self._step_client.execute_step(target, cursor)
    except StepError as exc:
      event: DriverEvent = StepFailed(cursor, exc.reason)
    except Exception as exc:  # noqa: BLE001
      logger.exception("Run %s step at offset %s raised unexpectedly", self._name, cursor.offset)
      event = StepFailed(cursor, f"{type(exc).__name__}: {exc}")
    else:
      event = StepSucceeded(cursor, result)

    self._step_task = None
    self._dispatch(event)

  def _abandon_step(self) -> None:
    task = self._step_task
    self._step_task = None
    if task is not None and not task.done() and task is not asyncio.current_task():
      task.cancel()

  def _dispatch(self, event: DriverEvent) -> None:
    """Apply an event; anything raised while handling it fails the run."""

    try:
      self._advance(event)
    except Exception as exc:  # noqa: BLE001
      logger.exception("Run %s could not handle %s", self._name, type(event).__name__)
      if self.progress.phase.is_active:
        self._fail(f"{type(exc).__name__}: {exc}")

  def _advance(self, event: DriverEvent) -> None:
    """Single transition function for step outcomes and countdown completion."""

    phase = self.progress.phase
    if phase.is_terminal:
      logger.debug("Run %s discarding %s after %s", self._name, type(event).__name__, phase.name)
      return

    if isinstance(event, StepFailed):
      self._fail(f"Step at offset {event.cursor.offset} failed: {event.reason}")
      return

    if isinstance(event, CountdownElapsed):
      if phase.name != "cooling":
        return
      snapshot = self._aggregator.resume()
      logger.info("Run %s resuming at offset %s", self._name, snapshot.current_cursor.offset)
      self._publish(snapshot)
      if self.progress.phase.is_active:
        self._issue_step(snapshot.current_cursor)
      return

    try:
      validate_step_result(event.cursor, event.result, self.progress)
    except MalformedStepResultError as exc:
      self._fail(str(exc))
      return

    try:
      decision = self._governor.decide(event.result)
    except Exception as exc:  # noqa: BLE001
      # The step already happened remotely; keep its counts.
      self._fail(f"Pacing decision failed after offset {event.cursor.offset}: {type(exc).__name__}: {exc}", result=event.result)
      return

    snapshot = self._aggregator.fold(event.result, pause_seconds=decision.pause_seconds)
    logger.info("Run %s step offset=%s approved=%s sent=%s skipped=%s decision=%s", self._name, event.cursor.offset, event.result.records_approved, event.result.messages_sent, event.result.messages_skipped, decision.action)

    if decision.action == "stop":
      logger.info("Run %s completed (approved=%s sent=%s skipped=%s)", self._name, snapshot.total_approved, snapshot.total_sent_messages, snapshot.total_skipped_messages)
      self._finish(snapshot)
      return

    self._publish(snapshot)
    # A listener may have cancelled the run while observing this snapshot.
    if not self.progress.phase.is_active:
      return

    if decision.pause_seconds is not None:
      logger.info("Run %s cooling down for %s seconds", self._name, decision.pause_seconds)
      self._governor.arm(decision.pause_seconds, on_tick=self._on_countdown_tick, on_elapsed=self._on_countdown_elapsed)
      return

    self._issue_step(snapshot.current_cursor)

  def _on_countdown_tick(self, remaining_seconds: int) -> None:
    if self.progress.phase.name != "cooling":
      return
    self._publish(self._aggregator.tick(remaining_seconds))

  def _on_countdown_elapsed(self) -> None:
    self._dispatch(CountdownElapsed())

  def _fail(self, reason: str, *, result: StepResult | None = None) -> None:
    self._governor.release()
    self._abandon_step()
    snapshot = self._aggregator.fail(reason, result=result)
    logger.warning("Run %s failed at offset %s (approved=%s): %s", self._name, snapshot.current_cursor.offset, snapshot.total_approved, reason)
    self._finish(snapshot)

  def _publish(self, snapshot: RunProgress) -> None:
    if self._on_progress is None:
      return
    try:
      self._on_progress(snapshot)
    except Exception:  # noqa: BLE001
      logger.exception("Run %s progress listener failed", self._name)

  def _finish(self, snapshot: RunProgress) -> None:
    self._publish(snapshot)
    self._finished.set()
    if self._on_finished is None:
      return
    try:
      self._on_finished(snapshot)
    except Exception:  # noqa: BLE001
      logger.exception("Run %s finish listener failed", self._name)
