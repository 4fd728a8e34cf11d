"""Pacing policy and the cool-down countdown between batch steps."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from types import TracebackType
from typing import Literal

from approval_dispatcher.dispatch.errors import InvalidTransitionError
from approval_dispatcher.dispatch.models import StepResult

logger = logging.getLogger(__name__)

# Human-paced cool-down window; keeps the messaging account clear of throttling.
PAUSE_MIN_SECONDS = 120
PAUSE_MAX_SECONDS = 180

DurationSource = Callable[[], int]
Sleep = Callable[[float], Awaitable[None]]
TickCallback = Callable[[int], None]
ElapsedCallback = Callable[[], None]

DecisionAction = Literal["continue", "pause", "stop"]


def uniform_pause_seconds(rng: random.Random | None = None) -> DurationSource:
  """Return a source drawing a fresh pause uniformly from the closed policy range."""

  generator = rng or random.SystemRandom()

  def _draw() -> int:
    return generator.randint(PAUSE_MIN_SECONDS, PAUSE_MAX_SECONDS)

  return _draw


@dataclass(frozen=True)
class Decision:
  """What the driver should do after folding a step result."""

  action: DecisionAction
  pause_seconds: int | None = None

  @classmethod
  def proceed(cls) -> Decision:
    return cls("continue")

  @classmethod
  def pause(cls, seconds: int) -> Decision:
    return cls("pause", pause_seconds=seconds)

  @classmethod
  def stop(cls) -> Decision:
    return cls("stop")


class PacingGovernor:
  """Turn step results into scheduling decisions and own the cool-down countdown.

  At most one countdown is armed at a time. `release()` cancels it at any tick and is safe to call
  repeatedly; leaving the governor's `async with` block always releases.
  """

  def __init__(self, *, duration_source: DurationSource | None = None, sleep: Sleep = asyncio.sleep, tick_seconds: float = 1.0) -> None:
    self._duration_source = duration_source or uniform_pause_seconds()
    self._sleep = sleep
    self._tick_seconds = tick_seconds
    self._task: asyncio.Task[None] | None = None
    self._token: object | None = None
    self._remaining: int | None = None

  def decide(self, result: StepResult) -> Decision:
    """Map a step result to continue, pause (with a fresh duration) or stop."""

    if not result.has_more:
      return Decision.stop()

    if result.needs_break:
      return Decision.pause(self._draw_duration())

    return Decision.proceed()

  def _draw_duration(self) -> int:
    duration = self._duration_source()
    if not isinstance(duration, int) or not PAUSE_MIN_SECONDS <= duration <= PAUSE_MAX_SECONDS:
      raise ValueError(f"Pause duration must be an integer in [{PAUSE_MIN_SECONDS}, {PAUSE_MAX_SECONDS}], got {duration!r}.")
    return duration

  @property
  def armed(self) -> bool:
    return self._token is not None

  @property
  def remaining_seconds(self) -> int | None:
    return self._remaining

  def arm(self, duration: int, *, on_tick: TickCallback, on_elapsed: ElapsedCallback) -> None:
    """Start counting down `duration` seconds, reporting each tick and firing `on_elapsed` at zero."""

    if self.armed:
      raise InvalidTransitionError("A cool-down countdown is already armed.")
    if duration <= 0:
      raise ValueError("Countdown duration must be positive.")

    token = object()
    self._token = token
    self._remaining = duration
    self._task = asyncio.create_task(self._countdown(token, duration, on_tick, on_elapsed))
    logger.debug("Cool-down armed for %s seconds", duration)

  def release(self) -> None:
    """Disarm the countdown; no further ticks or elapsed callbacks fire."""

    task = self._task
    was_armed = self._token is not None
    self._token = None
    self._task = None
    self._remaining = None

    if task is not None and not task.done() and task is not asyncio.current_task():
      task.cancel()
    if was_armed:
      logger.debug("Cool-down released")

  async def _countdown(self, token: object, duration: int, on_tick: TickCallback, on_elapsed: ElapsedCallback) -> None:
    remaining = duration
    while remaining > 0:
      await self._sleep(self._tick_seconds)
      if self._token is not token:
        return
      remaining -= 1
      self._remaining = remaining
      if remaining > 0:
        on_tick(remaining)
        # A tick observer may have released the countdown.
        if self._token is not token:
          return

    self._token = None
    self._task = None
    self._remaining = None
    on_elapsed()

  async def __aenter__(self) -> PacingGovernor:
    return self

  async def __aexit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: TracebackType | None) -> None:
    self.release()
