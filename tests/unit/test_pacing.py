from __future__ import annotations

import asyncio
import random

import pytest

from approval_dispatcher.dispatch.errors import InvalidTransitionError
from approval_dispatcher.dispatch.pacing import PAUSE_MAX_SECONDS, PAUSE_MIN_SECONDS, PacingGovernor, uniform_pause_seconds


def test_uniform_pause_stays_inside_policy_window() -> None:
  draw = uniform_pause_seconds(random.Random(1234))
  values = {draw() for _ in range(2000)}
  assert min(values) >= PAUSE_MIN_SECONDS
  assert max(values) <= PAUSE_MAX_SECONDS
  # Both ends of the closed range are reachable.
  assert PAUSE_MIN_SECONDS in values
  assert PAUSE_MAX_SECONDS in values


def test_decide_maps_results_to_actions(step_factory) -> None:
  governor = PacingGovernor(duration_source=lambda: 150)

  assert governor.decide(step_factory(approved=1, sent=1, next_offset=1, has_more=True)).action == "continue"

  paused = governor.decide(step_factory(approved=1, sent=1, next_offset=1, has_more=True, needs_break=True))
  assert paused.action == "pause"
  assert paused.pause_seconds == 150

  # A break request on the last step does not delay completion.
  assert governor.decide(step_factory(approved=1, sent=1, next_offset=1, has_more=False, needs_break=True)).action == "stop"


@pytest.mark.parametrize("bad", [119, 181, 150.5, 0])
def test_out_of_range_duration_is_rejected(step_factory, bad) -> None:
  governor = PacingGovernor(duration_source=lambda: bad)
  with pytest.raises(ValueError):
    governor.decide(step_factory(approved=1, sent=1, next_offset=1, has_more=True, needs_break=True))


@pytest.mark.anyio
async def test_countdown_ticks_down_then_elapses(sleeps) -> None:
  ticks: list[int] = []
  elapsed: list[bool] = []
  governor = PacingGovernor(sleep=sleeps["instant"])

  governor.arm(3, on_tick=ticks.append, on_elapsed=lambda: elapsed.append(True))
  assert governor.armed
  assert governor.remaining_seconds == 3

  for _ in range(20):
    await asyncio.sleep(0)

  assert ticks == [2, 1]
  assert elapsed == [True]
  assert not governor.armed
  assert governor.remaining_seconds is None


@pytest.mark.anyio
async def test_arm_rejects_second_countdown_and_bad_duration(sleeps) -> None:
  async with PacingGovernor(sleep=sleeps["never"]) as governor:
    with pytest.raises(ValueError):
      governor.arm(0, on_tick=lambda _: None, on_elapsed=lambda: None)

    governor.arm(5, on_tick=lambda _: None, on_elapsed=lambda: None)
    with pytest.raises(InvalidTransitionError):
      governor.arm(5, on_tick=lambda _: None, on_elapsed=lambda: None)

  assert not governor.armed
  await asyncio.sleep(0)


@pytest.mark.anyio
async def test_release_from_tick_stops_countdown(sleeps) -> None:
  ticks: list[int] = []
  elapsed: list[bool] = []
  governor = PacingGovernor(sleep=sleeps["instant"])

  def on_tick(remaining: int) -> None:
    ticks.append(remaining)
    if remaining == 8:
      governor.release()

  governor.arm(10, on_tick=on_tick, on_elapsed=lambda: elapsed.append(True))
  for _ in range(50):
    await asyncio.sleep(0)

  assert ticks == [9, 8]
  assert elapsed == []
  assert not governor.armed

  # Releasing again is harmless and the governor can be re-armed.
  governor.release()
  governor.arm(1, on_tick=ticks.append, on_elapsed=lambda: elapsed.append(True))
  for _ in range(10):
    await asyncio.sleep(0)
  assert elapsed == [True]


@pytest.mark.anyio
async def test_release_cancels_a_sleeping_countdown(sleeps) -> None:
  elapsed: list[bool] = []
  governor = PacingGovernor(sleep=sleeps["never"])

  governor.arm(120, on_tick=lambda _: None, on_elapsed=lambda: elapsed.append(True))
  await asyncio.sleep(0)
  governor.release()
  await asyncio.sleep(0)

  assert not governor.armed
  assert elapsed == []
