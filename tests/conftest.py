"""Shared fixtures for dispatcher tests."""

from __future__ import annotations

import asyncio
import os
import tempfile
from collections.abc import Iterable

# Ensure required settings are available before importing the app.
os.environ.setdefault("DISPATCH_BACKEND_BASE_URL", "http://backend.test/api")
os.environ.setdefault("DISPATCH_ALLOWED_ORIGINS", "http://localhost")
os.environ.setdefault("DISPATCH_LOG_DIR", tempfile.mkdtemp(prefix="dispatcher-logs-"))

import pytest  # noqa: E402

from approval_dispatcher.dispatch.models import Cursor, StepResult, WorkTarget  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


def make_step(*, approved: int, sent: int, skipped: int = 0, next_offset: int, has_more: bool, needs_break: bool = False) -> StepResult:
  """Build a step result whose next cursor carries the cumulative sends."""
  return StepResult(records_approved=approved, messages_sent=sent, messages_skipped=skipped, next_cursor=Cursor(offset=next_offset, cumulative_sent=sent), has_more=has_more, needs_break=needs_break)


class ScriptedStepClient:
  """Step client that replays scripted outcomes and records every cursor it receives."""

  def __init__(self, outcomes: Iterable[StepResult | Exception]) -> None:
    self._outcomes = list(outcomes)
    self.calls: list[Cursor] = []
    self.in_flight = 0
    self.max_in_flight = 0

  async def execute_step(self, target: WorkTarget, cursor: Cursor) -> StepResult:
    self.calls.append(cursor)
    self.in_flight += 1
    self.max_in_flight = max(self.max_in_flight, self.in_flight)
    try:
      await asyncio.sleep(0)
      outcome = self._outcomes.pop(0)
      if isinstance(outcome, Exception):
        raise outcome
      return outcome
    finally:
      self.in_flight -= 1


class GatedStepClient(ScriptedStepClient):
  """Scripted client that holds every call until `release` is set."""

  def __init__(self, outcomes: Iterable[StepResult | Exception]) -> None:
    super().__init__(outcomes)
    self.release = asyncio.Event()

  async def execute_step(self, target: WorkTarget, cursor: Cursor) -> StepResult:
    await self.release.wait()
    return await super().execute_step(target, cursor)


async def instant_sleep(_: float) -> None:
  await asyncio.sleep(0)


async def never_sleep(_: float) -> None:
  await asyncio.Event().wait()


async def spin(predicate, *, limit: int = 5000) -> None:
  """Yield to the loop until `predicate()` holds."""
  for _ in range(limit):
    if predicate():
      return
    await asyncio.sleep(0)
  raise AssertionError("condition not reached")


@pytest.fixture
def step_factory():
  return make_step


@pytest.fixture
def scripted_client():
  return ScriptedStepClient


@pytest.fixture
def gated_client():
  return GatedStepClient


@pytest.fixture
def sleeps():
  return {"instant": instant_sleep, "never": never_sleep}


@pytest.fixture
def spin_until():
  return spin
