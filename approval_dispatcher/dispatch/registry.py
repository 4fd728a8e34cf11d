"""Registry of paced runs owned by the service process."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from approval_dispatcher.dispatch.driver import BatchDriver
from approval_dispatcher.dispatch.errors import RunConflictError, RunNotFoundError
from approval_dispatcher.dispatch.models import AbsenceResendTarget, RunKind, RunProgress, SessionApprovalTarget, WorkTarget
from approval_dispatcher.dispatch.pacing import PacingGovernor
from approval_dispatcher.dispatch.step_client import StepClient
from approval_dispatcher.utils.ids import generate_run_id

logger = logging.getLogger(__name__)

MAX_FINISHED_RUNS = 100

GovernorFactory = Callable[[], PacingGovernor]


def run_kind_for(target: WorkTarget) -> RunKind:
  """Return the run kind that handles a target."""

  if isinstance(target, SessionApprovalTarget):
    return "session_approval"
  if isinstance(target, AbsenceResendTarget):
    return "absence_resend"
  raise TypeError(f"Unsupported work target {type(target).__name__}")


@dataclass
class RunRecord:
  """A run tracked by the registry."""

  run_id: str
  kind: RunKind
  target: WorkTarget
  driver: BatchDriver
  created_at: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.UTC))

  @property
  def progress(self) -> RunProgress:
    return self.driver.progress

  def as_dict(self) -> dict[str, Any]:
    return {"run_id": self.run_id, "kind": self.kind, "target": self.target.as_dict(), "created_at": self.created_at.isoformat(), **self.progress.as_dict()}


class RunRegistry:
  """Start, look up and cancel runs; keep at most one active run per work target."""

  def __init__(self, step_clients: Mapping[RunKind, StepClient], *, governor_factory: GovernorFactory = PacingGovernor, max_finished_runs: int = MAX_FINISHED_RUNS) -> None:
    self._step_clients = dict(step_clients)
    self._governor_factory = governor_factory
    self._max_finished_runs = max(max_finished_runs, 0)
    self._runs: dict[str, RunRecord] = {}
    self._active_by_key: dict[str, str] = {}

  async def start(self, target: WorkTarget) -> RunRecord:
    """Create a driver for `target` and start it; refuse overlapping runs."""

    active_run_id = self._active_by_key.get(target.key)
    if active_run_id is not None:
      raise RunConflictError(target.key, active_run_id)

    kind = run_kind_for(target)
    step_client = self._step_clients.get(kind)
    if step_client is None:
      raise LookupError(f"No step client registered for {kind} runs.")

    run_id = generate_run_id()
    driver = BatchDriver(step_client, governor=self._governor_factory(), on_finished=lambda snapshot: self._on_finished(run_id, target.key, snapshot), name=run_id)
    record = RunRecord(run_id=run_id, kind=kind, target=target, driver=driver)

    # Register before starting so a run that finishes synchronously still finds its record.
    self._runs[run_id] = record
    self._active_by_key[target.key] = run_id
    await driver.start(target)
    self._evict_finished()
    logger.info("Registered %s run %s for %s", kind, run_id, target.key)
    return record

  def get(self, run_id: str) -> RunRecord:
    record = self._runs.get(run_id)
    if record is None:
      raise RunNotFoundError(run_id)
    return record

  def list_runs(self) -> list[RunRecord]:
    """Return every tracked run, newest first."""

    return sorted(self._runs.values(), key=lambda record: record.created_at, reverse=True)

  def cancel(self, run_id: str) -> RunRecord:
    """Cancel a run; cancelling a finished run is a no-op."""

    record = self.get(run_id)
    record.driver.cancel()
    return record

  async def wait(self, run_id: str) -> RunProgress:
    return await self.get(run_id).driver.wait()

  async def shutdown(self) -> None:
    """Tear down every active run."""

    active = [self._runs[run_id] for run_id in list(self._active_by_key.values()) if run_id in self._runs]
    if active:
      logger.info("Shutting down %s active run(s)", len(active))
    await asyncio.gather(*(record.driver.aclose() for record in active))

  def _on_finished(self, run_id: str, target_key: str, snapshot: RunProgress) -> None:
    if self._active_by_key.get(target_key) == run_id:
      del self._active_by_key[target_key]
    logger.info("Run %s finished as %s", run_id, snapshot.phase.name)

  def _evict_finished(self) -> None:
    finished = [record for record in self._runs.values() if record.progress.phase.is_terminal]
    overflow = len(finished) - self._max_finished_runs
    if overflow <= 0:
      return
    finished.sort(key=lambda record: record.created_at)
    for record in finished[:overflow]:
      del self._runs[record.run_id]
