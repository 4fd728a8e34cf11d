"""Exceptions raised by the paced dispatch core."""

from __future__ import annotations


class DispatchError(Exception):
  """Base class for dispatcher failures."""


class StepError(DispatchError):
  """Raised when a remote batch step fails at the transport or server level."""

  def __init__(self, reason: str, *, status_code: int | None = None) -> None:
    super().__init__(reason)
    self.reason = reason
    self.status_code = status_code


class MalformedStepResultError(DispatchError):
  """Raised when a step result breaks the batch-step contract."""


class InvalidTransitionError(DispatchError):
  """Raised when a control call or mutation is illegal in the current phase."""


class RunConflictError(DispatchError):
  """Raised when a run is requested for a target that already has an active run."""

  def __init__(self, target_key: str, run_id: str) -> None:
    super().__init__(f"Run {run_id} is already active for {target_key}.")
    self.target_key = target_key
    self.run_id = run_id


class RunNotFoundError(DispatchError):
  """Raised when a run id is unknown to the registry."""

  def __init__(self, run_id: str) -> None:
    super().__init__(f"Run {run_id} was not found.")
    self.run_id = run_id
