import logging

from fastapi import APIRouter, Depends, status

from approval_dispatcher.api.deps import get_run_registry
from approval_dispatcher.api.models import AbsenceResendRunRequest, RunListResponse, RunStatusResponse, SessionApprovalRunRequest
from approval_dispatcher.dispatch.registry import RunRegistry

router = APIRouter()
logger = logging.getLogger("approval_dispatcher.api.routes.runs")


@router.post("/session-approvals", response_model=RunStatusResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_session_approval(  # noqa: B008
  request: SessionApprovalRunRequest,
  registry: RunRegistry = Depends(get_run_registry),  # noqa: B008
) -> RunStatusResponse:
  """Start a paced approval run for a class session."""
  record = await registry.start(request.to_target())
  return RunStatusResponse.from_record(record)


@router.post("/absence-resends", response_model=RunStatusResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_absence_resend(  # noqa: B008
  request: AbsenceResendRunRequest,
  registry: RunRegistry = Depends(get_run_registry),  # noqa: B008
) -> RunStatusResponse:
  """Start a paced resend of absence notifications."""
  record = await registry.start(request.to_target())
  return RunStatusResponse.from_record(record)


@router.get("", response_model=RunListResponse)
async def list_runs(registry: RunRegistry = Depends(get_run_registry)) -> RunListResponse:  # noqa: B008
  """List tracked runs, newest first."""
  return RunListResponse(runs=[RunStatusResponse.from_record(record) for record in registry.list_runs()])


@router.get("/{run_id}", response_model=RunStatusResponse)
async def get_run(run_id: str, registry: RunRegistry = Depends(get_run_registry)) -> RunStatusResponse:  # noqa: B008
  """Fetch a run's latest progress snapshot."""
  return RunStatusResponse.from_record(registry.get(run_id))


@router.post("/{run_id}/cancel", response_model=RunStatusResponse)
async def cancel_run(run_id: str, registry: RunRegistry = Depends(get_run_registry)) -> RunStatusResponse:  # noqa: B008
  """Cancel a run. Cancelling a finished run returns its final snapshot unchanged."""
  record = registry.cancel(run_id)
  logger.info("Cancel requested for run %s (phase=%s)", run_id, record.progress.phase.name)
  return RunStatusResponse.from_record(record)
