from fastapi import APIRouter, Depends

from approval_dispatcher.api.deps import get_approvals_service
from approval_dispatcher.api.models import ApproveAllResponse, RejectSessionRequest, RejectSessionResponse
from approval_dispatcher.services.approvals import ApprovalsService

router = APIRouter()


@router.post("/approve-all", response_model=ApproveAllResponse)
async def approve_all(service: ApprovalsService = Depends(get_approvals_service)) -> ApproveAllResponse:  # noqa: B008
  """Approve every pending session in one unpaced call."""
  result = await service.approve_all_pending()
  return ApproveAllResponse(approved_count=result.approved_count, failed_count=result.failed_count)


@router.post("/reject-session", response_model=RejectSessionResponse)
async def reject_session(  # noqa: B008
  request: RejectSessionRequest,
  service: ApprovalsService = Depends(get_approvals_service),  # noqa: B008
) -> RejectSessionResponse:
  """Reject one session's attendance for a day."""
  success = await service.reject_session(request.to_target(), request.reason)
  return RejectSessionResponse(success=success)
