from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from leaveflow.core.exceptions import AccessDeniedError
from leaveflow.core.schemas import ApiResponse
from leaveflow.models.leave_request import ActorRole, LeaveStatus
from leaveflow.routers.actor_deps import Actor, get_current_actor, get_workflow, require_role
from leaveflow.schemas.leave import (
    BalanceResponse,
    LeaveDecisionRequest,
    LeaveRequestResponse,
    LeaveSubmitRequest,
    StatusResponse,
    SubmitResponse,
)
from leaveflow.services.leave_workflow import LeaveWorkflowService, retry_on_conflict
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leave", tags=["leave"])


def _ensure_visible(actor: Actor, employee_id: int):
    # Employees only see their own requests and balances
    if actor.role == ActorRole.EMPLOYEE and actor.id != employee_id:
        raise AccessDeniedError("Employees can only access their own leave data")


@router.post("/requests", response_model=ApiResponse[SubmitResponse], status_code=status.HTTP_201_CREATED)
def submit_leave_request(
    payload: LeaveSubmitRequest,
    actor: Actor = Depends(require_role([ActorRole.EMPLOYEE])),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    outcome = retry_on_conflict(workflow.submit)(
        employee_id=actor.id,
        leave_type_id=payload.leave_type_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        start_half_day=payload.start_half_day,
        end_half_day=payload.end_half_day,
    )
    if not outcome.accepted:
        raise outcome.rejection.to_exception()

    request = outcome.request
    return ApiResponse.ok(SubmitResponse(
        request_id=request.id,
        status=request.status,
        working_days=request.working_days,
    ))


@router.post("/requests/{request_id}/decision", response_model=ApiResponse[StatusResponse])
def decide_leave_request(
    request_id: int,
    payload: LeaveDecisionRequest,
    actor: Actor = Depends(require_role([ActorRole.MANAGER, ActorRole.HR])),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    request = retry_on_conflict(workflow.decide)(
        request_id, actor.id, actor.role, approve=payload.approve, notes=payload.notes
    )
    return ApiResponse.ok(StatusResponse(
        request_id=request.id, status=request.status, current_approver=request.current_approver
    ))


@router.post("/requests/{request_id}/cancel", response_model=ApiResponse[StatusResponse])
def cancel_leave_request(
    request_id: int,
    actor: Actor = Depends(require_role([ActorRole.EMPLOYEE])),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    request = retry_on_conflict(workflow.cancel)(request_id, actor.id)
    return ApiResponse.ok(StatusResponse(
        request_id=request.id, status=request.status, current_approver=request.current_approver
    ))


@router.get("/requests/{request_id}", response_model=ApiResponse[LeaveRequestResponse])
def get_leave_request(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    request = workflow.get_request(request_id)
    _ensure_visible(actor, request.employee_id)
    return ApiResponse.ok(LeaveRequestResponse.model_validate(request))


@router.get("/requests", response_model=ApiResponse[List[LeaveRequestResponse]])
def list_leave_requests(
    employee_id: Optional[int] = None,
    status: Optional[LeaveStatus] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    if actor.role == ActorRole.EMPLOYEE:
        employee_id = actor.id
    requests = workflow.list_requests(employee_id=employee_id, status=status, limit=limit, offset=offset)
    return ApiResponse.ok(
        [LeaveRequestResponse.model_validate(r) for r in requests],
        metadata={"limit": limit, "offset": offset, "count": len(requests)},
    )


@router.get("/pending", response_model=ApiResponse[List[LeaveRequestResponse]])
def pending_leave_requests(
    actor: Actor = Depends(require_role([ActorRole.MANAGER, ActorRole.HR])),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    """Approval queue for the caller's stage, oldest first."""
    requests = workflow.pending_for(actor.role)
    return ApiResponse.ok([LeaveRequestResponse.model_validate(r) for r in requests])


@router.get("/balances/{employee_id}", response_model=ApiResponse[List[BalanceResponse]])
def get_leave_balances(
    employee_id: int,
    year: Optional[int] = None,
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    _ensure_visible(actor, employee_id)
    balances = workflow.balances(employee_id, year)
    return ApiResponse.ok([BalanceResponse.model_validate(b) for b in balances])
