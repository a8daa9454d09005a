from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leaveflow.core.exceptions import AppException
from leaveflow.core.schemas import ApiResponse
from leaveflow.database import get_db
from leaveflow.models.holiday import Holiday
from leaveflow.models.leave_type import LeaveType
from leaveflow.routers.actor_deps import get_policy_store, get_workflow, require_hr
from leaveflow.schemas.leave import (
    HolidayCreate,
    HolidayResponse,
    LeaveTypeCreate,
    LeaveTypeResponse,
    RolloverRequest,
    RolloverResponse,
)
from leaveflow.schemas.policy import PolicyConfig, PolicyUpdate
from leaveflow.services.leave_workflow import LeaveWorkflowService, retry_on_conflict
from leaveflow.services.policy_store import PolicyStore
from leaveflow.services.repository import LeaveRepository
import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_hr())]
)


@router.get("/policy", response_model=ApiResponse[PolicyConfig])
def read_policy(db: Session = Depends(get_db), policy_store: PolicyStore = Depends(get_policy_store)):
    return ApiResponse.ok(policy_store.current(db))


@router.put("/policy", response_model=ApiResponse[PolicyConfig])
def update_policy(
    changes: PolicyUpdate,
    db: Session = Depends(get_db),
    policy_store: PolicyStore = Depends(get_policy_store),
):
    """Persist changed settings, bump policyVersion and swap the live snapshot."""
    return ApiResponse.ok(retry_on_conflict(policy_store.update)(db, changes))


@router.get("/leave-types", response_model=ApiResponse[List[LeaveTypeResponse]])
def list_leave_types(include_inactive: bool = False, db: Session = Depends(get_db)):
    leave_types = LeaveRepository(db).list_leave_types(include_inactive=include_inactive)
    return ApiResponse.ok([LeaveTypeResponse.model_validate(lt) for lt in leave_types])


@router.post("/leave-types", response_model=ApiResponse[LeaveTypeResponse], status_code=status.HTTP_201_CREATED)
def create_leave_type(payload: LeaveTypeCreate, db: Session = Depends(get_db)):
    leave_type = LeaveType(**payload.model_dump())
    db.add(leave_type)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AppException(f"Leave type '{payload.name}' already exists", status_code=409, error_code="DUPLICATE")
    db.refresh(leave_type)
    logger.info(f"Created leave type {leave_type.name}", extra={"leave_type_id": leave_type.id})
    return ApiResponse.ok(LeaveTypeResponse.model_validate(leave_type))


@router.get("/holidays", response_model=ApiResponse[List[HolidayResponse]])
def list_holidays(db: Session = Depends(get_db)):
    holidays = db.query(Holiday).order_by(Holiday.date).all()
    return ApiResponse.ok([HolidayResponse.model_validate(h) for h in holidays])


@router.post("/holidays", response_model=ApiResponse[HolidayResponse], status_code=status.HTTP_201_CREATED)
def add_holiday(
    payload: HolidayCreate,
    db: Session = Depends(get_db),
    policy_store: PolicyStore = Depends(get_policy_store),
):
    holiday = Holiday(**payload.model_dump())
    db.add(holiday)
    try:
        policy_store.bump_version(db)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(holiday)
    # Working-day counts for new submissions must see the holiday immediately;
    # other instances reload on the version bump
    policy_store.refresh(db)
    return ApiResponse.ok(HolidayResponse.model_validate(holiday))


@router.post("/balances/rollover", response_model=ApiResponse[RolloverResponse])
def rollover_balance(
    payload: RolloverRequest,
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    result = retry_on_conflict(workflow.open_balance_period)(
        payload.employee_id, payload.leave_type_id, payload.period_year, allocated=payload.allocated
    )
    return ApiResponse.ok(RolloverResponse(
        created=result.details.get("created", False),
        balance=result.balance.model_dump() | {"available": result.balance.available},
    ))
