from typing import List, Optional

from sqlalchemy.orm import Session

from leaveflow.models.leave_balance import BalanceRecord
from leaveflow.models.leave_request import ACTIVE_STATUSES, LeaveRequest, LeaveStatus
from leaveflow.models.leave_type import LeaveType


class LeaveRepository:
    """Read access to leave requests, types and balances for one session."""

    def __init__(self, db: Session):
        self.db = db

    def get_request(self, request_id: int) -> Optional[LeaveRequest]:
        return self.db.get(LeaveRequest, request_id)

    def get_leave_type(self, leave_type_id: int) -> Optional[LeaveType]:
        return self.db.get(LeaveType, leave_type_id)

    def list_leave_types(self, include_inactive: bool = False) -> List[LeaveType]:
        query = self.db.query(LeaveType)
        if not include_inactive:
            query = query.filter(LeaveType.is_active.is_(True))
        return query.order_by(LeaveType.name).all()

    def active_requests_for_employee(self, employee_id: int) -> List[LeaveRequest]:
        return self.db.query(LeaveRequest).filter(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status.in_([s.value for s in ACTIVE_STATUSES])
        ).all()

    def list_requests(
        self,
        employee_id: Optional[int] = None,
        status: Optional[LeaveStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[LeaveRequest]:
        query = self.db.query(LeaveRequest)
        if employee_id is not None:
            query = query.filter(LeaveRequest.employee_id == employee_id)
        if status is not None:
            query = query.filter(LeaveRequest.status == status.value)
        return query.order_by(LeaveRequest.applied_at.desc(), LeaveRequest.id.desc()).offset(offset).limit(limit).all()

    def pending_queue(self, status: LeaveStatus) -> List[LeaveRequest]:
        """Requests waiting at one approval stage, oldest first."""
        return self.db.query(LeaveRequest).filter(
            LeaveRequest.status == status.value
        ).order_by(LeaveRequest.applied_at.asc(), LeaveRequest.id.asc()).all()

    def balances_for_employee(self, employee_id: int, period_year: Optional[int] = None) -> List[BalanceRecord]:
        query = self.db.query(BalanceRecord).filter(BalanceRecord.employee_id == employee_id)
        if period_year is not None:
            query = query.filter(BalanceRecord.period_year == period_year)
        return query.order_by(BalanceRecord.period_year.desc(), BalanceRecord.leave_type_id).all()
