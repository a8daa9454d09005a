from sqlalchemy import Column, Integer, String, Date, Float, Boolean, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from leaveflow.database import Base
import enum
import uuid


class LeaveStatus(str, enum.Enum):
    """
    Canonical lifecycle states. A draft is never persisted: requests are
    created directly in PENDING_MANAGER or APPROVED.
    """
    PENDING_MANAGER = "PENDING_MANAGER"
    PENDING_HR = "PENDING_HR"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    @property
    def is_pending(self) -> bool:
        return self in (LeaveStatus.PENDING_MANAGER, LeaveStatus.PENDING_HR)

    @property
    def is_terminal(self) -> bool:
        return not self.is_pending


# Statuses that hold calendar days for overlap purposes
ACTIVE_STATUSES = (LeaveStatus.PENDING_MANAGER, LeaveStatus.PENDING_HR, LeaveStatus.APPROVED)


class ActorRole(str, enum.Enum):
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    HR = "HR"
    SYSTEM = "SYSTEM"


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String(36), unique=True, index=True, nullable=False, default=lambda: str(uuid.uuid4()))
    employee_id = Column(Integer, index=True, nullable=False)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), index=True, nullable=False)
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False, index=True)
    start_half_day = Column(Boolean, default=False, nullable=False)
    end_half_day = Column(Boolean, default=False, nullable=False)
    # Fixed at submission from the working-day calendar; never recomputed
    working_days = Column(Float, nullable=False)
    reason = Column(Text, nullable=False, default="")
    status = Column(String(32), nullable=False, index=True)
    current_approver = Column(String(16), nullable=True)  # "MANAGER", "HR" or None once resolved
    period_year = Column(Integer, nullable=False)
    policy_version = Column(Integer, nullable=False, default=0)
    applied_at = Column(DateTime(timezone=True), server_default=func.now())

    manager_approved = Column(Boolean, nullable=True)
    manager_decided_by = Column(Integer, nullable=True)
    manager_decided_at = Column(DateTime(timezone=True), nullable=True)
    manager_notes = Column(Text, nullable=True)

    hr_approved = Column(Boolean, nullable=True)
    hr_decided_by = Column(Integer, nullable=True)
    hr_decided_at = Column(DateTime(timezone=True), nullable=True)
    hr_notes = Column(Text, nullable=True)

    resolved_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Optimistic concurrency: every UPDATE asserts the version it read
    version = Column(Integer, nullable=False)

    leave_type = relationship("LeaveType")

    __mapper_args__ = {"version_id_col": version}

    @property
    def manager_decision(self):
        if self.manager_approved is None:
            return None
        return {
            "approved": self.manager_approved,
            "by": self.manager_decided_by,
            "at": self.manager_decided_at,
            "notes": self.manager_notes,
        }

    @property
    def hr_decision(self):
        if self.hr_approved is None:
            return None
        return {
            "approved": self.hr_approved,
            "by": self.hr_decided_by,
            "at": self.hr_decided_at,
            "notes": self.hr_notes,
        }

    def __repr__(self):
        return f"<LeaveRequest {self.id} emp={self.employee_id} {self.status}>"
