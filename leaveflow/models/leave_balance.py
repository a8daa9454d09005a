from sqlalchemy import (
    Column, Integer, Float, String, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
)
from sqlalchemy.sql import func
from leaveflow.database import Base
import enum


class BalanceRecord(Base):
    """
    Per (employee, leave type, period) ledger row.
    Mutated only through BalanceLedger; each write bumps `version`.
    """
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", "period_year", name="uq_balance_key"),
        CheckConstraint("used >= 0", name="ck_balance_used_non_negative"),
        CheckConstraint("reserved >= 0", name="ck_balance_reserved_non_negative"),
        CheckConstraint("used + reserved <= allocated + carried_over", name="ck_balance_within_entitlement"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, index=True, nullable=False)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), index=True, nullable=False)
    period_year = Column(Integer, index=True, nullable=False)
    allocated = Column(Float, nullable=False, default=0.0)
    used = Column(Float, nullable=False, default=0.0)
    carried_over = Column(Float, nullable=False, default=0.0)
    reserved = Column(Float, nullable=False, default=0.0)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def available(self) -> float:
        return self.allocated + self.carried_over - self.used - self.reserved


class ReservationState(str, enum.Enum):
    HELD = "HELD"
    COMMITTED = "COMMITTED"
    RELEASED = "RELEASED"


class BalanceReservation(Base):
    """Days held against one in-flight leave request."""
    __tablename__ = "balance_reservations"

    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String(36), unique=True, index=True, nullable=False)  # LeaveRequest.reference
    employee_id = Column(Integer, nullable=False)
    leave_type_id = Column(Integer, nullable=False)
    period_year = Column(Integer, nullable=False)
    days = Column(Float, nullable=False)
    state = Column(String(16), nullable=False, default=ReservationState.HELD.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    settled_at = Column(DateTime(timezone=True), nullable=True)
