from sqlalchemy import Column, Integer, String, Float, Boolean, Text
from leaveflow.database import Base


class LeaveType(Base):
    """
    Administrative leave type definition. Referenced, never mutated, by the
    workflow engine. Nullable policy columns fall back to the global policy.
    """
    __tablename__ = "leave_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    max_days_per_year = Column(Float, nullable=False, default=20.0)
    requires_approval = Column(Boolean, default=True, nullable=False)
    requires_hr_approval = Column(Boolean, default=True, nullable=False)
    allows_carry_over = Column(Boolean, default=False, nullable=False)
    carry_over_limit = Column(Float, nullable=True)
    min_duration_unit = Column(Float, default=1.0, nullable=False)  # 0.5 enables half days
    is_active = Column(Boolean, default=True, nullable=False)

    # Per-type policy overrides
    max_consecutive_days = Column(Float, nullable=True)
    min_duration_days = Column(Float, nullable=True)
    advance_notice_days = Column(Integer, nullable=True)
    auto_approve_max_days = Column(Float, nullable=True)

    @property
    def allows_half_days(self) -> bool:
        return self.min_duration_unit == 0.5

    def __repr__(self):
        return f"<LeaveType {self.name}>"
