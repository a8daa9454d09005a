from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import date, datetime
from typing import Any, Dict, Optional


class LeaveSubmitRequest(BaseModel):
    leave_type_id: int
    start_date: date
    end_date: date
    reason: str = Field(default="", max_length=500)
    start_half_day: bool = False
    end_half_day: bool = False


class LeaveDecisionRequest(BaseModel):
    approve: bool
    notes: Optional[str] = Field(default=None, max_length=500)


class DecisionInfo(BaseModel):
    approved: bool
    by: Optional[int] = None
    at: Optional[datetime] = None
    notes: Optional[str] = None


class LeaveRequestResponse(BaseModel):
    id: int
    reference: str
    employee_id: int
    leave_type_id: int
    start_date: date
    end_date: date
    start_half_day: bool
    end_half_day: bool
    working_days: float
    reason: str
    status: str
    current_approver: Optional[str] = None
    period_year: int
    policy_version: int
    applied_at: Optional[datetime] = None
    manager_decision: Optional[DecisionInfo] = None
    hr_decision: Optional[DecisionInfo] = None
    resolved_at: Optional[datetime] = None
    version: int

    model_config = ConfigDict(from_attributes=True)


class SubmitResponse(BaseModel):
    request_id: int
    status: str
    working_days: float


class StatusResponse(BaseModel):
    request_id: int
    status: str
    current_approver: Optional[str] = None


class BalanceResponse(BaseModel):
    id: int
    employee_id: int
    leave_type_id: int
    period_year: int
    allocated: float
    carried_over: float
    used: float
    reserved: float
    available: float
    version: int

    model_config = ConfigDict(from_attributes=True)


class LeaveTypeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    max_days_per_year: float = Field(default=20.0, ge=0)
    requires_approval: bool = True
    requires_hr_approval: bool = True
    allows_carry_over: bool = False
    carry_over_limit: Optional[float] = Field(default=None, ge=0)
    min_duration_unit: float = 1.0
    max_consecutive_days: Optional[float] = Field(default=None, gt=0)
    min_duration_days: Optional[float] = Field(default=None, gt=0)
    advance_notice_days: Optional[int] = Field(default=None, ge=0)
    auto_approve_max_days: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_duration_unit(self):
        if self.min_duration_unit not in (0.5, 1.0):
            raise ValueError("min_duration_unit must be 0.5 or 1.0")
        return self

    @model_validator(mode="after")
    def check_half_day_granularity(self):
        for name in ("max_days_per_year", "carry_over_limit", "max_consecutive_days",
                     "min_duration_days", "auto_approve_max_days"):
            value = getattr(self, name)
            if value is not None and (value * 2) % 1:
                raise ValueError(f"{name} must be a multiple of 0.5")
        return self


class LeaveTypeResponse(LeaveTypeCreate):
    id: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class HolidayCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    date: date
    recurring: bool = False
    description: Optional[str] = None


class HolidayResponse(HolidayCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


class RolloverRequest(BaseModel):
    employee_id: int
    leave_type_id: int
    period_year: int = Field(ge=1970, le=9999)
    allocated: Optional[float] = Field(default=None, ge=0)


class RolloverResponse(BaseModel):
    created: bool
    balance: Dict[str, Any]
