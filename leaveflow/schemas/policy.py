"""
Versioned leave policy snapshot.

`PolicyConfig` is immutable: a refresh builds a new instance and swaps the
reference, so readers always see one complete version.
"""
from datetime import date, datetime, timezone
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from leaveflow.services.calendar import WEEKDAY_NAMES, WorkingCalendar


class HolidayEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    day: date
    name: str
    recurring: bool = True


class PolicyConfig(BaseModel):
    """
    Process-wide policy. Field aliases are the camelCase keys persisted in
    the system_settings table.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    version: int = 0
    max_consecutive_leaves: float = Field(gt=0)
    advance_notice_days: int = Field(ge=0)
    auto_approve_enabled: bool = False
    auto_approve_max_days: float = Field(ge=0)
    carry_over_enabled: bool = True
    carry_over_limit: float = Field(ge=0)
    allow_backdate_leaves: bool = False
    allow_overlapping_leaves: bool = False
    min_leave_duration: float = Field(gt=0)
    default_leave_days: float = Field(ge=0)
    working_days: Tuple[str, ...]
    holidays: Tuple[HolidayEntry, ...] = ()
    loaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("working_days", mode="before")
    @classmethod
    def normalize_working_days(cls, value):
        names = tuple(str(v).strip().capitalize() for v in value)
        unknown = [n for n in names if n not in WEEKDAY_NAMES]
        if unknown:
            raise ValueError(f"Unknown weekday names: {unknown}")
        if not names:
            raise ValueError("At least one working day is required")
        return names

    @model_validator(mode="after")
    def check_half_day_granularity(self):
        for name in ("max_consecutive_leaves", "auto_approve_max_days", "carry_over_limit",
                     "min_leave_duration", "default_leave_days"):
            if (getattr(self, name) * 2) % 1:
                raise ValueError(f"{name} must be a multiple of 0.5")
        return self

    def calendar(self) -> WorkingCalendar:
        return WorkingCalendar.from_names(self.working_days, self.holidays)

    def for_leave_type(self, leave_type) -> "EffectivePolicy":
        """Resolve per-type overrides against the global values."""
        max_consecutive = self.max_consecutive_leaves
        if leave_type.max_consecutive_days is not None:
            max_consecutive = min(max_consecutive, leave_type.max_consecutive_days)

        def pick(override, default):
            return default if override is None else override

        return EffectivePolicy(
            policy_version=self.version,
            leave_type_id=leave_type.id,
            leave_type_name=leave_type.name,
            max_consecutive_days=max_consecutive,
            min_leave_duration=pick(leave_type.min_duration_days, self.min_leave_duration),
            advance_notice_days=pick(leave_type.advance_notice_days, self.advance_notice_days),
            auto_approve_enabled=self.auto_approve_enabled,
            auto_approve_max_days=pick(leave_type.auto_approve_max_days, self.auto_approve_max_days),
            allow_backdate_leaves=self.allow_backdate_leaves,
            allow_overlapping_leaves=self.allow_overlapping_leaves,
            requires_approval=leave_type.requires_approval,
            requires_hr_approval=leave_type.requires_hr_approval,
            allows_carry_over=self.carry_over_enabled and leave_type.allows_carry_over,
            carry_over_limit=pick(leave_type.carry_over_limit, self.carry_over_limit),
            allows_half_days=leave_type.allows_half_days,
            default_allocation=leave_type.max_days_per_year,
        )


class EffectivePolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    policy_version: int
    leave_type_id: int
    leave_type_name: str
    max_consecutive_days: float
    min_leave_duration: float
    advance_notice_days: int
    auto_approve_enabled: bool
    auto_approve_max_days: float
    allow_backdate_leaves: bool
    allow_overlapping_leaves: bool
    requires_approval: bool
    requires_hr_approval: bool
    allows_carry_over: bool
    carry_over_limit: float
    allows_half_days: bool
    default_allocation: float

    def qualifies_for_auto_approval(self, working_days: float) -> bool:
        if not self.requires_approval:
            return True
        return self.auto_approve_enabled and working_days <= self.auto_approve_max_days


class PolicyUpdate(BaseModel):
    """Administrative partial update. Unset fields keep their current value."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    max_consecutive_leaves: Optional[float] = Field(default=None, gt=0)
    advance_notice_days: Optional[int] = Field(default=None, ge=0)
    auto_approve_enabled: Optional[bool] = None
    auto_approve_max_days: Optional[float] = Field(default=None, ge=0)
    carry_over_enabled: Optional[bool] = None
    carry_over_limit: Optional[float] = Field(default=None, ge=0)
    allow_backdate_leaves: Optional[bool] = None
    allow_overlapping_leaves: Optional[bool] = None
    min_leave_duration: Optional[float] = Field(default=None, gt=0)
    default_leave_days: Optional[float] = Field(default=None, ge=0)
    working_days: Optional[Tuple[str, ...]] = None
