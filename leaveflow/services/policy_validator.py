"""
Policy Validator

Pure decision functions: given a draft request, the effective policy, the
working-day calendar and the employee's active requests, return Accepted
or Rejected(reason_code). No database access and no side effects.

Checks run in a fixed order and stop at the first failure:

    0. shape      - date range, half-day granularity, at least one working day
    1. notice     - advance notice in working days (unless backdating allowed)
    2. max        - consecutive working days cap
    3. min        - minimum duration
    4. overlap    - no intersection with PENDING_* / APPROVED requests
    5. balance    - NOT here: the ledger reservation runs last, in the
                    orchestrator, so a failed check above never leaves a
                    dangling reservation behind
"""
import enum
from datetime import date
from typing import Any, Dict, Iterable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from leaveflow.core.exceptions import AppException, InsufficientBalanceError, PolicyViolationError
from leaveflow.models.leave_request import ACTIVE_STATUSES, LeaveStatus
from leaveflow.schemas.policy import EffectivePolicy
from leaveflow.services.calendar import WorkingCalendar


class ReasonCode(str, enum.Enum):
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    HALF_DAY_NOT_ALLOWED = "HALF_DAY_NOT_ALLOWED"
    NO_WORKING_DAYS = "NO_WORKING_DAYS"
    ADVANCE_NOTICE = "ADVANCE_NOTICE"
    MAX_CONSECUTIVE = "MAX_CONSECUTIVE"
    MIN_DURATION = "MIN_DURATION"
    OVERLAP = "OVERLAP"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"


class LeaveDraft(BaseModel):
    model_config = ConfigDict(frozen=True)

    employee_id: int
    leave_type_id: int
    start_date: date
    end_date: date
    start_half_day: bool = False
    end_half_day: bool = False
    working_days: float
    reason: str = ""


class Accepted(BaseModel):
    model_config = ConfigDict(frozen=True)

    accepted: Literal[True] = True


class Rejected(BaseModel):
    model_config = ConfigDict(frozen=True)

    accepted: Literal[False] = False
    reason_code: ReasonCode
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)

    def to_exception(self) -> AppException:
        if self.reason_code == ReasonCode.INSUFFICIENT_BALANCE:
            return InsufficientBalanceError(self.message, details=self.details)
        return PolicyViolationError(self.message, reason_code=self.reason_code.value, details=self.details)


ValidationResult = Union[Accepted, Rejected]


def _days(value: float) -> str:
    return f"{value:g} day" + ("" if value == 1 else "s")


def check_shape(draft: LeaveDraft, policy: EffectivePolicy) -> Optional[Rejected]:
    if draft.end_date < draft.start_date:
        return Rejected(
            reason_code=ReasonCode.INVALID_DATE_RANGE,
            message="End date must be on or after start date",
            details={"start_date": draft.start_date.isoformat(), "end_date": draft.end_date.isoformat()},
        )
    if (draft.start_half_day or draft.end_half_day) and not policy.allows_half_days:
        return Rejected(
            reason_code=ReasonCode.HALF_DAY_NOT_ALLOWED,
            message=f"{policy.leave_type_name} cannot be taken in half days",
            details={"leave_type_id": policy.leave_type_id},
        )
    if draft.working_days <= 0:
        return Rejected(
            reason_code=ReasonCode.NO_WORKING_DAYS,
            message="The requested period contains no working days",
            details={"working_days": draft.working_days},
        )
    return None


def check_advance_notice(draft: LeaveDraft, policy: EffectivePolicy, calendar: WorkingCalendar, today: date) -> Optional[Rejected]:
    if policy.allow_backdate_leaves:
        return None
    required = policy.advance_notice_days
    given = calendar.working_days_between(today, draft.start_date)
    if draft.start_date < today or given < required:
        return Rejected(
            reason_code=ReasonCode.ADVANCE_NOTICE,
            message=f"Requires {_days(required)} advance notice, given {given}",
            details={"required": required, "given": given, "backdated": draft.start_date < today},
        )
    return None


def check_max_consecutive(draft: LeaveDraft, policy: EffectivePolicy) -> Optional[Rejected]:
    limit = policy.max_consecutive_days
    if draft.working_days > limit:
        return Rejected(
            reason_code=ReasonCode.MAX_CONSECUTIVE,
            message=f"At most {_days(limit)} consecutive leave allowed, requested {draft.working_days:g}",
            details={"limit": limit, "requested": draft.working_days},
        )
    return None


def check_min_duration(draft: LeaveDraft, policy: EffectivePolicy) -> Optional[Rejected]:
    minimum = policy.min_leave_duration
    if draft.working_days < minimum:
        return Rejected(
            reason_code=ReasonCode.MIN_DURATION,
            message=f"Minimum leave duration is {_days(minimum)}, requested {draft.working_days:g}",
            details={"minimum": minimum, "requested": draft.working_days},
        )
    return None


def check_overlap(draft: LeaveDraft, policy: EffectivePolicy, existing: Iterable) -> Optional[Rejected]:
    if policy.allow_overlapping_leaves:
        return None
    for other in existing:
        if other.employee_id != draft.employee_id or LeaveStatus(other.status) not in ACTIVE_STATUSES:
            continue
        if other.start_date <= draft.end_date and draft.start_date <= other.end_date:
            return Rejected(
                reason_code=ReasonCode.OVERLAP,
                message=(
                    f"Overlaps leave request {other.id} "
                    f"({other.start_date.isoformat()} to {other.end_date.isoformat()}, {other.status})"
                ),
                details={
                    "conflicting_request_id": other.id,
                    "conflicting_start_date": other.start_date.isoformat(),
                    "conflicting_end_date": other.end_date.isoformat(),
                },
            )
    return None


def validate_request(
    draft: LeaveDraft,
    policy: EffectivePolicy,
    calendar: WorkingCalendar,
    existing: Iterable,
    today: date,
) -> ValidationResult:
    """Run every policy check except balance sufficiency, in order."""
    checks = (
        lambda: check_shape(draft, policy),
        lambda: check_advance_notice(draft, policy, calendar, today),
        lambda: check_max_consecutive(draft, policy),
        lambda: check_min_duration(draft, policy),
        lambda: check_overlap(draft, policy, existing),
    )
    for check in checks:
        rejection = check()
        if rejection is not None:
            return rejection
    return Accepted()
