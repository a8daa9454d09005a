"""
Lifecycle State Machine

Owns leave request status and the legal moves between statuses. Each move
is paired with one ledger effect, and the status is only written after that
effect succeeded:

    submit                      -> reserve            (PENDING_MANAGER)
    submit, auto-approved       -> reserve + commit   (APPROVED)
    approve, more stages left   -> none               (PENDING_HR)
    approve, final              -> commit             (APPROVED)
    reject / cancel             -> release            (REJECTED / CANCELLED)

Any (status, action, role) combination missing from TRANSITIONS raises
InvalidTransitionError.
"""
import enum
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, NamedTuple, Optional, Tuple

from leaveflow.core.exceptions import InvalidTransitionError
from leaveflow.models.leave_request import ActorRole, LeaveRequest, LeaveStatus
from leaveflow.services.balance_ledger import BalanceLedger, LedgerResult

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"


class LedgerEffect(str, enum.Enum):
    NONE = "none"
    RESERVE = "reserve"
    COMMIT = "commit"
    RESERVE_AND_COMMIT = "reserve_and_commit"
    RELEASE = "release"


class Transition(NamedTuple):
    next_status: LeaveStatus
    effect: LedgerEffect


class TransitionContext(NamedTuple):
    requires_hr_approval: bool
    auto_approve: bool = False


def _fixed(status: LeaveStatus, effect: LedgerEffect) -> Callable[[TransitionContext], Transition]:
    return lambda ctx: Transition(status, effect)


def _on_submit(ctx: TransitionContext) -> Transition:
    if ctx.auto_approve:
        return Transition(LeaveStatus.APPROVED, LedgerEffect.RESERVE_AND_COMMIT)
    return Transition(LeaveStatus.PENDING_MANAGER, LedgerEffect.RESERVE)


def _on_manager_approve(ctx: TransitionContext) -> Transition:
    if ctx.requires_hr_approval:
        return Transition(LeaveStatus.PENDING_HR, LedgerEffect.NONE)
    return Transition(LeaveStatus.APPROVED, LedgerEffect.COMMIT)


TransitionKey = Tuple[Optional[LeaveStatus], Action, ActorRole]

TRANSITIONS: Dict[TransitionKey, Callable[[TransitionContext], Transition]] = {
    (None, Action.SUBMIT, ActorRole.EMPLOYEE): _on_submit,
    (LeaveStatus.PENDING_MANAGER, Action.APPROVE, ActorRole.MANAGER): _on_manager_approve,
    (LeaveStatus.PENDING_MANAGER, Action.REJECT, ActorRole.MANAGER): _fixed(LeaveStatus.REJECTED, LedgerEffect.RELEASE),
    (LeaveStatus.PENDING_HR, Action.APPROVE, ActorRole.HR): _fixed(LeaveStatus.APPROVED, LedgerEffect.COMMIT),
    (LeaveStatus.PENDING_HR, Action.REJECT, ActorRole.HR): _fixed(LeaveStatus.REJECTED, LedgerEffect.RELEASE),
    (LeaveStatus.PENDING_MANAGER, Action.CANCEL, ActorRole.EMPLOYEE): _fixed(LeaveStatus.CANCELLED, LedgerEffect.RELEASE),
    (LeaveStatus.PENDING_HR, Action.CANCEL, ActorRole.EMPLOYEE): _fixed(LeaveStatus.CANCELLED, LedgerEffect.RELEASE),
}

_APPROVER_FOR = {
    LeaveStatus.PENDING_MANAGER: ActorRole.MANAGER.value,
    LeaveStatus.PENDING_HR: ActorRole.HR.value,
}


def resolve(current: Optional[LeaveStatus], action: Action, role: ActorRole, ctx: TransitionContext) -> Transition:
    rule = TRANSITIONS.get((current, action, role))
    if rule is None:
        raise InvalidTransitionError(
            current_status=current.value if current else "NEW",
            action=action.value,
            actor_role=role.value,
        )
    return rule(ctx)


class TransitionResult(NamedTuple):
    ok: bool
    transition: Transition
    ledger: Optional[LedgerResult] = None


class LeaveStateMachine:
    def __init__(self, ledger: BalanceLedger, clock: Callable[[], datetime] = None):
        self.ledger = ledger
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _apply_effect(self, request: LeaveRequest, effect: LedgerEffect) -> Optional[LedgerResult]:
        key = dict(
            employee_id=request.employee_id,
            leave_type_id=request.leave_type_id,
            days=request.working_days,
            period_year=request.period_year,
            reference=request.reference,
        )
        if effect == LedgerEffect.NONE:
            return None
        if effect == LedgerEffect.RESERVE:
            return self.ledger.reserve(**key)
        if effect == LedgerEffect.COMMIT:
            return self.ledger.commit(**key)
        if effect == LedgerEffect.RELEASE:
            return self.ledger.release(**key)

        reserved = self.ledger.reserve(**key)
        if not reserved.ok:
            return reserved
        return self.ledger.commit(**key)

    def _set_status(self, request: LeaveRequest, status: LeaveStatus):
        request.status = status.value
        request.current_approver = _APPROVER_FOR.get(status)
        if status.is_terminal:
            request.resolved_at = self.clock()

    def submit(self, request: LeaveRequest, ctx: TransitionContext) -> TransitionResult:
        """Reserve (and for auto-approval, commit) then stamp the initial status."""
        transition = resolve(None, Action.SUBMIT, ActorRole.EMPLOYEE, ctx)
        outcome = self._apply_effect(request, transition.effect)
        if outcome is not None and not outcome.ok:
            return TransitionResult(False, transition, outcome)

        self._set_status(request, transition.next_status)
        if transition.next_status == LeaveStatus.APPROVED:
            logger.info(f"Leave request {request.reference} auto-approved ({request.working_days:g} days)")
        return TransitionResult(True, transition, outcome)

    def apply(
        self,
        request: LeaveRequest,
        action: Action,
        actor_id: int,
        actor_role: ActorRole,
        ctx: TransitionContext,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        current = LeaveStatus(request.status)
        transition = resolve(current, action, actor_role, ctx)

        outcome = self._apply_effect(request, transition.effect)
        if outcome is not None and not outcome.ok:
            return TransitionResult(False, transition, outcome)

        if action in (Action.APPROVE, Action.REJECT):
            self._record_decision(request, actor_role, actor_id, action == Action.APPROVE, notes)
        self._set_status(request, transition.next_status)
        logger.info(
            f"Leave request {request.id}: {current.value} -> {transition.next_status.value}",
            extra={"action": action.value, "actor_id": actor_id, "actor_role": actor_role.value}
        )
        return TransitionResult(True, transition, outcome)

    def _record_decision(self, request: LeaveRequest, role: ActorRole, actor_id: int, approved: bool, notes: Optional[str]):
        now = self.clock()
        if role == ActorRole.MANAGER:
            request.manager_approved = approved
            request.manager_decided_by = actor_id
            request.manager_decided_at = now
            request.manager_notes = notes
        else:
            request.hr_approved = approved
            request.hr_decided_by = actor_id
            request.hr_decided_at = now
            request.hr_notes = notes
