"""
Leave Workflow Service

Facade for every public leave operation (submit, decide, cancel) plus the
administrative balance-period operation. Architecture:

- Router -> Service (this module) -> Validator / State Machine -> Ledger
- Each operation runs in one database transaction: the ledger effect and
  the status change commit together or not at all
- Exactly one domain event is published per successful operation, after
  the commit

Business rejections (policy, insufficient balance) come back from
`submit` as a Rejected value. Everything else that stops an operation is
raised as an AppException subclass.
"""
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Callable, List, NamedTuple, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from leaveflow.core.config import settings
from leaveflow.core.exceptions import (
    AccessDeniedError,
    AppException,
    ConcurrentModificationError,
    InsufficientBalanceError,
    LedgerIntegrityError,
    NotFoundError,
)
from leaveflow.models.leave_balance import BalanceRecord
from leaveflow.models.leave_request import ActorRole, LeaveRequest, LeaveStatus
from leaveflow.services.balance_ledger import BalanceLedger, BalanceSnapshot, LedgerError, LedgerResult
from leaveflow.services.events import EventSink, EventType, LeaveEvent, LoggingEventSink, publish_safely
from leaveflow.services.policy_store import PolicyStore
from leaveflow.services.policy_validator import LeaveDraft, ReasonCode, Rejected, validate_request
from leaveflow.services.repository import LeaveRepository
from leaveflow.services.state_machine import Action, LeaveStateMachine, TransitionContext

logger = logging.getLogger(__name__)


def retry_on_conflict(func: Callable) -> Callable:
    """
    Replay an operation that lost an optimistic concurrency race. The
    service has already rolled back, so each attempt starts clean.
    """
    return retry(
        stop=stop_after_attempt(settings.conflict_retry_attempts),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
        retry=retry_if_exception_type(ConcurrentModificationError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )(func)


class SubmitOutcome(NamedTuple):
    request: Optional[LeaveRequest] = None
    rejection: Optional[Rejected] = None

    @property
    def accepted(self) -> bool:
        return self.rejection is None


_DECISION_EVENTS = {
    Action.APPROVE: EventType.LEAVE_APPROVED,
    Action.REJECT: EventType.LEAVE_REJECTED,
    Action.CANCEL: EventType.LEAVE_CANCELLED,
}


class LeaveWorkflowService:
    def __init__(
        self,
        db: Session,
        policy_store: PolicyStore,
        event_sink: Optional[EventSink] = None,
        today: Optional[Callable[[], date]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.policy_store = policy_store
        self.event_sink = event_sink or LoggingEventSink()
        self.today = today or date.today
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.repo = LeaveRepository(db)
        self.ledger = BalanceLedger(db)
        self.machine = LeaveStateMachine(self.ledger, clock=self.clock)

    # ------------------------------------------------------------------
    # Transaction helpers
    # ------------------------------------------------------------------

    def _commit(self):
        try:
            self.db.commit()
        except (StaleDataError, IntegrityError) as e:
            self.db.rollback()
            logger.warning(f"Commit lost a concurrency race: {e}")
            raise ConcurrentModificationError() from e
        except Exception:
            self.db.rollback()
            raise

    def _raise_for_ledger(self, result: LedgerResult):
        self.db.rollback()
        if result.error == LedgerError.CONCURRENT_MODIFICATION:
            raise ConcurrentModificationError()
        if result.error == LedgerError.NOT_FOUND:
            raise NotFoundError(result.message)
        if result.error == LedgerError.INSUFFICIENT_BALANCE:
            raise InsufficientBalanceError(result.message, details=result.details)
        logger.error(f"Ledger refused a legal transition: {result.error.value} {result.message}", extra=result.details)
        raise LedgerIntegrityError(result.message, details={"ledger_error": result.error.value})

    def _load_request(self, request_id: int) -> LeaveRequest:
        request = self.repo.get_request(request_id)
        if request is None:
            raise NotFoundError(f"Leave request {request_id} not found")
        return request

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def submit(
        self,
        employee_id: int,
        leave_type_id: int,
        start_date: date,
        end_date: date,
        reason: str = "",
        start_half_day: bool = False,
        end_half_day: bool = False,
    ) -> SubmitOutcome:
        leave_type = self.repo.get_leave_type(leave_type_id)
        if leave_type is None or not leave_type.is_active:
            raise NotFoundError(f"Leave type {leave_type_id} not found")

        config = self.policy_store.current(self.db)
        policy = config.for_leave_type(leave_type)
        calendar = config.calendar()

        working_days = 0.0
        if end_date >= start_date:
            working_days = calendar.count_working_days(start_date, end_date, start_half_day, end_half_day)

        draft = LeaveDraft(
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            start_date=start_date,
            end_date=end_date,
            start_half_day=start_half_day,
            end_half_day=end_half_day,
            working_days=working_days,
            reason=reason,
        )
        verdict = validate_request(
            draft, policy, calendar, self.repo.active_requests_for_employee(employee_id), self.today()
        )
        if isinstance(verdict, Rejected):
            return self._rejected(draft, verdict)

        request = LeaveRequest(
            reference=str(uuid.uuid4()),
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            start_date=start_date,
            end_date=end_date,
            start_half_day=start_half_day,
            end_half_day=end_half_day,
            working_days=working_days,
            reason=reason,
            period_year=start_date.year,
            policy_version=policy.policy_version,
            applied_at=self.clock(),
        )
        ctx = TransitionContext(
            requires_hr_approval=policy.requires_hr_approval,
            auto_approve=policy.qualifies_for_auto_approval(working_days),
        )

        try:
            result = self.machine.submit(request, ctx)
        except Exception:
            self.db.rollback()
            raise
        if not result.ok:
            if result.ledger.error == LedgerError.INSUFFICIENT_BALANCE:
                self.db.rollback()
                return self._rejected(draft, self._balance_rejection(result.ledger))
            self._raise_for_ledger(result.ledger)

        self.db.add(request)
        self._commit()

        if request.status == LeaveStatus.APPROVED.value:
            event = LeaveEvent.from_request(EventType.LEAVE_APPROVED, request, ActorRole.SYSTEM, notes="auto-approved")
        else:
            event = LeaveEvent.from_request(EventType.LEAVE_SUBMITTED, request, ActorRole.EMPLOYEE, actor_id=employee_id)
        publish_safely(self.event_sink, event)
        return SubmitOutcome(request=request)

    def decide(
        self,
        request_id: int,
        actor_id: int,
        actor_role: ActorRole,
        approve: bool,
        notes: Optional[str] = None,
    ) -> LeaveRequest:
        request = self._load_request(request_id)
        if actor_id == request.employee_id:
            raise AccessDeniedError("You cannot decide on your own leave request")

        action = Action.APPROVE if approve else Action.REJECT
        ctx = TransitionContext(requires_hr_approval=request.leave_type.requires_hr_approval)
        return self._transition(request, action, actor_id, actor_role, ctx, notes)

    def cancel(self, request_id: int, employee_id: int) -> LeaveRequest:
        request = self._load_request(request_id)
        if request.employee_id != employee_id:
            raise AccessDeniedError("Only the requesting employee can cancel a leave request")

        ctx = TransitionContext(requires_hr_approval=request.leave_type.requires_hr_approval)
        return self._transition(request, Action.CANCEL, employee_id, ActorRole.EMPLOYEE, ctx)

    def _transition(
        self,
        request: LeaveRequest,
        action: Action,
        actor_id: int,
        actor_role: ActorRole,
        ctx: TransitionContext,
        notes: Optional[str] = None,
    ) -> LeaveRequest:
        try:
            result = self.machine.apply(request, action, actor_id, actor_role, ctx, notes=notes)
        except Exception:
            self.db.rollback()
            raise
        if not result.ok:
            self._raise_for_ledger(result.ledger)

        self._commit()
        event = LeaveEvent.from_request(_DECISION_EVENTS[action], request, actor_role, actor_id=actor_id, notes=notes)
        publish_safely(self.event_sink, event)
        return request

    # ------------------------------------------------------------------
    # Balance periods
    # ------------------------------------------------------------------

    def open_balance_period(
        self,
        employee_id: int,
        leave_type_id: int,
        period_year: int,
        allocated: Optional[float] = None,
    ) -> LedgerResult:
        """Create the balance for a period, carrying over from the previous one."""
        leave_type = self.repo.get_leave_type(leave_type_id)
        if leave_type is None:
            raise NotFoundError(f"Leave type {leave_type_id} not found")

        policy = self.policy_store.current(self.db).for_leave_type(leave_type)
        try:
            result = self.ledger.rollover_period(employee_id, leave_type_id, period_year, policy, allocated=allocated)
        except IntegrityError as e:
            self.db.rollback()
            raise ConcurrentModificationError() from e
        if not result.ok:
            self.db.rollback()
            raise AppException(result.message, status_code=422, error_code=result.error.value)

        self._commit()
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_request(self, request_id: int) -> LeaveRequest:
        return self._load_request(request_id)

    def list_requests(self, employee_id: Optional[int] = None, status: Optional[LeaveStatus] = None,
                      limit: int = 50, offset: int = 0) -> List[LeaveRequest]:
        return self.repo.list_requests(employee_id=employee_id, status=status, limit=limit, offset=offset)

    def pending_for(self, role: ActorRole) -> List[LeaveRequest]:
        stage = {ActorRole.MANAGER: LeaveStatus.PENDING_MANAGER, ActorRole.HR: LeaveStatus.PENDING_HR}.get(role)
        if stage is None:
            raise AccessDeniedError("Only managers and HR have approval queues")
        return self.repo.pending_queue(stage)

    def balances(self, employee_id: int, period_year: Optional[int] = None) -> List[BalanceRecord]:
        return self.repo.balances_for_employee(employee_id, period_year)

    def balance(self, employee_id: int, leave_type_id: int, period_year: int) -> Optional[BalanceSnapshot]:
        return self.ledger.snapshot(employee_id, leave_type_id, period_year)

    # ------------------------------------------------------------------

    def _balance_rejection(self, ledger: LedgerResult) -> Rejected:
        snap = ledger.balance
        details = dict(ledger.details)
        if snap is not None:
            details.update(
                allocated=snap.allocated,
                carried_over=snap.carried_over,
                used=snap.used,
                reserved=snap.reserved,
            )
        return Rejected(reason_code=ReasonCode.INSUFFICIENT_BALANCE, message=ledger.message, details=details)

    def _rejected(self, draft: LeaveDraft, rejection: Rejected) -> SubmitOutcome:
        logger.info(
            f"Leave submission rejected: {rejection.reason_code.value}",
            extra={"employee_id": draft.employee_id, "leave_type_id": draft.leave_type_id,
                   "reason_code": rejection.reason_code.value, **rejection.details}
        )
        return SubmitOutcome(rejection=rejection)
