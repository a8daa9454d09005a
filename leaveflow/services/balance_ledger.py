"""
Balance Ledger

Authoritative per (employee, leave type, period) day accounting.

Invariant: used + reserved <= allocated + carried_over, always.

Every mutation is a compare-and-swap on BalanceRecord.version: the UPDATE
only matches the row version that was read, so two writers racing on the
same balance key (in this process or another one) cannot both win. The
loser gets CONCURRENT_MODIFICATION and the caller retries the whole
operation. Different balance keys never touch the same row.

Business outcomes are returned as LedgerResult values, not raised.
"""
import enum
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from leaveflow.models.leave_balance import BalanceRecord, BalanceReservation, ReservationState
from leaveflow.schemas.policy import EffectivePolicy

logger = logging.getLogger(__name__)


class LedgerError(str, enum.Enum):
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    RESERVE_NOT_FOUND = "RESERVE_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    DUPLICATE_RESERVATION = "DUPLICATE_RESERVATION"


class BalanceSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    record_id: int
    employee_id: int
    leave_type_id: int
    period_year: int
    allocated: float
    used: float
    carried_over: float
    reserved: float
    version: int

    @property
    def entitlement(self) -> float:
        return self.allocated + self.carried_over

    @property
    def available(self) -> float:
        return self.entitlement - self.used - self.reserved


class LedgerResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool
    error: Optional[LedgerError] = None
    message: str = ""
    balance: Optional[BalanceSnapshot] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def success(cls, balance: BalanceSnapshot, **details) -> "LedgerResult":
        return cls(ok=True, balance=balance, details=details)

    @classmethod
    def failure(cls, error: LedgerError, message: str, balance: Optional[BalanceSnapshot] = None, **details) -> "LedgerResult":
        return cls(ok=False, error=error, message=message, balance=balance, details=details)


def _is_half_step(days: float) -> bool:
    return days > 0 and (days * 2) % 1 == 0


class BalanceLedger:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self, employee_id: int, leave_type_id: int, period_year: int) -> Optional[BalanceSnapshot]:
        """Fresh read of the balance row, bypassing the session identity map."""
        row = self.db.execute(
            select(
                BalanceRecord.id,
                BalanceRecord.employee_id,
                BalanceRecord.leave_type_id,
                BalanceRecord.period_year,
                BalanceRecord.allocated,
                BalanceRecord.used,
                BalanceRecord.carried_over,
                BalanceRecord.reserved,
                BalanceRecord.version,
            ).where(
                BalanceRecord.employee_id == employee_id,
                BalanceRecord.leave_type_id == leave_type_id,
                BalanceRecord.period_year == period_year,
            )
        ).one_or_none()
        if row is None:
            return None
        return BalanceSnapshot(
            record_id=row.id,
            employee_id=row.employee_id,
            leave_type_id=row.leave_type_id,
            period_year=row.period_year,
            allocated=row.allocated,
            used=row.used,
            carried_over=row.carried_over,
            reserved=row.reserved,
            version=row.version,
        )

    # Seam for the read half of each read-modify-write
    _load = snapshot

    def _reservation(self, reference: str) -> Optional[BalanceReservation]:
        return self.db.execute(
            select(BalanceReservation).where(BalanceReservation.reference == reference)
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _swap(self, snap: BalanceSnapshot, used: float, reserved: float) -> Optional[BalanceSnapshot]:
        """Write new used/reserved iff the row still has the version we read."""
        if used < 0 or reserved < 0 or used + reserved > snap.entitlement:
            # Callers check before swapping; reaching this is a defect
            raise ValueError(
                f"ledger invariant would break: used={used} reserved={reserved} entitlement={snap.entitlement}"
            )
        result = self.db.execute(
            update(BalanceRecord)
            .where(BalanceRecord.id == snap.record_id, BalanceRecord.version == snap.version)
            .values(used=used, reserved=reserved, version=snap.version + 1)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            logger.warning(
                "Balance version conflict",
                extra={"employee_id": snap.employee_id, "leave_type_id": snap.leave_type_id,
                       "period_year": snap.period_year, "expected_version": snap.version}
            )
            return None
        return snap.model_copy(update={"used": used, "reserved": reserved, "version": snap.version + 1})

    def reserve(
        self,
        employee_id: int,
        leave_type_id: int,
        days: float,
        *,
        period_year: int,
        reference: str,
    ) -> LedgerResult:
        """Hold `days` against the balance for one request."""
        if not _is_half_step(days):
            return LedgerResult.failure(LedgerError.INVALID_AMOUNT, f"Invalid day amount {days}", days=days)

        snap = self._load(employee_id, leave_type_id, period_year)
        if snap is None:
            return LedgerResult.failure(
                LedgerError.NOT_FOUND,
                f"No balance record for employee {employee_id}, leave type {leave_type_id}, {period_year}",
            )

        if snap.used + snap.reserved + days > snap.entitlement:
            return LedgerResult.failure(
                LedgerError.INSUFFICIENT_BALANCE,
                f"Insufficient balance: requested {days:g} days, available {snap.available:g}",
                balance=snap,
                requested=days,
                available=snap.available,
            )

        if self._reservation(reference) is not None:
            return LedgerResult.failure(
                LedgerError.DUPLICATE_RESERVATION, f"Reservation {reference} already exists", balance=snap
            )

        updated = self._swap(snap, used=snap.used, reserved=snap.reserved + days)
        if updated is None:
            return LedgerResult.failure(LedgerError.CONCURRENT_MODIFICATION, "Balance modified concurrently")

        self.db.add(BalanceReservation(
            reference=reference,
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            period_year=period_year,
            days=days,
            state=ReservationState.HELD.value,
        ))
        self.db.flush()
        return LedgerResult.success(updated)

    def _settle(self, employee_id, leave_type_id, days, period_year, reference, target: ReservationState) -> LedgerResult:
        reservation = self._reservation(reference)
        if (
            reservation is None
            or reservation.state != ReservationState.HELD.value
            or reservation.employee_id != employee_id
            or reservation.leave_type_id != leave_type_id
            or reservation.period_year != period_year
            or reservation.days != days
        ):
            return LedgerResult.failure(
                LedgerError.RESERVE_NOT_FOUND,
                f"No held reservation of {days:g} days for {reference}",
                reference=reference,
                state=reservation.state if reservation else None,
            )

        snap = self._load(employee_id, leave_type_id, period_year)
        if snap is None:
            return LedgerResult.failure(LedgerError.NOT_FOUND, "Balance record disappeared")
        if snap.reserved < days:
            return LedgerResult.failure(
                LedgerError.RESERVE_NOT_FOUND,
                f"Balance holds {snap.reserved:g} reserved days, cannot settle {days:g}",
                balance=snap,
            )

        if target == ReservationState.COMMITTED:
            updated = self._swap(snap, used=snap.used + days, reserved=snap.reserved - days)
        else:
            updated = self._swap(snap, used=snap.used, reserved=snap.reserved - days)
        if updated is None:
            return LedgerResult.failure(LedgerError.CONCURRENT_MODIFICATION, "Balance modified concurrently")

        reservation.state = target.value
        reservation.settled_at = datetime.now(timezone.utc)
        self.db.flush()
        return LedgerResult.success(updated)

    def commit(self, employee_id: int, leave_type_id: int, days: float, *, period_year: int, reference: str) -> LedgerResult:
        """Move a held reservation into `used`. A second commit finds no held reservation."""
        return self._settle(employee_id, leave_type_id, days, period_year, reference, ReservationState.COMMITTED)

    def release(self, employee_id: int, leave_type_id: int, days: float, *, period_year: int, reference: str) -> LedgerResult:
        """Return a held reservation without touching `used`."""
        return self._settle(employee_id, leave_type_id, days, period_year, reference, ReservationState.RELEASED)

    def rollover_period(
        self,
        employee_id: int,
        leave_type_id: int,
        new_year: int,
        policy: EffectivePolicy,
        allocated: Optional[float] = None,
    ) -> LedgerResult:
        """
        Open the balance for `new_year`. Carry-over is the prior period's
        unused allocation (allocated - used) capped at the carry-over limit,
        or zero when the leave type does not carry over. Idempotent: an
        existing record is returned untouched.
        """
        existing = self._load(employee_id, leave_type_id, new_year)
        if existing is not None:
            return LedgerResult.success(existing, created=False)

        allocation = policy.default_allocation if allocated is None else allocated
        if allocation < 0 or (allocation * 2) % 1:
            return LedgerResult.failure(LedgerError.INVALID_AMOUNT, f"Invalid allocation {allocation}")

        carried_over = 0.0
        previous = self._load(employee_id, leave_type_id, new_year - 1)
        if previous is not None and policy.allows_carry_over:
            carried_over = min(max(previous.allocated - previous.used, 0.0), policy.carry_over_limit)
        if (carried_over * 2) % 1:
            return LedgerResult.failure(LedgerError.INVALID_AMOUNT, f"Invalid carry-over {carried_over}")

        record = BalanceRecord(
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            period_year=new_year,
            allocated=allocation,
            used=0.0,
            reserved=0.0,
            carried_over=carried_over,
            version=1,
        )
        # A concurrent opener of the same period fails here with IntegrityError
        # on uq_balance_key; the caller rolls back and retries into the idempotent path.
        self.db.add(record)
        self.db.flush()

        logger.info(
            "Opened balance period",
            extra={"employee_id": employee_id, "leave_type_id": leave_type_id, "period_year": new_year,
                   "allocated": allocation, "carried_over": carried_over}
        )
        return LedgerResult.success(self._load(employee_id, leave_type_id, new_year), created=True)
