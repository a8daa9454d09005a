# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import leave_type, leave_request, leave_balance, system_setting, holiday

# Explicit class exports for cleaner imports
from .leave_type import LeaveType
from .leave_request import LeaveRequest, LeaveStatus, ActorRole
from .leave_balance import BalanceRecord, BalanceReservation, ReservationState
from .system_setting import SystemSetting
from .holiday import Holiday

__all__ = [
    "LeaveType",
    "LeaveRequest",
    "LeaveStatus",
    "ActorRole",
    "BalanceRecord",
    "BalanceReservation",
    "ReservationState",
    "SystemSetting",
    "Holiday",
]
