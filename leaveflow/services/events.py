"""
Domain events published after a workflow transaction commits.

Delivery is fire-and-forget: a failing sink is logged and never undoes or
fails the operation that produced the event. Consumers must be idempotent
on `event_id`.
"""
import enum
import logging
import threading
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from leaveflow.models.leave_request import ActorRole, LeaveRequest

logger = logging.getLogger(__name__)


class EventType(str, enum.Enum):
    LEAVE_SUBMITTED = "LeaveSubmitted"
    LEAVE_APPROVED = "LeaveApproved"
    LEAVE_REJECTED = "LeaveRejected"
    LEAVE_CANCELLED = "LeaveCancelled"


class LeaveEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    request_id: int
    request_reference: str
    employee_id: int
    leave_type_id: int
    status: str
    start_date: date
    end_date: date
    working_days: float
    actor_id: Optional[int] = None
    actor_role: ActorRole
    notes: Optional[str] = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_request(
        cls,
        event_type: EventType,
        request: LeaveRequest,
        actor_role: ActorRole,
        actor_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> "LeaveEvent":
        return cls(
            event_type=event_type,
            request_id=request.id,
            request_reference=request.reference,
            employee_id=request.employee_id,
            leave_type_id=request.leave_type_id,
            status=request.status,
            start_date=request.start_date,
            end_date=request.end_date,
            working_days=request.working_days,
            actor_id=actor_id,
            actor_role=actor_role,
            notes=notes,
        )


class EventSink:
    def publish(self, event: LeaveEvent) -> None:
        raise NotImplementedError


class LoggingEventSink(EventSink):
    """Default sink: one structured log line per event for the audit pipeline."""

    def __init__(self, logger_name: str = "leaveflow.events"):
        self._logger = logging.getLogger(logger_name)

    def publish(self, event: LeaveEvent) -> None:
        self._logger.info(event.event_type.value, extra={"event": event.model_dump(mode="json")})


class InMemoryEventSink(EventSink):
    def __init__(self):
        self._events: List[LeaveEvent] = []
        self._lock = threading.Lock()

    def publish(self, event: LeaveEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[LeaveEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: EventType) -> List[LeaveEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self):
        with self._lock:
            self._events.clear()


class CompositeEventSink(EventSink):
    def __init__(self, sinks: Sequence[EventSink]):
        self.sinks = list(sinks)

    def publish(self, event: LeaveEvent) -> None:
        for sink in self.sinks:
            try:
                sink.publish(event)
            except Exception as e:
                logger.warning(f"Event sink {type(sink).__name__} failed for {event.event_id}: {e}", exc_info=True)


def publish_safely(sink: EventSink, event: LeaveEvent) -> None:
    try:
        sink.publish(event)
    except Exception as e:
        # Don't fail the request if event delivery fails
        logger.warning(f"Event publish failed for {event.event_type.value} {event.event_id}: {e}", exc_info=True)
