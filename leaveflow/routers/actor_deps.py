"""
Actor and service dependencies.

Identity is established by the upstream gateway and forwarded in the
X-Actor-Id / X-Actor-Role headers; this service trusts them as given.
"""
import logging
from typing import Callable, List, NamedTuple

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from leaveflow.core.exceptions import AccessDeniedError, AuthenticationError
from leaveflow.database import get_db
from leaveflow.models.leave_request import ActorRole
from leaveflow.services.events import EventSink, LoggingEventSink
from leaveflow.services.leave_workflow import LeaveWorkflowService
from leaveflow.services.policy_store import PolicyStore

logger = logging.getLogger(__name__)


class Actor(NamedTuple):
    id: int
    role: ActorRole


def get_current_actor(
    x_actor_id: str = Header(default=None),
    x_actor_role: str = Header(default=None),
) -> Actor:
    if not x_actor_id or not x_actor_role:
        raise AuthenticationError()
    try:
        actor_id = int(x_actor_id)
        role = ActorRole(x_actor_role.strip().upper())
    except ValueError:
        logger.warning(f"Rejected actor headers id={x_actor_id!r} role={x_actor_role!r}")
        raise AuthenticationError()
    # SYSTEM is reserved for transitions the engine performs itself
    if role == ActorRole.SYSTEM:
        raise AuthenticationError("SYSTEM actor cannot call the API")
    return Actor(id=actor_id, role=role)


def require_role(allowed_roles: List[ActorRole]) -> Callable:
    """
    Dependency factory that checks the actor has one of the allowed roles.

    Usage:
        @router.get("/policy")
        def read_policy(actor: Actor = Depends(require_role([ActorRole.HR]))):
            ...
    """
    def role_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed_roles:
            raise AccessDeniedError(f"Access denied. Required roles: {[r.value for r in allowed_roles]}")
        return actor
    return role_checker


def require_hr():
    """Shorthand for requiring the HR role."""
    return require_role([ActorRole.HR])


def get_policy_store(request: Request) -> PolicyStore:
    return request.app.state.policy_store


def get_event_sink(request: Request) -> EventSink:
    return getattr(request.app.state, "event_sink", None) or LoggingEventSink()


def get_workflow(
    db: Session = Depends(get_db),
    policy_store: PolicyStore = Depends(get_policy_store),
    event_sink: EventSink = Depends(get_event_sink),
) -> LeaveWorkflowService:
    return LeaveWorkflowService(db, policy_store, event_sink)
