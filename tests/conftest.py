import pytest
import os
from datetime import date
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from leaveflow.core.config import PolicyDefaults
from leaveflow.database import Base, get_db
from leaveflow.main import app
from leaveflow.models.leave_balance import BalanceRecord
from leaveflow.models.leave_type import LeaveType
from leaveflow.routers.actor_deps import get_event_sink, get_policy_store, get_workflow
from leaveflow.services.events import InMemoryEventSink
from leaveflow.services.leave_workflow import LeaveWorkflowService
from leaveflow.services.policy_store import PolicyStore
from fastapi.testclient import TestClient

# A Monday; every scenario date below is relative to it
TODAY = date(2025, 3, 3)
YEAR = 2025

EMPLOYEE_ID = 101
MANAGER_ID = 201
HR_ID = 301

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory schema per test; workflow code commits and rolls back for real."""
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def policy_defaults():
    return PolicyDefaults(
        max_consecutive_leaves=15,
        advance_notice_days=3,
        auto_approve_enabled=False,
        auto_approve_max_days=2,
        carry_over_enabled=True,
        carry_over_limit=10,
        allow_backdate_leaves=False,
        allow_overlapping_leaves=False,
        min_leave_duration=0.5,
        default_leave_days=20,
        working_days=["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"],
    )


@pytest.fixture
def policy_store(db_session, policy_defaults):
    store = PolicyStore(defaults=policy_defaults)
    store.refresh(db_session)
    return store


@pytest.fixture
def event_sink():
    return InMemoryEventSink()


@pytest.fixture
def annual_leave(db_session):
    """Two-stage approval, carries over, half days allowed."""
    leave_type = LeaveType(
        name="Annual",
        max_days_per_year=20,
        requires_approval=True,
        requires_hr_approval=True,
        allows_carry_over=True,
        min_duration_unit=0.5,
    )
    db_session.add(leave_type)
    db_session.commit()
    return leave_type


@pytest.fixture
def sick_leave(db_session):
    """Manager approval only, whole days, no carry-over."""
    leave_type = LeaveType(
        name="Sick",
        max_days_per_year=10,
        requires_approval=True,
        requires_hr_approval=False,
        allows_carry_over=False,
        min_duration_unit=1.0,
    )
    db_session.add(leave_type)
    db_session.commit()
    return leave_type


@pytest.fixture
def compassionate_leave(db_session):
    """No approval required: submissions resolve immediately."""
    leave_type = LeaveType(
        name="Compassionate",
        max_days_per_year=5,
        requires_approval=False,
        requires_hr_approval=False,
        allows_carry_over=False,
        min_duration_unit=1.0,
    )
    db_session.add(leave_type)
    db_session.commit()
    return leave_type


@pytest.fixture
def make_balance(db_session):
    def _make_balance(leave_type, allocated, used=0.0, employee_id=EMPLOYEE_ID, year=YEAR, carried_over=0.0):
        record = BalanceRecord(
            employee_id=employee_id,
            leave_type_id=leave_type.id,
            period_year=year,
            allocated=allocated,
            used=used,
            reserved=0.0,
            carried_over=carried_over,
            version=1,
        )
        db_session.add(record)
        db_session.commit()
        return record
    return _make_balance


@pytest.fixture
def workflow(db_session, policy_store, event_sink):
    return LeaveWorkflowService(db_session, policy_store, event_sink, today=lambda: TODAY)


@pytest.fixture(scope="function")
def client(db_session, policy_store, event_sink):
    """TestClient wired to the test session, policy store and event sink."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_policy_store] = lambda: policy_store
    app.dependency_overrides[get_event_sink] = lambda: event_sink
    app.dependency_overrides[get_workflow] = lambda: LeaveWorkflowService(
        db_session, policy_store, event_sink, today=lambda: TODAY
    )
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def actor_headers(actor_id, role):
    return {"X-Actor-Id": str(actor_id), "X-Actor-Role": role}
