import pytest
from fastapi import status

from conftest import EMPLOYEE_ID, HR_ID, MANAGER_ID, YEAR, actor_headers
from leaveflow.services.events import EventType

EMPLOYEE = actor_headers(EMPLOYEE_ID, "EMPLOYEE")
MANAGER = actor_headers(MANAGER_ID, "MANAGER")
HR = actor_headers(HR_ID, "HR")


def _submit(client, leave_type, start="2025-03-10", end="2025-03-14", headers=EMPLOYEE, **extra):
    payload = {"leave_type_id": leave_type.id, "start_date": start, "end_date": end, "reason": "Holiday"}
    payload.update(extra)
    return client.post("/api/leave/requests", headers=headers, json=payload)


def test_submit_returns_created_request(client, annual_leave, make_balance):
    make_balance(annual_leave, allocated=18)
    response = _submit(client, annual_leave)

    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["success"] is True
    assert body["data"]["status"] == "PENDING_MANAGER"
    assert body["data"]["working_days"] == 5
    assert "request_id" in body["data"]


def test_policy_rejection_is_422_with_reason(client, annual_leave, make_balance):
    make_balance(annual_leave, allocated=18)
    response = _submit(client, annual_leave, start="2025-03-04", end="2025-03-05")

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "POLICY_VIOLATION"
    assert body["error"]["details"]["reason_code"] == "ADVANCE_NOTICE"
    assert body["error"]["message"] == "Requires 3 days advance notice, given 1"


def test_insufficient_balance_is_422(client, annual_leave, make_balance):
    make_balance(annual_leave, allocated=10, used=9)
    response = _submit(client, annual_leave, end="2025-03-12")

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    error = response.json()["error"]
    assert error["code"] == "INSUFFICIENT_BALANCE"
    assert error["details"]["available"] == 1


def test_reason_length_is_bounded(client, annual_leave, make_balance):
    make_balance(annual_leave, allocated=18)
    response = _submit(client, annual_leave, reason="x" * 501)
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_missing_actor_headers(client, annual_leave):
    response = _submit(client, annual_leave, headers={})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

    response = _submit(client, annual_leave, headers=actor_headers(EMPLOYEE_ID, "SYSTEM"))
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_full_approval_flow(client, annual_leave, make_balance, event_sink):
    make_balance(annual_leave, allocated=18)
    request_id = _submit(client, annual_leave).json()["data"]["request_id"]

    # Employees cannot decide
    response = client.post(f"/api/leave/requests/{request_id}/decision", headers=EMPLOYEE, json={"approve": True})
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = client.post(f"/api/leave/requests/{request_id}/decision", headers=MANAGER, json={"approve": True})
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"] == {"request_id": request_id, "status": "PENDING_HR", "current_approver": "HR"}

    # Manager cannot act on the HR stage
    response = client.post(f"/api/leave/requests/{request_id}/decision", headers=MANAGER, json={"approve": True})
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"]["code"] == "INVALID_TRANSITION"

    response = client.post(
        f"/api/leave/requests/{request_id}/decision", headers=HR, json={"approve": True, "notes": "Enjoy"}
    )
    assert response.json()["data"]["status"] == "APPROVED"

    detail = client.get(f"/api/leave/requests/{request_id}", headers=EMPLOYEE).json()["data"]
    assert detail["hr_decision"]["approved"] is True
    assert detail["hr_decision"]["notes"] == "Enjoy"
    assert detail["manager_decision"]["by"] == MANAGER_ID
    assert detail["current_approver"] is None

    balances = client.get(f"/api/leave/balances/{EMPLOYEE_ID}?year={YEAR}", headers=EMPLOYEE).json()["data"]
    assert balances[0]["used"] == 5
    assert balances[0]["reserved"] == 0
    assert balances[0]["available"] == 13

    assert [e.event_type for e in event_sink.events][-1] == EventType.LEAVE_APPROVED


def test_cancel_endpoint(client, annual_leave, make_balance):
    make_balance(annual_leave, allocated=18)
    request_id = _submit(client, annual_leave).json()["data"]["request_id"]

    other = actor_headers(EMPLOYEE_ID + 1, "EMPLOYEE")
    assert client.post(f"/api/leave/requests/{request_id}/cancel", headers=other).status_code == 403

    response = client.post(f"/api/leave/requests/{request_id}/cancel", headers=EMPLOYEE)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["status"] == "CANCELLED"

    response = client.post(f"/api/leave/requests/{request_id}/cancel", headers=EMPLOYEE)
    assert response.status_code == status.HTTP_409_CONFLICT


def test_unknown_request_is_404(client):
    response = client.post("/api/leave/requests/999/decision", headers=MANAGER, json={"approve": False})
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_employees_only_see_their_own_data(client, annual_leave, make_balance):
    make_balance(annual_leave, allocated=18)
    request_id = _submit(client, annual_leave).json()["data"]["request_id"]
    other = actor_headers(EMPLOYEE_ID + 1, "EMPLOYEE")

    assert client.get(f"/api/leave/requests/{request_id}", headers=other).status_code == 403
    assert client.get(f"/api/leave/balances/{EMPLOYEE_ID}", headers=other).status_code == 403
    assert client.get("/api/leave/requests", headers=other).json()["data"] == []
    assert len(client.get("/api/leave/requests", headers=MANAGER).json()["data"]) == 1


def test_pending_queue_per_stage(client, annual_leave, make_balance):
    make_balance(annual_leave, allocated=18)
    request_id = _submit(client, annual_leave).json()["data"]["request_id"]

    queue = client.get("/api/leave/pending", headers=MANAGER).json()["data"]
    assert [r["id"] for r in queue] == [request_id]
    assert client.get("/api/leave/pending", headers=HR).json()["data"] == []
    assert client.get("/api/leave/pending", headers=EMPLOYEE).status_code == 403


def test_admin_policy_read_and_update(client):
    response = client.get("/api/admin/policy", headers=HR)
    assert response.status_code == 200
    assert response.json()["data"]["maxConsecutiveLeaves"] == 15

    response = client.put("/api/admin/policy", headers=HR, json={"advanceNoticeDays": 1})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["advanceNoticeDays"] == 1
    assert data["version"] == 1

    response = client.put("/api/admin/policy", headers=HR, json={"unknownSetting": 1})
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_admin_requires_hr(client):
    assert client.get("/api/admin/policy", headers=MANAGER).status_code == 403
    assert client.get("/api/admin/policy", headers=EMPLOYEE).status_code == 403


def test_admin_leave_types_and_holidays(client, policy_store):
    response = client.post("/api/admin/leave-types", headers=HR, json={
        "name": "Study",
        "max_days_per_year": 5,
        "requires_hr_approval": False,
        "min_duration_unit": 0.5,
    })
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["data"]["name"] == "Study"

    duplicate = client.post("/api/admin/leave-types", headers=HR, json={"name": "Study"})
    assert duplicate.status_code == status.HTTP_409_CONFLICT

    names = [lt["name"] for lt in client.get("/api/admin/leave-types", headers=HR).json()["data"]]
    assert names == ["Study"]

    response = client.post("/api/admin/holidays", headers=HR, json={"name": "Founders day", "date": "2025-03-12"})
    assert response.status_code == status.HTTP_201_CREATED
    assert len(policy_store.snapshot.holidays) == 1
    assert policy_store.snapshot.version == 1


@pytest.mark.parametrize("field", [
    "carry_over_limit", "max_days_per_year", "max_consecutive_days", "min_duration_days", "auto_approve_max_days",
])
def test_leave_type_day_quantities_use_half_day_steps(client, field):
    response = client.post("/api/admin/leave-types", headers=HR, json={
        "name": "Study",
        "allows_carry_over": True,
        field: 2.3,
    })
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    response = client.post("/api/admin/leave-types", headers=HR, json={
        "name": "Study",
        "allows_carry_over": True,
        field: 2.5,
    })
    assert response.status_code == status.HTTP_201_CREATED


def test_holiday_shortens_request(client, annual_leave, make_balance):
    make_balance(annual_leave, allocated=18)
    client.post("/api/admin/holidays", headers=HR, json={"name": "Founders day", "date": "2025-03-12"})

    response = _submit(client, annual_leave)
    assert response.json()["data"]["working_days"] == 4


def test_admin_rollover(client, annual_leave, make_balance):
    make_balance(annual_leave, allocated=20, used=15, year=YEAR - 1)
    payload = {"employee_id": EMPLOYEE_ID, "leave_type_id": annual_leave.id, "period_year": YEAR}

    response = client.post("/api/admin/balances/rollover", headers=HR, json=payload)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["created"] is True
    assert data["balance"]["carried_over"] == 5
    assert data["balance"]["available"] == 25

    again = client.post("/api/admin/balances/rollover", headers=HR, json=payload).json()["data"]
    assert again["created"] is False
