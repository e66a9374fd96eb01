from __future__ import annotations

from types import SimpleNamespace

import pytest
from flask import Flask

from src.hr_workflow.hr_workflow.changes.controller import register, status_code_for
from src.hr_workflow.hr_workflow.core.exceptions import (
    AlreadyApplied,
    NotYetEffective,
    SubjectNotFound,
    ValidationError,
)


@pytest.fixture
def client(world):
    app = Flask(__name__)
    app.secret_key = "test-secret"
    app.config["TESTING"] = True
    container = SimpleNamespace(
        change_request_service=world.service,
        approval_state_machine=world.machine,
        applier=world.applier,
    )
    register(app, container)
    return app.test_client()


def login(client, *, user_id, role, tenant_ids=(1,)):
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["role"] = role
        sess["tenant_ids"] = list(tenant_ids)


def _create_promotion(client):
    return client.post(
        "/api/change-requests",
        json={
            "subject_id": 1,
            "change_kind": "promotion",
            "effective_date": "2026-03-15",
            "proposed_state": {"position_id": 3, "basic_salary": "12000000"},
        },
    )


def test_status_codes_follow_error_class():
    assert status_code_for(SubjectNotFound(1)) == 404
    assert status_code_for(ValidationError("x")) == 400
    assert status_code_for(NotYetEffective(1, "2026-03-15")) == 409
    assert status_code_for(AlreadyApplied(1)) == 409


def test_login_required(client):
    resp = client.get("/api/change-requests")

    assert resp.status_code == 401
    assert resp.get_json()["success"] is False


@pytest.mark.parametrize(
    "user_id, role, tenant_ids",
    [
        (10, "intern", (1,)),
        (10, None, (1,)),
        ("abc", "hr", (1,)),
        (10, "hr", ("head-office",)),
    ],
)
def test_malformed_session_is_unauthorized(client, user_id, role, tenant_ids):
    login(client, user_id=user_id, role=role, tenant_ids=tenant_ids)

    resp = client.get("/api/change-requests")

    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "UNAUTHORIZED"


def test_create_and_read_back(client):
    login(client, user_id=10, role="staff")

    resp = _create_promotion(client)

    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["status"] == "pending"
    assert data["computed_deltas"]["salary_delta"] == "2000000.00"
    assert data["computed_deltas"]["salary_delta_pct"] == "20.00"
    assert data["previous_state"]["position_name"] == "Staff"
    assert data["proposed_state"]["position_name"] == "Manager"

    got = client.get(f"/api/change-requests/{data['id']}")
    assert got.status_code == 200
    assert got.get_json()["data"]["id"] == data["id"]


def test_workflow_over_http(client, world):
    login(client, user_id=10, role="staff")
    request_id = _create_promotion(client).get_json()["data"]["id"]

    login(client, user_id=20, role="hr")
    resp = client.post(f"/api/change-requests/{request_id}/approve", json={"approval_notes": "ok"})
    assert resp.status_code == 200

    early = client.post(f"/api/change-requests/{request_id}/apply")
    assert early.status_code == 409
    assert early.get_json()["error"]["code"] == "NOT_YET_EFFECTIVE"

    world.clock.advance(days=14)
    assert client.post(f"/api/change-requests/{request_id}/apply").status_code == 200

    again = client.post(f"/api/change-requests/{request_id}/apply")
    assert again.status_code == 409
    assert again.get_json()["error"]["code"] == "ALREADY_APPLIED"

    audit = client.get(f"/api/change-requests/{request_id}/audit").get_json()["data"]
    assert [e["action"] for e in audit] == ["create", "approve", "apply"]


def test_reject_without_reason_is_bad_request(client):
    login(client, user_id=10, role="staff")
    request_id = _create_promotion(client).get_json()["data"]["id"]
    login(client, user_id=20, role="hr")

    resp = client.post(f"/api/change-requests/{request_id}/reject", json={})

    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "VALIDATION_ERROR"


def test_foreign_tenant_request_is_not_found(client):
    login(client, user_id=10, role="staff")
    request_id = _create_promotion(client).get_json()["data"]["id"]

    login(client, user_id=50, role="hr", tenant_ids=(2,))
    assert client.get(f"/api/change-requests/{request_id}").status_code == 404

    listing = client.get("/api/change-requests?tenant_id=1").get_json()
    assert listing["data"] == []
    assert listing["pagination"]["total"] == 0


def test_staff_cannot_approve(client):
    login(client, user_id=10, role="staff")
    request_id = _create_promotion(client).get_json()["data"]["id"]

    resp = client.post(f"/api/change-requests/{request_id}/approve", json={})

    assert resp.status_code == 403


def test_patch_with_forbidden_field(client):
    login(client, user_id=10, role="staff")
    request_id = _create_promotion(client).get_json()["data"]["id"]

    resp = client.patch(f"/api/change-requests/{request_id}", json={"status": "approved"})

    assert resp.status_code == 400


def test_invalid_query_argument(client):
    login(client, user_id=20, role="hr")

    assert client.get("/api/change-requests?status=done").status_code == 400
    assert client.get("/api/change-requests?page=two").status_code == 400


def test_apply_due_endpoint(client, world):
    login(client, user_id=10, role="staff")
    request_id = _create_promotion(client).get_json()["data"]["id"]
    login(client, user_id=20, role="hr")
    client.post(f"/api/change-requests/{request_id}/approve", json={})
    world.clock.advance(days=20)

    due = client.get("/api/change-requests/due").get_json()["data"]
    assert [r["id"] for r in due] == [request_id]

    resp = client.post("/api/change-requests/apply-due")
    assert resp.get_json()["data"] == {"applied": [request_id], "skipped": {}}
