"""Tests for the action approval API."""

from fastapi.testclient import TestClient

from app.core.schemas_actions import ActionType
from app.db.action_records import create_action_record
from app.main import app

from tests.fixtures_tenants import COMPANY_A, COMPANY_B, PROJECT_A1

client = TestClient(app)


def _stage(company_id: str = COMPANY_A) -> dict:
    row, _ = create_action_record(
        action_type=ActionType.DATA_UPDATE,
        action_payload={"field": "status", "value": "on_hold"},
        requires_approval=True,
        company_id=company_id,
        project_id=PROJECT_A1 if company_id == COMPANY_A else None,
    )
    return row


def test_requires_api_key(tenants):
    assert client.get("/v1/actions").status_code == 401


def test_list_and_count_pending(api_key):
    _stage()
    _stage()
    _stage(COMPANY_B)
    headers = {"X-API-Key": api_key}

    listed = client.get("/v1/actions", params={"status": "pending"}, headers=headers)
    counted = client.get("/v1/actions/pending/count", headers=headers)

    assert listed.status_code == 200
    assert listed.json()["count"] == 2
    assert all(a["company_id"] == COMPANY_A for a in listed.json()["actions"])
    assert counted.json() == {"count": 2}


def test_approve_records_acting_user(api_key, tenants):
    record = _stage()

    response = client.post(
        f"/v1/actions/{record['id']}/approve",
        headers={"X-API-Key": api_key, "X-User-Id": "reviewer-7"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "executed"
    assert tenants.get("action_records", record["id"])["approved_by"] == "reviewer-7"
    assert tenants.get("projects", PROJECT_A1)["status"] == "on_hold"


def test_second_approval_is_already_processed(api_key):
    record = _stage()
    headers = {"X-API-Key": api_key}

    client.post(f"/v1/actions/{record['id']}/approve", headers=headers)
    again = client.post(f"/v1/actions/{record['id']}/approve", headers=headers)

    assert again.status_code == 200
    assert again.json()["already_processed"] is True


def test_reject_with_reason(api_key, tenants):
    record = _stage()

    response = client.post(
        f"/v1/actions/{record['id']}/reject",
        json={"reason": "Customer changed their mind"},
        headers={"X-API-Key": api_key},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    assert tenants.get("action_records", record["id"])["execution_result"]["reason"] == "Customer changed their mind"


def test_other_company_record_is_404(api_key):
    record = _stage(COMPANY_B)
    headers = {"X-API-Key": api_key}

    assert client.get(f"/v1/actions/{record['id']}", headers=headers).status_code == 404
    assert client.post(f"/v1/actions/{record['id']}/approve", headers=headers).status_code == 404
