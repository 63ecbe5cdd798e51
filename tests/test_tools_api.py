"""Tests for the tool RPC endpoint and the external tool API."""

from fastapi.testclient import TestClient

from app.db.tool_access_keys import hash_api_key
from app.main import app

from tests.fixtures_tenants import COMPANY_A, PROJECT_A1, PROJECT_B1

client = TestClient(app)

SERVICE_AUTH = {"Authorization": "Bearer test-key"}


def wire_request(args: dict, context: dict | None = None) -> dict:
    return {
        "args": args,
        "securityContext": context or {"company_id": COMPANY_A, "user_type": "system"},
        "metadata": {"orchestrator": "test", "trace_id": "trace-1"},
    }


class TestToolRpc:
    def test_requires_service_key(self, tenants):
        response = client.post("/v1/tools/tool-identify-project", json=wire_request({"query": "Maple"}))
        assert response.status_code == 401

    def test_rejects_wrong_service_key(self, tenants):
        response = client.post(
            "/v1/tools/tool-identify-project",
            json=wire_request({"query": "Maple"}),
            headers={"Authorization": "Bearer nope"},
        )
        assert response.status_code == 401

    def test_success_follows_wire_contract(self, tenants):
        response = client.post(
            "/v1/tools/tool-identify-project", json=wire_request({"query": "Maple"}), headers=SERVICE_AUTH
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["data"]["projects"][0]["id"] == PROJECT_A1

    def test_tool_error_maps_to_http_status(self, tenants):
        response = client.post(
            "/v1/tools/tool-crm-read",
            json=wire_request({"resource_type": "note", "project_id": PROJECT_B1}),
            headers=SERVICE_AUTH,
        )

        assert response.status_code == 403
        assert response.json()["status"] == "error"
        assert response.json()["error"] == "Access denied"

    def test_missing_security_context_is_403(self, tenants):
        response = client.post(
            "/v1/tools/tool-identify-project",
            json={"args": {"query": "Maple"}},
            headers=SERVICE_AUTH,
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Security context is required"

    def test_unknown_function_is_404(self, tenants):
        response = client.post("/v1/tools/tool-teleport", json=wire_request({}), headers=SERVICE_AUTH)
        assert response.status_code == 404

    def test_non_object_body_is_400(self, tenants):
        response = client.post("/v1/tools/tool-identify-project", json=[1, 2], headers=SERVICE_AUTH)
        assert response.status_code == 400


class TestExternalToolApi:
    def test_requires_api_key(self, tenants):
        response = client.get("/v1/tools")
        assert response.status_code == 401

    def test_list_tools(self, api_key):
        response = client.get("/v1/tools", headers={"X-API-Key": api_key})

        assert response.status_code == 200
        assert response.json()["count"] == 8

    def test_execute_for_key_company(self, api_key):
        response = client.post(
            "/v1/tools/execute",
            json={"tool": "identify_project", "args": {"query": "Oak"}},
            headers={"X-API-Key": api_key},
        )

        assert response.status_code == 200
        assert response.json()["data"]["count"] == 1

    def test_execute_cannot_reach_other_tenant(self, api_key):
        response = client.post(
            "/v1/tools/execute",
            json={"tool": "crm_read", "args": {"resource_type": "project"}, "project_id": PROJECT_B1},
            headers={"X-API-Key": api_key},
        )

        assert response.status_code == 403

    def test_tool_not_enabled_for_key(self, tenants):
        raw_key = "pat_limited_key"
        tenants.seed(
            "tool_access_keys",
            company_id=COMPANY_A,
            name="kb-only",
            key_hash=hash_api_key(raw_key),
            enabled_tools=["knowledge_lookup"],
        )

        response = client.post(
            "/v1/tools/execute",
            json={"tool": "crm_write", "args": {}},
            headers={"X-API-Key": raw_key},
        )

        assert response.status_code == 403
        assert "not enabled" in response.json()["detail"]

    def test_unknown_tool(self, api_key):
        response = client.post(
            "/v1/tools/execute", json={"tool": "teleport"}, headers={"X-API-Key": api_key}
        )
        assert response.status_code == 404

    def test_expired_key_is_rejected(self, tenants):
        raw_key = "pat_expired_key"
        tenants.seed(
            "tool_access_keys",
            company_id=COMPANY_A,
            name="old",
            key_hash=hash_api_key(raw_key),
            expires_at="2020-01-01T00:00:00+00:00",
        )

        response = client.get("/v1/tools", headers={"X-API-Key": raw_key})

        assert response.status_code == 401
