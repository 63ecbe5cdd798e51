"""Tests for the tool registry, invoker and wire contract."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.chains.agent_tools import (
    TOOL_NAMES,
    get_registry,
    get_tools_for_context,
    invoke_tool,
    resolve_tool_name,
    visible_tool_names,
)
from app.chains.agent_tools.invoker import build_request
from app.core.schemas_tools import ToolResponse, ToolStatus
from app.core.security_context import build_contact_context, build_system_context

from tests.fixtures_tenants import COMPANY_A, HOMEOWNER_ID, PROJECT_A1


def test_every_tool_has_a_handler():
    assert set(get_registry().names()) == set(TOOL_NAMES)
    assert len(TOOL_NAMES) == 8


def test_resolve_tool_name_accepts_function_names():
    assert resolve_tool_name("tool-crm-read") == "crm_read"
    assert resolve_tool_name("crm_read") == "crm_read"
    assert resolve_tool_name("tool-nope") is None


def test_contacts_never_see_crm_write():
    contact = build_contact_context(COMPANY_A, HOMEOWNER_ID)
    assert "crm_write" not in visible_tool_names(contact)
    assert "crm_write" in visible_tool_names(build_system_context(COMPANY_A))


def test_enabled_tools_filter_definitions():
    tools = get_tools_for_context(build_system_context(COMPANY_A), ["knowledge_lookup", "escalation"])
    assert sorted(t["name"] for t in tools) == ["escalation", "knowledge_lookup"]
    assert all("function" not in t for t in tools)


def test_build_request_fills_metadata():
    request = build_request({"query": "x"}, build_system_context(COMPANY_A), {"orchestrator": "test"})
    assert request.metadata.orchestrator == "test"
    assert request.metadata.trace_id
    assert request.metadata.timestamp
    assert request.to_wire()["securityContext"] == {"company_id": COMPANY_A, "user_type": "system"}


@pytest.mark.asyncio
async def test_unknown_tool_is_an_error_response():
    response = await invoke_tool("launch_rockets", {}, build_system_context(COMPANY_A))
    assert response.status == ToolStatus.ERROR
    assert response.error == "Unknown tool: launch_rockets"
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_missing_context_is_rejected_by_handler(tenants):
    response = await invoke_tool("identify_project", {"query": "Maple"}, None)
    assert response.status == ToolStatus.ERROR
    assert response.status_code == 403
    assert response.error == "Security context is required"


@pytest.mark.asyncio
async def test_handler_crash_becomes_500(tenants):
    with patch(
        "app.chains.agent_tools.tools_identify_project.search_projects",
        side_effect=RuntimeError("db down"),
    ):
        response = await invoke_tool(
            "identify_project", {"query": "Maple"}, build_system_context(COMPANY_A)
        )
    assert response.status == ToolStatus.ERROR
    assert response.status_code == 500
    assert "db down" in response.error


@pytest.mark.asyncio
async def test_http_transport_failure_becomes_error(monkeypatch):
    monkeypatch.setenv("TOOL_TRANSPORT", "http")
    monkeypatch.setenv("TOOL_BASE_URL", "https://tools.example.com/v1")

    with patch(
        "app.chains.agent_tools.invoker._invoke_http",
        new=AsyncMock(side_effect=httpx.ConnectError("connection refused")),
    ):
        response = await invoke_tool("crm_read", {"resource_type": "project"}, build_system_context(COMPANY_A))

    assert response.status == ToolStatus.ERROR
    assert response.status_code == 502
    assert "Transport error" in response.error


@pytest.mark.asyncio
async def test_http_transport_without_base_url(monkeypatch):
    monkeypatch.setenv("TOOL_TRANSPORT", "http")
    response = await invoke_tool("crm_read", {"resource_type": "project"}, build_system_context(COMPANY_A))
    assert response.status == ToolStatus.ERROR
    assert response.error == "TOOL_BASE_URL is not configured"


@pytest.mark.asyncio
async def test_http_transport_parses_wire_response(monkeypatch):
    monkeypatch.setenv("TOOL_TRANSPORT", "http")
    monkeypatch.setenv("TOOL_BASE_URL", "https://tools.example.com/v1")

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/tools/tool-knowledge-lookup"
        assert request.headers["Authorization"] == "Bearer test-key"
        return httpx.Response(200, json={"status": "success", "data": {"count": 0}})

    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        return real_client(transport=httpx.MockTransport(handler))

    with patch("app.chains.agent_tools.invoker.httpx.AsyncClient", side_effect=client_factory):
        response = await invoke_tool(
            "knowledge_lookup", {"query": "warranty"}, build_system_context(COMPANY_A, PROJECT_A1)
        )

    assert response.status == ToolStatus.SUCCESS
    assert response.data == {"count": 0}


def test_from_wire_rejects_malformed_body():
    response = ToolResponse.from_wire({"status": "maybe"})
    assert response.status == ToolStatus.ERROR
    assert response.status_code == 502


def test_no_action_is_not_an_error():
    response = ToolResponse(status=ToolStatus.NO_ACTION, message="nothing to do")
    assert response.ok
    assert response.to_wire() == {"status": "no_action", "message": "nothing to do"}
