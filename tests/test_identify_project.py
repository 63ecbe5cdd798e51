"""Tests for identify_project."""

import pytest

from app.chains.agent_tools import invoke_tool
from app.core.schemas_tools import ToolStatus
from app.core.security_context import build_admin_context, build_contact_context

from tests.fixtures_tenants import COMPANY_A, HOMEOWNER_ID, PROJECT_A1, PROJECT_A2, SUPER_ID


@pytest.mark.asyncio
async def test_search_by_name_returns_project_and_contacts(tenants):
    response = await invoke_tool(
        "identify_project", {"query": "maple"}, build_admin_context(COMPANY_A, "user-1")
    )

    assert response.status == ToolStatus.SUCCESS
    assert response.data["count"] == 1
    assert response.data["projects"][0]["id"] == PROJECT_A1
    contact_ids = {c["id"] for c in response.data["contacts"]}
    assert contact_ids == {HOMEOWNER_ID, SUPER_ID}


@pytest.mark.asyncio
async def test_uuid_query_is_exact_id_lookup(tenants):
    response = await invoke_tool(
        "identify_project", {"query": PROJECT_A2}, build_admin_context(COMPANY_A, "user-1")
    )

    assert response.data["type"] == "id"
    assert [p["id"] for p in response.data["projects"]] == [PROJECT_A2]


@pytest.mark.asyncio
async def test_search_by_crm_id(tenants):
    response = await invoke_tool(
        "identify_project",
        {"query": "CRM-200", "type": "crm_id"},
        build_admin_context(COMPANY_A, "user-1"),
    )

    assert [p["id"] for p in response.data["projects"]] == [PROJECT_A2]


@pytest.mark.asyncio
async def test_other_companies_projects_are_invisible(tenants):
    response = await invoke_tool(
        "identify_project", {"query": "Pine"}, build_admin_context(COMPANY_A, "user-1")
    )

    assert response.status == ToolStatus.SUCCESS
    assert response.data["count"] == 0
    assert response.message == 'No projects found matching "Pine"'


@pytest.mark.asyncio
async def test_contact_only_sees_associated_projects(tenants):
    context = build_contact_context(COMPANY_A, HOMEOWNER_ID)

    response = await invoke_tool("identify_project", {"query": "a"}, context)

    assert [p["id"] for p in response.data["projects"]] == [PROJECT_A1]


@pytest.mark.asyncio
async def test_query_is_required(tenants):
    response = await invoke_tool("identify_project", {"query": "  "}, build_admin_context(COMPANY_A, "user-1"))

    assert response.status == ToolStatus.ERROR
    assert response.status_code == 400
    assert response.error == "Query parameter is required"
