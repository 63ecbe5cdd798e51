"""Tests for the session_manager tool."""

import pytest

from app.chains.agent_tools import invoke_tool
from app.core.schemas_sessions import ChannelType
from app.core.schemas_tools import ToolStatus
from app.core.security_context import build_admin_context, build_contact_context, build_system_context
from app.db.chat_sessions import find_or_create_session

from tests.fixtures_tenants import (
    COMPANY_A,
    COMPANY_B,
    HOMEOWNER_ID,
    HOMEOWNER_PHONE,
    OUTSIDER_ID,
    PROJECT_A1,
    SUPER_ID,
)


@pytest.mark.asyncio
async def test_create_then_find(tenants):
    context = build_system_context(COMPANY_A)

    created = await invoke_tool(
        "session_manager",
        {"action": "create", "channel_type": "sms", "channel_identifier": HOMEOWNER_PHONE},
        context,
    )
    again = await invoke_tool(
        "session_manager",
        {"action": "create", "channel_type": "sms", "channel_identifier": HOMEOWNER_PHONE},
        context,
    )
    found = await invoke_tool(
        "session_manager",
        {"action": "find", "channel_type": "sms", "channel_identifier": HOMEOWNER_PHONE},
        context,
    )

    assert created.status == ToolStatus.SUCCESS
    assert again.data["session"]["id"] == created.data["session"]["id"]
    assert found.data["count"] == 1
    assert found.data["sessions"][0]["company_id"] == COMPANY_A


@pytest.mark.asyncio
async def test_find_never_crosses_tenants(tenants):
    find_or_create_session(ChannelType.SMS, HOMEOWNER_PHONE, COMPANY_B, 60)

    found = await invoke_tool(
        "session_manager",
        {"action": "find", "channel_type": "sms", "channel_identifier": HOMEOWNER_PHONE},
        build_system_context(COMPANY_A),
    )

    assert found.data["count"] == 0
    assert found.message == "No active sessions found"


@pytest.mark.asyncio
async def test_get_other_company_session_is_denied(tenants):
    session = find_or_create_session(ChannelType.WEB, "browser-1", COMPANY_B, 60)

    response = await invoke_tool(
        "session_manager", {"action": "get", "session_id": session["id"]}, build_system_context(COMPANY_A)
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_binds_project(tenants):
    session = find_or_create_session(ChannelType.WEB, "browser-1", COMPANY_A, 60)

    response = await invoke_tool(
        "session_manager",
        {"action": "update", "session_id": session["id"], "project_id": PROJECT_A1},
        build_admin_context(COMPANY_A, "user-1"),
    )

    assert response.status == ToolStatus.SUCCESS
    assert tenants.get("chat_sessions", session["id"])["project_id"] == PROJECT_A1


@pytest.mark.asyncio
async def test_update_rejects_contact_of_another_company(tenants):
    session = find_or_create_session(ChannelType.WEB, "browser-1", COMPANY_A, 60)
    admin = build_admin_context(COMPANY_A, "user-1")

    outsider = await invoke_tool(
        "session_manager", {"action": "update", "session_id": session["id"], "contact_id": OUTSIDER_ID}, admin
    )
    unknown = await invoke_tool(
        "session_manager",
        {"action": "update", "session_id": session["id"], "contact_id": "cccccccc-0000-0000-0000-00000000dead"},
        admin,
    )

    assert outsider.status_code == 403
    assert unknown.status_code == 404
    assert tenants.get("chat_sessions", session["id"])["contact_id"] is None


@pytest.mark.asyncio
async def test_update_accepts_company_staff_and_project_homeowners(tenants):
    session = find_or_create_session(ChannelType.WEB, "browser-1", COMPANY_A, 60)
    admin = build_admin_context(COMPANY_A, "user-1")

    staff = await invoke_tool(
        "session_manager", {"action": "update", "session_id": session["id"], "contact_id": SUPER_ID}, admin
    )
    homeowner = await invoke_tool(
        "session_manager", {"action": "update", "session_id": session["id"], "contact_id": HOMEOWNER_ID}, admin
    )

    assert staff.status == ToolStatus.SUCCESS
    assert homeowner.status == ToolStatus.SUCCESS
    assert tenants.get("chat_sessions", session["id"])["contact_id"] == HOMEOWNER_ID


@pytest.mark.asyncio
async def test_homeowner_of_another_company_cannot_be_bound(tenants):
    session = find_or_create_session(ChannelType.WEB, "browser-1", COMPANY_B, 60)

    response = await invoke_tool(
        "session_manager",
        {"action": "create", "channel_type": "web", "channel_identifier": "browser-2", "contact_id": HOMEOWNER_ID},
        build_system_context(COMPANY_B),
    )

    assert response.status_code == 403
    assert [s["id"] for s in tenants.rows("chat_sessions")] == [session["id"]]


@pytest.mark.asyncio
async def test_memory_mode_cannot_be_changed(tenants):
    session = find_or_create_session(ChannelType.WEB, "browser-1", COMPANY_A, 60)

    response = await invoke_tool(
        "session_manager",
        {"action": "update", "session_id": session["id"], "memory_mode": "company_selection"},
        build_system_context(COMPANY_A),
    )

    assert response.status_code == 400
    assert tenants.get("chat_sessions", session["id"])["memory_mode"] == "standard"


@pytest.mark.asyncio
async def test_contact_only_reaches_own_sessions(tenants):
    other = find_or_create_session(ChannelType.WEB, "browser-9", COMPANY_A, 60)
    own = find_or_create_session(ChannelType.WEB, "browser-8", COMPANY_A, 60, contact_id=HOMEOWNER_ID)
    context = build_contact_context(COMPANY_A, HOMEOWNER_ID)

    denied = await invoke_tool("session_manager", {"action": "get", "session_id": other["id"]}, context)
    allowed = await invoke_tool("session_manager", {"action": "get", "session_id": own["id"]}, context)

    assert denied.status_code == 403
    assert allowed.status == ToolStatus.SUCCESS


@pytest.mark.asyncio
async def test_unknown_action(tenants):
    response = await invoke_tool("session_manager", {"action": "merge"}, build_system_context(COMPANY_A))

    assert response.status_code == 400
    assert response.error.startswith("Unknown action: merge")
