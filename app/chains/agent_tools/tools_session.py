"""session_manager: get, update, create or find chat sessions within the caller's company."""

from typing import Any

from app.core.config import get_settings
from app.core.schemas_sessions import ChannelType, MemoryMode, session_ttl_minutes
from app.core.schemas_tools import (
    AccessDeniedError,
    NotFoundError,
    ToolResponse,
    ValidationFailedError,
    success_response,
)
from app.db import chat_sessions as sessions
from app.db.contacts import get_contact, get_contact_project_ids
from app.db.projects import list_projects_by_ids

from .guards import ToolCall, require_arg, tool_handler

SESSION_ACTIONS = ("get", "update", "create", "find")


def _channel_type(args: dict[str, Any]) -> ChannelType:
    raw = require_arg(args, "channel_type")
    try:
        return ChannelType(raw)
    except ValueError as e:
        raise ValidationFailedError(f"Unsupported channel_type: {raw}") from e


def _load_owned(call: ToolCall, session_id: str) -> dict[str, Any]:
    session = sessions.get_session(session_id)
    if session is None:
        raise NotFoundError("Session not found")
    if str(session.get("company_id")) != str(call.context.company_id):
        raise AccessDeniedError()
    if call.context.is_contact and session.get("contact_id") != call.context.contact_id:
        raise AccessDeniedError()
    return session


def _check_contact(company_id: str, contact_id: str) -> None:
    """A session may only be bound to a contact of the caller's company."""
    contact = get_contact(contact_id)
    if contact is None:
        raise NotFoundError("Contact not found")
    if contact.get("company_id"):
        if str(contact["company_id"]) != str(company_id):
            raise AccessDeniedError()
        return
    # Company-less contacts (homeowners) belong through their projects
    projects = list_projects_by_ids(get_contact_project_ids(contact_id))
    if not any(str(p.get("company_id")) == str(company_id) for p in projects):
        raise AccessDeniedError()


async def _get(call: ToolCall) -> ToolResponse:
    session = _load_owned(call, str(require_arg(call.args, "session_id")))
    return success_response({"session": session}, "Session retrieved successfully")


async def _update(call: ToolCall) -> ToolResponse:
    session_id = str(require_arg(call.args, "session_id"))
    _load_owned(call, session_id)

    # memory_mode belongs to the channel router and is never set here
    if "memory_mode" in call.args:
        raise ValidationFailedError("memory_mode cannot be changed through session_manager")

    updates: dict[str, Any] = {}
    if call.args.get("project_id"):
        updates["project_id"] = call.project_id
    if "contact_id" in call.args:
        if call.context.is_contact and call.args["contact_id"] != call.context.contact_id:
            raise AccessDeniedError()
        if call.args["contact_id"]:
            _check_contact(call.context.company_id, str(call.args["contact_id"]))
        updates["contact_id"] = call.args["contact_id"]
    if call.args.get("active") is False:
        updates["active"] = False
    if not updates:
        raise ValidationFailedError("Nothing to update")

    updated = sessions.update_session(session_id, call.context.company_id, updates)
    if updated is None:
        raise NotFoundError("Session not found")
    return success_response({"session": updated}, "Session updated successfully")


async def _create(call: ToolCall) -> ToolResponse:
    channel_type = _channel_type(call.args)
    channel_identifier = str(require_arg(call.args, "channel_identifier"))

    contact_id = call.args.get("contact_id")
    if call.context.is_contact:
        contact_id = call.context.contact_id
    elif contact_id:
        _check_contact(call.context.company_id, str(contact_id))

    session = sessions.find_or_create_session(
        channel_type,
        channel_identifier,
        call.context.company_id,
        session_ttl_minutes(channel_type, get_settings()),
        contact_id=contact_id,
        project_id=call.project_id,
        memory_mode=MemoryMode.STANDARD,
    )
    return success_response({"session": session}, "Session ready")


async def _find(call: ToolCall) -> ToolResponse:
    channel_type = _channel_type(call.args)
    channel_identifier = str(require_arg(call.args, "channel_identifier"))

    found = sessions.find_active_sessions(
        call.context.company_id,
        channel_type=channel_type,
        channel_identifier=channel_identifier,
        contact_id=call.context.contact_id if call.context.is_contact else None,
    )
    return success_response(
        {"sessions": found, "count": len(found)},
        "Active sessions found" if found else "No active sessions found",
    )


_ACTIONS = {"get": _get, "update": _update, "create": _create, "find": _find}


@tool_handler("session_manager")
async def session_manager(call: ToolCall) -> ToolResponse:
    """Dispatch a session action; every lookup is filtered by the caller's company."""
    action = require_arg(call.args, "action", "Action is required")
    handler = _ACTIONS.get(action)
    if handler is None:
        raise ValidationFailedError(
            f"Unknown action: {action}. Supported actions are: {', '.join(SESSION_ACTIONS)}"
        )
    return await handler(call)
