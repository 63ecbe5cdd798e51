"""Chat session database operations.

Find-or-create and history appends go through database functions so that
concurrent inbound messages on one channel identifier converge on a single
session and history keeps arrival order (see migrations/0001_tool_engine.sql).
"""

from datetime import datetime, timezone
from typing import Any

from app.core.logging import get_logger
from app.core.schemas_sessions import SELECTION_MODES, ChannelType, MemoryMode
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

# Columns session-manager may change through update
UPDATABLE_SESSION_FIELDS = frozenset({"project_id", "contact_id", "active", "expires_at"})


def _utc_now_iso() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def _first_row(data: Any) -> dict[str, Any] | None:
    if isinstance(data, list):
        return data[0] if data else None
    return data or None


def find_or_create_session(
    channel_type: ChannelType,
    channel_identifier: str,
    company_id: str | None,
    ttl_minutes: int,
    contact_id: str | None = None,
    project_id: str | None = None,
    memory_mode: MemoryMode = MemoryMode.STANDARD,
    selection_options: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """
    Atomically find the active session for (channel, identifier, company) or create it.

    Args:
        channel_type: sms, web or email
        channel_identifier: Phone number, browser session id or email address
        company_id: Tenant (None for disambiguation prompts)
        ttl_minutes: Lifetime of a newly created session
        contact_id: Contact bound to the session
        project_id: Project bound to the session
        memory_mode: standard or a selection mode
        selection_options: Numbered menu for selection sessions

    Returns:
        Session dict (existing or newly created)

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    try:
        response = supabase.rpc(
            "find_or_create_chat_session",
            {
                "p_channel_type": ChannelType(channel_type).value,
                "p_channel_identifier": channel_identifier,
                "p_company_id": str(company_id) if company_id else None,
                "p_contact_id": str(contact_id) if contact_id else None,
                "p_project_id": str(project_id) if project_id else None,
                "p_memory_mode": MemoryMode(memory_mode).value,
                "p_ttl_minutes": ttl_minutes,
                "p_selection_options": selection_options or [],
            },
        ).execute()

        session = _first_row(response.data)
        if not session:
            raise ValueError("No data returned from find_or_create_chat_session")
        return session

    except Exception as e:
        logger.error(
            f"Failed to find or create session: {e}",
            extra={"company_id": str(company_id) if company_id else None},
        )
        raise


def get_session(session_id: str) -> dict[str, Any] | None:
    """Get a session by ID (unscoped; callers must tenant-check the result)."""
    supabase = get_supabase()

    response = supabase.table("chat_sessions").select("*").eq("id", str(session_id)).limit(1).execute()
    return response.data[0] if response.data else None


def find_active_sessions(
    company_id: str,
    channel_type: ChannelType | None = None,
    channel_identifier: str | None = None,
    contact_id: str | None = None,
    project_id: str | None = None,
    limit: int = 10,
) -> list[dict[str, Any]]:
    """
    Active, non-expired sessions of a company, most recent activity first.

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    query = (
        supabase.table("chat_sessions")
        .select("*")
        .eq("company_id", str(company_id))
        .eq("active", True)
        .gt("expires_at", _utc_now_iso())
    )
    if channel_type:
        query = query.eq("channel_type", ChannelType(channel_type).value)
    if channel_identifier:
        query = query.eq("channel_identifier", channel_identifier)
    if contact_id:
        query = query.eq("contact_id", str(contact_id))
    if project_id:
        query = query.eq("project_id", str(project_id))

    try:
        response = query.order("last_activity_at", desc=True).limit(limit).execute()
        return response.data or []

    except Exception as e:
        logger.error(f"Failed to find sessions: {e}", extra={"company_id": str(company_id)})
        raise


def find_pending_selection(channel_type: ChannelType, channel_identifier: str) -> dict[str, Any] | None:
    """Active, non-expired disambiguation session for a channel identifier, if any."""
    supabase = get_supabase()

    response = (
        supabase.table("chat_sessions")
        .select("*")
        .eq("channel_type", ChannelType(channel_type).value)
        .eq("channel_identifier", channel_identifier)
        .eq("active", True)
        .in_("memory_mode", [m.value for m in SELECTION_MODES])
        .gt("expires_at", _utc_now_iso())
        .order("last_activity_at", desc=True)
        .limit(1)
        .execute()
    )
    return response.data[0] if response.data else None


def find_live_conversation(channel_type: ChannelType, channel_identifier: str) -> dict[str, Any] | None:
    """Most recently active standard session for a channel identifier, in any company."""
    supabase = get_supabase()

    response = (
        supabase.table("chat_sessions")
        .select("*")
        .eq("channel_type", ChannelType(channel_type).value)
        .eq("channel_identifier", channel_identifier)
        .eq("active", True)
        .eq("memory_mode", MemoryMode.STANDARD.value)
        .gt("expires_at", _utc_now_iso())
        .order("last_activity_at", desc=True)
        .limit(1)
        .execute()
    )
    return response.data[0] if response.data else None


def append_message(session_id: str, company_id: str, role: str, content: str) -> dict[str, Any] | None:
    """
    Append one turn to a session's history in a single atomic update.

    Returns:
        Updated session dict, or None if the session does not belong to the company
    """
    supabase = get_supabase()

    message = {"role": role, "content": content, "timestamp": _utc_now_iso()}

    try:
        response = supabase.rpc(
            "append_session_message",
            {
                "p_session_id": str(session_id),
                "p_company_id": str(company_id),
                "p_message": message,
            },
        ).execute()
        return _first_row(response.data)

    except Exception as e:
        logger.error(f"Failed to append to session {session_id}: {e}")
        raise


def update_session(session_id: str, company_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
    """
    Update whitelisted session columns, filtered by company.

    Raises:
        ValueError: If updates contain a column that cannot be changed
    """
    disallowed = set(updates) - UPDATABLE_SESSION_FIELDS
    if disallowed:
        raise ValueError(f"Cannot update session fields: {', '.join(sorted(disallowed))}")

    supabase = get_supabase()

    payload = dict(updates)
    payload["last_activity_at"] = _utc_now_iso()
    response = (
        supabase.table("chat_sessions")
        .update(payload)
        .eq("id", str(session_id))
        .eq("company_id", str(company_id))
        .execute()
    )
    return response.data[0] if response.data else None


def deactivate_session(session_id: str, expected_mode: MemoryMode) -> dict[str, Any] | None:
    """
    Compare-and-set a session inactive while it still holds ``expected_mode``.

    Returns:
        Updated session, or None if another request already superseded it
    """
    supabase = get_supabase()

    response = (
        supabase.table("chat_sessions")
        .update({"active": False, "last_activity_at": _utc_now_iso()})
        .eq("id", str(session_id))
        .eq("active", True)
        .eq("memory_mode", MemoryMode(expected_mode).value)
        .execute()
    )
    if response.data:
        logger.info(f"Deactivated {MemoryMode(expected_mode).value} session {session_id}")
        return response.data[0]
    return None
