"""Projects database operations.

The tool engine does not own the project schema: it reads projects and applies
single-field updates only.
"""

import re
from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

PROJECT_COLUMNS = (
    "id, company_id, project_name, address, crm_id, status, summary, "
    "next_check_date, created_at, updated_at"
)

# Characters with meaning inside a PostgREST or=() filter
_FILTER_UNSAFE = re.compile(r"[,()*%\\]")


def _sanitize_term(term: str) -> str:
    return _FILTER_UNSAFE.sub(" ", term).strip()


def get_project(project_id: str) -> dict[str, Any] | None:
    """
    Get a project by ID (unscoped; callers must tenant-check the result).

    Args:
        project_id: Project UUID

    Returns:
        Project dict or None if not found
    """
    supabase = get_supabase()

    try:
        response = (
            supabase.table("projects").select(PROJECT_COLUMNS).eq("id", str(project_id)).limit(1).execute()
        )
        return response.data[0] if response.data else None

    except Exception as e:
        logger.error(f"Failed to get project {project_id}: {e}")
        raise


def get_project_company_id(project_id: str) -> str | None:
    """Owning company of a project, or None if the project does not exist."""
    supabase = get_supabase()

    response = (
        supabase.table("projects").select("id, company_id").eq("id", str(project_id)).limit(1).execute()
    )
    if not response.data:
        return None
    return response.data[0].get("company_id")


def search_projects(
    company_id: str,
    query: str,
    search_type: str = "any",
    exact_match: bool = False,
    project_ids: list[str] | None = None,
    limit: int = 10,
) -> list[dict[str, Any]]:
    """
    Search a company's projects by id, CRM id, name or address.

    Args:
        company_id: Tenant to search within
        query: Search term
        search_type: any, id, crm_id, name or address
        exact_match: Match the whole value instead of a substring
        project_ids: Optional allow-list (e.g. a contact's associated projects)
        limit: Maximum results

    Returns:
        List of project dicts, most recently updated first
    """
    supabase = get_supabase()

    q = supabase.table("projects").select(PROJECT_COLUMNS).eq("company_id", str(company_id))
    if project_ids is not None:
        q = q.in_("id", [str(p) for p in project_ids])

    if search_type == "id":
        q = q.eq("id", query)
    elif search_type == "crm_id":
        q = q.eq("crm_id", query)
    elif search_type in ("name", "address"):
        column = "project_name" if search_type == "name" else "address"
        if exact_match:
            q = q.ilike(column, _sanitize_term(query))
        else:
            q = q.ilike(column, f"%{_sanitize_term(query)}%")
    else:
        term = _sanitize_term(query)
        if exact_match:
            q = q.or_(f"project_name.ilike.{term},address.ilike.{term},crm_id.eq.{term}")
        else:
            q = q.or_(
                f"project_name.ilike.%{term}%,address.ilike.%{term}%,crm_id.ilike.%{term}%"
            )

    try:
        response = q.order("updated_at", desc=True).limit(limit).execute()
        return response.data or []

    except Exception as e:
        logger.error(f"Failed to search projects: {e}", extra={"company_id": str(company_id)})
        raise


def list_projects_by_ids(project_ids: list[str]) -> list[dict[str, Any]]:
    """List projects by ID across companies (router use only)."""
    if not project_ids:
        return []
    supabase = get_supabase()

    response = (
        supabase.table("projects")
        .select("id, company_id, project_name, address")
        .in_("id", [str(p) for p in project_ids])
        .execute()
    )
    return response.data or []


def update_project_field(project_id: str, company_id: str, field: str, value: Any) -> dict[str, Any]:
    """
    Apply a single-field update to a project row.

    Args:
        project_id: Project UUID
        company_id: Owning company (the update is filtered by it)
        field: Column to update
        value: New value

    Returns:
        Updated project dict

    Raises:
        ValueError: If the project was not updated (absent or other tenant)
    """
    supabase = get_supabase()

    try:
        response = (
            supabase.table("projects")
            .update({field: value})
            .eq("id", str(project_id))
            .eq("company_id", str(company_id))
            .execute()
        )

        if not response.data:
            raise ValueError(f"Project {project_id} not updated")

        logger.info(
            f"Updated project {project_id} field {field}",
            extra={"company_id": str(company_id)},
        )
        return response.data[0]

    except Exception as e:
        logger.error(f"Failed to update project {project_id}: {e}")
        raise


def list_due_reminder_projects(due_before: str, limit: int = 50) -> list[dict[str, Any]]:
    """
    List projects across companies whose next_check_date has passed.

    Args:
        due_before: ISO timestamp; projects checked at or before it are due
        limit: Maximum projects returned, earliest check first

    Returns:
        List of project dicts
    """
    supabase = get_supabase()

    try:
        response = (
            supabase.table("projects")
            .select(PROJECT_COLUMNS)
            .lte("next_check_date", due_before)
            .order("next_check_date")
            .limit(limit)
            .execute()
        )
        return response.data or []

    except Exception as e:
        logger.error(f"Failed to list due reminder projects: {e}")
        raise


def claim_reminder(project_id: str, next_check_date: str) -> dict[str, Any] | None:
    """
    Clear a due next_check_date, claiming the reminder for one sweep.

    The update only matches while the date is unchanged, so a reminder claimed
    by another worker (or rescheduled meanwhile) is left alone.

    Returns:
        Updated project, or None if the claim was lost
    """
    supabase = get_supabase()

    response = (
        supabase.table("projects")
        .update({"next_check_date": None})
        .eq("id", str(project_id))
        .eq("next_check_date", next_check_date)
        .execute()
    )
    return response.data[0] if response.data else None


def restore_reminder(project_id: str, next_check_date: str) -> dict[str, Any] | None:
    """Put back a claimed reminder unless a new one has been set since."""
    supabase = get_supabase()

    response = (
        supabase.table("projects")
        .update({"next_check_date": next_check_date})
        .eq("id", str(project_id))
        .is_("next_check_date", "null")
        .execute()
    )
    return response.data[0] if response.data else None
