"""Local CRM resource tables.

Backs the local connector for companies without a third-party CRM: projects,
contacts, notes, tasks and activities stored in this database. Every query is
filtered by company_id.
"""

from typing import Any

from app.core.logging import get_logger
from app.db.contacts import link_contact_to_project, list_project_contacts
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

RESOURCE_TABLES: dict[str, str] = {
    "project": "projects",
    "contact": "contacts",
    "note": "project_notes",
    "task": "project_tasks",
    "activity": "communications",
}

# Columns a write may never set directly
_WRITE_PROTECTED = frozenset({"id", "company_id", "created_at"})


def _table(resource_type: str) -> str:
    table = RESOURCE_TABLES.get(resource_type)
    if table is None:
        raise ValueError(f"Unsupported resource type: {resource_type}")
    return table


def _clean(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in _WRITE_PROTECTED}


def list_resources(
    resource_type: str,
    company_id: str,
    project_id: str | None = None,
    limit: int = 20,
) -> list[dict[str, Any]]:
    """
    List a company's resources of one type, newest first.

    Contacts of a project are read through the project association, since
    homeowner contacts carry no company_id.
    """
    if resource_type == "contact" and project_id:
        return list_project_contacts(project_id)[:limit]

    supabase = get_supabase()

    query = supabase.table(_table(resource_type)).select("*").eq("company_id", str(company_id))
    if project_id and resource_type != "contact":
        column = "id" if resource_type == "project" else "project_id"
        query = query.eq(column, str(project_id))

    response = query.order("created_at", desc=True).limit(limit).execute()
    return response.data or []


def get_resource(resource_type: str, resource_id: str, company_id: str) -> dict[str, Any] | None:
    """Get one resource by ID within a company."""
    supabase = get_supabase()

    response = (
        supabase.table(_table(resource_type))
        .select("*")
        .eq("id", str(resource_id))
        .eq("company_id", str(company_id))
        .limit(1)
        .execute()
    )
    return response.data[0] if response.data else None


def create_resource(
    resource_type: str,
    company_id: str,
    data: dict[str, Any],
    project_id: str | None = None,
) -> dict[str, Any]:
    """
    Insert a resource owned by the company.

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    row = _clean(data)
    row["company_id"] = str(company_id)
    if project_id and resource_type in ("note", "task", "activity"):
        row["project_id"] = str(project_id)

    response = supabase.table(_table(resource_type)).insert(row).execute()
    if not response.data:
        raise ValueError(f"No data returned from create {resource_type}")

    created = response.data[0]
    if resource_type == "contact" and project_id:
        link_contact_to_project(project_id, created["id"])

    logger.info(
        f"Created local {resource_type} {created['id']}",
        extra={"company_id": str(company_id)},
    )
    return created


def update_resource(
    resource_type: str,
    resource_id: str,
    company_id: str,
    data: dict[str, Any],
) -> dict[str, Any] | None:
    """Update a company's resource; returns None when no row matched."""
    supabase = get_supabase()

    response = (
        supabase.table(_table(resource_type))
        .update(_clean(data))
        .eq("id", str(resource_id))
        .eq("company_id", str(company_id))
        .execute()
    )
    return response.data[0] if response.data else None


def delete_resource(resource_type: str, resource_id: str, company_id: str) -> bool:
    """Delete a company's resource; returns whether a row was removed."""
    supabase = get_supabase()

    response = (
        supabase.table(_table(resource_type))
        .delete()
        .eq("id", str(resource_id))
        .eq("company_id", str(company_id))
        .execute()
    )
    deleted = bool(response.data)
    if deleted:
        logger.info(f"Deleted local {resource_type} {resource_id}", extra={"company_id": str(company_id)})
    return deleted
