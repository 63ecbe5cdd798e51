"""identify_project: find projects by id, CRM id, name or address."""

import re

from app.core.schemas_tools import ToolResponse, ValidationFailedError, success_response
from app.db.contacts import get_contact_project_ids, list_project_contacts
from app.db.projects import search_projects

from .guards import ToolCall, tool_handler

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

SEARCH_TYPES = ("any", "id", "crm_id", "name", "address")
DEFAULT_LIMIT = 10
RETURN_ALL_LIMIT = 100


@tool_handler("identify_project")
async def identify_project(call: ToolCall) -> ToolResponse:
    """Search the caller's projects; contacts only see projects they belong to."""
    query = str(call.args.get("query") or "").strip()
    if not query:
        raise ValidationFailedError("Query parameter is required")

    search_type = call.args.get("type") or "any"
    if search_type not in SEARCH_TYPES:
        raise ValidationFailedError(f"type must be one of: {', '.join(SEARCH_TYPES)}")
    if search_type == "any" and _UUID_RE.match(query):
        search_type = "id"

    exact_match = bool(call.args.get("exact_match", False))
    limit = RETURN_ALL_LIMIT if call.args.get("return_all") else DEFAULT_LIMIT

    allowed_ids: list[str] | None = None
    if call.context.is_contact:
        allowed_ids = get_contact_project_ids(call.context.contact_id)
        if call.project_id:
            allowed_ids = [p for p in allowed_ids if p == call.project_id]
        if not allowed_ids:
            return success_response(
                {"projects": [], "contacts": [], "query": query, "type": search_type, "count": 0},
                "No projects accessible to this contact",
            )
    elif call.project_id:
        allowed_ids = [call.project_id]

    projects = search_projects(
        call.context.company_id,
        query,
        search_type=search_type,
        exact_match=exact_match,
        project_ids=allowed_ids,
        limit=limit,
    )

    contacts = []
    for project in projects:
        for contact in list_project_contacts(project["id"]):
            contacts.append({"project_id": project["id"], **contact})

    count = len(projects)
    message = (
        f"Found {count} project(s) matching \"{query}\""
        if count
        else f"No projects found matching \"{query}\""
    )
    return success_response(
        {"projects": projects, "contacts": contacts, "query": query, "type": search_type, "count": count},
        message,
    )
