"""crm_read / crm_write: company-scoped access to the CRM behind a connector."""

from typing import Any

from app.core.connectors import get_connector
from app.core.logging import get_logger
from app.core.schemas_actions import ActionType
from app.core.schemas_tools import (
    AccessDeniedError,
    ToolError,
    ToolResponse,
    UpstreamError,
    ValidationFailedError,
    success_response,
    utc_now_iso,
)
from app.db.contacts import is_contact_on_project

from .guards import ToolCall, require_arg, tool_handler
from .tools_actions import stage_action

logger = get_logger(__name__)

READ_RESOURCE_TYPES = ("project", "contact", "activity", "note", "task")
WRITE_RESOURCE_TYPES = ("project", "task", "note", "contact")
OPERATION_TYPES = ("create", "update", "delete")

DEFAULT_READ_LIMIT = 20
MAX_READ_LIMIT = 100


def _read_limit(raw: Any) -> int:
    if raw is None or raw == "":
        return DEFAULT_READ_LIMIT
    try:
        limit = int(raw)
    except (TypeError, ValueError) as e:
        raise ValidationFailedError("limit must be a number") from e
    return max(1, min(limit, MAX_READ_LIMIT))


def _check_contact_read(call: ToolCall, resource_type: str, resource_id: str) -> None:
    """Keep a contact's lookups by id inside the project it is scoped to."""
    own_ids = {call.project_id, (call.project or {}).get("crm_id")}
    if resource_type == "project" and resource_id not in own_ids:
        raise AccessDeniedError()
    if resource_type == "contact" and not is_contact_on_project(resource_id, call.project_id):
        raise AccessDeniedError()


@tool_handler("crm_read")
async def crm_read(call: ToolCall) -> ToolResponse:
    """Read one resource by crm_id, or a list of resources scoped to the project."""
    resource_type = require_arg(call.args, "resource_type")
    if resource_type not in READ_RESOURCE_TYPES:
        raise ValidationFailedError(f"resource_type must be one of: {', '.join(READ_RESOURCE_TYPES)}")

    # A contact may only read inside one of its own projects
    if call.context.is_contact and call.project is None:
        raise ValidationFailedError("project_id is required")

    resource_id = call.args.get("crm_id") or call.args.get("resource_id")
    limit = _read_limit(call.args.get("limit"))

    connector = get_connector(call.context.company_id)
    try:
        if resource_type == "project" and call.project_id and not resource_id:
            resource_id = call.project_id
        if call.context.is_contact and resource_id:
            _check_contact_read(call, resource_type, resource_id)
        result = await connector.fetch_resource(resource_type, resource_id, call.project_id, limit)
    except ToolError:
        raise
    except Exception as e:
        logger.error(
            f"CRM read failed for {resource_type}: {e}",
            extra={"company_id": call.context.company_id, "tool": "crm_read"},
        )
        raise UpstreamError(f"CRM read failed: {e}") from e

    data = result.data
    count = len(data) if isinstance(data, list) else (1 if data else 0)
    return success_response(
        {
            "resource_type": resource_type,
            "provider": result.provider,
            "data": data,
            "count": count,
            "fetched_at": utc_now_iso(),
        },
        f"Retrieved {count} {resource_type} record(s)",
    )


@tool_handler("crm_write")
async def crm_write(call: ToolCall) -> ToolResponse:
    """
    Stage a CRM write.

    Writes wait for approval by default. Only an explicit requires_approval=false
    queues the write immediately, and even then an executed action record is
    kept for audit.
    """
    if call.context.is_contact:
        raise AccessDeniedError()
    if call.project is None:
        raise ValidationFailedError("project_id is required")

    resource_type = require_arg(call.args, "resource_type")
    if resource_type not in WRITE_RESOURCE_TYPES:
        raise ValidationFailedError(f"resource_type must be one of: {', '.join(WRITE_RESOURCE_TYPES)}")
    operation_type = require_arg(call.args, "operation_type")
    if operation_type not in OPERATION_TYPES:
        raise ValidationFailedError(f"operation_type must be one of: {', '.join(OPERATION_TYPES)}")

    data = call.args.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationFailedError("data must be an object")

    resource_id = call.args.get("resource_id")
    if resource_type == "project" and not resource_id and operation_type != "create":
        resource_id = call.project_id

    requires_approval = call.args.get("requires_approval") is not False

    payload = {
        "resource_type": resource_type,
        "operation_type": operation_type,
        "resource_id": resource_id,
        "data": data,
        "description": call.args.get("description"),
    }
    payload = {k: v for k, v in payload.items() if v is not None}

    summary = f"{operation_type} {resource_type}"
    record, created, outcome = await stage_action(
        call, ActionType.CRM_WRITE, payload, requires_approval, summary=summary
    )

    response_data: dict[str, Any] = {
        "action_record_id": record.id,
        "status": record.status.value,
        "requires_approval": record.requires_approval,
        "resource_type": resource_type,
        "operation_type": operation_type,
        "duplicate": not created,
    }

    if requires_approval:
        return success_response(response_data, f"CRM {summary} staged for approval")

    if outcome is not None:
        response_data["execution"] = outcome.model_dump(mode="json", exclude_none=True)
        job = (outcome.result or {}) if outcome.success else {}
        if job.get("job_id"):
            response_data["job_id"] = job["job_id"]
            response_data["job_status"] = job.get("job_status")
        if not outcome.success:
            raise UpstreamError(outcome.error or "Failed to queue CRM write")
    return success_response(response_data, f"CRM {summary} queued")
