"""escalation: flag a project for management attention."""

from typing import Any

from app.core.schemas_actions import ActionStatus, ActionType
from app.core.schemas_tools import ToolResponse, ValidationFailedError, success_response

from .guards import ToolCall, require_arg, tool_handler
from .tools_actions import stage_action


@tool_handler("escalation")
async def escalation(call: ToolCall) -> ToolResponse:
    """Record an escalation and notify staff immediately; escalations are never held for approval."""
    reason = str(require_arg(call.args, "reason", "Reason for escalation is required")).strip()
    if call.project is None:
        raise ValidationFailedError("project_id is required")

    payload: dict[str, Any] = {
        "priority": "high",
        "reason": reason,
        "description": call.args.get("description"),
        "escalation_details": call.args.get("escalation_details"),
        "project_details": {
            "project_name": call.project.get("project_name"),
            "address": call.project.get("address"),
            "status": call.project.get("status"),
        },
    }
    payload = {k: v for k, v in payload.items() if v is not None}

    record, created, outcome = await stage_action(
        call, ActionType.ESCALATION, payload, requires_approval=False, summary=reason
    )

    data: dict[str, Any] = {
        "action_record_id": record.id,
        "status": record.status.value,
        "reason": reason,
        "project_id": call.project_id,
        "duplicate": not created,
        "notified": record.status == ActionStatus.EXECUTED,
    }
    if outcome is not None:
        data["execution"] = outcome.model_dump(mode="json", exclude_none=True)

    return success_response(data, "Project escalated")
