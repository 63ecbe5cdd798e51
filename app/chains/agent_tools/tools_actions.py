"""create_action_record: the "propose an action" entry point.

Side-effecting work is never done here directly. The tool validates and
normalizes the proposal into a typed payload, persists it as an action record,
and only executes it immediately when the approval policy says the type needs
no human review.
"""

from datetime import datetime
from typing import Any

from app.core.action_engine import auto_execute_action
from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.schemas_actions import (
    ActionRecord,
    ActionType,
    ApprovalOutcome,
    ApprovalPolicy,
    compute_reminder_date,
    normalize_action_type,
    parse_action_payload,
)
from app.core.schemas_tools import (
    AccessDeniedError,
    RecipientNotFoundError,
    ToolResponse,
    ValidationFailedError,
    no_action_response,
    success_response,
)
from app.db import action_records as store
from app.db.contacts import list_project_contacts

from .guards import ToolCall, tool_handler

logger = get_logger(__name__)

# Types that are recorded for audit and executed without review
ALWAYS_AUTO_EXECUTED = frozenset({ActionType.ESCALATION, ActionType.NO_ACTION})

# Types that may be proposed without a project in scope
PROJECTLESS_TYPES = frozenset({ActionType.NO_ACTION, ActionType.HUMAN_IN_LOOP})

# Types only admin and system callers may stage
CONTACT_FORBIDDEN_TYPES = frozenset({ActionType.CRM_WRITE})


def resolve_recipient(contacts: list[dict[str, Any]], recipient: str) -> dict[str, Any] | None:
    """
    Match a recipient description against project contacts.

    Order: exact full name, then role (either string containing the other),
    then partial name.
    """
    needle = recipient.strip().lower()
    if not needle:
        return None

    for contact in contacts:
        if (contact.get("full_name") or "").strip().lower() == needle:
            return contact

    for contact in contacts:
        role = (contact.get("role") or "").strip().lower()
        if role and (needle in role or role in needle):
            return contact

    for contact in contacts:
        name = (contact.get("full_name") or "").strip().lower()
        if name and (needle in name or name in needle):
            return contact

    return None


def _first(args: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = args.get(key)
        if value is not None and value != "":
            return value
    return None


def _parse_days(raw: Any, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        days = float(raw)
    except (TypeError, ValueError) as e:
        raise ValidationFailedError("days_until_check must be a number") from e
    if days < 0 or days != int(days):
        raise ValidationFailedError("days_until_check must be a non-negative whole number")
    return int(days)


def build_payload(
    action_type: ActionType,
    args: dict[str, Any],
    project: dict[str, Any] | None,
    now: datetime | None = None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Build the raw payload for an action type from tool arguments.

    Returns:
        (payload, extras) where extras carries recipient_id / reminder_date for
        the record columns

    Raises:
        ValidationFailedError: Arguments do not describe a valid action
        RecipientNotFoundError: No project contact matches the recipient
    """
    settings = get_settings()
    payload: dict[str, Any] = {
        "priority": args.get("priority") or "medium",
        "description": args.get("description"),
    }
    extras: dict[str, Any] = {}

    if action_type == ActionType.MESSAGE:
        contacts = list_project_contacts(project["id"]) if project else []
        recipient_id = args.get("recipient_id")
        if recipient_id:
            contact = next((c for c in contacts if str(c["id"]) == str(recipient_id)), None)
            if contact is None:
                raise RecipientNotFoundError("Recipient is not a contact on this project")
        else:
            recipient = args.get("recipient")
            if not recipient:
                raise ValidationFailedError("recipient or recipient_id is required for message actions")
            contact = resolve_recipient(contacts, str(recipient))
            if contact is None:
                raise RecipientNotFoundError(f"No project contact matches recipient '{recipient}'")

        content = _first(args, "message_text", "message", "content")
        if not content:
            raise ValidationFailedError("message_text is required for message actions")

        payload.update(
            recipient_id=str(contact["id"]),
            content=content,
            channel=args.get("channel"),
            recipient_name=contact.get("full_name"),
            recipient_role=contact.get("role"),
        )
        extras["recipient_id"] = str(contact["id"])

    elif action_type == ActionType.DATA_UPDATE:
        field = _first(args, "data_field", "field")
        if not field:
            raise ValidationFailedError("data_field is required for data_update actions")
        if field in settings.PROTECTED_PROJECT_FIELDS:
            raise ValidationFailedError(f"Field '{field}' cannot be updated")
        value = args["data_value"] if "data_value" in args else args.get("value")
        payload.update(field=field, value=value)

    elif action_type == ActionType.SET_FUTURE_REMINDER:
        days = _parse_days(args.get("days_until_check"), settings.DEFAULT_REMINDER_DAYS)
        reminder_date = compute_reminder_date(days, now)
        payload.update(
            days_until_check=days,
            check_reason=_first(args, "check_reason", "reason"),
            reminder_date=reminder_date,
        )
        extras["reminder_date"] = reminder_date

    elif action_type == ActionType.CRM_WRITE:
        payload.update(
            resource_type=args.get("resource_type"),
            operation_type=args.get("operation_type"),
            resource_id=args.get("resource_id"),
            data=args.get("data") or {},
        )

    elif action_type == ActionType.ESCALATION:
        payload.update(
            reason=_first(args, "reason", "description") or "Project requires escalation",
            escalation_details=args.get("escalation_details"),
            project_details={
                "project_name": (project or {}).get("project_name"),
                "address": (project or {}).get("address"),
            },
        )

    else:
        payload["reason"] = args.get("reason")

    return {k: v for k, v in payload.items() if v is not None}, extras


async def stage_action(
    call: ToolCall,
    action_type: ActionType,
    payload: dict[str, Any],
    requires_approval: bool,
    summary: str | None = None,
    recipient_id: str | None = None,
    reminder_date: datetime | None = None,
) -> tuple[ActionRecord, bool, ApprovalOutcome | None]:
    """
    Validate, persist and (when approval is not required) execute an action.

    Returns:
        (record, created, outcome) where outcome is None for records that wait
        for approval or were already staged by the same prompt run
    """
    if call.context.is_contact and action_type in CONTACT_FORBIDDEN_TYPES:
        raise AccessDeniedError()

    typed = parse_action_payload(action_type, payload)
    stored_payload = typed.model_dump(mode="json", exclude_none=True)

    row, created = store.create_action_record(
        action_type=action_type,
        action_payload=stored_payload,
        requires_approval=requires_approval,
        company_id=call.context.company_id,
        project_id=call.project_id,
        prompt_run_id=call.metadata.prompt_run_id,
        message=summary,
        recipient_id=recipient_id,
        sender_id=call.context.contact_id,
        reminder_date=reminder_date,
        created_by=call.context.actor_id or call.context.user_type.value,
    )
    record = ActionRecord.model_validate(row)

    outcome = None
    if created and not requires_approval:
        outcome = await auto_execute_action(record)
        record = record.model_copy(update={"status": outcome.status or record.status})
    return record, created, outcome


@tool_handler("create_action_record")
async def create_action_record(call: ToolCall) -> ToolResponse:
    """Normalize, validate and persist a proposed action."""
    action_type = normalize_action_type(call.args.get("action_type"))
    if call.context.is_contact and action_type in CONTACT_FORBIDDEN_TYPES:
        raise AccessDeniedError()
    if action_type not in PROJECTLESS_TYPES and call.project is None:
        raise ValidationFailedError(f"project_id is required for {action_type.value} actions")

    payload, extras = build_payload(action_type, call.args, call.project)

    policy = ApprovalPolicy.from_settings(get_settings())
    requires_approval = (
        False if action_type in ALWAYS_AUTO_EXECUTED else policy.requires_approval(action_type)
    )

    summary = payload.get("content") or payload.get("description") or payload.get("reason")
    record, created, outcome = await stage_action(
        call,
        action_type,
        payload,
        requires_approval,
        summary=summary,
        recipient_id=extras.get("recipient_id"),
        reminder_date=extras.get("reminder_date"),
    )

    data: dict[str, Any] = {
        "action_record_id": record.id,
        "action_type": record.action_type.value,
        "status": record.status.value,
        "requires_approval": record.requires_approval,
        "duplicate": not created,
    }
    if record.recipient_id:
        data["recipient_id"] = record.recipient_id
    if record.reminder_date:
        data["reminder_date"] = record.reminder_date.isoformat()
    if outcome is not None:
        data["execution"] = outcome.model_dump(mode="json", exclude_none=True)

    if action_type == ActionType.NO_ACTION:
        return no_action_response(
            payload.get("reason") or payload.get("description") or "No action needed",
            data,
        )

    if requires_approval:
        message = f"{action_type.value} action created and awaiting approval"
    else:
        message = f"{action_type.value} action created and executed automatically"
    if not created:
        message = f"{action_type.value} action already proposed in this run"
    return success_response(data, message)
