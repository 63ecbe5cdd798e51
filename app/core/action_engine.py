"""Approval / execution engine for action records.

Three entry points:
1. approve_action(): human approval from the approval UI, then execution
2. reject_action(): terminal rejection, no side effect
3. auto_execute_action(): records created with requires_approval=false

Every status change is a compare-and-set on the expected prior status, so two
concurrent approvals of one record run its executor at most once. Approval and
execution are separate transitions: pending → approved is committed before the
executor runs, and approved → executed | failed after it returns. A crash in
between leaves the record approved, inspectable, and never re-executed.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from app.core.config import Settings, get_settings
from app.core.messaging_service import send_email, send_message
from app.core.schemas_actions import (
    ActionRecord,
    ActionStatus,
    ActionType,
    ApprovalOutcome,
    CrmWritePayload,
    DataUpdatePayload,
    EscalationPayload,
    HumanInLoopPayload,
    MessagePayload,
    NoActionPayload,
    ReminderPayload,
)
from app.core.schemas_tools import AccessDeniedError, NotFoundError, ToolError
from app.core.security_context import SecurityContext
from app.db import action_records as store
from app.db.contacts import get_contact, is_contact_on_project
from app.db.integration_jobs import enqueue_job
from app.db.integrations import get_active_crm_integration
from app.db.notifications import create_action_notification
from app.db.projects import get_project_company_id, update_project_field

logger = logging.getLogger(__name__)

AUTO_APPROVER = "auto"

DEPRECATION_NOTICE = (
    "notion_integration actions are deprecated and can no longer be executed. "
    "Reject this action and create a new one if the work is still needed."
)


class ActionExecutionError(Exception):
    """Executor failure; recorded on the action as status failed."""

    def __init__(self, message: str, result: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.result = result or {}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================================
# Executors
# ============================================================================

Executor = Callable[[ActionRecord, Settings], Awaitable[dict[str, Any]]]


def _require_project(record: ActionRecord) -> str:
    if not record.project_id:
        raise ActionExecutionError(f"{record.action_type.value} action has no project")
    return record.project_id


async def _execute_data_update(record: ActionRecord, settings: Settings) -> dict[str, Any]:
    payload = DataUpdatePayload.model_validate(record.action_payload)
    project_id = _require_project(record)

    if payload.field in settings.PROTECTED_PROJECT_FIELDS:
        raise ActionExecutionError(f"Field '{payload.field}' cannot be updated")

    update_project_field(project_id, record.company_id, payload.field, payload.value)
    return {"project_id": project_id, "field": payload.field, "value": payload.value}


async def _execute_reminder(record: ActionRecord, settings: Settings) -> dict[str, Any]:
    payload = ReminderPayload.model_validate(record.action_payload)
    project_id = _require_project(record)

    reminder_iso = payload.reminder_date.isoformat()
    update_project_field(project_id, record.company_id, "next_check_date", reminder_iso)

    summary = f"Reminder set for {payload.reminder_date.date().isoformat()}"
    if payload.check_reason:
        summary += f": {payload.check_reason}"
    return {
        "project_id": project_id,
        "next_check_date": reminder_iso,
        "days_until_check": payload.days_until_check,
        "check_reason": payload.check_reason,
        "summary": summary,
    }


def infer_channel(contact: dict[str, Any], requested: str | None = None) -> str:
    """Explicit channel wins; otherwise email for email-only contacts, else sms."""
    if requested:
        return requested
    if contact.get("email") and not contact.get("phone_number"):
        return "email"
    return "sms"


async def _execute_message(record: ActionRecord, settings: Settings) -> dict[str, Any]:
    payload = MessagePayload.model_validate(record.action_payload)

    contact = get_contact(payload.recipient_id)
    if contact is None:
        raise ActionExecutionError("Recipient not found", {"recipient_id": payload.recipient_id})
    if record.project_id and not is_contact_on_project(payload.recipient_id, record.project_id):
        raise ActionExecutionError(
            "Recipient is not associated with the project", {"recipient_id": payload.recipient_id}
        )

    channel = infer_channel(contact, payload.channel.value if payload.channel else None)
    address = contact.get("phone_number") if channel == "sms" else contact.get("email")
    if not address:
        raise ActionExecutionError(
            f"Recipient has no {'phone number' if channel == 'sms' else 'email address'}",
            {"recipient_id": payload.recipient_id, "channel": channel},
        )

    sent = await send_message(channel, address, payload.content)
    result = {
        "recipient_id": payload.recipient_id,
        "channel": channel,
        "delivered": sent.delivered,
        "provider_message_id": sent.provider_message_id,
    }
    if not sent.delivered:
        raise ActionExecutionError(f"Message delivery failed: {sent.error}", {**result, "error": sent.error})
    return result


async def _execute_crm_write(record: ActionRecord, settings: Settings) -> dict[str, Any]:
    payload = CrmWritePayload.model_validate(record.action_payload)

    integration = get_active_crm_integration(record.company_id)
    job = enqueue_job(
        company_id=record.company_id,
        operation_type="delete" if payload.operation_type == "delete" else "write",
        payload={
            "resourceType": payload.resource_type,
            "resourceId": payload.resource_id,
            "data": payload.data,
            "operationType": payload.operation_type,
        },
        project_id=record.project_id,
        action_record_id=record.id,
        integration_id=integration["id"] if integration else None,
    )
    return {"job_id": job["id"], "job_status": job["status"], "queued": True}


async def _execute_escalation(record: ActionRecord, settings: Settings) -> dict[str, Any]:
    payload = EscalationPayload.model_validate(record.action_payload)

    body = payload.escalation_details or payload.description or payload.reason
    try:
        notification = create_action_notification(
            company_id=record.company_id,
            action_record_id=record.id,
            kind="escalation",
            title=f"Escalation: {payload.reason}",
            body=body,
            project_id=record.project_id,
            priority=payload.priority,
        )
    except Exception as e:
        raise ActionExecutionError(f"Escalation notification failed: {e}") from e

    result: dict[str, Any] = {"notified": True, "notification_id": notification.get("id")}

    if settings.ESCALATION_NOTIFY_EMAILS:
        project_name = payload.project_details.get("project_name") or record.project_id
        try:
            await send_email(
                settings.ESCALATION_NOTIFY_EMAILS,
                f"Project escalation: {project_name}",
                f"<p><strong>{payload.reason}</strong></p><p>{body}</p>",
                text_body=f"{payload.reason}\n\n{body}",
            )
            result["emailed"] = len(settings.ESCALATION_NOTIFY_EMAILS)
        except Exception as e:
            logger.warning(f"Escalation email failed for action {record.id}: {e}")
            result["email_error"] = str(e)

    return result


async def _execute_human_in_loop(record: ActionRecord, settings: Settings) -> dict[str, Any]:
    payload = HumanInLoopPayload.model_validate(record.action_payload)
    return {"acknowledged": True, "reason": payload.reason, "acknowledged_by": record.approved_by}


async def _execute_no_action(record: ActionRecord, settings: Settings) -> dict[str, Any]:
    payload = NoActionPayload.model_validate(record.action_payload)
    return {"no_action": True, "reason": payload.reason or payload.description}


EXECUTORS: dict[ActionType, Executor] = {
    ActionType.DATA_UPDATE: _execute_data_update,
    ActionType.SET_FUTURE_REMINDER: _execute_reminder,
    ActionType.MESSAGE: _execute_message,
    ActionType.CRM_WRITE: _execute_crm_write,
    ActionType.ESCALATION: _execute_escalation,
    ActionType.HUMAN_IN_LOOP: _execute_human_in_loop,
    ActionType.NO_ACTION: _execute_no_action,
}


# ============================================================================
# Transitions
# ============================================================================


def _already_processed(record: ActionRecord) -> ApprovalOutcome:
    return ApprovalOutcome(
        success=False,
        action_id=record.id,
        status=record.status,
        already_processed=True,
        result=record.execution_result,
        message=f"Action already processed (status: {record.status.value})",
    )


def _reload(action_id: str) -> ActionRecord:
    row = store.get_action_record(action_id)
    if row is None:
        raise NotFoundError("Action record not found")
    return ActionRecord.model_validate(row)


def _load_for_decision(action_id: str, context: SecurityContext) -> ActionRecord:
    """Load a record the caller may approve or reject."""
    if context.is_contact:
        raise AccessDeniedError()

    row = store.get_action_record(action_id, company_id=context.company_id)
    if row is None:
        raise NotFoundError("Action record not found")

    record = ActionRecord.model_validate(row)
    if record.project_id:
        owner = get_project_company_id(record.project_id)
        if owner is not None and str(owner) != str(context.company_id):
            raise AccessDeniedError()
    return record


async def execute_approved_action(record: ActionRecord, settings: Settings | None = None) -> ApprovalOutcome:
    """
    Run the executor of a record this caller has just moved to approved.

    The record is re-read before the side effect; if it no longer holds
    approved, nothing is executed.
    """
    settings = settings or get_settings()

    current = _reload(record.id)
    if current.status != ActionStatus.APPROVED:
        return _already_processed(current)

    executor = EXECUTORS.get(current.action_type)
    new_status = ActionStatus.EXECUTED
    error: str | None = None
    try:
        if executor is None:
            raise ActionExecutionError(f"No executor for {current.action_type.value}")
        result = await executor(current, settings)
    except ActionExecutionError as e:
        new_status, error = ActionStatus.FAILED, e.message
        result = {**e.result, "error": e.message}
    except ToolError as e:
        new_status, error = ActionStatus.FAILED, e.message
        result = {"error": e.message}
    except Exception as e:
        logger.error(f"Executor crashed for action {current.id}: {e}", exc_info=True)
        new_status, error = ActionStatus.FAILED, str(e)
        result = {"error": str(e)}

    final = store.transition_action_status(
        current.id,
        ActionStatus.APPROVED,
        new_status,
        {"executed_at": _utc_now_iso(), "execution_result": result},
    )
    if final is None:
        return _already_processed(_reload(current.id))

    logger.info(
        f"Action {current.id} ({current.action_type.value}) {new_status.value}",
        extra={"action_id": current.id},
    )
    return ApprovalOutcome(
        success=new_status == ActionStatus.EXECUTED,
        action_id=current.id,
        status=new_status,
        result=result,
        error=error,
        message=(
            f"{current.action_type.value} action executed"
            if new_status == ActionStatus.EXECUTED
            else f"{current.action_type.value} action failed: {error}"
        ),
    )


async def _claim_and_execute(record: ActionRecord, approver: str, settings: Settings | None) -> ApprovalOutcome:
    if record.is_deprecated:
        return ApprovalOutcome(
            success=False,
            action_id=record.id,
            status=record.status,
            deprecated=True,
            error=DEPRECATION_NOTICE,
            message=DEPRECATION_NOTICE,
        )

    if record.status != ActionStatus.PENDING:
        return _already_processed(record)

    claimed = store.transition_action_status(
        record.id,
        ActionStatus.PENDING,
        ActionStatus.APPROVED,
        {"approved_by": approver, "approved_at": _utc_now_iso()},
    )
    if claimed is None:
        return _already_processed(_reload(record.id))

    return await execute_approved_action(ActionRecord.model_validate(claimed), settings)


async def approve_action(
    action_id: str,
    context: SecurityContext,
    settings: Settings | None = None,
) -> ApprovalOutcome:
    """
    Approve a pending action and execute it.

    Raises:
        AccessDeniedError: Contact caller, or record of another company
        NotFoundError: Record absent
    """
    record = _load_for_decision(action_id, context)
    approver = context.user_id or context.user_type.value
    return await _claim_and_execute(record, approver, settings)


async def reject_action(
    action_id: str,
    context: SecurityContext,
    reason: str | None = None,
) -> ApprovalOutcome:
    """
    Reject a pending action. No side effect is executed.

    Raises:
        AccessDeniedError: Contact caller, or record of another company
        NotFoundError: Record absent
    """
    record = _load_for_decision(action_id, context)
    if record.status != ActionStatus.PENDING:
        return _already_processed(record)

    result = {"rejected_by": context.user_id or context.user_type.value, "reason": reason}
    updated = store.transition_action_status(
        record.id,
        ActionStatus.PENDING,
        ActionStatus.REJECTED,
        {"execution_result": result},
    )
    if updated is None:
        return _already_processed(_reload(record.id))

    return ApprovalOutcome(
        success=True,
        action_id=record.id,
        status=ActionStatus.REJECTED,
        result=result,
        message="Action rejected",
    )


async def auto_execute_action(
    record: ActionRecord | dict[str, Any],
    settings: Settings | None = None,
) -> ApprovalOutcome:
    """
    Execute a record created with requires_approval=false.

    Raises:
        ValueError: Record requires human approval
    """
    if isinstance(record, dict):
        record = ActionRecord.model_validate(record)
    if record.requires_approval:
        raise ValueError(f"Action {record.id} requires approval and cannot be auto-executed")
    return await _claim_and_execute(record, AUTO_APPROVER, settings)
