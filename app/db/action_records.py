"""Action record store.

Records are never deleted; they only move through the status state machine,
and every status change is a single conditional update on the expected prior
status.
"""

import hashlib
import json
from datetime import datetime
from typing import Any

from app.core.logging import get_logger
from app.core.schemas_actions import ActionStatus, ActionType, can_transition
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

# Payload keys naming what an action targets; wording, priority and dates are
# not part of the dedup key
_DEDUP_TARGET_KEYS: dict[ActionType, tuple[str, ...]] = {
    ActionType.MESSAGE: ("recipient_id",),
    ActionType.DATA_UPDATE: ("field",),
    ActionType.SET_FUTURE_REMINDER: (),
    ActionType.CRM_WRITE: ("resource_type", "operation_type", "resource_id"),
    ActionType.ESCALATION: (),
    ActionType.HUMAN_IN_LOOP: (),
    ActionType.NO_ACTION: (),
}


def compute_dedup_key(
    prompt_run_id: str | None,
    action_type: ActionType,
    action_payload: dict[str, Any],
    project_id: str | None = None,
) -> str | None:
    """
    Natural dedup key for records produced by one orchestration run.

    The key is the prompt run, the project, the action type and the action's
    target (the recipient of a message, the field of a data update, the CRM
    resource of a write). One run therefore proposes at most one message per
    recipient and one reminder per project, however often the model retries
    or rewords it.
    A CRM create has no resource id yet, so its data is part of the target.
    Records created outside a prompt run are never deduplicated.
    """
    if not prompt_run_id:
        return None
    target = {k: action_payload.get(k) for k in _DEDUP_TARGET_KEYS.get(action_type, ())}
    if action_type == ActionType.CRM_WRITE and not action_payload.get("resource_id"):
        target["data"] = action_payload.get("data")
    canonical = json.dumps(target, sort_keys=True, default=str, separators=(",", ":"))
    raw = f"{prompt_run_id}|{project_id or ''}|{action_type.value}|{canonical}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def create_action_record(
    action_type: ActionType,
    action_payload: dict[str, Any],
    requires_approval: bool,
    company_id: str,
    project_id: str | None = None,
    prompt_run_id: str | None = None,
    message: str | None = None,
    recipient_id: str | None = None,
    sender_id: str | None = None,
    reminder_date: datetime | None = None,
    created_by: str | None = None,
) -> tuple[dict[str, Any], bool]:
    """
    Create a pending action record, deduplicated per prompt run.

    Args:
        action_type: Normalized action type
        action_payload: Payload already validated against the action type
        requires_approval: Result of the approval policy for this type
        company_id: Owning tenant
        project_id: Project the action targets
        prompt_run_id: Orchestration run that proposed the action
        message: Human-readable summary shown in the approval UI
        recipient_id: Contact the action is addressed to
        sender_id: Contact or user on whose behalf it was proposed
        reminder_date: Absolute reminder date for set_future_reminder
        created_by: Actor identity from the security context

    Returns:
        (record dict, created) where created is False if an identical record
        from the same prompt run already existed

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    dedup_key = compute_dedup_key(prompt_run_id, action_type, action_payload, project_id)
    row: dict[str, Any] = {
        "action_type": action_type.value,
        "action_payload": action_payload,
        "status": ActionStatus.PENDING.value,
        "requires_approval": requires_approval,
        "company_id": str(company_id),
        "project_id": str(project_id) if project_id else None,
        "prompt_run_id": prompt_run_id,
        "message": message,
        "recipient_id": recipient_id,
        "sender_id": sender_id,
        "reminder_date": reminder_date.isoformat() if reminder_date else None,
        "dedup_key": dedup_key,
        "created_by": created_by,
    }

    try:
        if dedup_key is None:
            response = supabase.table("action_records").insert(row).execute()
        else:
            response = (
                supabase.table("action_records")
                .upsert(row, on_conflict="dedup_key", ignore_duplicates=True)
                .execute()
            )

        if response.data:
            record = response.data[0]
            logger.info(
                f"Created {action_type.value} action record {record['id']}",
                extra={
                    "action_id": record["id"],
                    "prompt_run_id": prompt_run_id,
                    "company_id": str(company_id),
                },
            )
            return record, True

        existing = (
            supabase.table("action_records").select("*").eq("dedup_key", dedup_key).limit(1).execute()
        )
        if not existing.data:
            raise ValueError("No data returned from create_action_record")

        record = existing.data[0]
        logger.info(
            f"Reusing action record {record['id']} for duplicate proposal",
            extra={"action_id": record["id"], "prompt_run_id": prompt_run_id},
        )
        return record, False

    except Exception as e:
        logger.error(f"Failed to create action record: {e}", extra={"prompt_run_id": prompt_run_id})
        raise


def get_action_record(action_id: str, company_id: str | None = None) -> dict[str, Any] | None:
    """
    Get an action record by ID.

    Args:
        action_id: Action record UUID
        company_id: If given, only return the record when it belongs to this tenant

    Returns:
        Record dict or None if not found
    """
    supabase = get_supabase()

    try:
        query = supabase.table("action_records").select("*").eq("id", str(action_id))
        if company_id:
            query = query.eq("company_id", str(company_id))
        response = query.limit(1).execute()
        return response.data[0] if response.data else None

    except Exception as e:
        logger.error(f"Failed to get action record {action_id}: {e}")
        raise


def list_action_records(
    company_id: str,
    project_id: str | None = None,
    status: ActionStatus | None = None,
    action_type: ActionType | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """
    List a company's action records, newest first.

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    try:
        query = (
            supabase.table("action_records")
            .select("*")
            .eq("company_id", str(company_id))
            .order("created_at", desc=True)
        )
        if project_id:
            query = query.eq("project_id", str(project_id))
        if status:
            query = query.eq("status", ActionStatus(status).value)
        if action_type:
            query = query.eq("action_type", ActionType(action_type).value)

        response = query.range(offset, offset + limit - 1).execute()
        return response.data or []

    except Exception as e:
        logger.error(f"Failed to list action records: {e}", extra={"company_id": str(company_id)})
        raise


def count_pending_actions(company_id: str, project_id: str | None = None) -> int:
    """Count records awaiting approval."""
    supabase = get_supabase()

    query = (
        supabase.table("action_records")
        .select("id", count="exact")
        .eq("company_id", str(company_id))
        .eq("status", ActionStatus.PENDING.value)
        .eq("requires_approval", True)
    )
    if project_id:
        query = query.eq("project_id", str(project_id))
    response = query.execute()
    return response.count or 0


def transition_action_status(
    action_id: str,
    expected: ActionStatus,
    new: ActionStatus,
    fields: dict[str, Any] | None = None,
) -> dict[str, Any] | None:
    """
    Compare-and-set a record's status.

    Args:
        action_id: Action record UUID
        expected: Status the record must currently hold
        new: Status to move to
        fields: Extra columns written in the same update

    Returns:
        Updated record, or None if the record no longer holds ``expected``

    Raises:
        ValueError: If expected → new is not an allowed transition
    """
    if not can_transition(expected, new):
        raise ValueError(f"Illegal action transition {expected.value} -> {new.value}")

    supabase = get_supabase()

    updates = dict(fields or {})
    updates["status"] = new.value

    try:
        response = (
            supabase.table("action_records")
            .update(updates)
            .eq("id", str(action_id))
            .eq("status", expected.value)
            .execute()
        )

        if not response.data:
            logger.info(
                f"Action {action_id} no longer {expected.value}; transition to {new.value} skipped",
                extra={"action_id": str(action_id)},
            )
            return None

        logger.info(
            f"Action {action_id}: {expected.value} -> {new.value}",
            extra={"action_id": str(action_id)},
        )
        return response.data[0]

    except Exception as e:
        logger.error(f"Failed to transition action {action_id}: {e}", extra={"action_id": str(action_id)})
        raise
