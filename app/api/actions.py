"""API endpoints for the action approval UI."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from app.core.action_engine import approve_action, reject_action
from app.core.auth import get_admin_context
from app.core.logging import get_logger
from app.core.schemas_actions import ActionStatus, ActionType, ApprovalOutcome
from app.core.schemas_tools import ToolError
from app.core.security_context import SecurityContext
from app.db.action_records import count_pending_actions, get_action_record, list_action_records

logger = get_logger(__name__)

router = APIRouter()


class RejectActionRequest(BaseModel):
    """Request body for rejecting an action."""

    reason: str | None = None


@router.get("")
async def list_actions(
    project_id: str | None = Query(None, description="Filter by project"),
    status: ActionStatus | None = Query(None, description="Filter by status"),
    action_type: ActionType | None = Query(None, description="Filter by action type"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    context: SecurityContext = Depends(get_admin_context),
) -> dict:
    """List the company's action records, newest first."""
    try:
        actions = list_action_records(
            context.company_id,
            project_id=project_id,
            status=status,
            action_type=action_type,
            limit=limit,
            offset=offset,
        )
    except Exception:
        logger.exception("Failed to list actions", extra={"company_id": context.company_id})
        raise HTTPException(status_code=500, detail="Failed to retrieve actions")

    return {"actions": actions, "limit": limit, "offset": offset, "count": len(actions)}


@router.get("/pending/count")
async def pending_action_count(
    project_id: str | None = Query(None, description="Restrict to one project"),
    context: SecurityContext = Depends(get_admin_context),
) -> dict:
    """Number of actions awaiting approval."""
    try:
        count = count_pending_actions(context.company_id, project_id)
    except Exception:
        logger.exception("Failed to count pending actions", extra={"company_id": context.company_id})
        raise HTTPException(status_code=500, detail="Failed to count pending actions")
    return {"count": count}


@router.get("/{action_id}")
async def get_action(action_id: str, context: SecurityContext = Depends(get_admin_context)) -> dict:
    """
    Get one action record.

    Raises:
        HTTPException 404: If the record does not exist in the caller's company
    """
    record = get_action_record(action_id, company_id=context.company_id)
    if not record:
        raise HTTPException(status_code=404, detail="Action record not found")
    return record


@router.post("/{action_id}/approve", response_model=ApprovalOutcome)
async def approve(action_id: str, context: SecurityContext = Depends(get_admin_context)) -> ApprovalOutcome:
    """
    Approve and execute a pending action.

    Re-approving a processed action returns already_processed and changes nothing.
    """
    try:
        return await approve_action(action_id, context)
    except ToolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{action_id}/reject", response_model=ApprovalOutcome)
async def reject(
    action_id: str,
    body: RejectActionRequest | None = None,
    context: SecurityContext = Depends(get_admin_context),
) -> ApprovalOutcome:
    """Reject a pending action."""
    try:
        return await reject_action(action_id, context, body.reason if body else None)
    except ToolError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
