"""Company notifications raised by executed actions (escalations, human-in-loop)."""

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


def create_action_notification(
    company_id: str,
    action_record_id: str,
    kind: str,
    title: str,
    body: str | None = None,
    project_id: str | None = None,
    priority: str | None = None,
) -> dict:
    """
    Notify a company's staff about an action record.

    Notifications are company-wide (unread for everyone) rather than addressed
    to one user; the approval UI lists them next to the record they link to.

    Raises:
        ValueError: If the insert returns no row
    """
    supabase = get_supabase()
    row: dict = {
        "company_id": str(company_id),
        "action_record_id": str(action_record_id),
        "type": kind,
        "title": title,
        "read": False,
    }
    if body:
        row["body"] = body
    if project_id:
        row["project_id"] = str(project_id)
    if priority:
        row["metadata"] = {"priority": priority}

    result = supabase.table("notifications").insert(row).execute()
    if not result.data:
        raise ValueError("No data returned from notification insert")

    logger.info(
        f"Raised {kind} notification for action {action_record_id}",
        extra={"action_id": str(action_record_id), "company_id": str(company_id)},
    )
    return result.data[0]
