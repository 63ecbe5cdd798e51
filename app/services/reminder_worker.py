"""Background sweep that runs the agent for projects whose reminder is due."""

import asyncio
from datetime import datetime, timezone
from typing import Any

from app.chains.inbound_agent import run_reminder_check
from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.core.security_context import build_system_context
from app.db import projects

logger = get_logger(__name__)


async def process_project(
    project: dict[str, Any],
    settings: Settings | None = None,
    now: datetime | None = None,
) -> str:
    """
    Claim one due reminder and run the agent for its project.

    Returns:
        checked, failed (reminder put back for the next sweep) or skipped
        (another worker claimed it first)
    """
    settings = settings or get_settings()
    due = project["next_check_date"]

    if projects.claim_reminder(project["id"], due) is None:
        return "skipped"

    log_extra = {"company_id": project.get("company_id"), "project_id": project["id"]}
    context = build_system_context(project["company_id"], project["id"])

    try:
        completion = await run_reminder_check(project, context, settings, now=now)
    except Exception:
        logger.exception(f"[reminder_worker] Reminder check crashed for project {project['id']}", extra=log_extra)
        projects.restore_reminder(project["id"], due)
        return "failed"

    if completion.failed:
        logger.warning(f"[reminder_worker] Agent unavailable for project {project['id']}", extra=log_extra)
        projects.restore_reminder(project["id"], due)
        return "failed"

    logger.info(
        f"[reminder_worker] Checked project {project['id']} with {len(completion.tool_calls)} tool call(s)",
        extra={**log_extra, "prompt_run_id": completion.prompt_run_id},
    )
    return "checked"


async def run_once(settings: Settings | None = None, now: datetime | None = None) -> dict[str, int]:
    """Check one batch of due projects; returns a count per outcome."""
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    counts: dict[str, int] = {}

    for project in projects.list_due_reminder_projects(now.isoformat(), settings.REMINDER_BATCH_SIZE):
        try:
            outcome = await process_project(project, settings, now)
        except Exception:
            logger.exception(f"[reminder_worker] Error processing project {project.get('id')}")
            outcome = "error"
        counts[outcome] = counts.get(outcome, 0) + 1

    if counts:
        logger.info(f"[reminder_worker] Sweep processed: {counts}")
    return counts


async def start_reminder_worker() -> None:
    """Long-running coroutine that sweeps for due reminders."""
    settings = get_settings()
    logger.info("[reminder_worker] Starting project reminder sweep")
    while True:
        try:
            await run_once(settings)
        except Exception:
            logger.exception("[reminder_worker] Error in sweep cycle")
        await asyncio.sleep(settings.REMINDER_POLL_SECONDS)
