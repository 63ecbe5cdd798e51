"""Background worker that pushes queued CRM writes through connectors."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from app.core.config import Settings, get_settings
from app.core.connectors import get_connector_for_integration
from app.core.logging import get_logger, log_with_context
from app.db import integration_jobs as jobs

logger = get_logger(__name__)

MAX_BACKOFF_MINUTES = 60


def backoff_minutes(retry_count: int) -> int:
    """Delay before retry number ``retry_count`` (1-based): 1, 2, 4, ... capped at 60."""
    return min(2 ** max(retry_count - 1, 0), MAX_BACKOFF_MINUTES)


async def process_job(job: dict[str, Any], settings: Settings | None = None) -> str:
    """
    Claim and run one due job.

    Returns:
        Final status for this attempt: completed, retry, failed or skipped
        (another worker claimed it first)
    """
    settings = settings or get_settings()

    claimed = jobs.claim_job(job["id"], job["status"])
    if claimed is None:
        return "skipped"

    payload = claimed.get("payload") or {}
    log_extra = {"job_id": claimed["id"], "company_id": claimed.get("company_id")}

    try:
        connector = get_connector_for_integration(claimed["company_id"], claimed.get("integration_id"))
        result = await connector.push_resource(
            payload.get("resourceType"),
            payload.get("operationType") or "create",
            payload.get("resourceId"),
            payload.get("data") or {},
            claimed.get("project_id"),
        )
    except Exception as e:
        retry_count = int(claimed.get("retry_count") or 0) + 1
        message = getattr(e, "message", None) or str(e) or type(e).__name__
        if retry_count > settings.INTEGRATION_JOB_MAX_RETRIES:
            logger.warning(f"Integration job {claimed['id']} failed permanently: {message}", extra=log_extra)
            jobs.fail_job(claimed["id"], message, retry_count - 1)
            return "failed"

        next_retry_at = datetime.now(timezone.utc) + timedelta(minutes=backoff_minutes(retry_count))
        log_with_context(
            logger,
            logging.INFO,
            f"Integration job {claimed['id']} attempt failed: {message}",
            job_id=claimed["id"],
            company_id=claimed.get("company_id"),
            retry_count=retry_count,
            next_retry_at=next_retry_at.isoformat(),
        )
        jobs.schedule_retry(claimed["id"], retry_count, next_retry_at, message)
        return "retry"

    jobs.complete_job(claimed["id"], result)
    return "completed"


async def run_once(settings: Settings | None = None) -> dict[str, int]:
    """Process one batch of due jobs; returns a count per outcome."""
    settings = settings or get_settings()
    counts: dict[str, int] = {}

    for job in jobs.list_due_jobs(settings.INTEGRATION_JOB_BATCH_SIZE):
        try:
            outcome = await process_job(job, settings)
        except Exception:
            logger.exception(f"[integration_worker] Error processing job {job.get('id')}")
            outcome = "error"
        counts[outcome] = counts.get(outcome, 0) + 1

    if counts:
        logger.info(f"[integration_worker] Batch processed: {counts}")
    return counts


async def start_integration_worker() -> None:
    """Long-running coroutine that polls the job queue."""
    settings = get_settings()
    logger.info("[integration_worker] Starting integration job worker")
    while True:
        try:
            await run_once(settings)
        except Exception:
            logger.exception("[integration_worker] Error in poll cycle")
        await asyncio.sleep(settings.INTEGRATION_JOB_POLL_SECONDS)
