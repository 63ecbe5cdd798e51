"""Integration job queue database operations.

Jobs push CRM writes to the company's configured connector asynchronously.
Status flow: pending → processing → completed | retry → processing ... | failed.
"""

from datetime import datetime, timezone
from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

JOB_STATUSES = ("pending", "processing", "retry", "completed", "failed")


def _utc_now_iso() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def enqueue_job(
    company_id: str,
    operation_type: str,
    payload: dict[str, Any],
    project_id: str | None = None,
    action_record_id: str | None = None,
    integration_id: str | None = None,
) -> dict[str, Any]:
    """
    Enqueue an integration job.

    Args:
        company_id: Owning tenant
        operation_type: write or delete
        payload: {resourceType, resourceId, data, operationType}
        project_id: Project the write concerns
        action_record_id: Action record the job was created for (audit link)
        integration_id: Company integration to push through

    Returns:
        Created job dict

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    row = {
        "company_id": str(company_id),
        "project_id": str(project_id) if project_id else None,
        "action_record_id": str(action_record_id) if action_record_id else None,
        "integration_id": str(integration_id) if integration_id else None,
        "operation_type": operation_type,
        "payload": payload,
        "status": "pending",
        "retry_count": 0,
    }

    try:
        response = supabase.table("integration_job_queue").insert(row).execute()

        if not response.data:
            raise ValueError("No data returned from enqueue_job")

        job = response.data[0]
        logger.info(
            f"Enqueued {operation_type} integration job {job['id']}",
            extra={"job_id": job["id"], "company_id": str(company_id)},
        )
        return job

    except Exception as e:
        logger.error(f"Failed to enqueue integration job: {e}", extra={"company_id": str(company_id)})
        raise


def list_due_jobs(limit: int = 10) -> list[dict[str, Any]]:
    """Pending or retry jobs whose retry time has come, oldest first."""
    supabase = get_supabase()

    response = (
        supabase.table("integration_job_queue")
        .select("*")
        .in_("status", ["pending", "retry"])
        .or_(f"next_retry_at.is.null,next_retry_at.lte.{_utc_now_iso()}")
        .order("created_at")
        .limit(limit)
        .execute()
    )
    return response.data or []


def claim_job(job_id: str, expected_status: str) -> dict[str, Any] | None:
    """
    Compare-and-set a due job to processing.

    Returns:
        Claimed job, or None if another worker claimed it first
    """
    supabase = get_supabase()

    response = (
        supabase.table("integration_job_queue")
        .update({"status": "processing", "started_at": _utc_now_iso()})
        .eq("id", str(job_id))
        .eq("status", expected_status)
        .execute()
    )
    return response.data[0] if response.data else None


def complete_job(job_id: str, result: dict[str, Any]) -> None:
    """
    Mark a job as completed with the connector result.

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    try:
        supabase.table("integration_job_queue").update(
            {
                "status": "completed",
                "result": result,
                "error_message": None,
                "completed_at": _utc_now_iso(),
            }
        ).eq("id", str(job_id)).execute()

        logger.info(f"Completed integration job {job_id}", extra={"job_id": str(job_id)})

    except Exception as e:
        logger.error(f"Failed to complete job: {e}", extra={"job_id": str(job_id)})
        raise


def schedule_retry(job_id: str, retry_count: int, next_retry_at: datetime, error_message: str) -> None:
    """
    Put a job back in the queue for a later attempt.

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    try:
        supabase.table("integration_job_queue").update(
            {
                "status": "retry",
                "retry_count": retry_count,
                "next_retry_at": next_retry_at.isoformat(),
                "error_message": error_message,
            }
        ).eq("id", str(job_id)).execute()

        logger.info(
            f"Scheduled retry {retry_count} for job {job_id} at {next_retry_at.isoformat()}",
            extra={"job_id": str(job_id)},
        )

    except Exception as e:
        logger.error(f"Failed to schedule retry: {e}", extra={"job_id": str(job_id)})
        raise


def fail_job(job_id: str, error_message: str, retry_count: int) -> None:
    """
    Mark a job as permanently failed.

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    try:
        supabase.table("integration_job_queue").update(
            {
                "status": "failed",
                "retry_count": retry_count,
                "error_message": error_message,
                "completed_at": _utc_now_iso(),
            }
        ).eq("id", str(job_id)).execute()

        logger.info(f"Failed job {job_id}: {error_message}", extra={"job_id": str(job_id)})

    except Exception as e:
        logger.error(f"Failed to update job as failed: {e}", extra={"job_id": str(job_id)})
        raise


def get_job(job_id: str, company_id: str | None = None) -> dict[str, Any] | None:
    """
    Get a job by ID, optionally scoped to a company.

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    try:
        query = supabase.table("integration_job_queue").select("*").eq("id", str(job_id))
        if company_id:
            query = query.eq("company_id", str(company_id))
        response = query.limit(1).execute()

        if response.data:
            return response.data[0]

        logger.warning(f"Job {job_id} not found")
        return None

    except Exception as e:
        logger.error(f"Failed to get job {job_id}: {e}")
        raise


def list_jobs(
    company_id: str,
    status: str | None = None,
    action_record_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """
    List a company's integration jobs, newest first.

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    try:
        query = (
            supabase.table("integration_job_queue")
            .select("*")
            .eq("company_id", str(company_id))
            .order("created_at", desc=True)
        )
        if status:
            query = query.eq("status", status)
        if action_record_id:
            query = query.eq("action_record_id", str(action_record_id))

        response = query.range(offset, offset + limit - 1).execute()
        return response.data or []

    except Exception as e:
        logger.error(f"Failed to list jobs: {e}")
        raise
