"""API endpoints for integration job status."""

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth import ApiKeyContext, require_api_key
from app.core.logging import get_logger
from app.db.integration_jobs import JOB_STATUSES, get_job, list_jobs

logger = get_logger(__name__)

router = APIRouter()


@router.get("/{job_id}")
async def get_job_status(job_id: str, api_key: ApiKeyContext = Depends(require_api_key)) -> dict:
    """
    Get integration job status and details by job ID.

    Args:
        job_id: Job UUID

    Returns:
        Job details including status, payload, retry count, error, timestamps

    Raises:
        HTTPException 404: If job not found in the caller's company
        HTTPException 500: If database error
    """
    try:
        job = get_job(job_id, company_id=api_key.company_id)

        if not job:
            raise HTTPException(status_code=404, detail="Job not found")

        return job

    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Failed to get job {job_id}")
        raise HTTPException(status_code=500, detail="Failed to retrieve job status")


@router.get("")
async def list_company_jobs(
    status: str | None = Query(None, description="Filter by job status"),
    action_record_id: str | None = Query(None, description="Jobs created for one action record"),
    limit: int = Query(20, description="Maximum number of jobs to return", ge=1, le=100),
    offset: int = Query(0, description="Number of jobs to skip", ge=0),
    api_key: ApiKeyContext = Depends(require_api_key),
) -> dict:
    """
    List recent integration jobs for the caller's company.

    Returns:
        Dict with jobs array and pagination info
    """
    if status and status not in JOB_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of: {', '.join(JOB_STATUSES)}")

    try:
        jobs = list_jobs(
            api_key.company_id,
            status=status,
            action_record_id=action_record_id,
            limit=limit,
            offset=offset,
        )

        return {
            "jobs": jobs,
            "limit": limit,
            "offset": offset,
            "count": len(jobs),
        }

    except Exception:
        logger.exception("Failed to list integration jobs")
        raise HTTPException(status_code=500, detail="Failed to retrieve jobs")
