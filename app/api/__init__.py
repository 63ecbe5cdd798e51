"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import actions, jobs, knowledge, tools, webhooks

router = APIRouter()

# Tool RPC targets and external tool API
router.include_router(tools.router, tags=["tools"])

# Approval UI
router.include_router(actions.router, prefix="/actions", tags=["actions"])

# Knowledge base ingestion
router.include_router(knowledge.router, prefix="/knowledge", tags=["knowledge"])

# Integration job status
router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])

# Inbound channel webhooks (signature-verified, no API key)
router.include_router(webhooks.router, tags=["webhooks"])
