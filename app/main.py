"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from app.api import router as api_router
from app.core.config import get_settings
from app.core.logging import get_logger
from app.services.integration_worker import start_integration_worker
from app.services.reminder_worker import start_reminder_worker

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    workers = []
    if settings.INTEGRATION_WORKER_ENABLED:
        workers.append(asyncio.create_task(start_integration_worker()))
        logger.info("Integration worker started in-process")
    if settings.REMINDER_WORKER_ENABLED:
        workers.append(asyncio.create_task(start_reminder_worker()))
        logger.info("Reminder sweep started in-process")
    yield
    for worker in workers:
        worker.cancel()


app = FastAPI(
    title="Project Assistant Tool Engine",
    description="Tenant-scoped agent tools, action approval and channel routing service",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
