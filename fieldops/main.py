"""fieldops - task lifecycle, geofencing and routing service for field workers."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from fieldops.core.config import Constants
from fieldops.core.db_client import close_connection, init_db
from fieldops.core.logging import configure_logfire, instrument_fastapi
from fieldops.core.scheduler import start_scheduler, stop_scheduler
from fieldops.core.scheduler_tracker import job_tracker
from fieldops.interface.router import router as fieldops_router
from fieldops.modules.tasks.scheduler_jobs import get_scheduled_jobs


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    start_scheduler()
    yield
    # Shutdown
    stop_scheduler()
    await close_connection()


app = FastAPI(
    title="fieldops",
    description="Task lifecycle, geofencing and routing for field workers",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(fieldops_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=Constants.HTTP_OK)


@app.get("/health/scheduler")
async def scheduler_health_check() -> JSONResponse:
    """Scheduler health check endpoint with job statuses."""
    job_statuses = {}
    for job in get_scheduled_jobs():
        job_statuses[job.id] = await job_tracker.get_job_status(job.id)

    dlq = job_tracker.get_dead_letter_queue()

    has_failures = any(status["consecutive_failures"] > 0 for status in job_statuses.values())

    overall_status = "degraded" if has_failures else "healthy"
    if len(dlq) > 0:
        overall_status = "critical"

    return JSONResponse(
        content={
            "status": overall_status,
            "jobs": job_statuses,
            "dead_letter_queue_size": len(dlq),
            "dead_letter_queue": dlq,
        },
        status_code=Constants.HTTP_OK if overall_status == "healthy" else Constants.HTTP_SERVICE_UNAVAILABLE,
    )
