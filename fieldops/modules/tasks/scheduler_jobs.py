"""Scheduled jobs for the tasks module.

This module provides scheduled jobs for:
- Forwarding overdue Planned tasks to Pending
- Activating Planned or Pending tasks whose execution window has opened
"""

import logging

from fieldops.core.config import settings
from fieldops.core.scheduler_tracker import retry_job_with_backoff
from fieldops.models.service_models import ScheduledJob
from fieldops.modules.tasks import forwarder, service


logger = logging.getLogger(__name__)

WINDOW_ACTIVATION_CRON = "*/15 * * * *"


async def run_overdue_forwarding() -> None:
    """Forward overdue tasks. Raises if the scan fails so the retry wrapper can retry."""
    logger.info("Running overdue forwarding job")
    result = await forwarder.forward_overdue_tasks()
    logger.info(
        "Completed overdue forwarding job: %d forwarded, %d failed",
        result.forwarded_count,
        len(result.failed),
    )


async def run_window_activation() -> None:
    """Activate tasks whose execution window has opened."""
    logger.info("Running window activation job")
    activated = await service.activate_open_tasks()
    logger.info("Completed window activation job: %d tasks activated", len(activated))


async def overdue_forwarding_job() -> None:
    await retry_job_with_backoff(run_overdue_forwarding, "overdue_forwarding")


async def window_activation_job() -> None:
    await retry_job_with_backoff(run_window_activation, "window_activation")


def get_scheduled_jobs() -> list[ScheduledJob]:
    """Job definitions registered by the scheduler at start-up."""
    return [
        ScheduledJob(
            id="overdue_forwarding",
            name="Forward Overdue Tasks",
            cron=settings.forwarder_cron,
            func=overdue_forwarding_job,
        ),
        ScheduledJob(
            id="window_activation",
            name="Activate Tasks In Window",
            cron=WINDOW_ACTIVATION_CRON,
            func=window_activation_job,
        ),
    ]
