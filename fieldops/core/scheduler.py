"""Scheduler for automated jobs (overdue forwarding, window activation)."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from fieldops.modules.tasks.scheduler_jobs import get_scheduled_jobs


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


def start_scheduler() -> None:
    """Start the scheduler and register all jobs.

    This should be called during FastAPI app startup.
    """
    logger.info("Starting scheduler")

    for job in get_scheduled_jobs():
        scheduler.add_job(
            job.func,
            trigger=CronTrigger.from_crontab(job.cron),
            id=job.id,
            name=job.name,
            replace_existing=True,
        )
        logger.info("Scheduled %s job: %s", job.id, job.cron)

    scheduler.start()
    logger.info("Scheduler started successfully")


def stop_scheduler() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    logger.info("Stopping scheduler")
    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")
