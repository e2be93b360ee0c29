"""Job execution tracking and monitoring for scheduled jobs."""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from fieldops.core.config import Constants


logger = logging.getLogger(__name__)


class JobTracker:
    """Track job execution history and health status."""

    def __init__(self) -> None:
        self._jobs: dict[str, dict[str, Any]] = {}
        self._dead_letter_queue: deque[tuple[str, str, str]] = deque(
            maxlen=Constants.TRACKER_DEAD_LETTER_QUEUE_MAXLEN
        )

    def _state(self, job_name: str) -> dict[str, Any]:
        return self._jobs.setdefault(
            job_name,
            {
                "last_success": None,
                "last_failure": None,
                "last_error": None,
                "consecutive_failures": 0,
                "success_count": 0,
                "failure_count": 0,
                "current_run": None,
            },
        )

    async def record_job_start(self, job_name: str) -> None:
        """Record job execution start."""
        self._state(job_name)["current_run"] = datetime.now(UTC).isoformat()

    async def record_job_success(self, job_name: str) -> None:
        """Record successful job execution."""
        state = self._state(job_name)
        state["last_success"] = datetime.now(UTC).isoformat()
        state["consecutive_failures"] = 0
        state["success_count"] += 1
        state["current_run"] = None

    async def record_job_failure(self, job_name: str, error: str) -> int:
        """Record failed job execution.

        Args:
            job_name: Name of the scheduled job
            error: Error message

        Returns:
            Number of consecutive failures
        """
        now = datetime.now(UTC).isoformat()
        state = self._state(job_name)
        state["last_failure"] = now
        state["last_error"] = error
        state["consecutive_failures"] += 1
        state["failure_count"] += 1
        state["current_run"] = None
        self._dead_letter_queue.append((job_name, now, error))
        return state["consecutive_failures"]

    async def get_job_status(self, job_name: str) -> dict[str, Any]:
        """Get current status of a job."""
        state = self._state(job_name)
        return {
            "job_name": job_name,
            "last_success": state["last_success"],
            "last_failure": state["last_failure"],
            "last_error": state["last_error"],
            "consecutive_failures": state["consecutive_failures"],
            "success_count": state["success_count"],
            "failure_count": state["failure_count"],
            "currently_running": state["current_run"] is not None,
            "current_run_started": state["current_run"],
        }

    def get_dead_letter_queue(self) -> list[dict[str, str]]:
        """Get failed jobs from the dead letter queue."""
        return [
            {"job_name": job_name, "failed_at": failed_at, "error": error}
            for job_name, failed_at, error in self._dead_letter_queue
        ]


job_tracker = JobTracker()


async def retry_job_with_backoff(
    job_func: Callable[[], Awaitable[None]],
    job_name: str,
    max_retries: int = Constants.JOB_MAX_RETRIES,
    base_delay: float = Constants.JOB_RETRY_BASE_DELAY_SECONDS,
) -> None:
    """Execute job with retry logic and exponential backoff.

    Args:
        job_func: Async function to execute
        job_name: Name of the job for tracking
        max_retries: Maximum number of retry attempts
        base_delay: Base delay in seconds for exponential backoff
    """
    await job_tracker.record_job_start(job_name)

    last_error = None
    for attempt in range(max_retries):
        try:
            logger.info("Executing %s (attempt %d/%d)", job_name, attempt + 1, max_retries)
            await job_func()

            await job_tracker.record_job_success(job_name)
            logger.info("%s completed successfully", job_name)
            return

        except Exception as e:
            last_error = str(e)
            logger.error(
                "%s failed on attempt %d/%d: %s",
                job_name,
                attempt + 1,
                max_retries,
                last_error,
            )

            if attempt < max_retries - 1:
                delay = base_delay**attempt
                logger.info("Retrying %s in %ds", job_name, delay)
                await asyncio.sleep(delay)

    error_msg = f"Failed after {max_retries} attempts: {last_error}"
    consecutive_failures = await job_tracker.record_job_failure(job_name, error_msg)

    logger.critical(
        f"{job_name} failed after all retry attempts",
        extra={
            "error": error_msg,
            "consecutive_failures": consecutive_failures,
        },
    )
