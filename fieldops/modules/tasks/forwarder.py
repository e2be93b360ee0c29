"""Overdue forwarding: move Planned tasks whose due date has passed to Pending.

A forwarded task gets ``status``, ``forwarded_at``, ``original_due_date`` and
``due_date`` in one versioned update, so the original deadline is never stored
without the status change that explains it. The batch only matches Planned
tasks, so running it twice on the same day forwards nothing the second time.
"""

import logging
from datetime import datetime, time, timedelta, tzinfo

from fieldops.core import clock, db_client
from fieldops.core.config import settings
from fieldops.core.errors import ConcurrentModificationError, InvalidTransitionError
from fieldops.core.logging import span
from fieldops.domain.task import Task, TaskStatus
from fieldops.models.service_models import ForwardingFailure, ForwardingResult, ForwardingStats
from fieldops.modules.tasks import service


logger = logging.getLogger(__name__)


def start_of_day(now: datetime, tz: tzinfo) -> datetime:
    """Midnight at the start of now's calendar day in tz."""
    local = now.astimezone(tz)
    return datetime.combine(local.date(), time.min, tzinfo=tz)


def start_of_next_day(now: datetime, tz: tzinfo) -> datetime:
    """Midnight at the start of the calendar day after now in tz."""
    local = now.astimezone(tz)
    return datetime.combine(local.date() + timedelta(days=1), time.min, tzinfo=tz)


def is_overdue(task: Task, now: datetime, tz: tzinfo | None = None) -> bool:
    """True for a Planned task due strictly before the start of today."""
    if task.status != TaskStatus.PLANNED or task.due_date is None:
        return False
    return task.due_date < start_of_day(now, tz or settings.tzinfo)


def forward_task(task: Task, now: datetime, tz: tzinfo | None = None) -> Task:
    """Return the forwarded copy of an overdue task.

    original_due_date is only set the first time a task is forwarded.

    Raises:
        InvalidTransitionError: If the task is not an overdue Planned task
    """
    tz = tz or settings.tzinfo
    if not is_overdue(task, now, tz):
        raise InvalidTransitionError(task_id=task.id, action="forward", current_status=task.status.value)

    return task.model_copy(
        update={
            "status": TaskStatus.PENDING,
            "forwarded_at": now,
            "original_due_date": task.original_due_date or task.due_date,
            "due_date": start_of_next_day(now, tz),
        }
    )


async def forward_overdue_tasks(*, now: datetime | None = None) -> ForwardingResult:
    """Forward every overdue Planned task.

    A failure on one task is recorded in the result and the batch continues;
    the task is picked up again on the next run. A failed scan raises so the
    scheduler can retry the whole batch.
    """
    with span("forwarder.forward_overdue_tasks"):
        now = now or clock.now()
        tz = settings.tzinfo
        cutoff = start_of_day(now, tz)

        records = await service.list_task_records(statuses=[TaskStatus.PLANNED], due_before=cutoff)

        result = ForwardingResult(scanned=len(records))
        for record in records:
            task_id = str(record.get("id"))
            try:
                task = service.record_to_task(record)
                if not is_overdue(task, now, tz):
                    continue
                await service.save_task(forward_task(task, now, tz), expected_version=task.version)
            except (ConcurrentModificationError, db_client.DatabaseError, KeyError, ValueError) as e:
                # ValueError covers unreadable rows and InvalidTransitionError
                logger.warning("Failed to forward task %s: %s", task_id, e)
                result.failed.append(ForwardingFailure(task_id=task_id, error=str(e)))
                continue
            result.forwarded.append(task_id)

        logger.info(
            "Overdue forwarding finished",
            extra={
                "scanned": result.scanned,
                "forwarded": result.forwarded_count,
                "failed": len(result.failed),
                "cutoff": cutoff.isoformat(),
            },
        )
        return result


async def forwarding_stats(*, now: datetime | None = None) -> ForwardingStats:
    """Counts of Pending tasks, tasks ever forwarded, and Planned tasks now overdue."""
    with span("forwarder.forwarding_stats"):
        now = now or clock.now()
        tasks = await service.list_tasks(with_locations=False)
        return ForwardingStats(
            pending=sum(1 for task in tasks if task.status == TaskStatus.PENDING),
            forwarded_total=sum(1 for task in tasks if task.original_due_date is not None),
            overdue_planned=sum(1 for task in tasks if is_overdue(task, now)),
        )


async def list_pending_tasks(*, worker_id: str | None = None) -> list[Task]:
    """Pending tasks, earliest due date first, optionally for one worker."""
    return await service.list_tasks(
        statuses=[TaskStatus.PENDING],
        assigned_to=worker_id,
        sort="due_date ASC",
    )
