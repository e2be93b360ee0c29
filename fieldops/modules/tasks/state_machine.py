"""Pure state transition functions for task lifecycle management.

Every function takes the current task and returns ``(updated_task, log_entry)``
without touching storage. Persistence, version checks and audit delivery live
in ``fieldops.modules.tasks.service``.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from fieldops.core.errors import InvalidTransitionError, LocationRequiredError
from fieldops.domain.geofence import LocationEvent, LocationEventType
from fieldops.domain.log import TaskAction, TaskLog
from fieldops.domain.task import CompletionType, Task, TaskStatus
from fieldops.modules.tasks import time_ledger


logger = logging.getLogger(__name__)


# Statuses each action may leave from
ALLOWED_SOURCES: dict[TaskAction, set[TaskStatus]] = {
    TaskAction.START: {TaskStatus.NOT_STARTED, TaskStatus.PENDING},
    TaskAction.PAUSE: {TaskStatus.IN_PROGRESS},
    TaskAction.RESUME: {TaskStatus.PAUSED},
    TaskAction.COMPLETED: {
        TaskStatus.PLANNED,
        TaskStatus.NOT_STARTED,
        TaskStatus.IN_PROGRESS,
        TaskStatus.PAUSED,
        TaskStatus.PENDING,
    },
    TaskAction.ACTIVATED: {TaskStatus.PLANNED, TaskStatus.PENDING},
    TaskAction.RETURNED_TO_PLANNED: {TaskStatus.PENDING},
}


def _evolve(task: Task, **changes: Any) -> Task:
    """Return a validated copy of the task with the given fields replaced."""
    return Task.model_validate({**task.model_dump(), **changes})


def _require_source(task: Task, action: TaskAction) -> None:
    if task.status not in ALLOWED_SOURCES[action]:
        raise InvalidTransitionError(task_id=task.id, action=action.value, current_status=task.status.value)


def _log(task: Task, action: TaskAction, now: datetime, worker_id: str | None, notes: str | None = None) -> TaskLog:
    return TaskLog(task_id=task.id, action=action, timestamp=now, worker_id=worker_id, notes=notes)


def _require_location_event(
    task: Task,
    *,
    event_type: LocationEventType,
    events: Iterable[LocationEvent],
    not_before: datetime | None = None,
) -> None:
    """Raise LocationRequiredError unless one gating location has a matching event."""
    gating = task.gating_locations(arrival=event_type == LocationEventType.ARRIVAL)
    if not gating:
        return

    gating_ids = {loc.id for loc in gating}
    for event in events:
        if event.task_id != task.id or event.event_type != event_type:
            continue
        if event.task_location_id not in gating_ids:
            continue
        if not_before is not None and event.timestamp < not_before:
            continue
        return

    raise LocationRequiredError(task_id=task.id, event_type=event_type.value, task_location_ids=sorted(gating_ids))


def start_task(
    task: Task,
    *,
    now: datetime,
    events: Iterable[LocationEvent] = (),
    worker_id: str | None = None,
) -> tuple[Task, TaskLog]:
    """Not Started (or Pending) -> In Progress. Sets started_at on first start only."""
    _require_source(task, TaskAction.START)
    _require_location_event(task, event_type=LocationEventType.ARRIVAL, events=events)

    updated = _evolve(
        task,
        status=TaskStatus.IN_PROGRESS,
        started_at=task.started_at or now,
    )
    logger.info("Transitioned task %s to In Progress", task.id)
    return updated, _log(task, TaskAction.START, now, worker_id)


def pause_task(task: Task, *, now: datetime, worker_id: str | None = None) -> tuple[Task, TaskLog]:
    """In Progress -> Paused."""
    _require_source(task, TaskAction.PAUSE)

    updated = _evolve(task, status=TaskStatus.PAUSED, last_pause_at=now)
    logger.info("Transitioned task %s to Paused", task.id)
    return updated, _log(task, TaskAction.PAUSE, now, worker_id)


def resume_task(task: Task, *, now: datetime, worker_id: str | None = None) -> tuple[Task, TaskLog]:
    """Paused -> In Progress, folding the pause into total_pause_duration."""
    _require_source(task, TaskAction.RESUME)

    updated = _evolve(task, status=TaskStatus.IN_PROGRESS, **time_ledger.apply_accumulated_pause(task, now))
    logger.info("Transitioned task %s to In Progress (resumed)", task.id)
    return updated, _log(task, TaskAction.RESUME, now, worker_id)


def complete_task(
    task: Task,
    *,
    now: datetime,
    events: Iterable[LocationEvent] = (),
    worker_id: str | None = None,
    notes: str | None = None,
    completion_type: CompletionType = CompletionType.WITHOUT_PROOF,
) -> tuple[Task, TaskLog]:
    """Any non-terminal status -> Completed.

    A paused task has its open pause closed first so no paused time counts as
    active. A task that never started stays without started_at and has zero
    elapsed time.
    """
    _require_source(task, TaskAction.COMPLETED)
    _require_location_event(
        task,
        event_type=LocationEventType.DEPARTURE,
        events=events,
        not_before=task.started_at,
    )

    changes: dict[str, Any] = {}
    if task.status == TaskStatus.PAUSED:
        changes.update(time_ledger.apply_accumulated_pause(task, now))

    completed = _evolve(
        task,
        status=TaskStatus.COMPLETED,
        completed_at=now,
        completion_notes=notes,
        completion_type=completion_type,
        **changes,
    )
    completed = completed.model_copy(update={"actual_time": time_ledger.active_minutes(completed, now)})

    logger.info("Transitioned task %s to Completed", task.id)
    return completed, _log(task, TaskAction.COMPLETED, now, worker_id, notes)


def activate_task(task: Task, *, now: datetime, worker_id: str | None = None) -> tuple[Task, TaskLog]:
    """Planned or Pending -> Not Started once now falls inside the task window."""
    _require_source(task, TaskAction.ACTIVATED)
    if not is_within_window(task, now):
        raise InvalidTransitionError(
            task_id=task.id,
            action="activate outside the task window",
            current_status=task.status.value,
        )

    updated = _evolve(task, status=TaskStatus.NOT_STARTED)
    logger.info("Transitioned task %s to Not Started (window open)", task.id)
    return updated, _log(task, TaskAction.ACTIVATED, now, worker_id)


def return_to_planned(task: Task, *, now: datetime, worker_id: str | None = None) -> tuple[Task, TaskLog]:
    """Admin override: Pending -> Planned with the pre-forwarding deadline restored.

    original_due_date is kept so a later forward still reports the first deadline.
    """
    _require_source(task, TaskAction.RETURNED_TO_PLANNED)

    updated = _evolve(
        task,
        status=TaskStatus.PLANNED,
        due_date=task.original_due_date or task.due_date,
        forwarded_at=None,
    )
    logger.info("Transitioned task %s back to Planned", task.id)
    return updated, _log(task, TaskAction.RETURNED_TO_PLANNED, now, worker_id)


def is_within_window(task: Task, now: datetime) -> bool:
    """True when now lies in [start_date, end_date]; a missing bound is open."""
    if task.start_date is not None and now < task.start_date:
        return False
    return not (task.end_date is not None and now > task.end_date)


Transition = Callable[..., tuple[Task, TaskLog]]

TRANSITIONS: dict[TaskAction, Transition] = {
    TaskAction.START: start_task,
    TaskAction.PAUSE: pause_task,
    TaskAction.RESUME: resume_task,
    TaskAction.COMPLETED: complete_task,
    TaskAction.ACTIVATED: activate_task,
    TaskAction.RETURNED_TO_PLANNED: return_to_planned,
}

# Actions whose outcome depends on recorded location events
LOCATION_GATED_ACTIONS: frozenset[TaskAction] = frozenset({TaskAction.START, TaskAction.COMPLETED})
