"""Task service: storage mapping and the persisting transition wrapper."""

import logging
from datetime import UTC, datetime
from typing import Any

from fieldops.core import clock, db_client
from fieldops.core.config import Constants, settings
from fieldops.core.db_client import sanitize_param
from fieldops.core.errors import ConcurrentModificationError, InvalidTransitionError
from fieldops.core.logging import span
from fieldops.domain.geofence import LocationEvent
from fieldops.domain.log import TaskAction
from fieldops.domain.task import CompletionType, Task, TaskLocation, TaskPriority, TaskStatus
from fieldops.models.service_models import TaskMetrics
from fieldops.modules.geo import primitives
from fieldops.modules.tasks import audit, state_machine, time_ledger


logger = logging.getLogger(__name__)

TASKS = "tasks"
TASK_LOCATIONS = "task_locations"
LOCATION_EVENTS = "location_events"

_DATETIME_FIELDS = (
    "start_date",
    "end_date",
    "due_date",
    "original_due_date",
    "forwarded_at",
    "started_at",
    "completed_at",
    "last_pause_at",
)


def format_datetime(value: datetime | None) -> str | None:
    """Serialize a timestamp as UTC ISO-8601 so stored values compare lexically."""
    if value is None:
        return None
    return value.astimezone(UTC).isoformat()


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp; empty strings and None mean unset."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return clock.ensure_aware(value)
    return clock.ensure_aware(datetime.fromisoformat(value))


def record_to_location(record: dict[str, Any]) -> TaskLocation:
    """Convert a task_locations row into a TaskLocation."""
    return TaskLocation(
        id=record["id"],
        task_id=record["task_id"],
        geofence_id=record.get("geofence_id"),
        latitude=record.get("latitude"),
        longitude=record.get("longitude"),
        radius_meters=record.get("radius_meters"),
        arrival_required=bool(record.get("arrival_required", True)),
        departure_required=bool(record.get("departure_required", False)),
        location_name=record.get("location_name"),
        location_address=record.get("location_address"),
    )


def record_to_task(record: dict[str, Any], locations: list[TaskLocation] | None = None) -> Task:
    """Convert a tasks row (plus its location rows) into a Task."""
    data: dict[str, Any] = {
        "id": record["id"],
        "version": record.get("version") or 1,
        "title": record["title"],
        "description": record.get("description") or "",
        "priority": record.get("priority") or TaskPriority.MEDIUM,
        "assigned_to": record.get("assigned_to"),
        "status": record["status"],
        "total_pause_duration": time_ledger.decode_duration(record.get("total_pause_duration_ms")),
        "estimated_time": record.get("estimated_time"),
        "actual_time": record.get("actual_time"),
        "reward": record.get("reward") or 0.0,
        "completion_notes": record.get("completion_notes"),
        "completion_type": record.get("completion_type"),
        "locations": locations or [],
    }
    for field in _DATETIME_FIELDS:
        data[field] = parse_datetime(record.get(field))
    return Task.model_validate(data)


def task_to_record(task: Task) -> dict[str, Any]:
    """Convert a Task into the column values written on update (id and version excluded)."""
    data: dict[str, Any] = {
        "title": task.title,
        "description": task.description,
        "priority": task.priority.value,
        "assigned_to": task.assigned_to,
        "status": task.status.value,
        "total_pause_duration_ms": time_ledger.encode_duration(task.total_pause_duration),
        "estimated_time": task.estimated_time,
        "actual_time": task.actual_time,
        "reward": task.reward,
        "completion_notes": task.completion_notes,
        "completion_type": task.completion_type.value if task.completion_type else None,
    }
    for field in _DATETIME_FIELDS:
        data[field] = format_datetime(getattr(task, field))
    return data


def record_to_event(record: dict[str, Any]) -> LocationEvent:
    """Convert a location_events row into a LocationEvent."""
    return LocationEvent(
        id=record["id"],
        task_id=record["task_id"],
        task_location_id=record["task_location_id"],
        worker_id=record["worker_id"],
        event_type=record["event_type"],
        latitude=record["latitude"],
        longitude=record["longitude"],
        distance_meters=record.get("distance_meters"),
        geofence_id=record.get("geofence_id"),
        timestamp=parse_datetime(record["timestamp"]),
    )


async def create_task(
    *,
    title: str,
    description: str = "",
    priority: TaskPriority = TaskPriority.MEDIUM,
    assigned_to: str | None = None,
    status: TaskStatus = TaskStatus.NOT_STARTED,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    due_date: datetime | None = None,
    estimated_time: int | None = None,
    reward: float = 0.0,
) -> Task:
    """Create a task in a non-terminal starting status.

    Raises:
        InvalidTransitionError: If the starting status is Completed, Paused or
            In Progress (those are only reachable through transitions)
        db_client.DatabaseError: If database operation fails
    """
    with span("task_service.create_task"):
        if status not in {TaskStatus.PLANNED, TaskStatus.NOT_STARTED, TaskStatus.PENDING}:
            raise InvalidTransitionError(task_id="new", action="create", current_status=status.value)

        draft = Task(
            id="new",
            title=title,
            description=description,
            priority=priority,
            assigned_to=assigned_to,
            status=status,
            start_date=start_date,
            end_date=end_date,
            due_date=due_date,
            estimated_time=estimated_time,
            reward=reward,
        )
        data = task_to_record(draft)
        data["version"] = 1

        record = await db_client.create_record(collection=TASKS, data=data)
        logger.info("Created task: %s (assigned to: %s)", title, assigned_to or "unassigned")
        return record_to_task(record)


async def get_task(*, task_id: str) -> Task:
    """Load a task with its locations.

    Raises:
        db_client.RecordNotFoundError: If the task does not exist
    """
    with span("task_service.get_task"):
        record = await db_client.get_record(collection=TASKS, record_id=task_id)
        locations = await get_task_locations(task_id=task_id)
        return record_to_task(record, locations)


async def list_task_records(
    *,
    statuses: list[TaskStatus] | None = None,
    assigned_to: str | None = None,
    due_before: datetime | None = None,
    sort: str = "due_date ASC",
) -> list[dict[str, Any]]:
    """Raw task rows matching the filters, for batch jobs that decode row by row."""
    filters = []
    if statuses:
        options = " || ".join(f'status = "{sanitize_param(status)}"' for status in statuses)
        filters.append(f"({options})")
    if assigned_to:
        filters.append(f'assigned_to = "{sanitize_param(assigned_to)}"')
    if due_before:
        filters.append(f'due_date < "{format_datetime(due_before)}"')

    filter_query = " && ".join(filters)
    records = await db_client.list_all_records(collection=TASKS, filter_query=filter_query, sort=sort)
    logger.debug("Retrieved %d task records with filters: %s", len(records), filter_query)
    return records


async def list_tasks(
    *,
    statuses: list[TaskStatus] | None = None,
    assigned_to: str | None = None,
    due_before: datetime | None = None,
    with_locations: bool = True,
    sort: str = "due_date ASC",
) -> list[Task]:
    """List tasks with optional filters.

    Args:
        statuses: Keep tasks in any of these statuses
        assigned_to: Keep tasks assigned to this worker
        due_before: Keep tasks whose due date is strictly earlier
        with_locations: Load each task's locations (one extra query per task)
        sort: Column and direction

    Returns:
        Matching tasks
    """
    with span("task_service.list_tasks"):
        records = await list_task_records(
            statuses=statuses, assigned_to=assigned_to, due_before=due_before, sort=sort
        )

        tasks = []
        for record in records:
            locations = await get_task_locations(task_id=record["id"]) if with_locations else []
            tasks.append(record_to_task(record, locations))
        return tasks


async def save_task(task: Task, *, expected_version: int) -> Task:
    """Write a task only if its stored version still equals expected_version.

    Raises:
        ConcurrentModificationError: If the stored task changed since it was read
        db_client.RecordNotFoundError: If the task was deleted
    """
    record = await db_client.update_record(
        collection=TASKS,
        record_id=task.id,
        data=task_to_record(task),
        expected_version=expected_version,
    )
    return record_to_task(record, task.locations)


async def get_task_locations(*, task_id: str) -> list[TaskLocation]:
    """Locations attached to a task, in insertion order."""
    records = await db_client.list_all_records(
        collection=TASK_LOCATIONS,
        filter_query=f'task_id = "{sanitize_param(task_id)}"',
    )
    return [record_to_location(record) for record in records]


async def add_task_location(
    *,
    task_id: str,
    geofence_id: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    radius_meters: int | None = None,
    arrival_required: bool = True,
    departure_required: bool = False,
    location_name: str | None = None,
    location_address: str | None = None,
) -> TaskLocation:
    """Attach a location to a task, either by geofence reference or inline circle.

    Raises:
        InvalidGeometryError: If an inline location has bad coordinates or radius
        db_client.RecordNotFoundError: If the task or referenced geofence is missing
    """
    with span("task_service.add_task_location"):
        await db_client.get_record(collection=TASKS, record_id=task_id)

        data: dict[str, Any] = {
            "task_id": task_id,
            "arrival_required": arrival_required,
            "departure_required": departure_required,
            "location_name": location_name,
            "location_address": location_address,
        }
        if geofence_id:
            await db_client.get_record(collection="geofences", record_id=geofence_id)
            data["geofence_id"] = geofence_id
        else:
            if radius_meters is None:
                radius_meters = settings.default_radius_meters
            primitives.validate_coordinates(latitude, longitude)
            primitives.validate_radius(radius_meters)
            data.update(latitude=latitude, longitude=longitude, radius_meters=radius_meters)
            if not Constants.TYPICAL_MIN_RADIUS_METERS <= radius_meters <= Constants.TYPICAL_MAX_RADIUS_METERS:
                logger.warning("Unusual location radius", extra={"task_id": task_id, "radius_meters": radius_meters})

        record = await db_client.create_record(collection=TASK_LOCATIONS, data=data)
        logger.info("Added location to task %s (geofence: %s)", task_id, geofence_id or "custom")
        return record_to_location(record)


async def record_location_event(event: LocationEvent) -> LocationEvent:
    """Persist an arrival or departure and return it with its id."""
    data = {
        "task_id": event.task_id,
        "task_location_id": event.task_location_id,
        "worker_id": event.worker_id,
        "event_type": event.event_type.value,
        "latitude": event.latitude,
        "longitude": event.longitude,
        "distance_meters": event.distance_meters,
        "geofence_id": event.geofence_id,
        "timestamp": format_datetime(event.timestamp),
    }
    record = await db_client.create_record(collection=LOCATION_EVENTS, data=data)
    return record_to_event(record)


async def list_location_events(*, task_id: str) -> list[LocationEvent]:
    """All location events recorded for a task, oldest first."""
    records = await db_client.list_all_records(
        collection=LOCATION_EVENTS,
        filter_query=f'task_id = "{sanitize_param(task_id)}"',
        sort="timestamp ASC",
    )
    return [record_to_event(record) for record in records]


async def transition_task(
    *,
    task_id: str,
    action: TaskAction,
    worker_id: str | None = None,
    notes: str | None = None,
    completion_type: CompletionType = CompletionType.WITHOUT_PROOF,
    now: datetime | None = None,
) -> Task:
    """Apply one state machine transition as a single read-modify-write.

    The task is read, the pure transition runs, and the result is written only
    if nobody else wrote the task in between. The audit entry is appended after
    the write succeeds.

    Raises:
        InvalidTransitionError: If the action is not allowed from the current status
        LocationRequiredError: If a gating arrival or departure has not been observed
        ConcurrentModificationError: If the task changed between read and write
        db_client.RecordNotFoundError: If the task does not exist
    """
    with span("task_service.transition_task"):
        now = now or clock.now()
        task = await get_task(task_id=task_id)

        kwargs: dict[str, Any] = {"now": now, "worker_id": worker_id}
        if action in state_machine.LOCATION_GATED_ACTIONS:
            kwargs["events"] = await list_location_events(task_id=task_id)
        if action == TaskAction.COMPLETED:
            kwargs.update(notes=notes, completion_type=completion_type)

        updated, log_entry = state_machine.TRANSITIONS[action](task, **kwargs)
        saved = await save_task(updated, expected_version=task.version)

        await audit.record_transition(log_entry)
        logger.info(
            "Task %s: %s -> %s (%s)",
            task_id,
            task.status.value,
            saved.status.value,
            action.value,
        )
        return saved


async def activate_open_tasks(*, now: datetime | None = None) -> list[str]:
    """Move Planned or Pending tasks whose window has opened to Not Started.

    Only tasks with a start_date are considered; a task without a window is
    left for a worker to pick up directly. Failures on one task do not stop
    the batch.

    Returns:
        IDs of tasks that were activated
    """
    with span("task_service.activate_open_tasks"):
        now = now or clock.now()
        records = await list_task_records(statuses=[TaskStatus.PLANNED, TaskStatus.PENDING])

        activated = []
        for record in records:
            try:
                task = record_to_task(record)
            except ValueError as e:
                logger.error("Skipped unreadable task %s: %s", record.get("id"), e)
                continue
            if task.start_date is None or not state_machine.is_within_window(task, now):
                continue
            try:
                updated, log_entry = state_machine.activate_task(task, now=now)
                await save_task(updated, expected_version=task.version)
            except ConcurrentModificationError as e:
                logger.warning("Skipped activating task %s: %s", task.id, e)
                continue
            except (InvalidTransitionError, db_client.DatabaseError, KeyError) as e:
                logger.error("Failed to activate task %s: %s", task.id, e)
                continue
            await audit.record_transition(log_entry)
            activated.append(task.id)

        logger.info("Activated %d of %d waiting tasks", len(activated), len(records))
        return activated


async def get_task_metrics(*, task_id: str, now: datetime | None = None) -> TaskMetrics:
    """Elapsed active time, pause total and efficiency for a task."""
    with span("task_service.get_task_metrics"):
        now = now or clock.now()
        task = await get_task(task_id=task_id)

        elapsed = time_ledger.elapsed_active_duration(task, now)
        total_pause = task.total_pause_duration + time_ledger.current_pause(task, now)
        return TaskMetrics(
            task_id=task.id,
            status=task.status,
            elapsed_active_seconds=int(elapsed.total_seconds()),
            total_pause_seconds=int(total_pause.total_seconds()),
            active_minutes=time_ledger.active_minutes(task, now),
            estimated_minutes=task.estimated_time,
            efficiency=time_ledger.efficiency_ratio(task, now),
            elapsed_label=time_ledger.format_duration(elapsed),
            measured_at=now,
        )

