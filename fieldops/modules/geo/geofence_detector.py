"""Turn worker position samples into arrival and departure events.

Containment is level information (inside or not); events are edges. The
``PresenceTracker`` remembers the last containment result per
(worker, task location) pair and only reports a change, so a noisy stream of
"still inside" reports never re-triggers a transition.
"""

import logging

from pydantic import BaseModel

from fieldops.core.config import settings
from fieldops.core.errors import FieldOpsError, InvalidGeometryError
from fieldops.core.logging import log_with_context, span
from fieldops.domain.geofence import Geofence, LocationEvent, LocationEventType, Position, PositionSample
from fieldops.domain.log import TaskAction
from fieldops.domain.task import Task, TaskLocation, TaskStatus
from fieldops.models.service_models import PositionOutcome, TransitionFailure
from fieldops.modules.geo import geofence_service, primitives
from fieldops.modules.tasks import service as task_service


logger = logging.getLogger(__name__)

_WORKABLE_STATUSES = [TaskStatus.NOT_STARTED, TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.PAUSED]


class GeofenceEvaluation(BaseModel):
    """Containment result for one position against one task location."""

    inside: bool
    distance_meters: float
    radius_meters: int
    geofence_id: str | None = None


def resolve_center(task_location: TaskLocation, geofence: Geofence | None = None) -> tuple[float, float, int]:
    """Centre latitude, longitude and radius for a task location.

    A location that references a geofence takes all three from the geofence as
    it is now, so edits to the geofence apply immediately.

    Raises:
        ValueError: If the location references a geofence that was not supplied
        InvalidGeometryError: If the resolved circle is invalid
    """
    if task_location.geofence_id is not None:
        if geofence is None or geofence.id != task_location.geofence_id:
            msg = f"Task location {task_location.id} needs geofence {task_location.geofence_id} to be evaluated"
            raise ValueError(msg)
        latitude, longitude, radius = geofence.center_latitude, geofence.center_longitude, geofence.radius_meters
    else:
        latitude, longitude = task_location.latitude, task_location.longitude
        radius = task_location.radius_meters if task_location.radius_meters is not None else settings.default_radius_meters

    primitives.validate_coordinates(latitude, longitude)
    primitives.validate_radius(radius)
    return latitude, longitude, radius


def evaluate(position: Position, task_location: TaskLocation, geofence: Geofence | None = None) -> GeofenceEvaluation:
    """Distance from the resolved centre and whether the position is inside (boundary included).

    An inactive geofence never contains a point; the distance is still reported.
    """
    primitives.validate_coordinates(position.latitude, position.longitude)
    latitude, longitude, radius = resolve_center(task_location, geofence)

    distance = primitives.haversine_distance_meters(position.latitude, position.longitude, latitude, longitude)
    inside = primitives.is_within_radius(distance, radius)
    if geofence is not None and not geofence.is_active:
        inside = False

    return GeofenceEvaluation(
        inside=inside,
        distance_meters=distance,
        radius_meters=radius,
        geofence_id=task_location.geofence_id,
    )


class PresenceTracker:
    """Last known containment per (worker, task location). Unknown pairs count as outside."""

    def __init__(self) -> None:
        self._inside: dict[tuple[str, str], bool] = {}

    def edge_for(self, worker_id: str, task_location_id: str, inside: bool) -> LocationEventType | None:
        """The edge a containment result would complete, without recording it."""
        previous = self.is_inside(worker_id, task_location_id)
        if inside and not previous:
            return LocationEventType.ARRIVAL
        if previous and not inside:
            return LocationEventType.DEPARTURE
        return None

    def observe(self, worker_id: str, task_location_id: str, inside: bool) -> LocationEventType | None:
        """Record a containment result and return the edge it completes, if any."""
        edge = self.edge_for(worker_id, task_location_id, inside)
        self._inside[(worker_id, task_location_id)] = inside
        return edge

    def is_inside(self, worker_id: str, task_location_id: str) -> bool:
        return self._inside.get((worker_id, task_location_id), False)

    def forget(self, worker_id: str) -> None:
        """Drop everything known about a worker."""
        for key in [key for key in self._inside if key[0] == worker_id]:
            del self._inside[key]

    def retain(self, worker_id: str, task_location_ids: set[str]) -> None:
        """Drop a worker's pairs for locations outside task_location_ids."""
        for key in [key for key in self._inside if key[0] == worker_id and key[1] not in task_location_ids]:
            del self._inside[key]

    def clear(self) -> None:
        self._inside.clear()


presence_tracker = PresenceTracker()


async def _apply_edge(
    task: Task,
    location: TaskLocation,
    edge: LocationEventType,
    sample: PositionSample,
    outcome: PositionOutcome,
) -> Task:
    """Drive the automatic start or completion an edge implies. Returns the task as it now stands."""
    if edge == LocationEventType.ARRIVAL:
        if not (location.arrival_required and settings.auto_start_on_arrival):
            return task
        if task.status not in {TaskStatus.NOT_STARTED, TaskStatus.PENDING}:
            return task
        action = TaskAction.START
    else:
        if not (location.departure_required and settings.auto_complete_on_departure):
            return task
        if task.status not in {TaskStatus.IN_PROGRESS, TaskStatus.PAUSED}:
            return task
        action = TaskAction.COMPLETED

    try:
        updated = await task_service.transition_task(
            task_id=task.id,
            action=action,
            worker_id=sample.worker_id,
            now=sample.timestamp,
        )
    except (FieldOpsError, KeyError) as e:
        log_with_context(
            logger,
            "warning",
            "automatic_transition_rejected",
            task_id=task.id,
            worker_id=sample.worker_id,
            action=action.value,
            error=str(e),
        )
        outcome.failures.append(TransitionFailure(task_id=task.id, action=action, error=str(e)))
        return task

    if action == TaskAction.START:
        outcome.started.append(task.id)
    else:
        outcome.completed.append(task.id)
    return updated


async def process_position(sample: PositionSample, *, tracker: PresenceTracker | None = None) -> PositionOutcome:
    """Evaluate a position against the worker's open tasks and act on edges.

    Each arrival or departure is stored as a LocationEvent before the
    transition it may trigger. A rejected transition is reported in the
    outcome and does not stop the remaining locations from being evaluated.

    Raises:
        InvalidGeometryError: If the sample's coordinates are invalid
    """
    with span("geofence_detector.process_position"):
        tracker = tracker or presence_tracker
        primitives.validate_coordinates(sample.latitude, sample.longitude)

        outcome = PositionOutcome(worker_id=sample.worker_id)
        tasks = await task_service.list_tasks(statuses=_WORKABLE_STATUSES, assigned_to=sample.worker_id)
        # Locations of finished or reassigned tasks are no longer tracked
        tracker.retain(sample.worker_id, {location.id for task in tasks for location in task.locations})
        geofences: dict[str, Geofence] = {}

        for task in tasks:
            current = task
            for location in task.locations:
                geofence = None
                if location.geofence_id is not None:
                    if location.geofence_id not in geofences:
                        try:
                            geofences[location.geofence_id] = await geofence_service.get_geofence(
                                geofence_id=location.geofence_id
                            )
                        except KeyError:
                            logger.warning(
                                "Geofence %s for task location %s is missing", location.geofence_id, location.id
                            )
                            continue
                    geofence = geofences[location.geofence_id]

                try:
                    evaluation = evaluate(sample.position, location, geofence)
                except InvalidGeometryError as e:
                    logger.warning("Skipping task location %s: %s", location.id, e)
                    continue

                edge = tracker.edge_for(sample.worker_id, location.id, evaluation.inside)
                if edge is None:
                    continue

                # Containment is recorded only once the event is stored
                event = await task_service.record_location_event(
                    LocationEvent(
                        task_id=task.id,
                        task_location_id=location.id,
                        worker_id=sample.worker_id,
                        event_type=edge,
                        latitude=sample.latitude,
                        longitude=sample.longitude,
                        distance_meters=evaluation.distance_meters,
                        geofence_id=location.geofence_id,
                        timestamp=sample.timestamp,
                    )
                )
                tracker.observe(sample.worker_id, location.id, evaluation.inside)
                outcome.events.append(event)
                logger.info(
                    "Worker %s %s at task %s location %s (%.0fm)",
                    sample.worker_id,
                    edge.value,
                    task.id,
                    location.id,
                    evaluation.distance_meters,
                )
                current = await _apply_edge(current, location, edge, sample, outcome)

        return outcome
