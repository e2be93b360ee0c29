"""Domain models and DTOs."""

from fieldops.domain.geofence import Geofence, LocationEvent, LocationEventType, Position, PositionSample
from fieldops.domain.log import TaskAction, TaskLog
from fieldops.domain.route import RouteCandidate, RoutePlan, RouteStop
from fieldops.domain.task import CompletionType, Task, TaskLocation, TaskPriority, TaskStatus


__all__ = [
    "CompletionType",
    "Geofence",
    "LocationEvent",
    "LocationEventType",
    "Position",
    "PositionSample",
    "RouteCandidate",
    "RoutePlan",
    "RouteStop",
    "Task",
    "TaskAction",
    "TaskLocation",
    "TaskLog",
    "TaskPriority",
    "TaskStatus",
]
