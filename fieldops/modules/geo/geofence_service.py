"""Geofence store: named reusable circles, soft-deactivated rather than deleted."""

import logging
from typing import Any

from fieldops.core import db_client
from fieldops.core.logging import span
from fieldops.domain.geofence import Geofence, Position
from fieldops.domain.task import TaskStatus
from fieldops.models.service_models import LocationTaskStats
from fieldops.modules.geo import primitives
from fieldops.modules.tasks import service as task_service


logger = logging.getLogger(__name__)

GEOFENCES = "geofences"

_ACTIVE_STATUSES = {TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS, TaskStatus.PAUSED, TaskStatus.PENDING}


def record_to_geofence(record: dict[str, Any]) -> Geofence:
    """Convert a geofences row into a Geofence."""
    return Geofence(
        id=record["id"],
        name=record["name"],
        description=record.get("description"),
        center_latitude=record["center_latitude"],
        center_longitude=record["center_longitude"],
        radius_meters=record["radius_meters"],
        is_active=bool(record.get("is_active", True)),
    )


async def create_geofence(
    *,
    name: str,
    center_latitude: float,
    center_longitude: float,
    radius_meters: int,
    description: str | None = None,
) -> Geofence:
    """Create an active geofence.

    Raises:
        InvalidGeometryError: If the centre or radius is invalid
        db_client.DatabaseError: If database operation fails
    """
    with span("geofence_service.create_geofence"):
        primitives.validate_coordinates(center_latitude, center_longitude)
        primitives.validate_radius(radius_meters)

        record = await db_client.create_record(
            collection=GEOFENCES,
            data={
                "name": name,
                "description": description,
                "center_latitude": center_latitude,
                "center_longitude": center_longitude,
                "radius_meters": radius_meters,
                "is_active": True,
            },
        )
        logger.info("Created geofence: %s (%dm)", name, radius_meters)
        return record_to_geofence(record)


async def get_geofence(*, geofence_id: str) -> Geofence:
    """Fetch a geofence, active or not.

    Raises:
        db_client.RecordNotFoundError: If no geofence has this id
    """
    record = await db_client.get_record(collection=GEOFENCES, record_id=geofence_id)
    return record_to_geofence(record)


async def update_geofence(
    *,
    geofence_id: str,
    name: str | None = None,
    description: str | None = None,
    center_latitude: float | None = None,
    center_longitude: float | None = None,
    radius_meters: int | None = None,
) -> Geofence:
    """Change a geofence in place. Task locations referencing it see the change on their next evaluation.

    Raises:
        InvalidGeometryError: If the resulting centre or radius is invalid
        db_client.RecordNotFoundError: If no geofence has this id
    """
    with span("geofence_service.update_geofence"):
        current = await get_geofence(geofence_id=geofence_id)

        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        if center_latitude is not None or center_longitude is not None:
            latitude = center_latitude if center_latitude is not None else current.center_latitude
            longitude = center_longitude if center_longitude is not None else current.center_longitude
            primitives.validate_coordinates(latitude, longitude)
            changes.update(center_latitude=latitude, center_longitude=longitude)
        if radius_meters is not None:
            primitives.validate_radius(radius_meters)
            changes["radius_meters"] = radius_meters

        if not changes:
            return current

        record = await db_client.update_record(collection=GEOFENCES, record_id=geofence_id, data=changes)
        logger.info("Updated geofence %s: %s", geofence_id, ", ".join(sorted(changes)))
        return record_to_geofence(record)


async def deactivate_geofence(*, geofence_id: str) -> Geofence:
    """Soft-deactivate a geofence. It stays readable but no longer contains any point."""
    with span("geofence_service.deactivate_geofence"):
        record = await db_client.update_record(collection=GEOFENCES, record_id=geofence_id, data={"is_active": False})
        logger.info("Deactivated geofence %s", geofence_id)
        return record_to_geofence(record)


async def list_active_geofences() -> list[Geofence]:
    """All active geofences, by name."""
    records = await db_client.list_all_records(
        collection=GEOFENCES,
        filter_query='is_active = "true"',
        sort="name ASC",
    )
    return [record_to_geofence(record) for record in records]


async def find_containing_geofences(position: Position) -> list[tuple[Geofence, float]]:
    """Active geofences that contain a point, nearest centre first, with the distance in meters."""
    with span("geofence_service.find_containing_geofences"):
        primitives.validate_coordinates(position.latitude, position.longitude)

        matches = []
        for geofence in await list_active_geofences():
            distance = primitives.haversine_distance_meters(
                position.latitude, position.longitude, geofence.center_latitude, geofence.center_longitude
            )
            if primitives.is_within_radius(distance, geofence.radius_meters):
                matches.append((geofence, distance))

        matches.sort(key=lambda match: match[1])
        return matches


async def location_task_stats() -> LocationTaskStats:
    """Counts over tasks that carry at least one location."""
    with span("geofence_service.location_task_stats"):
        tasks = [task for task in await task_service.list_tasks() if task.locations]
        return LocationTaskStats(
            total=len(tasks),
            active=sum(1 for task in tasks if task.status in _ACTIVE_STATUSES),
            completed=sum(1 for task in tasks if task.status == TaskStatus.COMPLETED),
            with_geofence=sum(1 for task in tasks if any(loc.geofence_id for loc in task.locations)),
            with_custom_location=sum(1 for task in tasks if any(not loc.geofence_id for loc in task.locations)),
        )
