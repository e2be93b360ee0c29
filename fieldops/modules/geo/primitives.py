"""Great-circle distance and circle containment.

This is the only distance implementation in the package; the geofence detector
and the route sequencer both call it.
"""

import math

from fieldops.core.config import Constants
from fieldops.core.errors import InvalidGeometryError


def haversine_distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two points given in degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lng2 - lng1)

    a = math.sin(delta_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return Constants.EARTH_RADIUS_METERS * c


def is_within_radius(distance_meters: float, radius_meters: float) -> bool:
    """Inclusive containment: a point exactly on the boundary is inside."""
    return distance_meters <= radius_meters


def validate_coordinates(latitude: float | None, longitude: float | None) -> None:
    """Raise InvalidGeometryError for missing, non-finite or out-of-range coordinates."""
    if latitude is None or longitude is None:
        msg = "Latitude and longitude are both required"
        raise InvalidGeometryError(msg)
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        msg = f"Coordinates must be finite numbers, got ({latitude}, {longitude})"
        raise InvalidGeometryError(msg)
    if not -90.0 <= latitude <= 90.0:
        msg = f"Latitude {latitude} is outside [-90, 90]"
        raise InvalidGeometryError(msg)
    if not -180.0 <= longitude <= 180.0:
        msg = f"Longitude {longitude} is outside [-180, 180]"
        raise InvalidGeometryError(msg)


def validate_radius(radius_meters: int | None) -> None:
    """Raise InvalidGeometryError unless the radius is a positive integer."""
    if radius_meters is None or isinstance(radius_meters, bool) or not isinstance(radius_meters, int):
        msg = f"Radius must be a positive integer number of meters, got {radius_meters!r}"
        raise InvalidGeometryError(msg)
    if radius_meters < Constants.MIN_RADIUS_METERS:
        msg = f"Radius must be positive, got {radius_meters}"
        raise InvalidGeometryError(msg)
