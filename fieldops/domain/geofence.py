"""Geofence, position and location event domain models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fieldops.core.clock import ensure_aware


class LocationEventType(StrEnum):
    """Edge crossed by a worker relative to a task location."""

    ARRIVAL = "arrival"
    DEPARTURE = "departure"


class Geofence(BaseModel):
    """Named, reusable circular area."""

    id: str = Field(..., description="Unique geofence ID")
    name: str = Field(..., description="Display name")
    description: str | None = Field(default=None, description="Free-form description")
    center_latitude: float = Field(..., description="Centre latitude (degrees)")
    center_longitude: float = Field(..., description="Centre longitude (degrees)")
    radius_meters: int = Field(..., description="Radius in meters")
    is_active: bool = Field(default=True, description="Soft-deactivation flag")


class Position(BaseModel):
    """A point in degrees latitude/longitude."""

    latitude: float
    longitude: float


class PositionSample(BaseModel):
    """One report from a worker's position stream."""

    worker_id: str
    latitude: float
    longitude: float
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @property
    def position(self) -> Position:
        return Position(latitude=self.latitude, longitude=self.longitude)


class LocationEvent(BaseModel):
    """Immutable fact: a worker entered or left a task's required area."""

    model_config = ConfigDict(frozen=True)

    id: str | None = Field(default=None, description="Database ID once stored")
    task_id: str
    task_location_id: str
    worker_id: str
    event_type: LocationEventType
    latitude: float
    longitude: float
    distance_meters: float | None = None
    geofence_id: str | None = None
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return ensure_aware(value)
