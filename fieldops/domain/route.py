"""Route planning domain models."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from fieldops.core.clock import ensure_aware
from fieldops.domain.task import TaskPriority


class RouteCandidate(BaseModel):
    """A location-bound task offered to the sequencer, with one resolved location."""

    task_id: str
    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    reward: float = 0.0
    latitude: float
    longitude: float

    @field_validator("due_date")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_aware(value)


class RouteStop(BaseModel):
    """One chosen stop in a route plan."""

    sequence: int = Field(..., description="1-based position in the route")
    task_id: str
    title: str
    latitude: float
    longitude: float
    distance_from_previous_meters: float
    estimated_minutes: int
    priority_score: float
    score: float
    reward: float


class RoutePlan(BaseModel):
    """Ordered stops plus aggregate figures. Advisory only."""

    stops: list[RouteStop] = Field(default_factory=list)
    total_distance_meters: float = 0.0
    total_execution_minutes: int = 0
    travel_minutes: int = 0
    estimated_duration_minutes: int = 0
    total_reward: float = 0.0
    efficiency: float = Field(default=0.0, description="Reward per hour")

    @property
    def task_ids(self) -> list[str]:
        return [stop.task_id for stop in self.stops]
