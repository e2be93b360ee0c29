"""Task domain models and enums."""

from datetime import datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator, model_validator

from fieldops.core.clock import ensure_aware


class TaskStatus(StrEnum):
    """Task lifecycle status."""

    PLANNED = "Planned"
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    PAUSED = "Paused"
    COMPLETED = "Completed"
    PENDING = "Pending"


class TaskPriority(StrEnum):
    """Task priority, ordered Low < Medium < High."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @property
    def rank(self) -> int:
        """Ordinal position used for comparisons."""
        return {TaskPriority.LOW: 0, TaskPriority.MEDIUM: 1, TaskPriority.HIGH: 2}[self]


class CompletionType(StrEnum):
    """How completion was evidenced."""

    WITH_PROOF = "with_proof"
    WITHOUT_PROOF = "without_proof"


class TaskLocation(BaseModel):
    """One geographic constraint attached to a task.

    Either ``geofence_id`` points at a reusable geofence (centre and radius are
    read from it at evaluation time) or the inline centre and radius are used.
    """

    id: str = Field(..., description="Unique task location ID")
    task_id: str = Field(..., description="Owning task ID")
    geofence_id: str | None = Field(default=None, description="Referenced geofence ID")
    latitude: float | None = Field(default=None, description="Inline centre latitude (degrees)")
    longitude: float | None = Field(default=None, description="Inline centre longitude (degrees)")
    radius_meters: int | None = Field(default=None, description="Inline radius in meters")
    arrival_required: bool = Field(default=True, description="Worker must check in here to start")
    departure_required: bool = Field(default=False, description="Worker must check out here to complete")
    location_name: str | None = Field(default=None, description="Human-readable location name")
    location_address: str | None = Field(default=None, description="Street address")


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID from database")
    version: int = Field(default=1, description="Optimistic concurrency counter")
    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Detailed task description")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Task priority")
    assigned_to: str | None = Field(default=None, description="Assigned worker ID")
    status: TaskStatus = Field(default=TaskStatus.NOT_STARTED, description="Current lifecycle status")

    start_date: datetime | None = Field(default=None, description="Start of the execution window")
    end_date: datetime | None = Field(default=None, description="End of the execution window")
    due_date: datetime | None = Field(default=None, description="Deadline, may be shifted by forwarding")
    original_due_date: datetime | None = Field(default=None, description="Deadline before the first forward")
    forwarded_at: datetime | None = Field(default=None, description="When the task was last forwarded")

    started_at: datetime | None = Field(default=None, description="First transition into active execution")
    completed_at: datetime | None = Field(default=None, description="When the task reached Completed")
    last_pause_at: datetime | None = Field(default=None, description="Start of the current pause")
    total_pause_duration: timedelta = Field(default=timedelta(0), description="Cumulative paused time")

    estimated_time: int | None = Field(default=None, description="Estimated effort in minutes")
    actual_time: int | None = Field(default=None, description="Active minutes recorded at completion")
    reward: float = Field(default=0.0, description="Monetary reward for the task")
    completion_notes: str | None = Field(default=None, description="Notes left at completion")
    completion_type: CompletionType | None = Field(default=None, description="How completion was evidenced")

    locations: list[TaskLocation] = Field(default_factory=list, description="Required locations")

    @field_validator(
        "start_date",
        "end_date",
        "due_date",
        "original_due_date",
        "forwarded_at",
        "started_at",
        "completed_at",
        "last_pause_at",
    )
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_aware(value)

    @model_validator(mode="after")
    def _check_status_timestamps(self) -> "Task":
        if (self.completed_at is not None) != (self.status == TaskStatus.COMPLETED):
            msg = f"completed_at must be set exactly when status is Completed (status={self.status})"
            raise ValueError(msg)
        if (self.last_pause_at is not None) != (self.status == TaskStatus.PAUSED):
            msg = f"last_pause_at must be set exactly when status is Paused (status={self.status})"
            raise ValueError(msg)
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def gating_locations(self, *, arrival: bool) -> list[TaskLocation]:
        """Locations whose arrival (or departure) gates a transition."""
        if arrival:
            return [loc for loc in self.locations if loc.arrival_required]
        return [loc for loc in self.locations if loc.departure_required]
