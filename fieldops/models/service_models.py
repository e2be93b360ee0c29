"""Pydantic models for service layer return types.

These models give the service boundary typed results instead of raw database
dictionaries.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime

from pydantic import BaseModel, Field

from fieldops.domain.geofence import LocationEvent
from fieldops.domain.log import TaskAction
from fieldops.domain.task import TaskStatus


class ScheduledJob(BaseModel):
    """Scheduled job definition."""

    id: str
    name: str
    cron: str
    func: Callable[[], Awaitable[None]]


class ForwardingFailure(BaseModel):
    """One task the forwarder could not move."""

    task_id: str
    error: str


class ForwardingResult(BaseModel):
    """Outcome of one overdue-forwarding batch."""

    scanned: int = 0
    forwarded: list[str] = Field(default_factory=list)
    failed: list[ForwardingFailure] = Field(default_factory=list)

    @property
    def forwarded_count(self) -> int:
        return len(self.forwarded)


class ForwardingStats(BaseModel):
    """Counts over tasks the forwarder has touched."""

    pending: int
    forwarded_total: int
    overdue_planned: int


class TransitionFailure(BaseModel):
    """An automatic transition that was attempted and rejected."""

    task_id: str
    action: TaskAction
    error: str


class PositionOutcome(BaseModel):
    """What a single position sample caused."""

    worker_id: str
    events: list[LocationEvent] = Field(default_factory=list)
    started: list[str] = Field(default_factory=list)
    completed: list[str] = Field(default_factory=list)
    failures: list[TransitionFailure] = Field(default_factory=list)


class TaskMetrics(BaseModel):
    """Time figures for one task at a moment."""

    task_id: str
    status: TaskStatus
    elapsed_active_seconds: int
    total_pause_seconds: int
    active_minutes: int
    estimated_minutes: int | None = None
    efficiency: int | None = None
    elapsed_label: str
    measured_at: datetime


class LocationTaskStats(BaseModel):
    """Counts over location-bound tasks."""

    total: int
    active: int
    completed: int
    with_geofence: int
    with_custom_location: int
