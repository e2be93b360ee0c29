"""Log domain models for audit trail."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class TaskAction(StrEnum):
    """Action names written to the transition log."""

    START = "start"
    RESUME = "resume"
    PAUSE = "pause"
    COMPLETED = "completed"
    ACTIVATED = "activated"
    RETURNED_TO_PLANNED = "returned_to_planned"


class TaskLog(BaseModel):
    """Task log entry for the audit trail. Write-only from the engine's side."""

    model_config = ConfigDict(frozen=True)

    task_id: str = Field(..., description="ID of task this log relates to")
    action: TaskAction = Field(..., description="Action performed")
    timestamp: datetime = Field(..., description="When the action occurred")
    worker_id: str | None = Field(default=None, description="Worker or actor who triggered it")
    notes: str | None = Field(default=None, description="Additional notes about the action")
