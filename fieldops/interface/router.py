"""HTTP surface for task transitions, position reports, routing and forwarding."""

import logging
from typing import NoReturn

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from fieldops.core.config import Constants
from fieldops.core.errors import (
    ConcurrentModificationError,
    InvalidGeometryError,
    InvalidTransitionError,
    LocationRequiredError,
    classify_error_with_response,
)
from fieldops.domain.geofence import Position, PositionSample
from fieldops.domain.log import TaskAction
from fieldops.domain.route import RoutePlan
from fieldops.domain.task import CompletionType, Task
from fieldops.models.service_models import ForwardingResult, ForwardingStats, PositionOutcome, TaskMetrics
from fieldops.modules.geo import geofence_detector
from fieldops.modules.routing import sequencer
from fieldops.modules.tasks import forwarder, service


logger = logging.getLogger(__name__)

router = APIRouter(tags=["fieldops"])

# URL action name -> state machine action
ACTION_PATHS: dict[str, TaskAction] = {
    "start": TaskAction.START,
    "pause": TaskAction.PAUSE,
    "resume": TaskAction.RESUME,
    "complete": TaskAction.COMPLETED,
    "activate": TaskAction.ACTIVATED,
    "return-to-planned": TaskAction.RETURNED_TO_PLANNED,
}


class TransitionRequest(BaseModel):
    """Optional body for a transition call."""

    worker_id: str | None = None
    notes: str | None = None
    completion_type: CompletionType = CompletionType.WITHOUT_PROOF


class RoutePlanRequest(BaseModel):
    """Where the worker is and, optionally, which of their tasks to include."""

    worker_id: str
    latitude: float
    longitude: float
    task_ids: list[str] | None = Field(default=None, description="Restrict the plan to these tasks")


def _raise_http_error(exc: Exception) -> NoReturn:
    """Translate an engine failure into an HTTP error with a structured body."""
    response = classify_error_with_response(exc)
    if isinstance(exc, InvalidTransitionError | LocationRequiredError | ConcurrentModificationError):
        status_code = Constants.HTTP_CONFLICT
    elif isinstance(exc, InvalidGeometryError):
        status_code = Constants.HTTP_UNPROCESSABLE_ENTITY
    elif isinstance(exc, KeyError):
        status_code = Constants.HTTP_NOT_FOUND
    else:
        status_code = Constants.HTTP_INTERNAL_SERVER_ERROR

    logger.info("request_rejected", extra={"code": response.code, "status_code": status_code})
    raise HTTPException(status_code=status_code, detail=response.model_dump(mode="json")) from exc


@router.post("/tasks/{task_id}/{action}")
async def transition(task_id: str, action: str, body: TransitionRequest | None = None) -> Task:
    """Apply a lifecycle action to a task."""
    task_action = ACTION_PATHS.get(action)
    if task_action is None:
        raise HTTPException(status_code=Constants.HTTP_NOT_FOUND, detail=f"Unknown action: {action}")

    body = body or TransitionRequest()
    try:
        return await service.transition_task(
            task_id=task_id,
            action=task_action,
            worker_id=body.worker_id,
            notes=body.notes,
            completion_type=body.completion_type,
        )
    except (InvalidTransitionError, LocationRequiredError, ConcurrentModificationError, KeyError) as e:
        _raise_http_error(e)


@router.get("/tasks/{task_id}/metrics")
async def task_metrics(task_id: str) -> TaskMetrics:
    """Elapsed active time and efficiency for a task."""
    try:
        return await service.get_task_metrics(task_id=task_id)
    except KeyError as e:
        _raise_http_error(e)


@router.post("/positions")
async def report_position(sample: PositionSample) -> PositionOutcome:
    """Feed one position sample to the geofence detector."""
    try:
        return await geofence_detector.process_position(sample)
    except InvalidGeometryError as e:
        _raise_http_error(e)


@router.post("/routes/plan")
async def plan_route(request: RoutePlanRequest) -> RoutePlan:
    """Advisory visiting order over a worker's Not Started tasks."""
    try:
        return await sequencer.plan_route_for_worker(
            worker_id=request.worker_id,
            position=Position(latitude=request.latitude, longitude=request.longitude),
            task_ids=request.task_ids,
        )
    except InvalidGeometryError as e:
        _raise_http_error(e)


@router.post("/forwarding/run")
async def run_forwarding() -> ForwardingResult:
    """Run the overdue forwarder now."""
    return await forwarder.forward_overdue_tasks()


@router.get("/forwarding/stats")
async def get_forwarding_stats() -> ForwardingStats:
    """Pending and forwarded task counts."""
    return await forwarder.forwarding_stats()
