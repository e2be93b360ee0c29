"""Typed failures raised by the task engine and their classification for callers."""

from enum import Enum

from pydantic import BaseModel


class FieldOpsError(Exception):
    """Base class for recoverable engine failures surfaced to callers."""

    code: str = "ERR_UNKNOWN"


class InvalidTransitionError(FieldOpsError, ValueError):
    """A transition was attempted from or into an incompatible status."""

    code = "ERR_INVALID_STATE_TRANSITION"

    def __init__(self, *, task_id: str, action: str, current_status: str) -> None:
        self.task_id = task_id
        self.action = action
        self.current_status = current_status
        super().__init__(f"Cannot {action}: task {task_id} is in {current_status} state")


class LocationRequiredError(FieldOpsError):
    """Start or completion blocked until an arrival/departure is observed."""

    code = "ERR_LOCATION_REQUIRED"

    def __init__(self, *, task_id: str, event_type: str, task_location_ids: list[str]) -> None:
        self.task_id = task_id
        self.event_type = event_type
        self.task_location_ids = task_location_ids
        locations = ", ".join(task_location_ids)
        super().__init__(f"Task {task_id} requires a recorded {event_type} at one of: {locations}")


class ConcurrentModificationError(FieldOpsError):
    """The stored record changed between read and write."""

    code = "ERR_CONCURRENT_MODIFICATION"

    def __init__(self, *, collection: str, record_id: str, expected_version: int) -> None:
        self.collection = collection
        self.record_id = record_id
        self.expected_version = expected_version
        super().__init__(
            f"Record {record_id} in {collection} was modified concurrently (expected version {expected_version})"
        )


class InvalidGeometryError(FieldOpsError, ValueError):
    """Non-positive radius or out-of-range coordinates."""

    code = "ERR_INVALID_GEOMETRY"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Task lifecycle errors
    ERR_INVALID_STATE_TRANSITION = InvalidTransitionError.code
    ERR_LOCATION_REQUIRED = LocationRequiredError.code
    ERR_CONCURRENT_MODIFICATION = ConcurrentModificationError.code

    # Geometry errors
    ERR_INVALID_GEOMETRY = InvalidGeometryError.code

    # Lookup errors
    ERR_NOT_FOUND = "ERR_NOT_FOUND"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity
    current_status: str | None = None


def classify_error_with_response(exception: Exception) -> ErrorResponse:
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, InvalidTransitionError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_STATE_TRANSITION,
            message=str(exception),
            suggestion="Refresh the task and pick an action valid for its current status.",
            severity=ErrorSeverity.LOW,
            current_status=exception.current_status,
        )

    if isinstance(exception, LocationRequiredError):
        return ErrorResponse(
            code=ErrorCode.ERR_LOCATION_REQUIRED,
            message=str(exception),
            suggestion=f"Report a position inside the task location to record the {exception.event_type}.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, ConcurrentModificationError):
        return ErrorResponse(
            code=ErrorCode.ERR_CONCURRENT_MODIFICATION,
            message=str(exception),
            suggestion="Reload the task and retry the operation.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, InvalidGeometryError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_GEOMETRY,
            message=str(exception),
            suggestion="Use latitude in [-90, 90], longitude in [-180, 180] and a positive radius.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, KeyError):
        return ErrorResponse(
            code=ErrorCode.ERR_NOT_FOUND,
            message="Record not found.",
            suggestion="Check the identifier and try again.",
            severity=ErrorSeverity.LOW,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )
