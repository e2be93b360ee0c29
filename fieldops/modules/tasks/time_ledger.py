"""Elapsed active time, pause accounting and efficiency for tasks.

Durations are ``timedelta`` inside the engine and whole milliseconds at the
storage boundary. ``decode_duration`` also accepts the two legacy textual
interval encodings (``"123 seconds"`` and ``"H:MM:SS"``) so old rows migrate
without loss.
"""

import logging
import math
import re
from datetime import datetime, timedelta

from fieldops.domain.task import Task, TaskStatus


logger = logging.getLogger(__name__)

_ZERO = timedelta(0)
_SECONDS_PATTERN = re.compile(r"^\s*(\d+)\s*seconds?\s*$")
_HMS_PATTERN = re.compile(r"^\s*(\d+):([0-5]?\d):([0-5]?\d)\s*$")


def encode_duration(value: timedelta) -> int:
    """Encode a duration as whole milliseconds for storage."""
    return value // timedelta(milliseconds=1)


def decode_duration(value: int | float | str | None) -> timedelta:
    """Decode a stored duration.

    Args:
        value: Milliseconds (int/float), a legacy ``"<n> seconds"`` string,
            a legacy ``"H:MM:SS"`` string, or None

    Returns:
        The duration (zero for None)

    Raises:
        ValueError: If the text matches neither legacy form
    """
    if value is None:
        return _ZERO
    if isinstance(value, bool):
        msg = f"Unsupported duration value: {value!r}"
        raise ValueError(msg)
    if isinstance(value, int | float):
        return timedelta(milliseconds=value)

    text = value.strip()
    if text.lstrip("-").isdigit():
        return timedelta(milliseconds=int(text))

    if match := _SECONDS_PATTERN.match(text):
        return timedelta(seconds=int(match.group(1)))

    if match := _HMS_PATTERN.match(text):
        hours, minutes, seconds = (int(part) for part in match.groups())
        return timedelta(hours=hours, minutes=minutes, seconds=seconds)

    msg = f"Unrecognized duration encoding: {value!r}"
    raise ValueError(msg)


def _floor_at_zero(value: timedelta, *, task_id: str, what: str) -> timedelta:
    if value < _ZERO:
        logger.warning(
            "clock_skew_detected",
            extra={"task_id": task_id, "quantity": what, "raw_ms": encode_duration(value)},
        )
        return _ZERO
    return value


def current_pause(task: Task, now: datetime) -> timedelta:
    """Length of the still-open pause, zero unless the task is paused."""
    if task.status != TaskStatus.PAUSED or task.last_pause_at is None:
        return _ZERO
    return _floor_at_zero(now - task.last_pause_at, task_id=task.id, what="open_pause")


def elapsed_active_duration(task: Task, now: datetime) -> timedelta:
    """Active (non-paused) time between first start and completion or now."""
    if task.started_at is None:
        return _ZERO

    end = task.completed_at if task.completed_at is not None else now
    raw = end - task.started_at
    active = raw - task.total_pause_duration - current_pause(task, now)
    return _floor_at_zero(active, task_id=task.id, what="elapsed_active")


def accumulate_pause(task: Task, now: datetime) -> timedelta:
    """Return the pause total after closing the open pause.

    A task with no open pause returns its total unchanged, so calling this twice
    in a row is harmless.
    """
    if task.last_pause_at is None:
        return task.total_pause_duration
    interval = _floor_at_zero(now - task.last_pause_at, task_id=task.id, what="pause_interval")
    return task.total_pause_duration + interval


def apply_accumulated_pause(task: Task, now: datetime) -> dict[str, object]:
    """Field changes that fold the open pause into the total and clear the marker."""
    return {
        "total_pause_duration": accumulate_pause(task, now),
        "last_pause_at": None,
    }


def efficiency_ratio(task: Task, now: datetime) -> int | None:
    """Estimated time as a percentage of active time.

    Returns None when the task never started, has no positive estimate, or has
    no positive active time. Values above 100 mean the task is ahead of its
    estimate and are returned as-is.
    """
    if task.started_at is None or not task.estimated_time or task.estimated_time <= 0:
        return None

    elapsed_ms = encode_duration(elapsed_active_duration(task, now))
    if elapsed_ms <= 0:
        return None

    estimated_ms = task.estimated_time * 60_000
    return math.floor(100 * estimated_ms / elapsed_ms + 0.5)


def active_minutes(task: Task, now: datetime) -> int:
    """Elapsed active time rounded to whole minutes."""
    return math.floor(elapsed_active_duration(task, now) / timedelta(minutes=1) + 0.5)


def format_duration(value: timedelta) -> str:
    """Compact label: ``1h 5m``, ``4m 3s`` or ``12s``."""
    total_seconds = int(value.total_seconds())
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def format_duration_hms(value: timedelta) -> str:
    """Zero-padded ``HH:MM:SS``."""
    total_seconds = int(value.total_seconds())
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
