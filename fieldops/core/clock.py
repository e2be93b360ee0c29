"""Injectable "now" source so all time math can be made deterministic."""

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Anything that can tell the current time."""

    def now(self) -> datetime:
        """Return the current timezone-aware time."""
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, current: datetime) -> None:
        if current.tzinfo is None:
            current = current.replace(tzinfo=UTC)
        self._current = current

    def now(self) -> datetime:
        return self._current

    def advance(self, delta: timedelta) -> datetime:
        """Move the clock forward and return the new time."""
        self._current += delta
        return self._current

    def set(self, current: datetime) -> None:
        """Jump to an absolute time."""
        self._current = current


_clock: Clock = SystemClock()


def set_clock(clock: Clock) -> Clock:
    """Install a clock process-wide and return the previous one."""
    global _clock  # noqa: PLW0603
    previous = _clock
    _clock = clock
    return previous


def get_clock() -> Clock:
    """Return the installed clock."""
    return _clock


def now() -> datetime:
    """Current time from the installed clock."""
    return _clock.now()


def ensure_aware(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
