"""Pytest configuration and fixtures for unit tests."""

from collections.abc import Iterator
from datetime import UTC, datetime

import pytest

from fieldops.core import clock
from fieldops.core.clock import FrozenClock
from fieldops.modules.geo.geofence_detector import presence_tracker
from tests.unit.mocks import InMemoryDBClient


FROZEN_NOW = datetime(2024, 3, 15, 10, 0, tzinfo=UTC)


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches fieldops.core.db_client functions to use InMemoryDBClient."""
    monkeypatch.setattr("fieldops.core.db_client.create_record", in_memory_db.create_record)
    monkeypatch.setattr("fieldops.core.db_client.get_record", in_memory_db.get_record)
    monkeypatch.setattr("fieldops.core.db_client.update_record", in_memory_db.update_record)
    monkeypatch.setattr("fieldops.core.db_client.delete_record", in_memory_db.delete_record)
    monkeypatch.setattr("fieldops.core.db_client.list_records", in_memory_db.list_records)
    monkeypatch.setattr("fieldops.core.db_client.get_first_record", in_memory_db.get_first_record)
    return in_memory_db


@pytest.fixture
def frozen_clock() -> Iterator[FrozenClock]:
    """Install a FrozenClock at FROZEN_NOW for the duration of a test."""
    fake = FrozenClock(FROZEN_NOW)
    previous = clock.set_clock(fake)
    yield fake
    clock.set_clock(previous)


@pytest.fixture(autouse=True)
def reset_presence() -> Iterator[None]:
    """Start every test with no remembered worker presence."""
    presence_tracker.clear()
    yield
    presence_tracker.clear()
