"""Pytest configuration and shared fixtures."""

import pytest

from fieldops.core.config import settings


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Point the database at a temporary file and pin the settings tests rely on."""
    monkeypatch.setattr(settings, "sqlite_db_path", str(tmp_path / "fieldops.db"))
    monkeypatch.setattr(settings, "forwarding_timezone", "UTC")
    monkeypatch.setattr(settings, "auto_start_on_arrival", True)
    monkeypatch.setattr(settings, "auto_complete_on_departure", True)
    monkeypatch.setattr(settings, "default_radius_meters", 100)
    return settings
