"""Tests for health check endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from fieldops.main import app


@pytest.fixture
def client() -> TestClient:
    """Create a test client for FastAPI app."""
    return TestClient(app)


def _status(consecutive_failures: int = 0) -> dict:
    return {
        "job_name": "overdue_forwarding",
        "last_success": "2024-01-01T00:00:00Z",
        "last_failure": None,
        "last_error": None,
        "consecutive_failures": consecutive_failures,
        "success_count": 10,
        "failure_count": consecutive_failures,
        "currently_running": False,
        "current_run_started": None,
    }


@pytest.mark.unit
def test_health_endpoint_returns_healthy(client: TestClient) -> None:
    """Test that health endpoint returns healthy status."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.unit
def test_scheduler_health_endpoint_all_jobs_healthy(client: TestClient) -> None:
    """Test scheduler health endpoint when all jobs are healthy."""
    with patch("fieldops.main.job_tracker") as mock_tracker:
        mock_tracker.get_job_status = AsyncMock(return_value=_status())
        mock_tracker.get_dead_letter_queue = lambda: []

        response = client.get("/health/scheduler")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert set(data["jobs"]) == {"overdue_forwarding", "window_activation"}
        assert data["dead_letter_queue_size"] == 0


@pytest.mark.unit
def test_scheduler_health_endpoint_degraded_with_failures(client: TestClient) -> None:
    """Test scheduler health endpoint when jobs have failures."""
    with patch("fieldops.main.job_tracker") as mock_tracker:
        mock_tracker.get_job_status = AsyncMock(return_value=_status(consecutive_failures=1))
        mock_tracker.get_dead_letter_queue = lambda: []

        response = client.get("/health/scheduler")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"


@pytest.mark.unit
def test_scheduler_health_endpoint_critical_with_dlq(client: TestClient) -> None:
    """Test scheduler health endpoint when jobs are in dead letter queue."""
    mock_dlq = [
        {
            "job_name": "overdue_forwarding",
            "failed_at": "2024-01-01T01:00:00+00:00",
            "error": "Failed after 3 attempts: database is locked",
        }
    ]

    with patch("fieldops.main.job_tracker") as mock_tracker:
        mock_tracker.get_job_status = AsyncMock(return_value=_status(consecutive_failures=3))
        mock_tracker.get_dead_letter_queue = lambda: mock_dlq

        response = client.get("/health/scheduler")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "critical"
        assert data["dead_letter_queue_size"] == 1
        assert len(data["dead_letter_queue"]) == 1
