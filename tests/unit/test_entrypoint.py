"""Tests for the server launcher."""

from unittest.mock import patch

import pytest

from fieldops import __main__ as entrypoint
from fieldops.core.config import settings


@pytest.mark.unit
def test_main_serves_app_on_configured_address(monkeypatch) -> None:
    """Test the launcher hands the app path and configured address to uvicorn."""
    monkeypatch.setattr(settings, "host", "127.0.0.1")
    monkeypatch.setattr(settings, "port", 9001)

    with patch("fieldops.__main__.uvicorn.run") as mock_run:
        entrypoint.main()

    mock_run.assert_called_once_with("fieldops.main:app", host="127.0.0.1", port=9001)
