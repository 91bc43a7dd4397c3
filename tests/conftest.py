"""Shared fixtures: isolated store/notifier and a patched httpx client."""

import os

# Keep the scheduler and Supabase out of tests
os.environ["APP_ENV"] = "test"
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_KEY"] = ""
os.environ["STATUS_WEBHOOK_URL"] = ""
os.environ["GITHUB_TOKEN"] = ""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from devdash.notifier import ALL_SOURCES_CHANNEL, StatusNotifier
from devdash.storage import InMemoryStore

FIXTURES = Path(__file__).parent / "fixtures"


def load_fixture(name: str):
    path = FIXTURES / name
    if path.suffix == ".json":
        return json.loads(path.read_text())
    return path.read_text()


@pytest.fixture
def fixture_data():
    return load_fixture


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def notifier() -> StatusNotifier:
    return StatusNotifier(webhook_url="")


@pytest.fixture
def status_events(notifier):
    """Every event published on the all-sources channel, in order."""
    events = []
    notifier.subscribe(ALL_SOURCES_CHANNEL, events.append)
    return events


@pytest.fixture
def mock_response():
    def _make(data=None, status_code: int = 200, text: str = "", content: bytes = b"", headers=None):
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = data
        response.text = text
        response.content = content
        response.headers = headers or {}
        return response

    return _make


@pytest.fixture
def http_client():
    """Patch httpx.AsyncClient; tests set ``http_client.get`` behaviour."""
    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        mock_client_class.return_value = mock_client
        mock_client.client_class = mock_client_class
        yield mock_client
