"""
Pytest configuration and shared test helpers for backend tests.
"""
import os

# Skip heavy server startup (MongoDB, scheduler) when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")

import pytest

# Shared TestClient fixture so tests can use in-process requests without a running server.
from fastapi.testclient import TestClient
from server import app

TEST_API_KEY = "test-cron-key"


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Use for unit-style API tests."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def api_key(monkeypatch):
    """Configure CRON_API_KEY and return the matching request headers."""
    monkeypatch.setenv("CRON_API_KEY", TEST_API_KEY)
    return {"X-API-Key": TEST_API_KEY}
