"""Shared test configuration."""

import os
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient


# Settings are cached on first use, so the environment is set before any
# threadkeeper import.
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_REQUESTS", "false")
os.environ.setdefault(
    "LOG_DIR", str(Path(tempfile.gettempdir()) / "threadkeeper-test-logs")
)


@pytest.fixture
def client() -> TestClient:
    """Test client without the Cassandra lifespan."""
    from threadkeeper.main import create_app

    return TestClient(create_app())
