"""
Pytest configuration and shared fixtures.

The test environment is set here before any app import so the cached
settings, the engine and the app all see it. The reaper is disabled for
API tests; reaper behavior is tested by calling it directly.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_chatroom.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("REAPER_ENABLED", "false")

import pytest

# Clear settings cache before any app imports to ensure test env vars are used
from chatroom.config import get_settings
get_settings.cache_clear()

from fastapi.testclient import TestClient

from chatroom.storage import Base, engine, init_db


@pytest.fixture(scope="function")
def db():
    """Fresh schema for each test."""
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """Create test client with fresh database for each test."""
    from chatroom.main import app

    with TestClient(app) as test_client:
        yield test_client
