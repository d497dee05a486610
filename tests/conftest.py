"""Test configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from app import create_app
from services.refresh_queue import RefreshQueue
from services.wiring import build_services
from settings import Settings
from storage.memory_store import MemoryStore

TEST_JWT_SECRET = "test-secret-key-for-the-analytics-service"


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def settings():
    return Settings(
        store_backend="memory",
        jwt_secret=TEST_JWT_SECRET,
        refresh_workers=2,
        refresh_queue_size=100,
        environment="test",
    )


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def refresh_queue():
    queue = RefreshQueue(workers=2, maxsize=1000)
    queue.start()
    yield queue
    queue.stop(drain=False)


@pytest.fixture
def services(store, refresh_queue):
    return build_services(store, refresh_queue)


@pytest.fixture
def client(settings, store):
    app = create_app(settings, store=store)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def app_services(client):
    """The services wired by the running app."""
    return client.app.state.services


@pytest.fixture
def token_for():
    """Mints an HS256 access token for a user."""
    def _token_for(user_id, roles=None, secret=TEST_JWT_SECRET, expires_in=timedelta(minutes=30), **claims):
        payload = {
            "sub": user_id,
            "email": f"{user_id}@example.com",
            "roles": roles or [],
            "exp": datetime.now(timezone.utc) + expires_in,
            **claims,
        }
        return jwt.encode(payload, secret, algorithm="HS256")
    return _token_for


@pytest.fixture
def auth_headers(token_for):
    def _auth_headers(user_id="u1", **kwargs):
        return {"Authorization": f"Bearer {token_for(user_id, **kwargs)}"}
    return _auth_headers
