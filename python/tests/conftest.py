"""Pytest configuration and fixtures for Huddle tests.

Test isolation strategy:
- Every test runs against a fresh MemoryStore and InMemoryNotifier
- Settings come from environment variables set per test (memory backends,
  HS256 auth with a fixed secret); the settings cache is reset around each test
- Time is pinned through the `clock` fixture where ordering matters
- API tests use authenticated_client with tokens minted by tests.helpers
"""

import sys
from collections.abc import Generator
from pathlib import Path

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import pytest
from fastapi.testclient import TestClient

from huddle.app import add_request_id_middleware, create_app
from huddle.config import clear_settings_cache
from huddle.realtime import InMemoryNotifier
from huddle.services import users
from huddle.store import MemoryStore
from tests.helpers import TEST_JWT_SECRET, create_test_user_id

TEST_ENV = {
    "HUDDLE_ENV": "test",
    "STORE_BACKEND": "memory",
    "NOTIFIER_BACKEND": "memory",
    "AUTH_JWT_SECRET": TEST_JWT_SECRET,
    "LOG_JSON": "false",
}

CLEARED_ENV = (
    "REDIS_URL",
    "AUTH_JWKS_URL",
    "AUTH_ISSUER",
    "AUTH_AUDIENCES",
    "HUDDLE_INTERNAL_SECRET",
    "DIRECT_CHAT_REQUIRES_FRIENDSHIP",
    "RATE_LIMIT_SEND_PER_WINDOW",
    "RATE_LIMIT_REQUEST_PER_WINDOW",
    "MAX_IMAGE_BYTES",
)


@pytest.fixture(autouse=True)
def test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Point settings at memory backends and a known HS256 secret."""
    for name in CLEARED_ENV:
        monkeypatch.delenv(name, raising=False)
    for name, value in TEST_ENV.items():
        monkeypatch.setenv(name, value)


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


class FakeClock:
    """Controllable replacement for huddle.services.clock.now_ms."""

    def __init__(self, start_ms: int = 1_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Pin service time; advance with clock.advance(ms)."""
    fake = FakeClock()
    monkeypatch.setattr("huddle.services.clock.now_ms", fake)
    return fake


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def make_user(store: MemoryStore):
    """Create a user profile and return its id."""

    def _make(name: str | None = None, email: str | None = None) -> str:
        user_id = str(create_test_user_id())
        users.ensure_profile(store, user_id, name=name, email=email)
        return user_id

    return _make


@pytest.fixture
def client(store: MemoryStore, notifier: InMemoryNotifier) -> Generator[TestClient, None, None]:
    """Provide a FastAPI test client without authentication.

    Suitable for public endpoints and envelope behavior.
    """
    app = create_app(skip_auth_middleware=True, store=store, notifier=notifier)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def authenticated_app(store: MemoryStore, notifier: InMemoryNotifier):
    """Provide a FastAPI app with auth + request-id middleware.

    Tokens are verified with the HS256 test secret; the app shares the
    test's store and notifier so tests can assert on both.
    """
    app = create_app(store=store, notifier=notifier)
    add_request_id_middleware(app, log_requests=False)
    return app


@pytest.fixture
def authenticated_client(authenticated_app) -> Generator[TestClient, None, None]:
    """Provide a FastAPI test client with auth middleware.

    Use auth_headers() to generate valid tokens for requests.
    """
    with TestClient(authenticated_app) as client:
        yield client
