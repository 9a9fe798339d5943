"""
Shared pytest fixtures for all tests.

Provides test settings, a controllable clock, the in-memory cache store, a
fake downstream (served through httpx.MockTransport) and a ready-to-use
application client.
"""

import os
from collections.abc import Callable, Generator
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

# Ensure test environment
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ["CACHE_BACKEND"] = "memory"

from gateway.config.settings import Settings  # noqa: E402
from gateway.core.app_factory import create_app  # noqa: E402
from gateway.core.cache.store import MemoryCacheStore  # noqa: E402
from gateway.core.container import GatewayContainer  # noqa: E402

TEST_SECRET = "test-secret-key"

USERS_URL = "http://users-service:3001"
DOCTORS_URL = "http://doctors-service:3002"
APPOINTMENTS_URL = "http://appointments-service:3003"
NOTIFICATIONS_URL = "http://notifications-service:3004"
PAYMENTS_URL = "http://payments-service:3005"


class FakeClock:
    """Epoch clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Handler = Callable[[httpx.Request], httpx.Response]


class FakeDownstream:
    """
    Request handler for httpx.MockTransport.

    Routes are keyed by method and absolute URL (without query string).
    Unrouted requests get a 404. Every request is recorded.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Handler] = {}

    def add(
        self,
        method: str,
        url: str,
        status_code: int = 200,
        json: Any = None,
        handler: Handler | None = None,
    ) -> None:
        target = httpx.URL(url)
        key = (method.upper(), f"{target.scheme}://{target.netloc.decode()}{target.path}")
        if handler is None:

            def handler(request: httpx.Request) -> httpx.Response:
                if json is None:
                    return httpx.Response(status_code)
                return httpx.Response(status_code, json=json)

        self._routes[key] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = request.url
        key = (request.method, f"{url.scheme}://{url.netloc.decode()}{url.path}")
        handler = self._routes.get(key)
        if handler is None:
            return httpx.Response(404, json={"error": "not found"})
        return handler(request)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]


# ============================================================================
# SETTINGS AND STATE FIXTURES
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings for tests: memory cache, no retries, production-like limits."""
    return Settings(
        JWT_SECRET=TEST_SECRET,
        ENVIRONMENT="test",
        CACHE_BACKEND="memory",
        LOG_FORMAT="plain",
        HTTP_CLIENT_MAX_RETRIES=0,
        HEALTH_CHECK_TIMEOUT=2.0,
        USERS_SERVICE_URL=USERS_URL,
        DOCTORS_SERVICE_URL=DOCTORS_URL,
        APPOINTMENTS_SERVICE_URL=APPOINTMENTS_URL,
        NOTIFICATIONS_SERVICE_URL=NOTIFICATIONS_URL,
        PAYMENTS_SERVICE_URL=PAYMENTS_URL,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> MemoryCacheStore:
    return MemoryCacheStore(clock=clock)


@pytest.fixture
def downstream() -> FakeDownstream:
    return FakeDownstream()


# ============================================================================
# APPLICATION FIXTURES
# ============================================================================


@pytest.fixture
def container(settings, memory_store, downstream, clock) -> GatewayContainer:
    return GatewayContainer.build(
        settings,
        store=memory_store,
        transport=httpx.MockTransport(downstream),
        clock=clock,
    )


@pytest.fixture
def app(settings, container):
    return create_app(settings, container)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Test client with the application lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_token(container) -> Callable[..., str]:
    """Issue an access token for the given user claims."""

    def _make_token(user_id: int = 42, role: str = "patient", email: str = "patient@example.com", **claims) -> str:
        payload = {"user_id": user_id, "role": role, "email": email, **claims}
        return container.token_service.generate_access_token(payload)

    return _make_token


@pytest.fixture
def auth_headers(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def admin_headers(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id=1, role='admin', email='admin@example.com')}"}


@pytest.fixture
def doctor_headers(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id=7, role='doctor', email='doctor@example.com')}"}
