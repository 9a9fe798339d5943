import httpx
import pytest
from fastapi.testclient import TestClient

from gateway.core.app_factory import create_app

DOCTORS = "http://doctors-service:3002"
USERS = "http://users-service:3001"


def _raise(exc: Exception):
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc

    return handler


class TestRouting:
    def test_unknown_api_path(self, client):
        response = client.get("/api/v1/prescriptions")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "route_not_found"
        assert body["message"] == "The requested endpoint does not exist."
        assert body["request_id"] == response.headers["X-Request-ID"]
        assert "timestamp" in body

    def test_unknown_path_outside_api(self, client):
        response = client.get("/wp-admin")

        assert response.status_code == 404
        assert response.json()["error"] == "route_not_found"

    def test_method_not_allowed(self, client):
        response = client.patch("/up")

        assert response.status_code == 405
        assert response.json()["error"] == "method_not_allowed"

    def test_cors_headers(self, client):
        response = client.get("/up", headers={"Origin": "https://app.mediconnect.example"})

        assert response.headers["access-control-allow-origin"] == "*"

    def test_generated_request_id(self, client):
        response = client.get("/up", headers={"X-Request-ID": "not a valid id!"})

        request_id = response.headers["X-Request-ID"]
        assert request_id != "not a valid id!"
        assert "-" in request_id


class TestDownstreamFailures:
    def test_unreachable_service(self, client, downstream):
        downstream.add("GET", f"{DOCTORS}/api/v1/doctors", handler=_raise(httpx.ConnectError("connection refused")))

        response = client.get("/api/v1/doctors")

        assert response.status_code == 503
        assert response.json()["error"] == "service_unavailable"

    def test_timeout(self, client, downstream):
        downstream.add("GET", f"{DOCTORS}/api/v1/doctors", handler=_raise(httpx.ReadTimeout("too slow")))

        response = client.get("/api/v1/doctors")

        assert response.status_code == 504
        assert response.json()["error"] == "request_timeout"

    def test_circuit_opens_after_repeated_failures(self, client, downstream):
        downstream.add("GET", f"{DOCTORS}/api/v1/doctors", handler=_raise(httpx.ConnectError("connection refused")))

        for _ in range(5):
            assert client.get("/api/v1/doctors").status_code == 503

        response = client.get("/api/v1/doctors")

        assert response.status_code == 503
        assert response.json()["error"] == "service_circuit_open"
        assert response.headers["Retry-After"] == "30"
        assert len(downstream.requests_to("/api/v1/doctors")) == 5

    def test_open_circuit_is_per_service(self, client, downstream):
        downstream.add("GET", f"{DOCTORS}/api/v1/doctors", handler=_raise(httpx.ConnectError("connection refused")))
        downstream.add("POST", f"{USERS}/api/v1/users", status_code=201, json={"id": 1})

        for _ in range(5):
            client.get("/api/v1/doctors")

        assert client.post("/api/v1/users", json={"email": "a@b.c"}).status_code == 201

    def test_downstream_validation_error_is_mirrored(self, client, downstream):
        errors = {"errors": {"email": ["has already been taken"]}}
        downstream.add("POST", f"{USERS}/api/v1/users", status_code=422, json=errors)

        response = client.post("/api/v1/users", json={"email": "taken@example.com"})

        assert response.status_code == 422
        assert response.json() == errors

    def test_non_json_downstream_body_is_wrapped(self, client, downstream):
        downstream.add(
            "GET",
            f"{DOCTORS}/api/v1/doctors",
            handler=lambda request: httpx.Response(502, text="Bad Gateway"),
        )

        response = client.get("/api/v1/doctors")

        assert response.status_code == 502
        assert response.json() == {"raw": "Bad Gateway"}


class TestUnhandledErrors:
    @pytest.fixture
    def boom_app(self, app):
        @app.get("/boom")
        async def boom():
            raise RuntimeError("kaboom")

        return app

    def test_details_outside_production(self, boom_app):
        with TestClient(boom_app, raise_server_exceptions=False) as test_client:
            response = test_client.get("/boom")

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "internal_server_error"
        assert body["message"] == "kaboom"
        assert body["details"]
        assert body["request_id"]

    def test_generic_message_in_production(self, settings, container):
        production = settings.model_copy(update={"ENVIRONMENT": "production"})
        app = create_app(production, container)

        @app.get("/boom")
        async def boom():
            raise RuntimeError("kaboom")

        with TestClient(app, raise_server_exceptions=False) as test_client:
            response = test_client.get("/boom")

        assert response.status_code == 500
        body = response.json()
        assert body["message"] == "An unexpected error occurred. Please try again later."
        assert "details" not in body
        assert body["request_id"]
