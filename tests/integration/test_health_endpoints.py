import asyncio

from gateway.core.cache.store import CacheUnavailableError

ALL_SERVICES = {
    "users": "http://users-service:3001",
    "doctors": "http://doctors-service:3002",
    "appointments": "http://appointments-service:3003",
    "notifications": "http://notifications-service:3004",
    "payments": "http://payments-service:3005",
}


def _healthy(downstream, *names):
    for name in names:
        downstream.add("GET", f"{ALL_SERVICES[name]}/health", json={"status": "ok"})


class TestLiveness:
    def test_up(self, client):
        response = client.get("/up")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_gateway_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["service"] == "api-gateway"
        assert body["environment"] == "test"
        assert body["version"] == "1.0.0"
        assert body["checks"]["cache"]["status"] == "ok"
        assert body["checks"]["cache"]["backend"] == "memory"

    def test_gateway_health_degraded_when_cache_down(self, client, memory_store, monkeypatch):
        async def broken_ping():
            raise CacheUnavailableError("connection refused")

        monkeypatch.setattr(memory_store, "ping", broken_ping)

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
        assert response.json()["checks"]["cache"] == {"status": "error", "error": "connection refused"}


class TestServicesHealth:
    def test_all_services_healthy(self, client, downstream):
        _healthy(downstream, *ALL_SERVICES)

        response = client.get("/health/services")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["summary"] == {"total_services": 5, "healthy_services": 5, "unhealthy_services": 0}
        assert body["service"] == "api-gateway"
        users = body["downstream_services"]["users"]
        assert users["url"] == ALL_SERVICES["users"]
        assert users["circuit_state"] == "closed"
        assert users["http_status"] == 200
        assert set(body["circuit_breakers"]) == set(ALL_SERVICES)

    def test_some_services_down_is_degraded(self, client, downstream):
        _healthy(downstream, "users", "doctors")

        response = client.get("/health/services")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["downstream_services"]["payments"]["status"] == "error"
        assert body["summary"]["unhealthy_services"] == 3

    def test_no_service_healthy_is_critical(self, client):
        response = client.get("/health/services")

        assert response.status_code == 503
        assert response.json()["status"] == "critical"

    def test_open_circuit_is_not_probed(self, client, downstream, container):
        _healthy(downstream, *ALL_SERVICES)

        async def open_users_circuit():
            for _ in range(container.breaker.config.failure_threshold):
                await container.breaker.record_failure("users")

        asyncio.run(open_users_circuit())

        response = client.get("/health/services")

        body = response.json()
        assert body["status"] == "degraded"
        assert body["downstream_services"]["users"]["status"] == "circuit_open"
        assert body["downstream_services"]["users"]["circuit_state"] == "open"
        assert body["circuit_breakers"]["users"]["healthy"] is False
        assert downstream.requests_to("/health")
        assert all(request.url.host != "users-service" for request in downstream.requests)

    def test_health_not_rate_limited(self, client):
        for _ in range(120):
            assert client.get("/up").status_code == 200
