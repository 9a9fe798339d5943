"""
Gateway and downstream health reporting.
"""

import time
from datetime import datetime, timezone
from typing import Any

from fastapi import status

from gateway.config.settings import Settings
from gateway.core.cache.store import CacheStore
from gateway.core.infrastructure.circuit_breaker import CircuitBreaker
from gateway.core.infrastructure.health import HealthChecker, HealthStatus, aggregate_status, summarize
from gateway.services.http_client import ServiceHttpClient
from gateway.services.service_registry import ServiceRegistry


class HealthService:
    """
    Builds the /health and /health/services payloads.

    Gateway health covers the gateway's own dependencies (the shared cache);
    services health probes every downstream service concurrently, skipping
    those whose circuit is open.
    """

    def __init__(
        self,
        settings: Settings,
        store: CacheStore,
        registry: ServiceRegistry,
        breaker: CircuitBreaker,
        http_client: ServiceHttpClient,
    ):
        self._settings = settings
        self._store = store
        self._registry = registry
        self._breaker = breaker
        self._http = http_client

        self.gateway_checks = HealthChecker(timeout_seconds=settings.HEALTH_CHECK_TIMEOUT)
        self.gateway_checks.add_check("cache", self.check_cache)

        self.service_checks = HealthChecker(timeout_seconds=settings.HEALTH_CHECK_TIMEOUT)
        for name in registry.names:
            self.service_checks.add_check(name, self._service_check(name))

    def _service_check(self, name: str):
        async def check() -> dict[str, Any]:
            return await self.check_service(name)

        return check

    async def check_cache(self) -> dict[str, Any]:
        start_time = time.perf_counter()
        await self._store.ping()
        return {
            "status": HealthStatus.OK.value,
            "backend": self._store.backend,
            "response_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
        }

    async def check_service(self, name: str) -> dict[str, Any]:
        result: dict[str, Any] = {
            "url": self._registry.url_for(name),
            "circuit_state": (await self._breaker.circuit_state(name)).value,
        }
        if not await self._breaker.allow_request(name):
            return {**result, "status": HealthStatus.CIRCUIT_OPEN.value, "error": "Circuit breaker is open"}
        return {**result, **await self._http.health_check(name)}

    async def gateway_health(self) -> tuple[dict[str, Any], int]:
        """Return the /health payload and its HTTP status."""
        checks = await self.gateway_checks.run_all()
        all_ok = all(check.get("status") == HealthStatus.OK.value for check in checks.values())
        payload = {
            "status": HealthStatus.OK.value if all_ok else HealthStatus.DEGRADED.value,
            "service": self._settings.SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": self._settings.VERSION,
            "environment": self._settings.ENVIRONMENT,
            "checks": checks,
        }
        return payload, status.HTTP_200_OK if all_ok else status.HTTP_503_SERVICE_UNAVAILABLE

    async def services_health(self) -> tuple[dict[str, Any], int]:
        """Return the /health/services payload and its HTTP status."""
        services = await self.service_checks.run_all()
        overall = aggregate_status(services)
        payload = {
            "status": overall.value,
            "service": self._settings.SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "downstream_services": services,
            "circuit_breakers": await self._breaker.circuit_status(),
            "summary": summarize(services),
        }
        http_status = status.HTTP_503_SERVICE_UNAVAILABLE if overall == HealthStatus.CRITICAL else status.HTTP_200_OK
        return payload, http_status
