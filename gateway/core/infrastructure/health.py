"""
Health check aggregation.

Runs named async checks concurrently, each bounded by a timeout, and folds
their results into one overall status.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

HealthCheck = Callable[[], Awaitable[dict[str, Any]]]


class HealthStatus(str, Enum):
    """Health check status."""

    OK = "ok"
    ERROR = "error"
    CIRCUIT_OPEN = "circuit_open"
    DEGRADED = "degraded"
    CRITICAL = "critical"


class HealthChecker:
    """
    Health check manager for gateway dependencies.

    Each check returns a dict containing at least a "status" key.

    Example:
        ```python
        health = HealthChecker(timeout_seconds=5.0)

        @health.register("cache")
        async def check_cache():
            await store.ping()
            return {"status": "ok"}

        results = await health.run_all()
        ```
    """

    def __init__(self, timeout_seconds: float = 5.0):
        self._timeout = timeout_seconds
        self._checks: dict[str, HealthCheck] = {}

    @property
    def names(self) -> list[str]:
        return list(self._checks)

    def register(self, name: str) -> Callable[[HealthCheck], HealthCheck]:
        """Decorator form of add_check."""

        def decorator(func: HealthCheck) -> HealthCheck:
            self._checks[name] = func
            return func

        return decorator

    def add_check(self, name: str, func: HealthCheck) -> None:
        self._checks[name] = func

    async def run_check(self, name: str) -> dict[str, Any]:
        """
        Run a single health check.

        Timeouts and exceptions are reported as an "error" result instead of
        propagating, so one broken dependency cannot fail the whole report.
        """
        if name not in self._checks:
            return {"status": HealthStatus.ERROR.value, "error": f"Health check '{name}' not found"}

        start_time = time.perf_counter()
        try:
            return await asyncio.wait_for(self._checks[name](), timeout=self._timeout)
        except asyncio.TimeoutError:
            return {
                "status": HealthStatus.ERROR.value,
                "error": f"Health check timed out after {self._timeout}s",
                "response_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
            }
        except Exception as e:
            logger.warning(f"Health check '{name}' failed: {e}")
            return {"status": HealthStatus.ERROR.value, "error": str(e)}

    async def run_all(self) -> dict[str, dict[str, Any]]:
        """Run every registered check concurrently."""
        names = list(self._checks)
        results = await asyncio.gather(*(self.run_check(name) for name in names))
        return dict(zip(names, results))


def aggregate_status(results: dict[str, dict[str, Any]]) -> HealthStatus:
    """ok when every check is ok, critical when none is, degraded otherwise."""
    healthy = sum(1 for result in results.values() if result.get("status") == HealthStatus.OK.value)
    if healthy == len(results):
        return HealthStatus.OK
    if healthy == 0:
        return HealthStatus.CRITICAL
    return HealthStatus.DEGRADED


def summarize(results: dict[str, dict[str, Any]]) -> dict[str, int]:
    healthy = sum(1 for result in results.values() if result.get("status") == HealthStatus.OK.value)
    return {
        "total_services": len(results),
        "healthy_services": healthy,
        "unhealthy_services": len(results) - healthy,
    }
