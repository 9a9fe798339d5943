"""
Circuit Breaker Pattern Implementation

Prevents cascading failures by detecting repeated failures of a downstream
service and temporarily refusing requests to it.

State is kept in the shared cache store rather than in process memory, so
all gateway workers see the same circuit for a given service:

    circuit:<service>:state       "open" / "half_open" (absent = closed)
    circuit:<service>:failures    failure counter, expires after failure_window
    circuit:<service>:successes   successes observed while half-open
    circuit:<service>:opened_at   epoch seconds of the last transition to open

If the cache cannot be reached the breaker fails open: every circuit reads as
closed and writes are skipped.
"""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from gateway.config.settings import Settings
from gateway.core.cache.store import CacheStore, CacheUnavailableError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation, requests pass through
    OPEN = "open"  # Failure threshold exceeded, requests blocked
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breakers."""

    failure_threshold: int = 5  # Failures before opening circuit
    success_threshold: int = 2  # Successes in half-open to close
    open_timeout: int = 30  # Seconds before attempting recovery
    failure_window: int = 60  # Seconds a failure is remembered

    @classmethod
    def from_settings(cls, settings: Settings) -> "CircuitBreakerConfig":
        return cls(
            failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
            success_threshold=settings.CIRCUIT_SUCCESS_THRESHOLD,
            open_timeout=settings.CIRCUIT_OPEN_TIMEOUT,
            failure_window=settings.CIRCUIT_FAILURE_WINDOW,
        )


class CircuitBreaker:
    """
    Cache-backed circuit breaker keyed by service name.

    States:
    - CLOSED: Normal operation, all requests pass through
    - OPEN: Failure threshold reached, all requests rejected
    - HALF_OPEN: Testing recovery, requests allowed until they succeed or fail

    Example:
        ```python
        breaker = CircuitBreaker(store, services=["users", "doctors"])

        if not await breaker.allow_request("users"):
            raise CircuitOpen("users")
        try:
            response = await send()
        except httpx.TransportError:
            await breaker.record_failure("users")
            raise
        await breaker.record_success("users")
        ```
    """

    KEY_PREFIX = "circuit"

    def __init__(
        self,
        store: CacheStore,
        config: CircuitBreakerConfig | None = None,
        services: Iterable[str] = (),
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize circuit breaker.

        Args:
            store: Shared cache holding circuit state
            config: Thresholds and timeouts
            services: Names reported by circuit_status() and reset_all_circuits()
            clock: Source of epoch seconds
        """
        self._store = store
        self.config = config or CircuitBreakerConfig()
        self._services = list(services)
        self._clock = clock

    @property
    def services(self) -> list[str]:
        return list(self._services)

    def _key(self, name: str, suffix: str) -> str:
        return f"{self.KEY_PREFIX}:{name}:{suffix}"

    def _keys(self, name: str) -> list[str]:
        return [self._key(name, suffix) for suffix in ("state", "failures", "successes", "opened_at")]

    def _cache_unavailable(self, name: str, operation: str, error: Exception) -> None:
        logger.warning(
            f"Circuit breaker cache unavailable during {operation} for '{name}': {error}",
            extra={"extra_data": {"event": "circuit_cache_unavailable", "service": name, "operation": operation}},
        )

    async def _read_int(self, key: str) -> int:
        value = await self._store.get(key)
        return int(value) if value is not None else 0

    async def circuit_state(self, name: str) -> CircuitState:
        """Return the current state; closed when nothing is stored or the cache is down."""
        try:
            state = await self._store.get(self._key(name, "state"))
        except CacheUnavailableError as e:
            self._cache_unavailable(name, "circuit_state", e)
            return CircuitState.CLOSED
        if state == CircuitState.OPEN.value:
            return CircuitState.OPEN
        if state == CircuitState.HALF_OPEN.value:
            return CircuitState.HALF_OPEN
        return CircuitState.CLOSED

    async def allow_request(self, name: str) -> bool:
        """
        Decide whether a request to the service may be sent.

        An open circuit whose timeout has elapsed moves to half-open and lets
        the request through as a probe.
        """
        state = await self.circuit_state(name)
        if state != CircuitState.OPEN:
            return True

        if await self._open_timeout_elapsed(name):
            await self._transition_to(name, CircuitState.HALF_OPEN)
            return True
        return False

    async def _open_timeout_elapsed(self, name: str) -> bool:
        try:
            opened_at = await self._store.get(self._key(name, "opened_at"))
        except CacheUnavailableError as e:
            self._cache_unavailable(name, "open_timeout_elapsed", e)
            return True
        if opened_at is None:
            return True
        return self._clock() - float(opened_at) >= self.config.open_timeout

    async def retry_after(self, name: str) -> int | None:
        """Seconds until an open circuit will accept a probe, None if not open."""
        if await self.circuit_state(name) != CircuitState.OPEN:
            return None
        try:
            opened_at = await self._store.get(self._key(name, "opened_at"))
        except CacheUnavailableError as e:
            self._cache_unavailable(name, "retry_after", e)
            return None
        if opened_at is None:
            return 0
        remaining = self.config.open_timeout - (self._clock() - float(opened_at))
        return max(int(remaining + 0.999), 0)

    async def record_success(self, name: str) -> None:
        """Record a successful request."""
        state = await self.circuit_state(name)
        try:
            if state == CircuitState.HALF_OPEN:
                successes = await self._store.incr(self._key(name, "successes"))
                if successes >= self.config.success_threshold:
                    await self._transition_to(name, CircuitState.CLOSED)
            elif state == CircuitState.CLOSED:
                await self._store.delete(self._key(name, "failures"))
        except CacheUnavailableError as e:
            self._cache_unavailable(name, "record_success", e)

    async def record_failure(self, name: str) -> None:
        """Record a failed request."""
        state = await self.circuit_state(name)
        try:
            if state == CircuitState.CLOSED:
                failures = await self._store.incr(self._key(name, "failures"), expire=self.config.failure_window)
                if failures >= self.config.failure_threshold:
                    await self._transition_to(name, CircuitState.OPEN)
            elif state == CircuitState.HALF_OPEN:
                # Any failure in half-open goes back to open
                await self._transition_to(name, CircuitState.OPEN)
        except CacheUnavailableError as e:
            self._cache_unavailable(name, "record_failure", e)

    async def _transition_to(self, name: str, new_state: CircuitState) -> None:
        """Move a circuit to a new state in one atomic write."""
        try:
            if new_state == CircuitState.OPEN:
                await self._store.write_batch(
                    set={
                        self._key(name, "state"): CircuitState.OPEN.value,
                        self._key(name, "opened_at"): self._clock(),
                    },
                    delete=[self._key(name, "successes")],
                )
            elif new_state == CircuitState.HALF_OPEN:
                await self._store.write_batch(
                    set={self._key(name, "state"): CircuitState.HALF_OPEN.value},
                    delete=[self._key(name, "successes")],
                )
            else:
                await self._store.write_batch(delete=self._keys(name))
        except CacheUnavailableError as e:
            self._cache_unavailable(name, "transition", e)
            return

        log_level = logging.WARNING if new_state == CircuitState.OPEN else logging.INFO
        logger.log(
            log_level,
            f"Circuit breaker '{name}' is now {new_state.value}",
            extra={"extra_data": {"event": "circuit_state_change", "service": name, "new_state": new_state.value}},
        )

    async def healthy(self, name: str) -> bool:
        return await self.circuit_state(name) != CircuitState.OPEN

    async def failure_count(self, name: str) -> int:
        try:
            return await self._read_int(self._key(name, "failures"))
        except CacheUnavailableError as e:
            self._cache_unavailable(name, "failure_count", e)
            return 0

    async def success_count(self, name: str) -> int:
        try:
            return await self._read_int(self._key(name, "successes"))
        except CacheUnavailableError as e:
            self._cache_unavailable(name, "success_count", e)
            return 0

    async def get_status(self, name: str) -> dict[str, Any]:
        state = await self.circuit_state(name)
        return {
            "state": state.value,
            "failures": await self.failure_count(name),
            "successes": await self.success_count(name),
            "healthy": state != CircuitState.OPEN,
        }

    async def circuit_status(self) -> dict[str, dict[str, Any]]:
        """Status of every registered service."""
        return {name: await self.get_status(name) for name in self._services}

    async def reset_circuit(self, name: str) -> None:
        """Force a circuit back to closed."""
        await self._transition_to(name, CircuitState.CLOSED)

    async def reset_all_circuits(self) -> None:
        for name in self._services:
            await self.reset_circuit(name)
