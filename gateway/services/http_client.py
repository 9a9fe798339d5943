"""
HTTP client for downstream MediConnect services.

Single Responsibility: send a request to a named service, guarded by its
circuit breaker and retried on transient failures.

Retry Strategy:
- 408/429/500/502/503/504, timeouts and connection errors are retried
  with exponential backoff plus random jitter (via tenacity)
- Only idempotent methods are retried; POST and PATCH are sent once
- When retries run out on a retryable status, the last response is returned

Circuit Breaker:
- An open circuit fails fast with CircuitOpen, nothing is sent
- A final response below 500 records a success
- A final 5xx response or a transport error records a failure
"""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from gateway.config.settings import Settings
from gateway.core.context import get_current_user_id, get_request_id
from gateway.core.infrastructure.circuit_breaker import CircuitBreaker
from gateway.services.exceptions import CircuitOpen, RequestTimeout, ServiceUnavailable
from gateway.services.service_registry import ServiceRegistry

logger = logging.getLogger(__name__)

# HTTP status codes that warrant retry with exponential backoff
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Methods safe to send more than once
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "PUT", "DELETE", "OPTIONS", "TRACE"})

USER_AGENT = "MediConnect-API-Gateway/1.0"

Body = Mapping[str, Any] | list[Any] | bytes | None


class RetryableStatusError(Exception):
    """Internal signal that a response status should be retried."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"Retryable status {response.status_code}")


def parse_body(text: str) -> Any:
    """Decode a JSON body; empty gives {}, non-JSON is wrapped as {"raw": text}."""
    if not text or not text.strip():
        return {}
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}


@dataclass
class GatewayResponse:
    """A downstream response with its body already decoded."""

    status: int
    body: Any = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "GatewayResponse":
        return cls(status=response.status_code, body=parse_body(response.text), headers=dict(response.headers))

    @property
    def success(self) -> bool:
        return 200 <= self.status < 300

    @property
    def redirect(self) -> bool:
        return 300 <= self.status < 400

    @property
    def client_error(self) -> bool:
        return 400 <= self.status < 500

    @property
    def server_error(self) -> bool:
        return self.status >= 500


@dataclass
class RetryPolicy:
    """Backoff parameters: wait interval * backoff_factor**(n-1) + jitter before retry n."""

    max_retries: int = 3
    interval: float = 0.5
    backoff_factor: float = 2.0
    randomness: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.HTTP_CLIENT_MAX_RETRIES,
            interval=settings.HTTP_CLIENT_RETRY_INTERVAL,
            backoff_factor=settings.HTTP_CLIENT_BACKOFF_FACTOR,
            randomness=settings.HTTP_CLIENT_RETRY_RANDOMNESS,
        )

    def wait_strategy(self):
        return wait_exponential(multiplier=self.interval, exp_base=self.backoff_factor) + wait_random(
            0, self.interval * self.randomness
        )


class ServiceHttpClient:
    """
    HTTP client for the downstream services.

    Uses one persistent AsyncClient for connection reuse across services.
    """

    DEFAULT_TIMEOUT = 10.0
    DEFAULT_OPEN_TIMEOUT = 5.0

    def __init__(
        self,
        registry: ServiceRegistry,
        breaker: CircuitBreaker,
        timeout: float = DEFAULT_TIMEOUT,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize HTTP client.

        Args:
            registry: Resolves service names to base URLs
            breaker: Circuit breaker consulted before every request
            timeout: Overall request timeout in seconds
            open_timeout: Connection timeout in seconds
            retry_policy: Backoff parameters
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Coroutine used to wait between retries
        """
        self._registry = registry
        self._breaker = breaker
        self._timeout = httpx.Timeout(timeout, connect=open_timeout)
        self._retry_policy = retry_policy or RetryPolicy()
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        registry: ServiceRegistry,
        breaker: CircuitBreaker,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ServiceHttpClient":
        return cls(
            registry,
            breaker,
            timeout=settings.HTTP_CLIENT_TIMEOUT,
            open_timeout=settings.HTTP_CLIENT_OPEN_TIMEOUT,
            retry_policy=RetryPolicy.from_settings(settings),
            transport=transport,
        )

    async def initialize(self) -> None:
        """Initialize persistent HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def close(self) -> None:
        """Close HTTP client and release resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ServiceHttpClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            await self.initialize()
        return self._client  # type: ignore

    def _default_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
            "X-Internal-Service": "api-gateway",
        }
        request_id = get_request_id()
        if request_id:
            headers["X-Request-ID"] = request_id
        user_id = get_current_user_id()
        if user_id:
            headers["X-User-ID"] = str(user_id)
        return headers

    async def get(
        self,
        service: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> GatewayResponse:
        return await self.request("GET", service, path, params=params, headers=headers)

    async def post(
        self,
        service: str,
        path: str,
        body: Body = None,
        headers: Mapping[str, str] | None = None,
    ) -> GatewayResponse:
        return await self.request("POST", service, path, body=body, headers=headers)

    async def put(
        self,
        service: str,
        path: str,
        body: Body = None,
        headers: Mapping[str, str] | None = None,
    ) -> GatewayResponse:
        return await self.request("PUT", service, path, body=body, headers=headers)

    async def patch(
        self,
        service: str,
        path: str,
        body: Body = None,
        headers: Mapping[str, str] | None = None,
    ) -> GatewayResponse:
        return await self.request("PATCH", service, path, body=body, headers=headers)

    async def delete(
        self,
        service: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> GatewayResponse:
        return await self.request("DELETE", service, path, params=params, headers=headers)

    async def request(
        self,
        method: str,
        service: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        body: Body = None,
        headers: Mapping[str, str] | None = None,
    ) -> GatewayResponse:
        """
        Send a request to a downstream service.

        Raises:
            ServiceNotFound: Unknown service name
            CircuitOpen: The service's circuit is open
            RequestTimeout: The service did not answer in time
            ServiceUnavailable: The service could not be reached
        """
        method = method.upper()
        url = f"{self._registry.url_for(service)}{path}"

        if not await self._breaker.allow_request(service):
            raise CircuitOpen(service, retry_after=await self._breaker.retry_after(service))

        request_kwargs: dict[str, Any] = {"headers": {**self._default_headers(), **(headers or {})}}
        if params:
            request_kwargs["params"] = {key: value for key, value in params.items() if value is not None}
        if isinstance(body, bytes):
            request_kwargs["content"] = body
        elif body is not None:
            request_kwargs["json"] = body

        try:
            response = await self._send(method, url, request_kwargs)
        except httpx.TimeoutException as e:
            await self._breaker.record_failure(service)
            logger.error(f"Request to {service} timed out: {e}")
            raise RequestTimeout(f"Request to {service} timed out: {e}", service=service) from e
        except httpx.ConnectError as e:
            await self._breaker.record_failure(service)
            logger.error(f"Cannot connect to {service}: {e}")
            raise ServiceUnavailable(f"Cannot connect to {service}: {e}", service=service) from e
        except httpx.HTTPError as e:
            await self._breaker.record_failure(service)
            logger.error(f"HTTP client error for {service}: {type(e).__name__} - {e}")
            raise ServiceUnavailable(f"Service {service} unavailable: {e}", service=service) from e
        except Exception as e:
            await self._breaker.record_failure(service)
            logger.error(f"Unexpected error calling {service}: {type(e).__name__} - {e}")
            raise ServiceUnavailable(f"Service {service} unavailable: {e}", service=service) from e

        if response.status_code >= 500:
            await self._breaker.record_failure(service)
        else:
            await self._breaker.record_success(service)

        return GatewayResponse.from_httpx(response)

    async def _send(self, method: str, url: str, request_kwargs: dict[str, Any]) -> httpx.Response:
        client = await self._ensure_client()
        policy = self._retry_policy

        if method not in IDEMPOTENT_METHODS or policy.max_retries == 0:
            return await client.request(method, url, **request_kwargs)

        retrying = AsyncRetrying(
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError, RetryableStatusError)),
            stop=stop_after_attempt(policy.max_retries + 1),
            wait=policy.wait_strategy(),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return await retrying(self._attempt, client, method, url, request_kwargs)
        except RetryableStatusError as e:
            return e.response

    async def _attempt(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        request_kwargs: dict[str, Any],
    ) -> httpx.Response:
        response = await client.request(method, url, **request_kwargs)
        if response.status_code in RETRYABLE_STATUS_CODES:
            raise RetryableStatusError(response)
        return response

    async def health_check(self, service: str) -> dict[str, Any]:
        """Probe a service's health endpoint."""
        start_time = time.perf_counter()
        try:
            response = await self.get(service, self._registry.health_path_for(service))
        except Exception as e:
            return {"status": "error", "error": str(e), "http_status": None}

        return {
            "status": "ok" if response.success else "error",
            "response_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
            "http_status": response.status,
        }
