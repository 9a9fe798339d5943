"""
Request tracing middleware.

Assigns every request an id (reusing a well-formed incoming X-Request-ID),
installs the request context used by logging and the downstream client,
and logs the start and end of each request.
"""

import json
import logging
import re
import secrets
import time
from collections.abc import Callable
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from gateway.core.context import RequestContext, reset_request_context, set_request_context
from gateway.core.shared.sanitization import filter_params, filter_query_string

logger = logging.getLogger(__name__)

REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
USER_AGENT_MAX_LENGTH = 200

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_request_id() -> str:
    """Time-ordered id: base36 epoch milliseconds, a dash, 16 random hex chars."""
    return f"{_to_base36(int(time.time() * 1000))}-{secrets.token_hex(8)}"


def resolve_request_id(incoming: str | None) -> str:
    if incoming and REQUEST_ID_PATTERN.match(incoming):
        return incoming
    return generate_request_id()


def get_client_ip(request: Request) -> str:
    """
    Extract client IP from request, considering proxies.

    X-Forwarded-For (first entry) wins over X-Real-IP, then the socket peer.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Take first IP in chain (original client)
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class RequestTracerMiddleware(BaseHTTPMiddleware):
    """
    HTTP middleware for request tracing and request/response logging.
    """

    # Paths to exclude from logging (high-frequency, low-value)
    EXCLUDE_PATHS: tuple[str, ...] = (
        "/health",
        "/up",
    )

    def _should_log(self, path: str) -> bool:
        return not any(path.startswith(exclude) for exclude in self.EXCLUDE_PATHS)

    async def _request_params(self, request: Request) -> dict[str, Any]:
        """Query parameters merged with a JSON object body, sensitive values filtered."""
        params: dict[str, Any] = dict(request.query_params)
        if "application/json" in request.headers.get("Content-Type", ""):
            try:
                body = json.loads(await request.body() or b"null")
            except ValueError:
                body = None
            if isinstance(body, dict):
                params.update(body)
        return filter_params(params)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        request_id = resolve_request_id(request.headers.get("X-Request-ID"))
        correlation_id = request.headers.get("X-Correlation-ID")
        client_ip = get_client_ip(request)

        request.state.request_id = request_id
        request.state.correlation_id = correlation_id
        request.state.client_ip = client_ip
        token = set_request_context(RequestContext(request_id=request_id, correlation_id=correlation_id))

        should_log = self._should_log(request.url.path)
        params = await self._request_params(request) if should_log else {}
        start_time = time.perf_counter()

        if should_log:
            logger.info(
                f"[{request_id}] --> {request.method} {request.url.path}",
                extra={
                    "extra_data": {
                        "event": "request_started",
                        "request_id": request_id,
                        "correlation_id": correlation_id,
                        "method": request.method,
                        "path": request.url.path,
                        "query_string": filter_query_string(request.url.query),
                        "remote_ip": client_ip,
                        "user_agent": (request.headers.get("User-Agent") or "")[:USER_AGENT_MAX_LENGTH],
                    }
                },
            )

        try:
            response = await call_next(request)
        except Exception as e:
            # Log exception and re-raise; the context stays set for the error handler
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(f"[{request_id}] <-- {request.method} {request.url.path} ERROR in {duration_ms:.2f}ms: {e}")
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        if should_log:
            if response.status_code >= 500:
                log_level = logging.ERROR
            elif response.status_code >= 400:
                log_level = logging.WARNING
            else:
                log_level = logging.INFO
            logger.log(
                log_level,
                f"[{request_id}] <-- {request.method} {request.url.path} {response.status_code} in {duration_ms:.2f}ms",
                extra={
                    "extra_data": {
                        "event": "request_completed",
                        "request_id": request_id,
                        "method": request.method,
                        "path": request.url.path,
                        "status": response.status_code,
                        "duration_ms": round(duration_ms, 2),
                        "params": params,
                    }
                },
            )

        response.headers["X-Request-ID"] = request_id
        if correlation_id:
            response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Response-Time-Ms"] = f"{duration_ms:.2f}"

        reset_request_context(token)
        return response
