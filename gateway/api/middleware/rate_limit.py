"""
Rate limiting middleware.

Runs every request through the gateway RateLimiter before routing and
answers blocked (403) or throttled (429) requests directly.
"""

import logging
from collections.abc import Callable
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from gateway.api import error_response
from gateway.api.middleware.request_tracer import get_client_ip
from gateway.core.infrastructure.rate_limiter import RateLimitExceeded, RequestBlocked, RequestInfo

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Throttle and blocklist enforcement.

    The limiter is read from the application container so that tests and
    deployments can swap its store and clock.
    """

    def __init__(self, app: ASGIApp, enabled: bool = True) -> None:
        super().__init__(app)
        self._enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        if not self._enabled:
            return await call_next(request)

        limiter = request.app.state.container.rate_limiter
        client_ip = getattr(request.state, "client_ip", None) or get_client_ip(request)
        info = RequestInfo(
            method=request.method,
            path=request.url.path,
            client_ip=client_ip,
            query_string=request.url.query,
            headers=request.headers,
            body_loader=request.body,
        )

        try:
            await limiter.check(info)
        except RequestBlocked as e:
            logger.warning(
                f"Request blocked by {e.rule}: {request.method} {request.url.path}",
                extra={
                    "extra_data": {
                        "event": "request_blocked",
                        "ip": client_ip,
                        "path": request.url.path,
                        "method": request.method,
                        "matched": e.rule,
                    }
                },
            )
            return error_response.json_error(error_response.forbidden("Request blocked"))
        except RateLimitExceeded as e:
            logger.warning(
                f"Rate limit exceeded for {e.rule}: {request.method} {request.url.path}",
                extra={
                    "extra_data": {
                        "event": "rate_limit_exceeded",
                        "ip": client_ip,
                        "path": request.url.path,
                        "method": request.method,
                        "matched": e.rule,
                    }
                },
            )
            return self._throttled_response(e)

        return await call_next(request)

    def _throttled_response(self, exc: RateLimitExceeded) -> JSONResponse:
        body = error_response.too_many_requests(str(exc), retry_after=exc.retry_after)
        headers = {
            "Retry-After": str(exc.retry_after),
            "X-RateLimit-Limit": str(exc.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(exc.reset_at),
        }
        return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content=body, headers=headers)
