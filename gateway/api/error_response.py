"""
Standard error payloads.

Every error the gateway returns has the same shape:

    {
        "status": 404,
        "error": "not_found",
        "message": "Resource not found",
        "request_id": "lq2v1c3k-9f1e2d3c4b5a6978",
        "timestamp": "2024-01-15T10:30:00+00:00",
        "details": [...]            # only when present
    }
"""

from datetime import datetime, timezone
from typing import Any

from fastapi.responses import JSONResponse
from pydantic import ValidationError

from gateway.core.context import get_request_id
from gateway.services.exceptions import CircuitOpen, RequestTimeout, ServiceNotFound, ServiceUnavailable
from gateway.services.token_service import ExpiredTokenError, InvalidTokenError, TokenRevoked

STATUS_CODES = {
    "bad_request": 400,
    "unauthorized": 401,
    "forbidden": 403,
    "not_found": 404,
    "method_not_allowed": 405,
    "conflict": 409,
    "gone": 410,
    "unprocessable_entity": 422,
    "too_many_requests": 429,
    "internal_server_error": 500,
    "not_implemented": 501,
    "bad_gateway": 502,
    "service_unavailable": 503,
    "gateway_timeout": 504,
}


class ApiError(Exception):
    """Raised by routes and dependencies to return a specific error body."""

    def __init__(
        self,
        status: int | str,
        error: str,
        message: str,
        details: Any = None,
        headers: dict[str, str] | None = None,
    ):
        self.status = normalize_status(status)
        self.error = error
        self.message = message
        self.details = details
        self.headers = headers
        super().__init__(message)


def normalize_status(status: int | str) -> int:
    if isinstance(status, bool):
        return 500
    if isinstance(status, int):
        return status
    return STATUS_CODES.get(status, 500)


def build(
    status: int | str,
    error: str,
    message: str,
    details: Any = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Build an error body; request_id defaults to the current request's id."""
    body: dict[str, Any] = {
        "status": normalize_status(status),
        "error": error,
        "message": message,
        "request_id": request_id or get_request_id(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details:
        body["details"] = details
    return body


def bad_request(message: str, details: Any = None, request_id: str | None = None) -> dict[str, Any]:
    return build("bad_request", "bad_request", message, details=details, request_id=request_id)


def unauthorized(message: str = "Unauthorized", request_id: str | None = None) -> dict[str, Any]:
    return build("unauthorized", "unauthorized", message, request_id=request_id)


def forbidden(message: str = "Forbidden", request_id: str | None = None) -> dict[str, Any]:
    return build("forbidden", "forbidden", message, request_id=request_id)


def not_found(message: str = "Resource not found", request_id: str | None = None) -> dict[str, Any]:
    return build("not_found", "not_found", message, request_id=request_id)


def conflict(message: str, request_id: str | None = None) -> dict[str, Any]:
    return build("conflict", "conflict", message, request_id=request_id)


def unprocessable_entity(message: str, details: Any = None, request_id: str | None = None) -> dict[str, Any]:
    return build("unprocessable_entity", "unprocessable_entity", message, details=details, request_id=request_id)


def too_many_requests(
    message: str = "Rate limit exceeded",
    retry_after: int | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    body = build("too_many_requests", "too_many_requests", message, request_id=request_id)
    if retry_after is not None:
        body["retry_after"] = retry_after
    return body


def internal_server_error(message: str = "Internal server error", request_id: str | None = None) -> dict[str, Any]:
    return build("internal_server_error", "internal_server_error", message, request_id=request_id)


def service_unavailable(
    message: str = "Service temporarily unavailable", request_id: str | None = None
) -> dict[str, Any]:
    return build("service_unavailable", "service_unavailable", message, request_id=request_id)


def gateway_timeout(message: str = "Gateway timeout", request_id: str | None = None) -> dict[str, Any]:
    return build("gateway_timeout", "gateway_timeout", message, request_id=request_id)


def from_exception(exc: Exception, request_id: str | None = None) -> dict[str, Any]:
    """Map a known exception to its error body, anything else to a generic 500."""
    if isinstance(exc, ExpiredTokenError):
        return build(401, "token_expired", "Access token has expired. Please refresh your token.", request_id=request_id)
    if isinstance(exc, TokenRevoked):
        return build(401, "token_revoked", "Token has been revoked. Please login again.", request_id=request_id)
    if isinstance(exc, InvalidTokenError):
        return build(401, "invalid_token", "Invalid authentication token.", request_id=request_id)
    if isinstance(exc, CircuitOpen):
        return build(
            503,
            "service_circuit_open",
            "Service is temporarily unavailable due to high error rate. Please try again later.",
            request_id=request_id,
        )
    if isinstance(exc, ServiceUnavailable):
        return build(
            503,
            "service_unavailable",
            "A required service is currently unavailable. Please try again later.",
            request_id=request_id,
        )
    if isinstance(exc, RequestTimeout):
        return build(504, "request_timeout", "Request to downstream service timed out.", request_id=request_id)
    if isinstance(exc, ServiceNotFound):
        return build(500, "service_not_found", "Requested service is not configured.", request_id=request_id)
    if isinstance(exc, ValidationError):
        details = [f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in exc.errors()]
        return unprocessable_entity("Validation failed", details=details, request_id=request_id)
    return internal_server_error(request_id=request_id)


def error_response(
    status: int | str,
    error: str,
    message: str,
    details: Any = None,
    headers: dict[str, str] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    body = build(status, error, message, details=details, request_id=request_id)
    return JSONResponse(status_code=body["status"], content=body, headers=headers)


def json_error(body: dict[str, Any], headers: dict[str, str] | None = None) -> JSONResponse:
    """Render a body produced by one of the builders above."""
    return JSONResponse(status_code=body["status"], content=body, headers=headers)
