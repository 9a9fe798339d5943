"""
Exception handlers for the gateway.

Every handler renders the standard error body (see error_response) and
logs the failure at a level matching its severity.
"""

import logging
import traceback
from http import HTTPStatus

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gateway.api import error_response
from gateway.api.error_response import ApiError
from gateway.config.settings import Settings
from gateway.core.context import get_request_id
from gateway.services.exceptions import CircuitOpen, RequestTimeout, ServiceNotFound, ServiceUnavailable
from gateway.services.token_service import TokenError

logger = logging.getLogger(__name__)


def _log_error(request: Request, exc: Exception, level: int) -> None:
    log_data = {
        "event": "error",
        "error_class": type(exc).__name__,
        "error_message": str(exc),
        "request_id": get_request_id() or getattr(request.state, "request_id", None),
        "path": request.url.path,
        "method": request.method,
    }
    if level >= logging.ERROR:
        log_data["backtrace"] = traceback.format_exception(exc)[-5:]
    logger.log(
        level,
        f"{type(exc).__name__} on {request.method} {request.url.path}: {exc}",
        extra={"extra_data": log_data},
    )


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Render errors raised explicitly by routes and dependencies."""
    level = logging.ERROR if exc.status >= 500 else logging.INFO
    _log_error(request, exc, level)
    return error_response.error_response(exc.status, exc.error, exc.message, details=exc.details, headers=exc.headers)


async def token_error_handler(request: Request, exc: Exception) -> JSONResponse:
    _log_error(request, exc, logging.WARNING)
    return error_response.json_error(error_response.from_exception(exc))


async def circuit_open_handler(request: Request, exc: Exception) -> JSONResponse:
    _log_error(request, exc, logging.WARNING)
    retry_after = getattr(exc, "retry_after", None)
    headers = {"Retry-After": str(retry_after)} if retry_after else None
    return error_response.json_error(error_response.from_exception(exc), headers=headers)


async def downstream_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """ServiceUnavailable, RequestTimeout and ServiceNotFound."""
    _log_error(request, exc, logging.ERROR)
    return error_response.json_error(error_response.from_exception(exc))


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Malformed JSON becomes 400 invalid_json, everything else 422 validation_failed."""
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []

    if any(error.get("type") == "json_invalid" for error in errors):
        _log_error(request, exc, logging.INFO)
        return error_response.error_response(
            status.HTTP_400_BAD_REQUEST, "invalid_json", "Request body contains invalid JSON."
        )

    details = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in errors
    ]
    logger.info(f"Validation error on {request.url.path}: {details}")
    return error_response.error_response(
        422, "validation_failed", "Validation failed.", details=details
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render framework HTTP errors (unknown routes, wrong methods, ...) in the standard shape."""
    http_exc = exc if isinstance(exc, StarletteHTTPException) else StarletteHTTPException(status_code=500)
    code = http_exc.status_code

    if code == status.HTTP_404_NOT_FOUND:
        error, message = "route_not_found", "The requested endpoint does not exist."
    elif code == status.HTTP_405_METHOD_NOT_ALLOWED:
        error, message = "method_not_allowed", "The requested method is not allowed for this endpoint."
    else:
        try:
            phrase = HTTPStatus(code).phrase
        except ValueError:
            phrase = "Error"
        error = phrase.lower().replace(" ", "_").replace("-", "_")
        message = http_exc.detail if isinstance(http_exc.detail, str) else phrase

    _log_error(request, exc, logging.ERROR if code >= 500 else logging.INFO)
    return error_response.error_response(code, error, message, headers=getattr(http_exc, "headers", None))


def make_global_exception_handler(settings: Settings):
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Handle all unhandled exceptions.

        Outside production the message and the first traceback lines are
        returned to help debugging; production only gets a generic message.
        """
        _log_error(request, exc, logging.ERROR)
        request_id = get_request_id() or getattr(request.state, "request_id", None)

        if settings.is_production:
            return error_response.error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "internal_server_error",
                "An unexpected error occurred. Please try again later.",
                request_id=request_id,
            )
        details = [line.rstrip() for line in traceback.format_tb(exc.__traceback__)][:10]
        return error_response.error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_server_error",
            str(exc) or type(exc).__name__,
            details=details,
            request_id=request_id,
        )

    return global_exception_handler


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: FastAPI application instance
        settings: Controls whether internal error details are exposed
    """
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(TokenError, token_error_handler)
    app.add_exception_handler(CircuitOpen, circuit_open_handler)
    app.add_exception_handler(ServiceUnavailable, downstream_error_handler)
    app.add_exception_handler(RequestTimeout, downstream_error_handler)
    app.add_exception_handler(ServiceNotFound, downstream_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, make_global_exception_handler(settings))

    logger.info("Exception handlers registered")
