"""
RequestContext - Request-scoped tracing values using Python's contextvars.

The tracing middleware creates one context per request. Everything that runs
inside the request (route handlers, the downstream HTTP client, log filters)
reads it without the value being passed around explicitly.

Usage:
    token = set_request_context(RequestContext(request_id="abc"))
    ...
    get_request_id()  # "abc"
    reset_request_context(token)
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass

_request_context: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)


@dataclass
class RequestContext:
    """
    Tracing values for the request being processed.

    Attributes:
        request_id: Identifier echoed in X-Request-ID and every error body
        correlation_id: Caller supplied X-Correlation-ID, if any
        user_id: Authenticated user, filled in once the token is validated
    """

    request_id: str
    correlation_id: str | None = None
    user_id: str | None = None


def get_request_context() -> RequestContext | None:
    """Return the context of the current request, or None outside a request."""
    return _request_context.get()


def set_request_context(context: RequestContext | None) -> Token:
    """Install a context and return the token needed to restore the previous one."""
    return _request_context.set(context)


def reset_request_context(token: Token) -> None:
    _request_context.reset(token)


def get_request_id() -> str | None:
    ctx = _request_context.get()
    return ctx.request_id if ctx else None


def get_correlation_id() -> str | None:
    ctx = _request_context.get()
    return ctx.correlation_id if ctx else None


def get_current_user_id() -> str | None:
    ctx = _request_context.get()
    return ctx.user_id if ctx else None


def bind_user_id(user_id: str | None) -> None:
    """Attach the authenticated user to the current request context."""
    ctx = _request_context.get()
    if ctx is not None:
        ctx.user_id = user_id
