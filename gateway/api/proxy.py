"""
Forwarding helpers shared by the resource routes.

Routes filter the caller's parameters down to an allow-list, then forward
them with the gateway headers to a downstream service and render the
downstream status and JSON body unchanged.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse, Response

from gateway.api.dependencies import CurrentUser
from gateway.api.middleware.request_tracer import get_client_ip
from gateway.core.context import get_request_id
from gateway.services.http_client import ServiceHttpClient

_EMPTY_BODY_STATUSES = (status.HTTP_204_NO_CONTENT, status.HTTP_304_NOT_MODIFIED)


def proxy_headers(request: Request, user: CurrentUser | None = None) -> dict[str, str]:
    """Headers every proxied request carries."""
    headers = {
        "X-Request-ID": get_request_id() or getattr(request.state, "request_id", None) or "",
        "X-Forwarded-For": getattr(request.state, "client_ip", None) or get_client_ip(request),
    }

    if user is not None:
        headers["X-User-ID"] = str(user.user_id)
        if user.email:
            headers["X-User-Email"] = user.email
        if user.role:
            headers["X-User-Role"] = str(user.role)

    authorization = request.headers.get("Authorization")
    if authorization:
        headers["Authorization"] = authorization

    return {key: value for key, value in headers.items() if value}


async def proxy_request(
    request: Request,
    client: ServiceHttpClient,
    service: str,
    path: str,
    method: str = "GET",
    body: Any = None,
    params: Mapping[str, Any] | None = None,
    user: CurrentUser | None = None,
    headers: Mapping[str, str] | None = None,
) -> Response:
    """
    Forward a request and mirror the downstream response.

    Gateway failures (open circuit, timeout, unreachable service) propagate
    to the exception handlers.
    """
    forwarded = {**proxy_headers(request, user), **(headers or {})}
    response = await client.request(method, service, path, params=params, body=body, headers=forwarded)

    if response.status in _EMPTY_BODY_STATUSES:
        return Response(status_code=response.status)
    return JSONResponse(status_code=response.status, content=response.body)


def permit(source: Mapping[str, Any] | None, keys: Iterable[str]) -> dict[str, Any]:
    """Keep only the allowed keys that carry a value."""
    if not source:
        return {}
    return {key: source[key] for key in keys if source.get(key) is not None}


def permit_query(request: Request, keys: Iterable[str]) -> dict[str, Any]:
    return permit(request.query_params, keys)


def permit_body(body: Any, keys: Iterable[str], root: str | None = None) -> dict[str, Any]:
    """
    Filter a JSON body.

    When root is given the attributes may be nested under it
    ({"appointment": {...}}) or sent at the top level.
    """
    if not isinstance(body, dict):
        return {}
    if root is not None and isinstance(body.get(root), dict):
        body = body[root]
    return permit(body, keys)


def user_scope_params(user: CurrentUser, doctor_scope: bool = True) -> dict[str, Any]:
    """Listing filters: admins see everything, doctors their patients, others their own."""
    if user.is_admin:
        return {}
    if doctor_scope and user.is_doctor:
        return {"doctor_user_id": user.user_id}
    return {"user_id": user.user_id}
