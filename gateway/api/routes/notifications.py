"""Notifications service proxy. Every call is scoped to the authenticated user."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from gateway.api.dependencies import CurrentUser, get_http_client, require_user
from gateway.api.proxy import permit_query, proxy_request
from gateway.services.http_client import ServiceHttpClient

router = APIRouter()

SERVICE = "notifications"
FILTER_PARAMS = ("page", "per_page", "unread_only")


@router.get("")
async def list_notifications(
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    params = {**permit_query(request, FILTER_PARAMS), "user_id": user.user_id}
    return await proxy_request(request, client, SERVICE, "/notifications", params=params, user=user)


@router.get("/unread_count")
async def unread_count(
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request, client, SERVICE, "/notifications/unread_count", params={"user_id": user.user_id}, user=user
    )


@router.post("/mark_all_read")
async def mark_all_read(
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request,
        client,
        SERVICE,
        "/notifications/mark_all_as_read",
        method="POST",
        params={"user_id": user.user_id},
        user=user,
    )


@router.get("/{notification_id}")
async def show_notification(
    notification_id: str,
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request, client, SERVICE, f"/notifications/{notification_id}", params={"user_id": user.user_id}, user=user
    )


@router.api_route("/{notification_id}", methods=["PATCH", "PUT"])
async def mark_as_read(
    notification_id: str,
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request,
        client,
        SERVICE,
        f"/notifications/{notification_id}/mark_as_read",
        method="POST",
        params={"user_id": user.user_id},
        user=user,
    )
