"""
Users service proxy.

Registration is public; reading and updating a user is limited to the user
themselves or an admin.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Request, status
from fastapi.responses import Response

from gateway.api.dependencies import CurrentUser, get_http_client, require_admin, require_user
from gateway.api.error_response import ApiError
from gateway.api.proxy import permit_body, permit_query, proxy_request
from gateway.services.http_client import ServiceHttpClient

router = APIRouter()

SERVICE = "users"

REGISTRATION_FIELDS = (
    "email",
    "password",
    "password_confirmation",
    "first_name",
    "last_name",
    "phone",
    "date_of_birth",
    "role",
)
UPDATE_FIELDS = (
    "first_name",
    "last_name",
    "phone",
    "date_of_birth",
    "avatar_url",
    "address",
    "city",
    "state",
    "zip_code",
    "country",
)
FILTER_PARAMS = ("page", "per_page", "role", "status", "sort", "order")
SEARCH_PARAMS = ("q", "page", "per_page", "role")


def _authorize_user_access(user: CurrentUser, user_id: str) -> None:
    if user.is_admin or str(user.user_id) == user_id:
        return
    raise ApiError(status.HTTP_403_FORBIDDEN, "forbidden", "You can only access your own user data")


@router.get("")
async def list_users(
    request: Request,
    user: CurrentUser = Depends(require_admin),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request, client, SERVICE, "/api/v1/users", params=permit_query(request, FILTER_PARAMS), user=user
    )


@router.get("/search")
async def search_users(
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request, client, SERVICE, "/api/v1/users/search", params=permit_query(request, SEARCH_PARAMS), user=user
    )


@router.post("")
async def create_user(
    request: Request,
    body: dict[str, Any] | None = Body(None),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    """Public registration."""
    return await proxy_request(
        request,
        client,
        SERVICE,
        "/api/v1/users",
        method="POST",
        body=permit_body(body, REGISTRATION_FIELDS, root="user"),
    )


@router.get("/{user_id}")
async def show_user(
    user_id: str,
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    _authorize_user_access(user, user_id)
    return await proxy_request(request, client, SERVICE, f"/api/v1/users/{user_id}", user=user)


@router.api_route("/{user_id}", methods=["PATCH", "PUT"])
async def update_user(
    user_id: str,
    request: Request,
    body: dict[str, Any] | None = Body(None),  # noqa: B008
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    _authorize_user_access(user, user_id)
    return await proxy_request(
        request,
        client,
        SERVICE,
        f"/api/v1/users/{user_id}",
        method="PATCH",
        body=permit_body(body, UPDATE_FIELDS, root="user"),
        user=user,
    )
