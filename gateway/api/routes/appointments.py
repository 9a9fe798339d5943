"""
Appointments service proxy.

Every endpoint requires authentication. Listings are scoped to the caller
(see user_scope_params) and non-admins can only book for themselves.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import Response

from gateway.api.dependencies import CurrentUser, get_http_client, require_user
from gateway.api.proxy import permit, permit_body, permit_query, proxy_request, user_scope_params
from gateway.services.http_client import ServiceHttpClient

router = APIRouter()

SERVICE = "appointments"
BASE_PATH = "/api/v1/appointments"

FILTER_PARAMS = ("page", "per_page", "status", "start_date", "end_date", "doctor_id", "sort", "order")
PAGE_PARAMS = ("page", "per_page")
CREATE_FIELDS = (
    "user_id",
    "doctor_id",
    "clinic_id",
    "appointment_date",
    "start_time",
    "end_time",
    "consultation_type",
    "scheduled_at",
    "duration",
    "type",
    "reason",
    "notes",
    "location",
    "is_virtual",
)
UPDATE_FIELDS = ("scheduled_at", "duration", "type", "reason", "notes", "location", "is_virtual")
CANCEL_FIELDS = ("reason",)
RESCHEDULE_FIELDS = ("scheduled_at", "reason")


@router.get("")
async def list_appointments(
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    params = {**permit_query(request, FILTER_PARAMS), **user_scope_params(user)}
    return await proxy_request(request, client, SERVICE, BASE_PATH, params=params, user=user)


@router.get("/upcoming")
async def upcoming(
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    params = {**permit_query(request, PAGE_PARAMS), **user_scope_params(user)}
    return await proxy_request(request, client, SERVICE, f"{BASE_PATH}/upcoming", params=params, user=user)


@router.get("/past")
async def past(
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    params = {**permit_query(request, PAGE_PARAMS), **user_scope_params(user)}
    return await proxy_request(request, client, SERVICE, f"{BASE_PATH}/past", params=params, user=user)


@router.get("/{appointment_id}")
async def show_appointment(
    appointment_id: str,
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(request, client, SERVICE, f"{BASE_PATH}/{appointment_id}", user=user)


@router.post("")
async def create_appointment(
    request: Request,
    body: dict[str, Any] | None = Body(None),  # noqa: B008
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    appointment = permit_body(body, CREATE_FIELDS, root="appointment")
    if not user.is_admin:
        appointment["user_id"] = user.user_id

    return await proxy_request(
        request, client, SERVICE, BASE_PATH, method="POST", body={"appointment": appointment}, user=user
    )


@router.api_route("/{appointment_id}", methods=["PATCH", "PUT"])
async def update_appointment(
    appointment_id: str,
    request: Request,
    body: dict[str, Any] | None = Body(None),  # noqa: B008
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request,
        client,
        SERVICE,
        f"{BASE_PATH}/{appointment_id}",
        method="PATCH",
        body={"appointment": permit_body(body, UPDATE_FIELDS, root="appointment")},
        user=user,
    )


@router.delete("/{appointment_id}")
async def delete_appointment(
    appointment_id: str,
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(request, client, SERVICE, f"{BASE_PATH}/{appointment_id}", method="DELETE", user=user)


@router.post("/{appointment_id}/confirm")
async def confirm(
    appointment_id: str,
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request, client, SERVICE, f"{BASE_PATH}/{appointment_id}/confirm", method="POST", user=user
    )


@router.post("/{appointment_id}/cancel")
async def cancel(
    appointment_id: str,
    request: Request,
    body: dict[str, Any] | None = Body(None),  # noqa: B008
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request,
        client,
        SERVICE,
        f"{BASE_PATH}/{appointment_id}/cancel",
        method="POST",
        body=permit(body, CANCEL_FIELDS),
        user=user,
    )


@router.post("/{appointment_id}/reschedule")
async def reschedule(
    appointment_id: str,
    request: Request,
    body: dict[str, Any] | None = Body(None),  # noqa: B008
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request,
        client,
        SERVICE,
        f"{BASE_PATH}/{appointment_id}/reschedule",
        method="POST",
        body=permit(body, RESCHEDULE_FIELDS),
        user=user,
    )
