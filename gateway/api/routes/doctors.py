"""Doctors service proxy. Browsing is public; a valid token only adds the user headers."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from gateway.api.dependencies import CurrentUser, get_http_client, optional_user
from gateway.api.proxy import permit_query, proxy_request
from gateway.services.http_client import ServiceHttpClient

router = APIRouter()

SERVICE = "doctors"

FILTER_PARAMS = (
    "page",
    "per_page",
    "specialty",
    "city",
    "state",
    "accepting_patients",
    "rating_min",
    "insurance",
    "language",
    "gender",
    "sort",
    "order",
)
SEARCH_PARAMS = ("q", "specialty", "lat", "lng", "radius", "page", "per_page")
AVAILABILITY_PARAMS = ("date", "start_date", "end_date", "duration")
REVIEWS_PARAMS = ("page", "per_page", "sort")


@router.get("")
async def list_doctors(
    request: Request,
    user: CurrentUser | None = Depends(optional_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request, client, SERVICE, "/api/v1/doctors", params=permit_query(request, FILTER_PARAMS), user=user
    )


@router.get("/search")
async def search_doctors(
    request: Request,
    user: CurrentUser | None = Depends(optional_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request, client, SERVICE, "/api/v1/doctors/search", params=permit_query(request, SEARCH_PARAMS), user=user
    )


@router.get("/specialties")
async def specialties(
    request: Request,
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(request, client, SERVICE, "/api/v1/doctors/specialties")


@router.get("/{doctor_id}")
async def show_doctor(
    doctor_id: str,
    request: Request,
    user: CurrentUser | None = Depends(optional_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(request, client, SERVICE, f"/api/v1/doctors/{doctor_id}", user=user)


@router.get("/{doctor_id}/availability")
async def availability(
    doctor_id: str,
    request: Request,
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request,
        client,
        SERVICE,
        f"/api/v1/doctors/{doctor_id}/availability",
        params=permit_query(request, AVAILABILITY_PARAMS),
    )


@router.get("/{doctor_id}/reviews")
async def reviews(
    doctor_id: str,
    request: Request,
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request,
        client,
        SERVICE,
        f"/api/v1/doctors/{doctor_id}/reviews",
        params=permit_query(request, REVIEWS_PARAMS),
    )
