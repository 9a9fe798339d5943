"""
Payments service proxy.

All endpoints except the provider webhook require authentication. The
webhook body is forwarded byte for byte so the payments service can verify
its signature.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import Response

from gateway.api.dependencies import CurrentUser, get_http_client, require_user
from gateway.api.proxy import permit, permit_body, permit_query, proxy_request, user_scope_params
from gateway.services.http_client import ServiceHttpClient

router = APIRouter()

SERVICE = "payments"
BASE_PATH = "/api/v1/payments"

FILTER_PARAMS = ("page", "per_page", "status", "start_date", "end_date")
CREATE_FIELDS = ("appointment_id", "amount", "currency", "payment_method_id", "description")
REFUND_FIELDS = ("amount", "reason")
PAYMENT_METHOD_FIELDS = ("payment_method_id", "set_default")
INTENT_FIELDS = ("appointment_id", "amount", "currency")
CONFIRM_FIELDS = ("payment_intent_id",)
SIGNATURE_HEADER = "Stripe-Signature"


@router.get("")
async def list_payments(
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    params = {**permit_query(request, FILTER_PARAMS), **user_scope_params(user, doctor_scope=False)}
    return await proxy_request(request, client, SERVICE, BASE_PATH, params=params, user=user)


@router.post("")
async def create_payment(
    request: Request,
    body: dict[str, Any] | None = Body(None),  # noqa: B008
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    payment = permit_body(body, CREATE_FIELDS, root="payment")
    if not user.is_admin:
        payment["user_id"] = user.user_id

    return await proxy_request(request, client, SERVICE, BASE_PATH, method="POST", body={"payment": payment}, user=user)


@router.get("/methods")
async def payment_methods(
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request, client, SERVICE, "/api/v1/payment_methods", params={"user_id": user.user_id}, user=user
    )


@router.post("/methods")
async def add_payment_method(
    request: Request,
    body: dict[str, Any] | None = Body(None),  # noqa: B008
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request,
        client,
        SERVICE,
        "/api/v1/payment_methods",
        method="POST",
        body={**permit(body, PAYMENT_METHOD_FIELDS), "user_id": user.user_id},
        user=user,
    )


@router.post("/create_intent")
async def create_intent(
    request: Request,
    body: dict[str, Any] | None = Body(None),  # noqa: B008
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request,
        client,
        SERVICE,
        f"{BASE_PATH}/create-intent",
        method="POST",
        body={**permit(body, INTENT_FIELDS), "user_id": user.user_id},
        user=user,
    )


@router.post("/confirm")
async def confirm_payment(
    request: Request,
    body: dict[str, Any] | None = Body(None),  # noqa: B008
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request, client, SERVICE, f"{BASE_PATH}/confirm", method="POST", body=permit(body, CONFIRM_FIELDS), user=user
    )


@router.post("/webhook")
async def webhook(
    request: Request,
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    """Provider callback, unauthenticated."""
    headers = {}
    signature = request.headers.get(SIGNATURE_HEADER)
    if signature:
        headers[SIGNATURE_HEADER] = signature
    return await proxy_request(
        request,
        client,
        SERVICE,
        f"{BASE_PATH}/webhook",
        method="POST",
        body=await request.body(),
        headers=headers,
    )


@router.get("/{payment_id}")
async def show_payment(
    payment_id: str,
    request: Request,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(request, client, SERVICE, f"{BASE_PATH}/{payment_id}", user=user)


@router.post("/{payment_id}/refund")
async def refund(
    payment_id: str,
    request: Request,
    body: dict[str, Any] | None = Body(None),  # noqa: B008
    user: CurrentUser = Depends(require_user),  # noqa: B008
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    return await proxy_request(
        request,
        client,
        SERVICE,
        f"{BASE_PATH}/{payment_id}/refund",
        method="POST",
        body=permit(body, REFUND_FIELDS),
        user=user,
    )
