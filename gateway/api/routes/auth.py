"""
Authentication endpoints.

Login and refresh are answered by the gateway itself; password reset is
proxied to the users service.
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import Response

from gateway.api import error_response
from gateway.api.dependencies import CurrentUser, get_auth_service, get_http_client, require_user
from gateway.api.error_response import ApiError
from gateway.api.proxy import proxy_request
from gateway.api.schemas.auth import (
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    LogoutResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshRequest,
    RefreshResponse,
)
from gateway.core.context import get_request_id
from gateway.core.shared.sanitization import sanitize_user
from gateway.services.authentication_service import AuthenticationService
from gateway.services.http_client import ServiceHttpClient

router = APIRouter()

PASSWORD_RESET_PATH = "/api/internal/password/reset"


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest | None = None,
    auth_service: AuthenticationService = Depends(get_auth_service),  # noqa: B008
):
    """Exchange email and password for an access/refresh token pair."""
    payload = payload or LoginRequest()
    result = await auth_service.login(payload.email, payload.password, request_id=get_request_id())

    if result.failure:
        return error_response.error_response(result.status, "authentication_failed", result.error or "")

    return {"message": "Login successful", "user": sanitize_user(result.user), "tokens": result.tokens}


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(
    payload: RefreshRequest | None = None,
    auth_service: AuthenticationService = Depends(get_auth_service),  # noqa: B008
):
    payload = payload or RefreshRequest()
    result = await auth_service.refresh(payload.refresh_token, request_id=get_request_id())

    if result.failure:
        return error_response.error_response(result.status, "token_refresh_failed", result.error or "")

    return {"message": "Token refreshed successfully", "tokens": result.tokens}


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    request: Request,
    payload: LogoutRequest | None = None,
    user: CurrentUser = Depends(require_user),  # noqa: B008
    auth_service: AuthenticationService = Depends(get_auth_service),  # noqa: B008
):
    """Revoke the current access token and, when given, the refresh token."""
    payload = payload or LogoutRequest()
    result = await auth_service.logout(request.state.access_token, payload.refresh_token)
    return {"message": "Logged out successfully", "tokens_revoked": result.tokens}


@router.get("/me")
async def me(
    user: CurrentUser = Depends(require_user),  # noqa: B008
    auth_service: AuthenticationService = Depends(get_auth_service),  # noqa: B008
):
    user_data = await auth_service.fetch_user(user.user_id, request_id=get_request_id())
    if not user_data:
        raise ApiError(status.HTTP_404_NOT_FOUND, "not_found", "User not found")
    return {"user": sanitize_user(user_data)}


@router.post("/password/reset")
async def request_password_reset(
    request: Request,
    payload: PasswordResetRequest | None = None,
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    payload = payload or PasswordResetRequest()
    return await proxy_request(
        request,
        client,
        "users",
        PASSWORD_RESET_PATH,
        method="POST",
        body=payload.model_dump(exclude_none=True),
    )


@router.put("/password/reset")
async def reset_password(
    request: Request,
    payload: PasswordResetConfirm | None = None,
    client: ServiceHttpClient = Depends(get_http_client),  # noqa: B008
) -> Response:
    payload = payload or PasswordResetConfirm()
    return await proxy_request(
        request,
        client,
        "users",
        PASSWORD_RESET_PATH,
        method="PUT",
        body=payload.model_dump(exclude_none=True),
    )
