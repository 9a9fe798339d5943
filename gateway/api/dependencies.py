"""
FastAPI dependencies for injection.

Components come from the GatewayContainer stored on app.state; the
authentication dependencies validate the bearer token and expose the
caller as a CurrentUser.
"""

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Request

from gateway.api.error_response import ApiError
from gateway.core.container import GatewayContainer
from gateway.core.context import bind_user_id
from gateway.services.authentication_service import AuthenticationService
from gateway.services.http_client import ServiceHttpClient

logger = logging.getLogger(__name__)


def get_container(request: Request) -> GatewayContainer:
    """Get the application's dependency container."""
    return request.app.state.container


def get_http_client(container: GatewayContainer = Depends(get_container)) -> ServiceHttpClient:  # noqa: B008
    return container.http_client


def get_auth_service(container: GatewayContainer = Depends(get_container)) -> AuthenticationService:  # noqa: B008
    return container.auth_service


@dataclass
class CurrentUser:
    """The authenticated caller, built from access token claims."""

    user_id: Any
    email: str | None = None
    role: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "CurrentUser":
        return cls(
            user_id=claims.get("user_id"),
            email=claims.get("email"),
            role=claims.get("role"),
            first_name=claims.get("first_name"),
            last_name=claims.get("last_name"),
        )

    def has_role(self, role: str) -> bool:
        return self.role is not None and str(self.role) == role

    @property
    def is_admin(self) -> bool:
        return self.has_role("admin")

    @property
    def is_doctor(self) -> bool:
        return self.has_role("doctor")

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "role": self.role,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }


def extract_token(authorization: str | None) -> str | None:
    """Token from "Bearer <token>" or a bare token."""
    if not authorization or not authorization.strip():
        return None
    if authorization.startswith("Bearer "):
        return authorization.split(" ")[-1] or None
    return authorization.strip()


async def _authenticate(request: Request, auth_service: AuthenticationService, token: str) -> CurrentUser | None:
    result = await auth_service.validate(token)
    if not result.success or not result.user:
        request.state.auth_error = result.error
        return None

    user = CurrentUser.from_claims(result.user)
    request.state.user = user
    request.state.access_token = token
    bind_user_id(str(user.user_id) if user.user_id is not None else None)
    return user


async def optional_user(
    request: Request,
    auth_service: AuthenticationService = Depends(get_auth_service),  # noqa: B008
) -> CurrentUser | None:
    """Authenticate when a valid token is present; never fails."""
    token = extract_token(request.headers.get("Authorization"))
    if token is None:
        return None
    return await _authenticate(request, auth_service, token)


async def require_user(
    request: Request,
    auth_service: AuthenticationService = Depends(get_auth_service),  # noqa: B008
) -> CurrentUser:
    """
    Require a valid access token.

    Raises:
        ApiError: 401 when the token is missing or fails validation
    """
    token = extract_token(request.headers.get("Authorization"))
    if token is None:
        raise ApiError("unauthorized", "unauthorized", "Authorization token is required")

    user = await _authenticate(request, auth_service, token)
    if user is None:
        message = getattr(request.state, "auth_error", None) or "Unauthorized"
        logger.info(f"Rejected token on {request.method} {request.url.path}: {message}")
        raise ApiError("unauthorized", "unauthorized", message)
    return user


async def require_admin(user: CurrentUser = Depends(require_user)) -> CurrentUser:  # noqa: B008
    if not user.is_admin:
        raise ApiError("forbidden", "forbidden", "Admin access required")
    return user


async def require_doctor(user: CurrentUser = Depends(require_user)) -> CurrentUser:  # noqa: B008
    if not (user.is_doctor or user.is_admin):
        raise ApiError("forbidden", "forbidden", "Doctor access required")
    return user

