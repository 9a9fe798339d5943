"""
Authentication against the users service and gateway token lifecycle.

Credentials are verified by the users service; the gateway only issues,
refreshes, validates and revokes its own JWTs.
"""

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import status as http_status

from gateway.services.exceptions import CircuitOpen, GatewayServiceError, ServiceUnavailable
from gateway.services.http_client import GatewayResponse, ServiceHttpClient
from gateway.services.token_service import ExpiredTokenError, InvalidTokenError, TokenRevoked, TokenService

logger = logging.getLogger(__name__)

USER_CLAIMS = ("user_id", "email", "role", "first_name", "last_name")


@dataclass
class AuthResult:
    """Outcome of an authentication operation."""

    success: bool
    user: dict[str, Any] | None = None
    tokens: dict[str, Any] | None = None
    error: str | None = None
    status: int = http_status.HTTP_200_OK

    @property
    def failure(self) -> bool:
        return not self.success

    @classmethod
    def failed(cls, error: str, status_code: int = http_status.HTTP_401_UNAUTHORIZED) -> "AuthResult":
        return cls(success=False, error=error, status=status_code)


class AuthenticationService:
    """
    Login, refresh, validation and logout.

    Example:
        ```python
        result = await auth_service.login(email, password)
        if result.success:
            return result.tokens
        ```
    """

    def __init__(self, http_client: ServiceHttpClient, token_service: TokenService, revoke_on_refresh: bool = True):
        self._http = http_client
        self._tokens = token_service
        self._revoke_on_refresh = revoke_on_refresh

    async def login(self, email: str | None, password: str | None, request_id: str | None = None) -> AuthResult:
        """Verify credentials with the users service and issue a token pair."""
        if not email or not password or not email.strip():
            return self._invalid_credentials()

        try:
            response = await self._http.post(
                "users",
                "/api/internal/authenticate",
                body={"email": email, "password": password},
                headers=self._request_headers(request_id),
            )
        except CircuitOpen:
            return AuthResult.failed(
                "Authentication service temporarily unavailable", http_status.HTTP_503_SERVICE_UNAVAILABLE
            )
        except ServiceUnavailable:
            return AuthResult.failed("Authentication service unavailable", http_status.HTTP_503_SERVICE_UNAVAILABLE)
        except GatewayServiceError as e:
            logger.error(f"Authentication error: {e}")
            return AuthResult.failed("Authentication failed", http_status.HTTP_500_INTERNAL_SERVER_ERROR)

        if response.success:
            user = response.body if isinstance(response.body, dict) else {}
            return AuthResult(success=True, user=user, tokens=self.generate_tokens(user))
        return self._auth_error(response)

    async def refresh(self, refresh_token: str | None, request_id: str | None = None) -> AuthResult:
        """Exchange a refresh token for a new token pair built from fresh user data."""
        if not refresh_token:
            return self._token_required()

        try:
            claims = await self._tokens.decode(refresh_token)
        except ExpiredTokenError:
            return AuthResult.failed("Refresh token has expired")
        except InvalidTokenError:
            return AuthResult.failed("Invalid refresh token")
        except TokenRevoked:
            return AuthResult.failed("Refresh token has been revoked")

        if claims.get("type") != "refresh":
            return AuthResult.failed("Invalid token type")

        user = await self.fetch_user(claims.get("user_id"), request_id=request_id)
        if not user:
            return self._user_not_found()

        tokens = self.generate_tokens(user)
        if self._revoke_on_refresh:
            await self._tokens.revoke(refresh_token)

        return AuthResult(success=True, user=user, tokens=tokens)

    async def validate(self, token: str | None) -> AuthResult:
        """Check an access token and return the user claims it carries."""
        if not token:
            return self._token_required()

        try:
            claims = await self._tokens.decode(token)
        except ExpiredTokenError:
            return AuthResult.failed("Token has expired")
        except InvalidTokenError:
            return AuthResult.failed("Invalid token")
        except TokenRevoked:
            return AuthResult.failed("Token has been revoked")

        if claims.get("type") != "access":
            return AuthResult.failed("Invalid token type")

        return AuthResult(success=True, user={claim: claims[claim] for claim in USER_CLAIMS if claim in claims})

    async def logout(self, access_token: str | None, refresh_token: str | None = None) -> AuthResult:
        """Revoke the given tokens; reports which ones were actually revoked."""
        access_revoked = await self._tokens.revoke(access_token) if access_token else False
        refresh_revoked = await self._tokens.revoke(refresh_token) if refresh_token else False
        return AuthResult(
            success=True,
            tokens={"access_token_revoked": access_revoked, "refresh_token_revoked": refresh_revoked},
        )

    async def fetch_user(self, user_id: Any, request_id: str | None = None) -> dict[str, Any] | None:
        """Load a user from the users service, None when it cannot be retrieved."""
        if user_id is None:
            return None
        try:
            response = await self._http.get(
                "users",
                f"/api/internal/users/{user_id}",
                headers=self._request_headers(request_id),
            )
        except GatewayServiceError as e:
            logger.error(f"Failed to fetch user {user_id}: {e}")
            return None
        if response.success and isinstance(response.body, dict):
            return response.body
        return None

    def generate_tokens(self, user: dict[str, Any]) -> dict[str, Any]:
        payload = {
            "user_id": user.get("id", user.get("user_id")),
            "email": user.get("email"),
            "role": user.get("role"),
            "first_name": user.get("first_name"),
            "last_name": user.get("last_name"),
        }
        payload = {key: value for key, value in payload.items() if value is not None}
        return {
            "access_token": self._tokens.generate_access_token(payload),
            "refresh_token": self._tokens.generate_refresh_token(payload.get("user_id")),
            "token_type": "Bearer",
            "expires_in": self._tokens.access_expiration,
        }

    @staticmethod
    def _request_headers(request_id: str | None) -> dict[str, str]:
        return {"X-Request-ID": request_id} if request_id else {}

    def _auth_error(self, response: GatewayResponse) -> AuthResult:
        if response.status == http_status.HTTP_401_UNAUTHORIZED:
            return self._invalid_credentials()
        if response.status == http_status.HTTP_404_NOT_FOUND:
            return self._user_not_found()
        if response.status == 422:
            body = response.body if isinstance(response.body, dict) else {}
            return AuthResult.failed(body.get("error") or "Validation failed", 422)
        return AuthResult.failed("Authentication failed", http_status.HTTP_500_INTERNAL_SERVER_ERROR)

    @staticmethod
    def _invalid_credentials() -> AuthResult:
        return AuthResult.failed("Invalid email or password")

    @staticmethod
    def _token_required() -> AuthResult:
        return AuthResult.failed("Token is required")

    @staticmethod
    def _user_not_found() -> AuthResult:
        return AuthResult.failed("User not found", http_status.HTTP_404_NOT_FOUND)
