"""
Pydantic schemas for the authentication endpoints.

Fields are optional so that blank credentials reach the authentication
service and get its 401 instead of a validation error.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ===== REQUEST MODELS =====


class LoginRequest(BaseModel):
    """Credentials checked by the users service."""

    model_config = ConfigDict(extra="ignore")

    email: str | None = Field(None, description="Account email")
    password: str | None = Field(None, description="Account password")


class RefreshRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    refresh_token: str | None = None


class LogoutRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    refresh_token: str | None = Field(None, description="Refresh token to revoke with the access token")


class PasswordResetRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str | None = None


class PasswordResetConfirm(BaseModel):
    model_config = ConfigDict(extra="ignore")

    token: str | None = None
    password: str | None = None
    password_confirmation: str | None = None


# ===== RESPONSE MODELS =====


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class LoginResponse(BaseModel):
    message: str = "Login successful"
    user: dict[str, Any] | None = None
    tokens: TokenPair


class RefreshResponse(BaseModel):
    message: str = "Token refreshed successfully"
    tokens: TokenPair


class LogoutResponse(BaseModel):
    message: str = "Logged out successfully"
    tokens_revoked: dict[str, bool]
