"""
JWT issuing, verification and revocation for gateway sessions.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from gateway.config.settings import Settings
from gateway.core.cache.store import CacheStore, CacheUnavailableError

logger = logging.getLogger(__name__)


class TokenError(Exception):
    """Base class for token verification failures."""


class ExpiredTokenError(TokenError):
    """The token's exp claim is in the past."""


class InvalidTokenError(TokenError):
    """The token is malformed, badly signed or missing required claims."""


class TokenRevoked(TokenError):
    """The token's jti has been revoked."""


class TokenService:
    """
    Issues, verifies and revokes the gateway's JWTs.

    Access tokens carry the user's claims; refresh tokens carry only the
    user id. Both get exp, iat, a unique jti and a type claim. Revoked jtis
    are kept in the cache until the token would have expired anyway.
    """

    REVOKED_PREFIX = "jwt:revoked"
    REQUIRED_CLAIMS = ("exp", "iat", "jti", "type")
    REVOCATION_GRACE_SECONDS = 60
    EXPIRING_SOON_THRESHOLD = 300

    def __init__(
        self,
        secret: str,
        store: CacheStore,
        algorithm: str = "HS256",
        access_expiration: int = 86400,
        refresh_expiration: int = 604800,
    ):
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self._secret = secret
        self._store = store
        self.algorithm = algorithm
        self.access_expiration = access_expiration
        self.refresh_expiration = refresh_expiration

    @classmethod
    def from_settings(cls, settings: Settings, store: CacheStore) -> "TokenService":
        return cls(
            secret=settings.JWT_SECRET,
            store=store,
            algorithm=settings.JWT_ALGORITHM,
            access_expiration=settings.JWT_EXPIRATION,
            refresh_expiration=settings.JWT_REFRESH_EXPIRATION,
        )

    @staticmethod
    def _now() -> int:
        return int(datetime.now(timezone.utc).timestamp())

    def encode(self, payload: dict[str, Any], token_type: str = "access", expiration: int | None = None) -> str:
        """
        Create a signed JWT.

        Args:
            payload: Claims to include
            token_type: "access" or "refresh"
            expiration: Lifetime in seconds, defaults by token type

        Returns:
            Encoded JWT
        """
        if expiration is None:
            expiration = self.refresh_expiration if token_type == "refresh" else self.access_expiration
        now = self._now()
        to_encode = {
            **payload,
            "exp": now + expiration,
            "iat": now,
            "jti": str(uuid.uuid4()),
            "type": token_type,
        }
        return jwt.encode(to_encode, self._secret, algorithm=self.algorithm)

    def generate_access_token(self, payload: dict[str, Any]) -> str:
        return self.encode(payload, token_type="access")

    def generate_refresh_token(self, user_id: Any) -> str:
        return self.encode({"user_id": user_id}, token_type="refresh")

    def decode_claims(self, token: str) -> dict[str, Any]:
        """Verify signature, expiry and required claims without the revocation lookup."""
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            raise ExpiredTokenError("Token has expired") from e
        except JWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e

        missing = [claim for claim in self.REQUIRED_CLAIMS if claim not in claims]
        if missing:
            raise InvalidTokenError(f"Missing required claims: {', '.join(missing)}")
        return claims

    async def decode(self, token: str) -> dict[str, Any]:
        """
        Fully verify a token.

        Raises:
            ExpiredTokenError: Token is past its exp
            InvalidTokenError: Bad signature, malformed or missing claims
            TokenRevoked: Token id is on the revocation list
        """
        if not token:
            raise InvalidTokenError("Token is required")
        claims = self.decode_claims(token)
        if await self.is_revoked(claims["jti"]):
            raise TokenRevoked("Token has been revoked")
        return claims

    async def is_valid(self, token: str) -> bool:
        try:
            await self.decode(token)
        except TokenError:
            return False
        return True

    def _revoked_key(self, jti: str) -> str:
        return f"{self.REVOKED_PREFIX}:{jti}"

    async def is_revoked(self, jti: str) -> bool:
        try:
            return await self._store.exists(self._revoked_key(jti))
        except CacheUnavailableError as e:
            logger.warning(f"Token revocation list unavailable, treating {jti} as active: {e}")
            return False

    async def revoke(self, token: str) -> bool:
        """
        Revoke a token until its natural expiry.

        Returns:
            False when the token was already invalid, expired or revoked
        """
        try:
            claims = await self.decode(token)
        except TokenError:
            return False

        ttl = max(int(claims["exp"]) - self._now(), 0) + self.REVOCATION_GRACE_SECONDS
        return await self.revoke_by_jti(claims["jti"], ttl)

    async def revoke_by_jti(self, jti: str, ttl: int | None = None) -> bool:
        # Without a known expiry, outlive the longest-lived token type
        ttl = ttl if ttl is not None else self.refresh_expiration + self.REVOCATION_GRACE_SECONDS
        try:
            await self._store.set(self._revoked_key(jti), "1", ttl=ttl)
        except CacheUnavailableError as e:
            logger.error(f"Could not revoke token {jti}: {e}")
            return False
        logger.info(f"Token revoked: {jti}")
        return True

    async def expiring_soon(self, token: str, threshold: int = EXPIRING_SOON_THRESHOLD) -> bool:
        """True when the token expires within threshold seconds, or cannot be verified at all."""
        try:
            claims = await self.decode(token)
        except TokenError:
            return True
        return int(claims["exp"]) - self._now() < threshold
