"""
Rate Limiter Infrastructure

Fixed-window request throttling with safelists and blocklists, backed by the
shared cache store so that limits hold across every gateway worker.

Rules are evaluated in order:
1. Safelists: a match lets the request through untouched
2. Blocklists: a match rejects the request with RequestBlocked
3. Throttles: each throttle that yields a discriminator increments its
   window counter; the first one over its limit raises RateLimitExceeded
"""

import json
import logging
import re
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote_plus

from gateway.config.settings import Settings
from gateway.core.cache.store import CacheStore, CacheUnavailableError

logger = logging.getLogger(__name__)

SQL_INJECTION_PATTERN = re.compile(
    r"(\b(union|select|insert|update|delete|drop|truncate)\b.*\b(from|into|set|table)\b)",
    re.IGNORECASE,
)

HEALTH_PATHS = frozenset({"/health", "/up", "/health/services"})
LOOPBACK_IPS = frozenset({"127.0.0.1", "::1"})


class RateLimitExceeded(Exception):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, message: str, rule: str, limit: int, period: int, retry_after: int, reset_at: int):
        self.rule = rule
        self.limit = limit
        self.period = period
        self.retry_after = retry_after
        self.reset_at = reset_at
        super().__init__(message)


class RequestBlocked(Exception):
    """Exception raised when a request matches a blocklist."""

    def __init__(self, rule: str):
        self.rule = rule
        super().__init__(f"Request blocked by {rule}")


@dataclass
class RequestInfo:
    """The parts of an incoming request the rules look at."""

    method: str
    path: str
    client_ip: str
    query_string: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    body_loader: Callable[[], Awaitable[bytes]] | None = None
    _json: Any = field(default=None, init=False, repr=False)
    _json_loaded: bool = field(default=False, init=False, repr=False)

    @property
    def authorization(self) -> str | None:
        return self.headers.get("authorization") or None

    async def json(self) -> Any:
        """Parsed JSON body, None when absent or malformed."""
        if not self._json_loaded:
            self._json_loaded = True
            if self.body_loader is not None:
                body = await self.body_loader()
                try:
                    self._json = json.loads(body) if body else None
                except ValueError:
                    self._json = None
        return self._json


Discriminator = Callable[[RequestInfo], Awaitable[str | None]]


@dataclass
class Throttle:
    """A named fixed-window limit; requests without a discriminator are not counted."""

    name: str
    limit: int | Callable[[], int]
    period: int
    discriminator: Discriminator

    def current_limit(self) -> int:
        return self.limit() if callable(self.limit) else self.limit


@dataclass
class Rule:
    """A named safelist or blocklist predicate."""

    name: str
    matches: Callable[[RequestInfo], bool]


class RateLimiter:
    """
    Throttle, safelist and blocklist engine.

    Example:
        ```python
        limiter = RateLimiter(store)
        limiter.throttle("api/ip", limit=100, period=60, discriminator=by_ip)

        try:
            await limiter.check(request_info)
        except RateLimitExceeded as e:
            ...  # respond 429, retry after e.retry_after seconds
        ```
    """

    KEY_PREFIX = "rate_limit"

    def __init__(self, store: CacheStore, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock
        self.safelists: list[Rule] = []
        self.blocklists: list[Rule] = []
        self.throttles: list[Throttle] = []

    def safelist(self, name: str, matches: Callable[[RequestInfo], bool]) -> None:
        self.safelists.append(Rule(name, matches))

    def blocklist(self, name: str, matches: Callable[[RequestInfo], bool]) -> None:
        self.blocklists.append(Rule(name, matches))

    def throttle(self, name: str, limit: int | Callable[[], int], period: int, discriminator: Discriminator) -> None:
        self.throttles.append(Throttle(name, limit, period, discriminator))

    async def check(self, request: RequestInfo) -> bool:
        """
        Evaluate all rules for a request.

        Returns:
            True if the request was safelisted, False if it passed the throttles

        Raises:
            RequestBlocked: When a blocklist matches
            RateLimitExceeded: When a throttle is over its limit
        """
        for rule in self.safelists:
            if rule.matches(request):
                return True

        for rule in self.blocklists:
            if rule.matches(request):
                raise RequestBlocked(rule.name)

        for throttle in self.throttles:
            discriminator = await throttle.discriminator(request)
            if not discriminator:
                continue
            await self._count(throttle, discriminator)

        return False

    async def _count(self, throttle: Throttle, discriminator: str) -> None:
        now = int(self._clock())
        period = throttle.period
        key = f"{self.KEY_PREFIX}:{now // period}:{throttle.name}:{discriminator}"
        try:
            count = await self._store.incr(key, expire=period)
        except CacheUnavailableError as e:
            logger.warning(
                f"Rate limit store unavailable, allowing request: {e}",
                extra={"extra_data": {"event": "rate_limit_store_unavailable", "rule": throttle.name}},
            )
            return

        limit = throttle.current_limit()
        if count > limit:
            retry_after = period - (now % period)
            raise RateLimitExceeded(
                f"Rate limit exceeded. Please retry after {retry_after} seconds.",
                rule=throttle.name,
                limit=limit,
                period=period,
                retry_after=retry_after,
                reset_at=now + retry_after,
            )


def looks_like_sql_injection(req: RequestInfo) -> bool:
    """Match the query string (raw and decoded) and the path against SQL keyword pairs."""
    candidates = (req.query_string, unquote_plus(req.query_string), req.path)
    return any(SQL_INJECTION_PATTERN.search(candidate) for candidate in candidates if candidate)


def _bearer_token(header: str | None) -> str | None:
    if not header:
        return None
    token = header.split(" ")[-1].strip()
    return token or None


def create_gateway_rate_limiter(
    settings: Settings,
    store: CacheStore,
    resolve_user_id: Callable[[str], Awaitable[str | None]],
    clock: Callable[[], float] = time.time,
) -> RateLimiter:
    """
    Build the limiter with the gateway's rules.

    Args:
        settings: Limits for the general API throttles
        store: Shared counter store
        resolve_user_id: Maps a bearer token to its user id, None when invalid
        clock: Source of epoch seconds
    """
    limiter = RateLimiter(store, clock=clock)
    api_prefix = settings.API_V1_STR

    if settings.is_development:
        limiter.safelist("allow-localhost", lambda req: req.client_ip in LOOPBACK_IPS)
    limiter.safelist("allow-health-checks", lambda req: req.path in HEALTH_PATHS)

    limiter.blocklist("block-sql-injection", looks_like_sql_injection)
    limiter.blocklist("block-bad-paths", lambda req: ".." in req.path or "\x00" in req.path)

    def post_to(path: str) -> Discriminator:
        async def by_ip(req: RequestInfo) -> str | None:
            if req.method == "POST" and req.path == path:
                return req.client_ip
            return None

        return by_ip

    async def login_email(req: RequestInfo) -> str | None:
        if req.method != "POST" or req.path != f"{api_prefix}/auth/login":
            return None
        body = await req.json()
        if not isinstance(body, dict):
            return None
        email = str(body.get("email") or "").lower().strip()
        return email or None

    async def unauthenticated_ip(req: RequestInfo) -> str | None:
        if req.path.startswith("/api/") and not req.authorization:
            return req.client_ip
        return None

    async def authenticated_user(req: RequestInfo) -> str | None:
        if not req.path.startswith("/api/"):
            return None
        token = _bearer_token(req.authorization)
        if token is None:
            return None
        return await resolve_user_id(token)

    limiter.throttle("logins/ip", limit=5, period=60, discriminator=post_to(f"{api_prefix}/auth/login"))
    limiter.throttle("logins/email", limit=5, period=60, discriminator=login_email)
    limiter.throttle(
        "password-reset/ip", limit=5, period=3600, discriminator=post_to(f"{api_prefix}/auth/password/reset")
    )
    limiter.throttle("refresh/ip", limit=10, period=60, discriminator=post_to(f"{api_prefix}/auth/refresh"))
    limiter.throttle(
        "api/ip",
        limit=lambda: settings.RATE_LIMIT_REQUESTS_PER_MINUTE,
        period=60,
        discriminator=unauthenticated_ip,
    )
    limiter.throttle(
        "api/user",
        limit=lambda: settings.RATE_LIMIT_AUTHENTICATED_REQUESTS_PER_MINUTE,
        period=60,
        discriminator=authenticated_user,
    )

    return limiter
