"""
Dependency Injection Container

Creates and wires the gateway's long-lived components. One container is
built per application and stored on app.state; FastAPI dependencies read
from it.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from gateway.config.settings import Settings
from gateway.core.cache.store import CacheStore, create_cache_store
from gateway.core.infrastructure.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from gateway.core.infrastructure.rate_limiter import RateLimiter, create_gateway_rate_limiter
from gateway.services.authentication_service import AuthenticationService
from gateway.services.health_service import HealthService
from gateway.services.http_client import ServiceHttpClient
from gateway.services.service_registry import ServiceRegistry
from gateway.services.token_service import TokenError, TokenService

logger = logging.getLogger(__name__)


@dataclass
class GatewayContainer:
    """All components shared across requests."""

    settings: Settings
    store: CacheStore
    registry: ServiceRegistry
    breaker: CircuitBreaker
    http_client: ServiceHttpClient
    token_service: TokenService
    auth_service: AuthenticationService
    rate_limiter: RateLimiter
    health_service: HealthService

    @classmethod
    def build(
        cls,
        settings: Settings,
        store: CacheStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> "GatewayContainer":
        """
        Wire the gateway components.

        Args:
            settings: Application settings
            store: Cache store override (defaults to CACHE_BACKEND)
            transport: httpx transport override for downstream calls
            clock: Epoch clock for the breaker and the rate limiter
        """
        store = store or create_cache_store(settings)
        registry = ServiceRegistry.from_settings(settings)
        breaker = CircuitBreaker(
            store,
            config=CircuitBreakerConfig.from_settings(settings),
            services=registry.names,
            clock=clock,
        )
        http_client = ServiceHttpClient.from_settings(settings, registry, breaker, transport=transport)
        token_service = TokenService.from_settings(settings, store)
        auth_service = AuthenticationService(http_client, token_service, revoke_on_refresh=settings.REVOKE_ON_REFRESH)

        async def resolve_user_id(token: str) -> str | None:
            try:
                claims = await token_service.decode(token)
            except TokenError:
                return None
            user_id = claims.get("user_id")
            return str(user_id) if user_id is not None else None

        rate_limiter = create_gateway_rate_limiter(settings, store, resolve_user_id, clock=clock)
        health_service = HealthService(settings, store, registry, breaker, http_client)

        logger.info(f"Gateway container built with {store.backend} cache store")
        return cls(
            settings=settings,
            store=store,
            registry=registry,
            breaker=breaker,
            http_client=http_client,
            token_service=token_service,
            auth_service=auth_service,
            rate_limiter=rate_limiter,
            health_service=health_service,
        )

    async def close(self) -> None:
        await self.http_client.close()
        await self.store.close()
