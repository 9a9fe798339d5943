"""
Application lifecycle management using the FastAPI lifespan pattern.

Startup opens the downstream HTTP client and checks that the shared cache
answers; shutdown releases both.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gateway.core.cache.store import CacheUnavailableError
from gateway.core.container import GatewayContainer

logger = logging.getLogger(__name__)


class LifecycleManager:
    """
    Manages application lifecycle events.

    Handles startup initialization and graceful shutdown.
    """

    def __init__(self, container: GatewayContainer) -> None:
        self._container = container
        self._initialized = False

    async def startup(self) -> None:
        if self._initialized:
            logger.warning("Lifecycle already initialized, skipping startup")
            return

        logger.info("Starting application lifecycle...")

        await self._container.http_client.initialize()
        await self._verify_cache()

        self._initialized = True
        logger.info("Application lifecycle startup completed")

    async def shutdown(self) -> None:
        if not self._initialized:
            logger.warning("Lifecycle not initialized, skipping shutdown")
            return

        logger.info("Stopping application lifecycle...")
        await self._container.close()

        self._initialized = False
        logger.info("Application lifecycle shutdown completed")

    async def _verify_cache(self) -> None:
        """Warn, without failing startup, when the shared cache is unreachable."""
        try:
            await self._container.store.ping()
            logger.info(f"Cache store connectivity verified ({self._container.store.backend})")
        except CacheUnavailableError as e:
            logger.warning(f"Cache store unavailable, circuit breakers and rate limits will fail open: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Usage:
        app = FastAPI(lifespan=lifespan)
        app.state.container = container
    """
    lifecycle = LifecycleManager(app.state.container)

    # Startup
    await lifecycle.startup()

    yield  # Application runs here

    # Shutdown
    await lifecycle.shutdown()
