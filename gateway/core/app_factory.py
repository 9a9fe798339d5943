"""
Application factory for FastAPI.

Builds the gateway application: container, middleware, exception handlers
and routes. Tests pass their own settings and container.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gateway.api.exception_handlers import register_exception_handlers
from gateway.api.middleware import RateLimitMiddleware, RequestTracerMiddleware
from gateway.api.router import api_router
from gateway.api.routes import fallback, health
from gateway.config.settings import Settings, get_settings
from gateway.core.container import GatewayContainer
from gateway.core.lifecycle import lifespan

logger = logging.getLogger(__name__)


class AppFactory:
    """
    Factory for creating and configuring FastAPI applications.

    Each configuration step is handled by a dedicated method.
    """

    def __init__(self, settings: Settings | None = None, container: GatewayContainer | None = None) -> None:
        """
        Initialize app factory.

        Args:
            settings: Application settings (uses default if not provided)
            container: Pre-built component container (built from settings if not provided)
        """
        self._settings = settings or (container.settings if container else get_settings())
        self._container = container

    def create_app(self) -> FastAPI:
        """
        Create and configure the FastAPI application.

        Returns:
            Configured FastAPI application instance.
        """
        app = self._create_base_app()
        app.state.container = self._container or GatewayContainer.build(self._settings)

        self._configure_middleware(app)
        self._configure_exception_handlers(app)
        self._configure_routes(app)

        logger.info(f"Application created: {self._settings.PROJECT_NAME}")
        return app

    def _create_base_app(self) -> FastAPI:
        """Create the base FastAPI application with lifespan."""
        return FastAPI(
            title=self._settings.PROJECT_NAME,
            description=self._settings.PROJECT_DESCRIPTION,
            version=self._settings.VERSION,
            docs_url=f"{self._settings.API_V1_STR}/docs" if self._settings.DEBUG else None,
            redoc_url=f"{self._settings.API_V1_STR}/redoc" if self._settings.DEBUG else None,
            lifespan=lifespan,
        )

    def _configure_middleware(self, app: FastAPI) -> None:
        """
        Configure application middleware.

        Middleware order matters (the last one added runs first):
        1. CORS (outermost)
        2. Request tracing, so throttled responses carry a request id
        3. Rate limiting (innermost before routing)
        """
        app.add_middleware(RateLimitMiddleware, enabled=self._settings.RATE_LIMIT_ENABLED)
        app.add_middleware(RequestTracerMiddleware)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=self._settings.cors_origins,
            allow_credentials="*" not in self._settings.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Request-ID", "X-Correlation-ID", "X-Response-Time-Ms", "Retry-After"],
        )

        logger.info("Middleware configured")

    def _configure_exception_handlers(self, app: FastAPI) -> None:
        """Register exception handlers."""
        register_exception_handlers(app, self._settings)

    def _configure_routes(self, app: FastAPI) -> None:
        """Configure API routes."""
        # Health endpoints (no prefix - served at root)
        app.include_router(health.router, tags=["health"])

        # API routes (with /api/v1 prefix)
        app.include_router(api_router, prefix=self._settings.API_V1_STR)

        # Must stay last: claims every /api path left unmatched
        app.include_router(fallback.router)

        logger.info("Routes configured")


def create_app(settings: Settings | None = None, container: GatewayContainer | None = None) -> FastAPI:
    """
    Create FastAPI application using the factory.

    Args:
        settings: Optional settings override
        container: Optional component container override

    Returns:
        Configured FastAPI application
    """
    factory = AppFactory(settings, container)
    return factory.create_app()
