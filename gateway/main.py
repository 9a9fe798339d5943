"""
Application entry point.

Run with ``uvicorn gateway.main:app``.
"""

import logging

import sentry_sdk

from gateway.config.settings import get_settings
from gateway.core.app_factory import create_app
from gateway.core.shared.logger import configure_logging

settings = get_settings()

configure_logging(
    level=settings.LOG_LEVEL,
    format_type=settings.LOG_FORMAT,
    service=settings.SERVICE_NAME,
    environment=settings.ENVIRONMENT,
)

logger = logging.getLogger(__name__)

# Initialize Sentry for error tracking
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        send_default_pii=False,
        environment=settings.ENVIRONMENT,
        release=settings.VERSION,
    )

# Create application using factory
app = create_app(settings)

if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting {settings.SERVICE_NAME} in {settings.ENVIRONMENT} mode")
    uvicorn.run(
        "gateway.main:app",
        host="0.0.0.0",
        port=3000,
        reload=settings.DEBUG,
    )
