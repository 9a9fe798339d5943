"""
Downstream service exceptions.

Raised by the service registry and the HTTP client, translated into REST
error responses by the API exception handlers.
"""


class GatewayServiceError(Exception):
    """Base exception for failures talking to downstream services."""

    def __init__(self, message: str, service: str | None = None):
        self.service = service
        super().__init__(message)


class ServiceNotFound(GatewayServiceError):
    """The requested service is not configured in the registry."""

    def __init__(self, service: str):
        super().__init__(f"Unknown service: {service}", service=service)


class ServiceUnavailable(GatewayServiceError):
    """The service could not be reached or failed at the transport level."""


class CircuitOpen(GatewayServiceError):
    """The circuit breaker for the service is refusing requests."""

    def __init__(self, service: str, retry_after: int | None = None):
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker is open for service: {service}", service=service)


class RequestTimeout(GatewayServiceError):
    """The service did not answer within the configured timeout."""
