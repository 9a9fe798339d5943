"""
Core Infrastructure Module

Cross-cutting patterns for fault tolerance and observability.

Components:
- Circuit Breaker: Stops calling downstream services that keep failing
- Rate Limiter: Fixed-window throttles with safelists and blocklists
- Health: Concurrent health checks with status aggregation
"""

from gateway.core.infrastructure.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from gateway.core.infrastructure.health import HealthChecker, HealthStatus, aggregate_status, summarize
from gateway.core.infrastructure.rate_limiter import (
    RateLimiter,
    RateLimitExceeded,
    RequestBlocked,
    RequestInfo,
    create_gateway_rate_limiter,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "HealthChecker",
    "HealthStatus",
    "aggregate_status",
    "summarize",
    "RateLimiter",
    "RateLimitExceeded",
    "RequestBlocked",
    "RequestInfo",
    "create_gateway_rate_limiter",
]
