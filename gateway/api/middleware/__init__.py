"""
Middleware package for the gateway.

Contains request tracing/logging and rate limiting middleware.
"""

from gateway.api.middleware.rate_limit import RateLimitMiddleware
from gateway.api.middleware.request_tracer import RequestTracerMiddleware

__all__ = [
    "RateLimitMiddleware",
    "RequestTracerMiddleware",
]
