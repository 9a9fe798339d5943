"""
Shared utilities: logging setup and parameter filtering.
"""

from gateway.core.shared.logger import ColoredFormatter, JSONFormatter, RequestContextFilter, configure_logging
from gateway.core.shared.sanitization import (
    FILTERED,
    SENSITIVE_PARAMS,
    filter_params,
    filter_query_string,
    sanitize_user,
)

__all__ = [
    "ColoredFormatter",
    "JSONFormatter",
    "RequestContextFilter",
    "configure_logging",
    "FILTERED",
    "SENSITIVE_PARAMS",
    "filter_params",
    "filter_query_string",
    "sanitize_user",
]
