"""
Parameter filtering for logs and forwarded payloads.
"""

from typing import Any
from urllib.parse import parse_qsl, urlencode

FILTERED = "[FILTERED]"

# Any key containing one of these never reaches a log line
SENSITIVE_PARAMS = (
    "password",
    "token",
    "api_key",
    "secret",
    "credit_card",
    "card_number",
    "cvv",
    "ssn",
    "social_security",
)

# Keys stripped from user records before they are returned to clients
PRIVATE_USER_FIELDS = frozenset(
    {
        "password_digest",
        "password_hash",
        "encrypted_password",
        "reset_password_token",
        "confirmation_token",
    }
)


def is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in SENSITIVE_PARAMS)


def filter_params(data: Any) -> Any:
    """Return a copy of data with sensitive values replaced, recursing into dicts and lists."""
    if isinstance(data, dict):
        return {
            key: FILTERED if isinstance(key, str) and is_sensitive(key) else filter_params(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [filter_params(item) for item in data]
    return data


def filter_query_string(query_string: str) -> str:
    """Filter sensitive parameters out of a raw query string."""
    if not query_string:
        return ""
    pairs = parse_qsl(query_string, keep_blank_values=True)
    return urlencode([(key, FILTERED if is_sensitive(key) else value) for key, value in pairs], safe="[]")


def sanitize_user(user: Any) -> Any:
    """Drop credential fields from a user record."""
    if not isinstance(user, dict):
        return user
    return {key: value for key, value in user.items() if key not in PRIVATE_USER_FIELDS}
