"""
Configuration package for the LMS API client.

This package contains endpoints, request defaults and query cache tuning
for the LMS client library.
"""

# Import key configuration items for easier access
from .settings import (
    API_BASE_URL,
    API_ENDPOINTS,
    AUTH_ENDPOINTS,
    DEFAULT_HEADERS,
    DEV_MODE,
    LOGIN_PATH,
    PROACTIVE_REFRESH_ENABLED,
    QUERY_RETRY,
    QUERY_RETRY_BASE_DELAY,
    QUERY_RETRY_MAX_DELAY,
    RATE_LIMIT_DEFAULT_COOLDOWN,
    REFRESH_PATH,
    REQUEST_TIMEOUT,
    SEARCH_DEBOUNCE_SECONDS,
    SIGN_IN_PATH,
    get_api_base_url,
)

__all__ = [
    "API_BASE_URL",
    "API_ENDPOINTS",
    "AUTH_ENDPOINTS",
    "DEFAULT_HEADERS",
    "DEV_MODE",
    "LOGIN_PATH",
    "PROACTIVE_REFRESH_ENABLED",
    "QUERY_RETRY",
    "QUERY_RETRY_BASE_DELAY",
    "QUERY_RETRY_MAX_DELAY",
    "RATE_LIMIT_DEFAULT_COOLDOWN",
    "REFRESH_PATH",
    "REQUEST_TIMEOUT",
    "SEARCH_DEBOUNCE_SECONDS",
    "SIGN_IN_PATH",
    "get_api_base_url",
]
