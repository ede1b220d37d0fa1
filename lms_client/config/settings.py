"""
MODULE_DESCRIPTION: Client Configuration Settings - Endpoints and Runtime Constants

===================================================================================
PURPOSE AND OVERVIEW
===================================================================================

This module is the central configuration hub for the LMS API client. It defines
the base URL resolution, the request defaults every outgoing call carries, the
route table of the LMS REST API, and the tuning knobs of the query cache.

The module manages:
    - Base URL resolution (development proxy vs. production host)
    - Default request headers and the fixed request timeout
    - Auth endpoints that are exempt from the refresh-and-retry path
    - Query cache defaults (retry bound, backoff base and cap)
    - Search debounce window and rate-limit cooldown fallback

Design Principle:
    Values are read once from the environment (after load_dotenv) into module
    level constants. Components accept overrides at construction time, so tests
    never need to patch this module.

===================================================================================
BASE URL RESOLUTION
===================================================================================

Development (LMS_DEV_MODE=1):
    LMS_DEV_PROXY_URL, default "http://localhost:5173/api" (the dev server
    proxies /api to the backend)

Production:
    LMS_API_URL, falling back to the hardcoded production host
    "https://api.cobalms.web.id/api"

===================================================================================
AUTH ENDPOINTS
===================================================================================

POST /v1/users/login     -> {accessToken, refreshToken, user}
POST /v1/users/refresh   -> {accessToken, refreshToken}

Neither route ever enters the 401 refresh path, and only these two responses
may write the cached user into the session.

===================================================================================
"""

import os

# Load environment variables early
from dotenv import load_dotenv

load_dotenv()

# ============================================================
# CONFIGURATION AND CONSTANTS
# ============================================================

# Development mode switches the base URL to the local proxy path
DEV_MODE = os.environ.get("LMS_DEV_MODE", "0") == "1"
DEV_PROXY_BASE_URL = os.environ.get("LMS_DEV_PROXY_URL", "http://localhost:5173/api")

PRODUCTION_FALLBACK_URL = "https://api.cobalms.web.id/api"
API_BASE_URL = os.environ.get("LMS_API_URL") or PRODUCTION_FALLBACK_URL

# Every HTTP call fails with a timeout error after this many seconds
REQUEST_TIMEOUT = float(os.environ.get("LMS_REQUEST_TIMEOUT", "10"))

DEFAULT_HEADERS = {"Content-Type": "application/json"}

SIGN_IN_PATH = "/sign-in"

# Attempt a refresh before sending when the access token's exp has passed
PROACTIVE_REFRESH_ENABLED = os.environ.get("LMS_PROACTIVE_REFRESH", "0") == "1"
TOKEN_EXPIRY_LEEWAY = 5  # seconds

# =======================================================================
# API ROUTES
# =======================================================================

LOGIN_PATH = "/v1/users/login"
REFRESH_PATH = "/v1/users/refresh"

# Requests to these paths never trigger the refresh-and-retry flow
AUTH_ENDPOINTS = frozenset({LOGIN_PATH, REFRESH_PATH})

API_ENDPOINTS = {
    # Auth endpoints
    "login": LOGIN_PATH,
    "getUserInfo": "/v1/users/info-user",
    "register": "/v1/users/register",
    "logout": "/v1/users/logout",
    "refresh": REFRESH_PATH,
    # Dashboard endpoints
    "userDashboard": "/v1/dashboard/user-dashboard",
    "adminDashboard": "/v1/dashboard/admin-dashboard",
    "superDashboard": "/v1/dashboard/super-dashboard",
    "dashboard": "/v1/dashboard",
    # Class management
    "allKelas": "/v1/admin/all-kelas",
    "kelas": "/v1/kelas",
}

# =======================================================================
# QUERY CACHE DEFAULTS
# =======================================================================

# Failed fetches are retried this many times before the error is surfaced
QUERY_RETRY = int(os.environ.get("LMS_QUERY_RETRY", "2"))
QUERY_RETRY_BASE_DELAY = 1.0  # seconds, doubled on every attempt
QUERY_RETRY_MAX_DELAY = 30.0  # cap for the exponential backoff

# Keystrokes within this window are coalesced into one search request
SEARCH_DEBOUNCE_SECONDS = float(os.environ.get("LMS_SEARCH_DEBOUNCE", "0.5"))

# Cooldown used when a 429 response carries no Retry-After header (15 minutes)
RATE_LIMIT_DEFAULT_COOLDOWN = 900


def get_api_base_url(dev_mode: bool | None = None) -> str:
    """Resolve the API base URL for the current mode."""
    if dev_mode is None:
        dev_mode = DEV_MODE
    if dev_mode:
        return DEV_PROXY_BASE_URL
    return API_BASE_URL
