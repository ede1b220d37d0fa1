"""
HTTP client package: the shared ApiClient and its per-request ledger.
"""

from .http_client import ApiClient, decode_json, is_auth_endpoint
from .ledger import (
    TERMINAL_STATES,
    RequestLedger,
    RequestRecord,
    RequestState,
)

__all__ = [
    "ApiClient",
    "decode_json",
    "is_auth_endpoint",
    "TERMINAL_STATES",
    "RequestLedger",
    "RequestRecord",
    "RequestState",
]
