"""
Utility functions package for the LMS client.

This package contains debug tracing, retry/backoff policy, debounce,
rate-limit cooldown and notification helpers.
"""

# Debug utilities
from .debug import (
    mask_token,
    print__api_debug,
    print__cache_debug,
    print__mutation_debug,
    print__token_debug,
)

__all__ = [
    "mask_token",
    "print__api_debug",
    "print__cache_debug",
    "print__mutation_debug",
    "print__token_debug",
]
