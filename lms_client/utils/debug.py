import os
import sys

# Load environment variables early
from dotenv import load_dotenv

load_dotenv()


# ==============================================================================
# DEBUG FUNCTIONS
# ==============================================================================
def print__api_debug(msg: str) -> None:
    """Print outgoing request / incoming response traces when enabled.

    Args:
        msg: The message to print
    """
    debug_mode = os.environ.get("print__api_debug", "0")
    if debug_mode == "1":
        print(f"[print__api_debug] {msg}")
        sys.stdout.flush()


def print__token_debug(msg: str) -> None:
    """Print token refresh and session lifecycle traces when enabled.

    Args:
        msg: The message to print
    """
    debug_mode = os.environ.get("print__token_debug", "0")
    if debug_mode == "1":
        print(f"[print__token_debug] {msg}")
        sys.stdout.flush()


def print__cache_debug(msg: str) -> None:
    """Print query cache fetch / invalidation traces when enabled.

    Args:
        msg: The message to print
    """
    debug_mode = os.environ.get("print__cache_debug", "0")
    if debug_mode == "1":
        print(f"[print__cache_debug] {msg}")
        sys.stdout.flush()


def print__mutation_debug(msg: str) -> None:
    """Print optimistic mutation traces when enabled.

    Args:
        msg: The message to print
    """
    debug_mode = os.environ.get("print__mutation_debug", "0")
    if debug_mode == "1":
        print(f"[print__mutation_debug] {msg}")
        sys.stdout.flush()


def mask_token(token: str | None) -> str:
    """Shorten a token for log output."""
    if not token:
        return "<none>"
    return f"{token[:6]}..."
