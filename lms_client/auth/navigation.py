"""Location tracking and the sign-in redirect used by session teardown."""

from typing import List

from lms_client.config.settings import SIGN_IN_PATH
from lms_client.utils.debug import print__token_debug


class Navigator:
    """Current location of the application plus every redirect it was sent."""

    def __init__(self, current_path: str = "/"):
        self.current_path = current_path
        self.history: List[str] = []

    def redirect(self, path: str) -> None:
        self.history.append(path)
        self.current_path = path


def redirect_to_sign_in(navigator: Navigator, sign_in_path: str = SIGN_IN_PATH) -> bool:
    """Send the app to sign-in unless it is already there.

    Returns True when a redirect happened.
    """
    if navigator is None or navigator.current_path == sign_in_path:
        return False
    print__token_debug(f"↪️ Redirecting {navigator.current_path} -> {sign_in_path}")
    navigator.redirect(sign_in_path)
    return True
