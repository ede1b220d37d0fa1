"""User-facing notices (the toast layer) as a recordable sink."""

import logging
from typing import List, Tuple

logger = logging.getLogger(__name__)


class Notifier:
    """Collects success / error notices and mirrors them to the log."""

    def __init__(self):
        self.messages: List[Tuple[str, str]] = []

    def success(self, message: str) -> None:
        self.messages.append(("success", message))
        logger.info(message)

    def error(self, message: str) -> None:
        self.messages.append(("error", message))
        logger.warning(message)

    def errors(self) -> List[str]:
        return [msg for level, msg in self.messages if level == "error"]

    def clear(self) -> None:
        self.messages.clear()
