from __future__ import annotations

import logging

from bookingdesk.application.exceptions import BookingError
from bookingdesk.application.ports.notifier import NotifierPort


class LoggingNotifier(NotifierPort):
    """Notifier for headless sessions; keeps the last messages for the UI to poll."""

    def __init__(self, keep: int = 50) -> None:
        self._keep = keep
        self.messages: list[dict[str, str]] = []
        self._logger = logging.getLogger(__name__)

    def info(self, message: str) -> None:
        self._logger.info(message)
        self._remember("info", message)

    def error(self, error: BookingError) -> None:
        self._logger.warning(error.user_message, extra={"reason": error.category, "error": str(error)})
        self._remember(error.category, error.user_message)

    def _remember(self, level: str, message: str) -> None:
        self.messages.append({"level": level, "message": message})
        if len(self.messages) > self._keep:
            self.messages = self.messages[-self._keep :]
