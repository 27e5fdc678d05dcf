from abc import ABC, abstractmethod

from bookingdesk.application.exceptions import BookingError


class NotifierPort(ABC):
    @abstractmethod
    def info(self, message: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def error(self, error: BookingError) -> None:
        """Show a categorized failure to the user."""
        raise NotImplementedError
