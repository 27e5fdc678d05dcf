class BookingError(RuntimeError):
    """Base class for every categorized scheduler failure."""

    category = "error"
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None, *, user_message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.user_message = user_message or message or self.default_message


class ValidationError(BookingError):
    """Raised for malformed or missing booking fields. Never retried."""

    category = "validation"
    default_message = "Invalid booking data."


class PermissionDenied(BookingError):
    """Raised when the role or ownership check fails. No state is changed."""

    category = "permission"
    default_message = "Access denied. You do not have permission to make this change."


class AuthExpired(BookingError):
    """Raised when the remote store rejects our credentials."""

    category = "auth"
    default_message = "Authentication required. Please log in again."


class NetworkUnavailable(BookingError):
    """Raised when a request never reached the server (timeouts, DNS, refused connections)."""

    category = "network"
    default_message = "Network error: could not reach the server. Changes are saved locally."


class ServerError(BookingError):
    """Raised when the remote store answers with an error status."""

    category = "server"
    default_message = "Server error. The change was not saved."

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.status_code = status_code
