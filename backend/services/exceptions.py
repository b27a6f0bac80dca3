"""Custom exceptions for the ride services."""


class RideServiceError(Exception):
    """Base class for errors raised by the ride services."""
    pass


class RideValidationError(RideServiceError):
    """Raised when a ride request or fare input is malformed."""
    pass


class NotFoundError(RideServiceError):
    """Raised when an operation references a record that does not exist."""
    pass


class RideNotFoundError(NotFoundError):
    """Raised when a ride cannot be found."""
    pass


class RideAlreadyTerminalError(RideServiceError):
    """Raised when cancelling or completing a ride that is already completed or cancelled."""

    def __init__(self, message: str, status: str = ""):
        super().__init__(message)
        self.status = status


class NotAuthenticatedError(RideServiceError):
    """Raised when a session operation needs a user and none is signed in."""
    pass


class StoreError(RideServiceError):
    """Raised when the underlying data store call fails."""
    pass
