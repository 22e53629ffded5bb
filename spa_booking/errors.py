"""
This module contains the error types raised by the booking service.

Every error maps to an HTTP status and is rendered as ``{"error": message}``.
"""


class BookingError(Exception):
    """Base class for errors surfaced to API clients."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Missing or malformed input."""
    status_code = 400


class ConflictError(BookingError):
    """The proposed appointment overlaps an existing one for the same therapist."""
    status_code = 409


class NotFoundError(BookingError):
    """No record with the requested id."""
    status_code = 404


class StorageError(BookingError):
    """Persistence failure. The message is generic; details are only logged."""
    status_code = 500


class NotificationError(Exception):
    """Failure of the outbound chat channel. Logged, never surfaced to clients."""
    pass
