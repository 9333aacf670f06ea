"""
Domain-specific exception hierarchy for the salon booking application.
"""


class SalonBookingError(Exception):
    """Base class for all application-level errors."""


class BookingValidationError(SalonBookingError):
    """Raised when a booking request cannot be honoured as submitted."""


class SlotConflictError(SalonBookingError):
    """Raised when an active appointment already occupies the requested interval."""

    def __init__(self, message: str, request=None):
        super().__init__(message)
        self.request = request


class AppointmentNotFoundError(SalonBookingError):
    """Raised when an appointment id does not exist."""


class InvalidTransitionError(SalonBookingError):
    """Raised when an appointment status change is not allowed."""


class BackendAPIError(SalonBookingError):
    """Raised when the hosted backend cannot be reached or rejects a call."""


class StaleSelectionError(SalonBookingError):
    """Raised when an availability request was superseded by a newer selection."""
