"""
Domain-specific exception hierarchy for the booking availability engine.
"""


class BookingError(Exception):
    """Base class for all application-level errors."""


class ConfigurationError(BookingError):
    """Raised when required calendar credentials or settings are missing."""


class UpstreamUnavailable(BookingError):
    """Raised when calendar data cannot be fetched, written or parsed."""


class UpstreamTimeout(UpstreamUnavailable):
    """Raised when the calendar service does not answer within the request timeout."""


class InvalidInput(BookingError, ValueError):
    """Raised for malformed date ranges or non-chronological start/end pairs."""


class SlotConflict(BookingError):
    """Raised when a requested slot is no longer free at booking time."""
