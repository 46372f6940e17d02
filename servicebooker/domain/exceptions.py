"""
Domain-specific exception hierarchy for the booking engine.

Rule violations (overlap, buffers, minimum advance) are *not* exceptions;
they are returned as ``Reject`` values from the conflict evaluator.
"""


class BookingEngineError(Exception):
    """Base class for all application-level errors."""


class ValidationError(BookingEngineError):
    """Raised when caller input is rejected before any store access."""

    def __init__(self, field: str, message: str, rule: object = None):
        super().__init__(message)
        self.field = field
        self.message = message
        self.rule = rule


class InvalidDateFormat(ValidationError):
    """Raised when a calendar date is not in YYYY-MM-DD form."""

    def __init__(self, value: object):
        super().__init__("date", f"Invalid date format: {value!r}. Expected YYYY-MM-DD")
        self.value = value


class ConfigurationUnavailable(BookingEngineError):
    """Raised when administrative setup (timezone, default status, ...) is missing."""


class StoreError(BookingEngineError):
    """Raised when the booking store cannot be read or written."""


class BookingNotFound(BookingEngineError):
    """Raised when a booking cannot be located for the caller."""


class BookingLimitReached(BookingEngineError):
    """Raised when a client already holds the maximum number of open bookings."""


class CancellationNotAllowed(BookingEngineError):
    """Raised when a booking is final or has already started."""
