"""Booking engine error taxonomy.

Every error carries a machine-readable reason_code and a meta dict with
non-PII context. The API layer maps the classes to HTTP status codes.
"""

from __future__ import annotations


class BookingError(Exception):
    """Base class for engine errors."""

    def __init__(self, reason_code: str, meta: dict | None = None):
        self.reason_code = reason_code
        self.meta = meta or {}
        super().__init__(f"{type(self).__name__}: {reason_code}")


class ValidationError(BookingError):
    """Malformed dates, missing required fields, non-positive occupancy."""


class NotFoundError(BookingError):
    """Room not in property, or booking/quote/block does not exist."""


class ExpiredQuoteError(BookingError):
    """Quote TTL elapsed; the caller must re-quote."""


class AvailabilityConflictError(BookingError):
    """The room is not free for the range, or the night constraint fired."""


class BookingStateError(BookingError):
    """Transition not allowed from the booking's current status."""
