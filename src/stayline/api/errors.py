"""Translate engine errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException

from stayline.domain.errors import (
    AvailabilityConflictError,
    BookingError,
    BookingStateError,
    ExpiredQuoteError,
    NotFoundError,
    ValidationError,
)

_STATUS_BY_ERROR: list[tuple[type[BookingError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (ExpiredQuoteError, 410),
    (AvailabilityConflictError, 409),
    (BookingStateError, 409),
]


def status_for(exc: BookingError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def http_error(exc: BookingError) -> HTTPException:
    """HTTPException carrying the error's reason_code as detail.

    Usage:
        except BookingError as exc:
            raise http_error(exc) from exc
    """
    return HTTPException(status_code=status_for(exc), detail=exc.reason_code)
