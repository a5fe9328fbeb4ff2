"""Finalize domain logic - confirm a booking once its payment succeeded.

Called from payment callbacks, which may be retried or delivered twice.
All steps happen in a single transaction holding a row lock on the booking:

1. Lock the booking (FOR UPDATE)
2. Already confirmed -> report it, no writes
3. Cancelled -> BookingStateError
4. Allocate nights from the quote snapshot (unless already allocated)
5. Confirm the booking and mark the payment session paid

If allocation hits the active-night index, the booking is cancelled and
the payment session marked failed, those writes are committed, and the
conflict is raised to the caller. Payment providers are never called.
"""

from __future__ import annotations

import logging
from decimal import Decimal

import psycopg2.errors

from stayline.domain.bookings import (
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
)
from stayline.domain.errors import (
    AvailabilityConflictError,
    BookingStateError,
    NotFoundError,
)
from stayline.domain.quote import QuoteResult
from stayline.infra.db import is_unique_violation, savepoint, txn
from stayline.infra.repositories.bookings_repository import (
    ACTIVE_NIGHT_INDEX,
    count_active_nights,
    get_booking,
    insert_nights,
    update_booking_status,
)
from stayline.infra.repositories.payments_repository import mark_payment_sessions
from stayline.infra.time import iter_nights
from stayline.observability.logging import get_logger, log_event

logger = get_logger(__name__)

_ZERO = Decimal("0")


def allocation_rows_for(booking: dict) -> list[dict]:
    """Night rows for a booking: from its quote snapshot, else zero-priced."""
    payload = booking.get("quote_payload")
    if payload:
        return QuoteResult.from_payload(payload).allocation_rows()
    return [
        {
            "night": night,
            "base_rate": _ZERO,
            "extras_adults": _ZERO,
            "extras_children": _ZERO,
            "taxes": _ZERO,
            "total_rate": _ZERO,
        }
        for night in iter_nights(booking["check_in"], booking["check_out"])
    ]


def finalize_booking(booking_id: str, payment_reference: str | None = None) -> dict:
    """Confirm a paid booking. Idempotent.

    Args:
        booking_id: Booking UUID.
        payment_reference: Payment session id to mark; when omitted, every
            unpaid session of the booking is updated.

    Returns:
        {"already_confirmed": True, "booking_id"} on a repeat call, or
        {"confirmed": True, "booking_id", "nights": int}.

    Raises:
        NotFoundError: Unknown booking.
        BookingStateError: Booking was cancelled.
        AvailabilityConflictError: A night was taken meanwhile; the booking
            is now cancelled and its payment session failed.
    """
    conflict: psycopg2.errors.UniqueViolation | None = None
    allocated = 0

    with txn() as cur:
        booking = get_booking(cur, booking_id, lock=True)
        if booking is None:
            raise NotFoundError("booking_not_found", {"booking_id": booking_id})

        if booking["status"] == STATUS_CONFIRMED:
            return {"already_confirmed": True, "booking_id": booking_id}
        if booking["status"] == STATUS_CANCELLED:
            raise BookingStateError("booking_cancelled", {"booking_id": booking_id})

        if count_active_nights(cur, booking_id) == 0:
            rows = allocation_rows_for(booking)
            try:
                with savepoint(cur, "finalize_nights"):
                    insert_nights(
                        cur,
                        booking_id=booking_id,
                        room_id=booking["room_id"],
                        adults=booking["adults"],
                        children_count=booking["children_count"],
                        nights=rows,
                    )
                allocated = len(rows)
            except psycopg2.errors.UniqueViolation as exc:
                if not is_unique_violation(exc, ACTIVE_NIGHT_INDEX):
                    raise
                conflict = exc

        if conflict is not None:
            update_booking_status(cur, booking_id=booking_id, status=STATUS_CANCELLED)
            mark_payment_sessions(
                cur,
                booking_id=booking_id,
                status="failed",
                payment_session_id=payment_reference,
            )
        else:
            update_booking_status(cur, booking_id=booking_id, status=STATUS_CONFIRMED)
            mark_payment_sessions(
                cur,
                booking_id=booking_id,
                status="paid",
                payment_session_id=payment_reference,
            )

    if conflict is not None:
        log_event(
            logger,
            "finalize conflict, booking cancelled",
            level=logging.WARNING,
            booking_id=booking_id,
            property_id=booking["property_id"],
            room_id=booking["room_id"],
            payment_reference=payment_reference,
        )
        raise AvailabilityConflictError(
            "availability_conflict",
            {"booking_id": booking_id, "room_id": booking["room_id"]},
        ) from conflict

    log_event(
        logger,
        "booking finalized",
        booking_id=booking_id,
        property_id=booking["property_id"],
        nights_allocated=allocated,
        previous_status=booking["status"],
    )
    return {"confirmed": True, "booking_id": booking_id, "nights": allocated}
