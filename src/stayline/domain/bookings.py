"""Booking lifecycle - create, cancel and move reservations.

States: hold -> pending_payment -> confirmed, and cancelled (terminal).
Each operation runs in a single transaction. The partial unique index on
booking_nights (room_id, night) WHERE is_active is the arbiter against
double-selling; availability reads beforehand are advisory only.
"""

from __future__ import annotations

import logging
from datetime import date

import psycopg2.errors

from stayline.domain.access import AuthContext
from stayline.domain.errors import (
    AvailabilityConflictError,
    BookingStateError,
    NotFoundError,
    ValidationError,
)
from stayline.domain.quote import compute_quote, validate_stay
from stayline.infra.db import is_unique_violation, savepoint, txn
from stayline.infra.repositories.bookings_repository import (
    ACTIVE_NIGHT_INDEX,
    delete_nights,
    get_booking,
    insert_booking,
    insert_nights,
    set_nights_active,
    update_booking_stay,
    update_booking_status,
)
from stayline.observability.logging import get_logger, log_event

logger = get_logger(__name__)

STATUS_HOLD = "hold"
STATUS_PENDING_PAYMENT = "pending_payment"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"

SOURCE_INTERNAL = "internal"
SOURCE_DIRECT = "direct"


def _source_for(ctx: AuthContext) -> str:
    return SOURCE_INTERNAL if ctx.kind == "staff" else SOURCE_DIRECT


def _load_for_update(cur, ctx: AuthContext, booking_id: str) -> dict:
    booking = get_booking(cur, booking_id, lock=True)
    if booking is None:
        raise NotFoundError("booking_not_found", {"booking_id": booking_id})
    try:
        ctx.ensure_property(booking["property_id"])
    except NotFoundError:
        raise NotFoundError("booking_not_found", {"booking_id": booking_id}) from None
    return booking


def create_booking(
    ctx: AuthContext,
    *,
    property_id: str,
    room_id: str,
    guest_name: str,
    check_in: date,
    check_out: date,
    adults: int,
    children_ages: list[int] | None = None,
    guest_email: str | None = None,
    guest_phone: str | None = None,
) -> dict:
    """Create and confirm a booking for a specific room.

    Inserts the booking as 'hold', allocates one active night per quoted
    night and confirms it. A conflict on the night index rolls the whole
    transaction back, so no partial booking survives.

    Returns:
        {"booking_id", "status": "confirmed", "quote": QuoteResult}

    Raises:
        ValidationError: Bad dates, occupancy or missing guest name.
        NotFoundError: Room not in property.
        AvailabilityConflictError: Room not free, or lost the race on a night.
    """
    children_ages = list(children_ages or [])
    if not guest_name or not guest_name.strip():
        raise ValidationError("guest_name_required")
    validate_stay(check_in, check_out, adults, children_ages)
    ctx.ensure_property(property_id)

    try:
        with txn() as cur:
            quote = compute_quote(
                ctx,
                property_id=property_id,
                room_id=room_id,
                check_in=check_in,
                check_out=check_out,
                adults=adults,
                children_ages=children_ages,
                cur=cur,
            )
            booking_id = insert_booking(
                cur,
                property_id=property_id,
                room_id=room_id,
                guest_name=guest_name.strip(),
                guest_email=guest_email,
                guest_phone=guest_phone,
                check_in=check_in,
                check_out=check_out,
                status=STATUS_HOLD,
                source=_source_for(ctx),
                adults=adults,
                children_ages=children_ages,
                subtotal=quote.subtotal,
                taxes_total=quote.taxes_total,
                total_amount=quote.grand_total,
                currency=quote.currency,
                quote_payload=quote.to_payload(),
            )
            insert_nights(
                cur,
                booking_id=booking_id,
                room_id=room_id,
                adults=adults,
                children_count=len(children_ages),
                nights=quote.allocation_rows(),
            )
            update_booking_status(cur, booking_id=booking_id, status=STATUS_CONFIRMED)
    except psycopg2.errors.UniqueViolation as exc:
        if not is_unique_violation(exc, ACTIVE_NIGHT_INDEX):
            raise
        log_event(
            logger,
            "booking create lost night race",
            level=logging.WARNING,
            property_id=property_id,
            room_id=room_id,
            check_in=check_in,
            check_out=check_out,
        )
        raise AvailabilityConflictError(
            "availability_conflict",
            {"room_id": room_id, "check_in": check_in, "check_out": check_out},
        ) from exc

    log_event(
        logger,
        "booking created",
        property_id=property_id,
        booking_id=booking_id,
        room_id=room_id,
        nights=len(quote.nights),
        source=_source_for(ctx),
    )
    return {"booking_id": booking_id, "status": STATUS_CONFIRMED, "quote": quote}


def cancel_booking(ctx: AuthContext, booking_id: str) -> dict:
    """Cancel a booking and release its nights.

    Idempotent: an already cancelled booking is reported, not an error.
    Nights are deactivated, never deleted.

    Returns:
        {"booking_id", "status": "cancelled" | "already_cancelled",
         "nights_released": int}
    """
    with txn() as cur:
        booking = _load_for_update(cur, ctx, booking_id)
        if booking["status"] == STATUS_CANCELLED:
            return {"booking_id": booking_id, "status": "already_cancelled", "nights_released": 0}

        update_booking_status(cur, booking_id=booking_id, status=STATUS_CANCELLED)
        released = set_nights_active(cur, booking_id=booking_id, active=False)

    log_event(
        logger,
        "booking cancelled",
        property_id=booking["property_id"],
        booking_id=booking_id,
        previous_status=booking["status"],
        nights_released=released,
    )
    return {"booking_id": booking_id, "status": STATUS_CANCELLED, "nights_released": released}


def move_booking(
    ctx: AuthContext,
    booking_id: str,
    *,
    room_id: str,
    check_in: date,
    check_out: date,
) -> dict:
    """Move a booking to another room and/or dates, re-pricing it.

    The booking's own nights are released inside a savepoint while the
    target is checked and priced; any failure rolls back to the savepoint,
    restoring the original allocation, and re-raises.

    A pending_payment booking holds no nights yet; only its stay and quote
    snapshot change.

    Returns:
        {"booking_id", "room_id", "check_in", "check_out", "quote": QuoteResult}

    Raises:
        ValidationError: Bad dates.
        NotFoundError: Unknown booking, or destination room not in property.
        BookingStateError: Booking is cancelled.
        AvailabilityConflictError: Target not free.
    """
    with txn() as cur:
        booking = _load_for_update(cur, ctx, booking_id)
        if booking["status"] == STATUS_CANCELLED:
            raise BookingStateError("booking_cancelled", {"booking_id": booking_id})
        validate_stay(check_in, check_out, booking["adults"], booking["children_ages"])

        allocates = booking["status"] != STATUS_PENDING_PAYMENT
        with savepoint(cur, "move_booking"):
            if allocates:
                set_nights_active(cur, booking_id=booking_id, active=False)

            quote = compute_quote(
                ctx,
                property_id=booking["property_id"],
                room_id=room_id,
                check_in=check_in,
                check_out=check_out,
                adults=booking["adults"],
                children_ages=booking["children_ages"],
                exclude_booking_id=booking_id,
                cur=cur,
            )

            if allocates:
                delete_nights(cur, booking_id)
                try:
                    insert_nights(
                        cur,
                        booking_id=booking_id,
                        room_id=room_id,
                        adults=booking["adults"],
                        children_count=booking["children_count"],
                        nights=quote.allocation_rows(),
                    )
                except psycopg2.errors.UniqueViolation as exc:
                    if not is_unique_violation(exc, ACTIVE_NIGHT_INDEX):
                        raise
                    raise AvailabilityConflictError(
                        "availability_conflict",
                        {"room_id": room_id, "check_in": check_in, "check_out": check_out},
                    ) from exc

            update_booking_stay(
                cur,
                booking_id=booking_id,
                room_id=room_id,
                check_in=check_in,
                check_out=check_out,
                subtotal=quote.subtotal,
                taxes_total=quote.taxes_total,
                total_amount=quote.grand_total,
                currency=quote.currency,
                quote_payload=quote.to_payload(),
            )

    log_event(
        logger,
        "booking moved",
        property_id=booking["property_id"],
        booking_id=booking_id,
        from_room_id=booking["room_id"],
        to_room_id=room_id,
        check_in=check_in,
        check_out=check_out,
    )
    return {
        "booking_id": booking_id,
        "room_id": room_id,
        "check_in": check_in,
        "check_out": check_out,
        "quote": quote,
    }
