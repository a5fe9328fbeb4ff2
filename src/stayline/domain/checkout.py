"""Checkout from a stored quote (public booking flow).

Turns a valid quote into a booking awaiting payment plus a payment
session. Paying at the property needs no provider round-trip, so the
booking is finalized right away.
"""

from __future__ import annotations

import logging
from datetime import datetime

from stayline.domain.access import AuthContext
from stayline.domain.availability import get_availability
from stayline.domain.bookings import (
    SOURCE_DIRECT,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_HOLD,
    STATUS_PENDING_PAYMENT,
)
from stayline.domain.errors import AvailabilityConflictError, ValidationError
from stayline.domain.finalize import finalize_booking
from stayline.domain.quote import load_quote
from stayline.infra.db import txn
from stayline.infra.repositories.bookings_repository import (
    get_booking,
    insert_booking,
    update_booking_status,
)
from stayline.infra.repositories.payments_repository import (
    PROVIDER_EXTERNAL,
    PROVIDER_PROPERTY,
    insert_payment_session,
    mark_payment_sessions,
)
from stayline.observability.logging import get_logger, log_event

logger = get_logger(__name__)


def checkout_quote(
    ctx: AuthContext,
    quote_id: str,
    *,
    guest_name: str,
    guest_email: str | None = None,
    guest_phone: str | None = None,
    pay_at_property: bool = False,
    now: datetime | None = None,
) -> dict:
    """Create a booking awaiting payment from a quote.

    Returns:
        {"booking_id", "payment_session_id", "provider", "status",
         "amount", "currency"}. status is 'confirmed' for pay-at-property,
        'pending_payment' otherwise.

    Raises:
        ValidationError: Missing guest name.
        NotFoundError: Unknown quote.
        ExpiredQuoteError: Quote TTL elapsed.
        AvailabilityConflictError: Room taken since the quote was made.
    """
    if not guest_name or not guest_name.strip():
        raise ValidationError("guest_name_required")

    provider = PROVIDER_PROPERTY if pay_at_property else PROVIDER_EXTERNAL

    with txn() as cur:
        stored = load_quote(ctx, quote_id, now=now, cur=cur)
        quote = stored["quote"]
        property_id = stored["property_id"]

        availability = get_availability(
            property_id,
            quote.check_in,
            quote.check_out,
            safe_mode=False,
            cur=cur,
        )
        if not availability.is_room_available(quote.room_id):
            raise AvailabilityConflictError("room_unavailable", {"room_id": quote.room_id})

        booking_id = insert_booking(
            cur,
            property_id=property_id,
            room_id=quote.room_id,
            guest_name=guest_name.strip(),
            guest_email=guest_email,
            guest_phone=guest_phone,
            check_in=quote.check_in,
            check_out=quote.check_out,
            status=STATUS_HOLD if pay_at_property else STATUS_PENDING_PAYMENT,
            source=SOURCE_DIRECT,
            adults=quote.adults,
            children_ages=list(quote.children_ages),
            subtotal=quote.subtotal,
            taxes_total=quote.taxes_total,
            total_amount=quote.grand_total,
            currency=quote.currency,
            quote_payload=quote.to_payload(),
        )
        payment_session_id = insert_payment_session(
            cur,
            property_id=property_id,
            booking_id=booking_id,
            provider=provider,
            amount=quote.grand_total,
            currency=quote.currency,
        )

    log_event(
        logger,
        "checkout created booking",
        property_id=property_id,
        quote_id=quote_id,
        booking_id=booking_id,
        payment_session_id=payment_session_id,
        provider=provider,
    )

    status = STATUS_PENDING_PAYMENT
    if pay_at_property:
        try:
            finalize_booking(booking_id, payment_session_id)
        except AvailabilityConflictError:
            # finalize already cancelled the booking and failed the session
            raise
        except Exception:
            _release_unfinalized(booking_id, payment_session_id)
            raise
        status = STATUS_CONFIRMED

    return {
        "booking_id": booking_id,
        "payment_session_id": payment_session_id,
        "provider": provider,
        "status": status,
        "amount": quote.grand_total,
        "currency": quote.currency,
    }


def _release_unfinalized(booking_id: str, payment_session_id: str) -> None:
    """Cancel a pay-at-property booking whose finalize step failed.

    A hold left behind would keep the room blocked with no nights
    allocated. Only a booking still in 'hold' is touched.
    """
    with txn() as cur:
        booking = get_booking(cur, booking_id, lock=True)
        if booking is None or booking["status"] != STATUS_HOLD:
            return
        update_booking_status(cur, booking_id=booking_id, status=STATUS_CANCELLED)
        mark_payment_sessions(
            cur,
            booking_id=booking_id,
            status="failed",
            payment_session_id=payment_session_id,
        )

    log_event(
        logger,
        "checkout finalize failed, booking released",
        level=logging.WARNING,
        booking_id=booking_id,
        payment_session_id=payment_session_id,
    )
