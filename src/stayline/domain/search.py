"""Public room type search - what can be booked for a stay, and at what price.

Runs availability without safe mode (the public flow has no external
channel to stop-sell) and prices one sample room per typed room type with
the quote engine. A type whose sample cannot be sold (closed night,
minimum stay) is left out instead of failing the search.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor

from stayline.domain.access import AuthContext
from stayline.domain.availability import get_availability
from stayline.domain.errors import AvailabilityConflictError, ValidationError
from stayline.domain.quote import NightQuote, quote_room, validate_stay
from stayline.infra.db import txn
from stayline.infra.repositories.inventory_repository import get_room
from stayline.observability.logging import get_logger, log_event

logger = get_logger(__name__)

MAX_SEARCH_NIGHTS = 365


@dataclass(frozen=True)
class RoomTypeOffer:
    room_type_id: str
    name: str
    available_units: int
    total_for_stay: Decimal
    currency: str
    sample_room_id: str
    nights: tuple[NightQuote, ...]

    def to_dict(self) -> dict:
        return {
            "room_type_id": self.room_type_id,
            "name": self.name,
            "available_units": self.available_units,
            "total_for_stay": str(self.total_for_stay),
            "currency": self.currency,
            "sample_room_id": self.sample_room_id,
            "sample_nightly_breakdown": [
                {
                    "night": n.night.isoformat(),
                    "base_rate": str(n.base_rate) if n.base_rate is not None else None,
                    "total_rate": str(n.total_rate),
                }
                for n in self.nights
            ],
        }


def search_room_types(
    ctx: AuthContext,
    *,
    property_id: str,
    check_in: date,
    check_out: date,
    adults: int,
    children_ages: list[int] | None = None,
    cur: PgCursor | None = None,
) -> list[RoomTypeOffer]:
    """Bookable room types for a stay, most available first, then by name.

    Rooms without a room type are never offered.

    Raises:
        ValidationError: Malformed stay, or longer than MAX_SEARCH_NIGHTS.
        NotFoundError: Property outside the caller's scope.
    """
    children_ages = list(children_ages or [])
    ctx.ensure_property(property_id)
    validate_stay(check_in, check_out, adults, children_ages)
    stay_length = (check_out - check_in).days
    if stay_length > MAX_SEARCH_NIGHTS:
        raise ValidationError("stay_too_long", {"nights": stay_length, "max_nights": MAX_SEARCH_NIGHTS})

    if cur is None:
        with txn() as own_cur:
            return search_room_types(
                ctx,
                property_id=property_id,
                check_in=check_in,
                check_out=check_out,
                adults=adults,
                children_ages=children_ages,
                cur=own_cur,
            )

    availability = get_availability(property_id, check_in, check_out, safe_mode=False, cur=cur)

    offers: list[RoomTypeOffer] = []
    for group in availability.room_types:
        if group.room_type_id is None or not group.rooms:
            continue
        sample = group.rooms[0]
        room = get_room(cur, property_id=property_id, room_id=sample.id)
        try:
            quote = quote_room(
                cur,
                property_id=property_id,
                room=room,
                check_in=check_in,
                check_out=check_out,
                adults=adults,
                children_ages=children_ages,
            )
        except (AvailabilityConflictError, ValidationError) as exc:
            log_event(
                logger,
                "search skipped room type",
                property_id=property_id,
                room_type_id=group.room_type_id,
                reason_code=exc.reason_code,
            )
            continue

        offers.append(
            RoomTypeOffer(
                room_type_id=group.room_type_id,
                name=group.room_type_name,
                available_units=group.available_units,
                total_for_stay=quote.grand_total,
                currency=quote.currency,
                sample_room_id=sample.id,
                nights=quote.nights,
            )
        )

    offers.sort(key=lambda o: (-o.available_units, o.name))
    log_event(
        logger,
        "room type search",
        property_id=property_id,
        nights=stay_length,
        offers=len(offers),
    )
    return offers
