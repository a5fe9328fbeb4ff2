"""Quote domain logic - per-night financial breakdown for a stay.

Prices a room for [check_in, check_out) after re-confirming availability:
BAR rate per night (ARI), extra-adult fees above base occupancy,
first-match child fees and active percentage taxes, either inclusive or
exclusive. One implementation serves staff and service callers; the
AuthContext carries the difference.

Persisted quotes (booking_quotes) are advisory snapshots with a TTL. They
never hold inventory and are never re-priced silently.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from psycopg2.extensions import cursor as PgCursor

from stayline.domain.access import AuthContext
from stayline.domain.ari import RateCell, load_intervals, resolve_night_rate
from stayline.domain.availability import get_availability
from stayline.domain.errors import (
    AvailabilityConflictError,
    ExpiredQuoteError,
    NotFoundError,
    ValidationError,
)
from stayline.infra.db import txn
from stayline.infra.property_settings import PricingConfig, load_pricing_config
from stayline.infra.repositories.inventory_repository import get_room
from stayline.infra.repositories.quote_repository import get_quote, insert_quote
from stayline.infra.repositories.rates_repository import find_bar_plan
from stayline.infra.time import iter_nights, utc_now
from stayline.observability.logging import get_logger, log_event

logger = get_logger(__name__)

QUOTE_TTL_MINUTES = 30

CENT = Decimal("0.01")
ZERO = Decimal("0")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class NightQuote:
    night: date
    base_rate: Decimal | None
    extras_adults: Decimal
    extras_children: Decimal
    subtotal: Decimal
    taxes: Decimal
    total_rate: Decimal
    unpriced: bool = False

    def to_dict(self) -> dict:
        return {
            "night": self.night.isoformat(),
            "base_rate": str(self.base_rate) if self.base_rate is not None else None,
            "extras_adults": str(self.extras_adults),
            "extras_children": str(self.extras_children),
            "subtotal": str(self.subtotal),
            "taxes": str(self.taxes),
            "total_rate": str(self.total_rate),
            "unpriced": self.unpriced,
        }

    @classmethod
    def from_dict(cls, data: dict) -> NightQuote:
        base_rate = data.get("base_rate")
        return cls(
            night=date.fromisoformat(data["night"]),
            base_rate=Decimal(base_rate) if base_rate is not None else None,
            extras_adults=Decimal(data["extras_adults"]),
            extras_children=Decimal(data["extras_children"]),
            subtotal=Decimal(data["subtotal"]),
            taxes=Decimal(data["taxes"]),
            total_rate=Decimal(data["total_rate"]),
            unpriced=bool(data.get("unpriced", False)),
        )

    def allocation_row(self) -> dict:
        """Values for a booking_nights row."""
        return {
            "night": self.night,
            "base_rate": self.base_rate if self.base_rate is not None else ZERO,
            "extras_adults": self.extras_adults,
            "extras_children": self.extras_children,
            "taxes": self.taxes,
            "total_rate": self.total_rate,
        }


@dataclass(frozen=True)
class QuoteResult:
    room_id: str
    room_type_id: str | None
    rate_plan_id: str | None
    check_in: date
    check_out: date
    adults: int
    children_ages: tuple[int, ...]
    nights: tuple[NightQuote, ...]
    subtotal: Decimal
    taxes_total: Decimal
    grand_total: Decimal
    currency: str
    prices_include_taxes: bool = False

    def to_payload(self) -> dict:
        """JSON-safe snapshot stored on quotes and pending bookings."""
        return {
            "room_id": self.room_id,
            "room_type_id": self.room_type_id,
            "rate_plan_id": self.rate_plan_id,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "adults": self.adults,
            "children_ages": list(self.children_ages),
            "nights": [n.to_dict() for n in self.nights],
            "subtotal": str(self.subtotal),
            "taxes_total": str(self.taxes_total),
            "grand_total": str(self.grand_total),
            "currency": self.currency,
            "prices_include_taxes": self.prices_include_taxes,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> QuoteResult:
        return cls(
            room_id=payload["room_id"],
            room_type_id=payload.get("room_type_id"),
            rate_plan_id=payload.get("rate_plan_id"),
            check_in=date.fromisoformat(payload["check_in"]),
            check_out=date.fromisoformat(payload["check_out"]),
            adults=payload["adults"],
            children_ages=tuple(payload.get("children_ages") or ()),
            nights=tuple(NightQuote.from_dict(n) for n in payload["nights"]),
            subtotal=Decimal(payload["subtotal"]),
            taxes_total=Decimal(payload["taxes_total"]),
            grand_total=Decimal(payload["grand_total"]),
            currency=payload["currency"],
            prices_include_taxes=bool(payload.get("prices_include_taxes", False)),
        )

    def allocation_rows(self) -> list[dict]:
        return [n.allocation_row() for n in self.nights]


@dataclass(frozen=True)
class PricedStay:
    """Output of price_stay: the night breakdown and its totals."""

    nights: tuple[NightQuote, ...]
    subtotal: Decimal
    taxes_total: Decimal
    grand_total: Decimal
    check_in_cell: RateCell | None = None
    closed_nights: tuple[date, ...] = field(default=())


def validate_stay(
    check_in: date,
    check_out: date,
    adults: int,
    children_ages: list[int] | tuple[int, ...],
) -> None:
    """Fail fast on malformed stays.

    Raises:
        ValidationError: invalid_dates, invalid_adults or invalid_child_age.
    """
    if check_in >= check_out:
        raise ValidationError("invalid_dates")
    if adults < 1:
        raise ValidationError("invalid_adults")
    for age in children_ages:
        if age < 0:
            raise ValidationError("invalid_child_age", {"age": age})


def child_fee(age: int, config: PricingConfig) -> Decimal:
    """Fee of the first rule (stored order) covering age, else zero."""
    for rule in config.child_rules:
        if rule.matches(age):
            return rule.fee_value
    return ZERO


def price_stay(
    *,
    room_type_id: str | None,
    check_in: date,
    check_out: date,
    adults: int,
    children_ages: list[int] | tuple[int, ...],
    intervals: list,
    config: PricingConfig,
) -> PricedStay:
    """Price every night of a stay. Pure.

    grand_total always equals the sum of the nights' total_rate: taxes are
    rounded per night before being summed.
    """
    settings = config.settings
    tax_rate = config.tax_rate
    extra_adults = max(0, adults - settings.base_occupancy)
    extras_adults = settings.extra_adult_fee * extra_adults
    extras_children = sum((child_fee(age, config) for age in children_ages), ZERO)

    nights: list[NightQuote] = []
    closed: list[date] = []
    check_in_cell = None
    for night in iter_nights(check_in, check_out):
        cell = resolve_night_rate(room_type_id, night, intervals)
        if night == check_in:
            check_in_cell = cell
        if cell.closed:
            closed.append(night)

        subtotal = (cell.base_rate or ZERO) + extras_adults + extras_children
        if settings.prices_include_taxes:
            taxes = _money(subtotal * tax_rate / (1 + tax_rate)) if tax_rate > 0 else ZERO
            total_rate = subtotal
        else:
            taxes = _money(subtotal * tax_rate)
            total_rate = subtotal + taxes

        nights.append(
            NightQuote(
                night=night,
                base_rate=cell.base_rate,
                extras_adults=extras_adults,
                extras_children=extras_children,
                subtotal=subtotal,
                taxes=taxes,
                total_rate=total_rate,
                unpriced=cell.is_unpriced,
            )
        )

    subtotal_sum = sum((n.subtotal for n in nights), ZERO)
    taxes_sum = sum((n.taxes for n in nights), ZERO)
    grand_total = subtotal_sum if settings.prices_include_taxes else subtotal_sum + taxes_sum
    return PricedStay(
        nights=tuple(nights),
        subtotal=subtotal_sum,
        taxes_total=taxes_sum,
        grand_total=grand_total,
        check_in_cell=check_in_cell,
        closed_nights=tuple(closed),
    )


def quote_room(
    cur: PgCursor,
    *,
    property_id: str,
    room: dict,
    check_in: date,
    check_out: date,
    adults: int,
    children_ages: list[int],
) -> QuoteResult:
    """Price a room already known to be free (no availability check).

    Raises:
        AvailabilityConflictError: A night is closed to sale.
        ValidationError: Minimum stay of the check-in night not met.
    """
    config = load_pricing_config(cur, property_id)
    plan_id = find_bar_plan(cur, property_id)
    room_type_id = room["room_type_id"]
    intervals = []
    if room_type_id is not None and plan_id is not None:
        intervals = load_intervals(
            cur,
            rate_plan_id=plan_id,
            start=check_in,
            end=check_out,
            room_type_ids=[room_type_id],
        )

    priced = price_stay(
        room_type_id=room_type_id,
        check_in=check_in,
        check_out=check_out,
        adults=adults,
        children_ages=children_ages,
        intervals=intervals,
        config=config,
    )
    if priced.closed_nights:
        raise AvailabilityConflictError(
            "closed_to_sale",
            {"room_id": room["id"], "night": priced.closed_nights[0]},
        )
    cell = priced.check_in_cell
    stay_length = (check_out - check_in).days
    if cell is not None and cell.min_los and stay_length < cell.min_los:
        raise ValidationError(
            "min_stay_not_met",
            {"min_los": cell.min_los, "nights": stay_length},
        )

    return QuoteResult(
        room_id=room["id"],
        room_type_id=room_type_id,
        rate_plan_id=plan_id,
        check_in=check_in,
        check_out=check_out,
        adults=adults,
        children_ages=tuple(children_ages),
        nights=priced.nights,
        subtotal=priced.subtotal,
        taxes_total=priced.taxes_total,
        grand_total=priced.grand_total,
        currency=config.settings.currency,
        prices_include_taxes=config.settings.prices_include_taxes,
    )


def compute_quote(
    ctx: AuthContext,
    *,
    property_id: str,
    room_id: str,
    check_in: date,
    check_out: date,
    adults: int,
    children_ages: list[int] | None = None,
    exclude_booking_id: str | None = None,
    cur: PgCursor | None = None,
) -> QuoteResult:
    """Quote a specific room for a stay.

    Args:
        ctx: Caller scope.
        property_id: Property UUID.
        room_id: Room UUID (must belong to the property).
        check_in: First night.
        check_out: Departure day (exclusive).
        adults: Adults, at least 1.
        children_ages: One age per child.
        exclude_booking_id: Ignore this booking's occupancy (moves).
        cur: Run inside an existing transaction.

    Returns:
        QuoteResult with the night breakdown and totals.

    Raises:
        ValidationError: Malformed stay or minimum stay not met.
        NotFoundError: Room not in property.
        AvailabilityConflictError: Room not free, or a night is closed.
    """
    children_ages = list(children_ages or [])
    ctx.ensure_property(property_id)
    validate_stay(check_in, check_out, adults, children_ages)

    if cur is None:
        with txn() as own_cur:
            return compute_quote(
                ctx,
                property_id=property_id,
                room_id=room_id,
                check_in=check_in,
                check_out=check_out,
                adults=adults,
                children_ages=children_ages,
                exclude_booking_id=exclude_booking_id,
                cur=own_cur,
            )

    room = get_room(cur, property_id=property_id, room_id=room_id)
    if room is None:
        raise NotFoundError("room_not_found", {"room_id": room_id})

    availability = get_availability(
        property_id,
        check_in,
        check_out,
        safe_mode=False,
        exclude_booking_id=exclude_booking_id,
        cur=cur,
    )
    if not availability.is_room_available(room_id):
        raise AvailabilityConflictError("room_unavailable", {"room_id": room_id})

    return quote_room(
        cur,
        property_id=property_id,
        room=room,
        check_in=check_in,
        check_out=check_out,
        adults=adults,
        children_ages=children_ages,
    )


def create_quote(
    ctx: AuthContext,
    *,
    property_id: str,
    room_type_id: str,
    check_in: date,
    check_out: date,
    adults: int,
    children_ages: list[int] | None = None,
    now: datetime | None = None,
) -> dict:
    """Quote the first available room of a type and persist it with a TTL.

    Returns:
        {"quote_id", "expires_at", "quote": QuoteResult}

    Raises:
        AvailabilityConflictError: No room of the type is free.
    """
    children_ages = list(children_ages or [])
    ctx.ensure_property(property_id)
    validate_stay(check_in, check_out, adults, children_ages)
    now = now or utc_now()

    with txn() as cur:
        availability = get_availability(property_id, check_in, check_out, safe_mode=False, cur=cur)
        candidates = availability.available_rooms_of_type(room_type_id)
        if not candidates:
            raise AvailabilityConflictError("no_rooms_available", {"room_type_id": room_type_id})

        room = get_room(cur, property_id=property_id, room_id=candidates[0].id)
        quote = quote_room(
            cur,
            property_id=property_id,
            room=room,
            check_in=check_in,
            check_out=check_out,
            adults=adults,
            children_ages=children_ages,
        )
        expires_at = now + timedelta(minutes=QUOTE_TTL_MINUTES)
        quote_id = insert_quote(
            cur,
            property_id=property_id,
            room_id=quote.room_id,
            room_type_id=quote.room_type_id,
            rate_plan_id=quote.rate_plan_id,
            check_in=check_in,
            check_out=check_out,
            adults=adults,
            children_ages=children_ages,
            quote_payload=quote.to_payload(),
            expires_at=expires_at,
        )

    log_event(
        logger,
        "quote created",
        property_id=property_id,
        quote_id=quote_id,
        room_type_id=room_type_id,
        nights=len(quote.nights),
        grand_total=quote.grand_total,
    )
    return {"quote_id": quote_id, "expires_at": expires_at, "quote": quote}


def load_quote(
    ctx: AuthContext,
    quote_id: str,
    *,
    now: datetime | None = None,
    cur: PgCursor | None = None,
) -> dict:
    """Load a stored quote that is still valid.

    Returns:
        The stored row plus "quote": QuoteResult rebuilt from its payload.

    Raises:
        NotFoundError: Unknown quote, or outside the caller's property.
        ExpiredQuoteError: TTL elapsed.
    """
    if cur is None:
        with txn() as own_cur:
            return load_quote(ctx, quote_id, now=now, cur=own_cur)

    row = get_quote(cur, quote_id)
    if row is None:
        raise NotFoundError("quote_not_found", {"quote_id": quote_id})
    ctx.ensure_property(row["property_id"])

    now = now or utc_now()
    if row["expires_at"] < now:
        raise ExpiredQuoteError("quote_expired", {"quote_id": quote_id})

    return {**row, "quote": QuoteResult.from_payload(row["quote_payload"])}
