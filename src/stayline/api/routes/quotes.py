"""Quote endpoints for the booking flow.

POST /quotes/search: bookable room types with a price for the stay
POST /quotes/preview: price a specific room (not stored)
POST /quotes: quote the first free room of a type and store it (30 min TTL)
POST /quotes/{quote_id}/checkout: turn a stored quote into a booking
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field

from stayline.api.deps import public_context, require_id
from stayline.api.errors import http_error
from stayline.domain.access import AuthContext
from stayline.domain.checkout import checkout_quote
from stayline.domain.errors import BookingError
from stayline.domain.quote import compute_quote, create_quote
from stayline.domain.search import search_room_types

router = APIRouter(prefix="/quotes", tags=["quotes"])


# ── Schemas ───────────────────────────────────────────────


class StayRequest(BaseModel):
    check_in: date
    check_out: date
    adults: int
    children_ages: list[int] = Field(default_factory=list, max_length=10)


class PreviewQuoteRequest(StayRequest):
    room_id: str


class CreateQuoteRequest(StayRequest):
    room_type_id: str


class CheckoutRequest(BaseModel):
    guest_name: str = Field(max_length=200)
    guest_email: str | None = Field(default=None, max_length=254)
    guest_phone: str | None = Field(default=None, max_length=40)
    pay_at_property: bool = False


# ── Routes ────────────────────────────────────────────────


@router.post("/search")
def search_quotes(
    body: StayRequest,
    ctx: AuthContext = Depends(public_context),
) -> dict:
    """Room types with free units for the stay, each priced on a sample room."""
    try:
        offers = search_room_types(
            ctx,
            property_id=ctx.property_id,
            check_in=body.check_in,
            check_out=body.check_out,
            adults=body.adults,
            children_ages=body.children_ages,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
    return {
        "check_in": body.check_in.isoformat(),
        "check_out": body.check_out.isoformat(),
        "results": [offer.to_dict() for offer in offers],
    }


@router.post("/preview")
def preview_quote(
    body: PreviewQuoteRequest,
    ctx: AuthContext = Depends(public_context),
) -> dict:
    """Price a room for a stay without storing anything."""
    try:
        quote = compute_quote(
            ctx,
            property_id=ctx.property_id,
            room_id=require_id(body.room_id, "room_not_found"),
            check_in=body.check_in,
            check_out=body.check_out,
            adults=body.adults,
            children_ages=body.children_ages,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
    return quote.to_payload()


@router.post("", status_code=201)
def post_quote(
    body: CreateQuoteRequest,
    ctx: AuthContext = Depends(public_context),
) -> dict:
    """Store a quote for the first available room of a type."""
    try:
        result = create_quote(
            ctx,
            property_id=ctx.property_id,
            room_type_id=require_id(body.room_type_id, "room_type_not_found"),
            check_in=body.check_in,
            check_out=body.check_out,
            adults=body.adults,
            children_ages=body.children_ages,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
    return {
        "quote_id": result["quote_id"],
        "expires_at": result["expires_at"].isoformat(),
        "quote": result["quote"].to_payload(),
    }


@router.post("/{quote_id}/checkout", status_code=201)
def post_checkout(
    body: CheckoutRequest,
    quote_id: str = Path(..., description="Quote ID"),
    ctx: AuthContext = Depends(public_context),
) -> dict:
    """Create a booking awaiting payment from a stored quote."""
    try:
        result = checkout_quote(
            ctx,
            require_id(quote_id, "quote_not_found"),
            guest_name=body.guest_name,
            guest_email=body.guest_email,
            guest_phone=body.guest_phone,
            pay_at_property=body.pay_at_property,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
    return {**result, "amount": str(result["amount"])}
