"""Bookings endpoints for dashboard.

POST /bookings: create and confirm a booking for a room
POST /bookings/{booking_id}/actions/cancel: cancel (idempotent)
POST /bookings/{booking_id}/actions/move: move to another room and/or dates
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field

from stayline.api.deps import require_id, staff_context
from stayline.api.errors import http_error
from stayline.domain.access import AuthContext
from stayline.domain.bookings import cancel_booking, create_booking, move_booking
from stayline.domain.errors import BookingError

router = APIRouter(prefix="/bookings", tags=["bookings"])


class CreateBookingRequest(BaseModel):
    room_id: str
    guest_name: str = Field(max_length=200)
    guest_email: str | None = Field(default=None, max_length=254)
    guest_phone: str | None = Field(default=None, max_length=40)
    check_in: date
    check_out: date
    adults: int
    children_ages: list[int] = Field(default_factory=list, max_length=10)


class MoveBookingRequest(BaseModel):
    room_id: str
    check_in: date
    check_out: date


@router.post("", status_code=201)
def post_booking(
    body: CreateBookingRequest,
    ctx: AuthContext = Depends(staff_context),
) -> dict:
    try:
        result = create_booking(
            ctx,
            property_id=ctx.property_id,
            room_id=require_id(body.room_id, "room_not_found"),
            guest_name=body.guest_name,
            guest_email=body.guest_email,
            guest_phone=body.guest_phone,
            check_in=body.check_in,
            check_out=body.check_out,
            adults=body.adults,
            children_ages=body.children_ages,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
    return {
        "booking_id": result["booking_id"],
        "status": result["status"],
        "quote": result["quote"].to_payload(),
    }


@router.post("/{booking_id}/actions/cancel")
def post_cancel(
    booking_id: str = Path(..., description="Booking ID"),
    ctx: AuthContext = Depends(staff_context),
) -> dict:
    """Cancel a booking. Cancelling twice returns status already_cancelled."""
    try:
        return cancel_booking(ctx, require_id(booking_id, "booking_not_found"))
    except BookingError as exc:
        raise http_error(exc) from exc


@router.post("/{booking_id}/actions/move")
def post_move(
    body: MoveBookingRequest,
    booking_id: str = Path(..., description="Booking ID"),
    ctx: AuthContext = Depends(staff_context),
) -> dict:
    try:
        result = move_booking(
            ctx,
            require_id(booking_id, "booking_not_found"),
            room_id=require_id(body.room_id, "room_not_found"),
            check_in=body.check_in,
            check_out=body.check_out,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
    return {
        "booking_id": result["booking_id"],
        "room_id": result["room_id"],
        "check_in": result["check_in"].isoformat(),
        "check_out": result["check_out"].isoformat(),
        "quote": result["quote"].to_payload(),
    }
