"""Availability endpoint for dashboard and public search."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException

from stayline.domain.access import AuthContext
from stayline.domain.availability import get_availability
from stayline.api.deps import staff_context

router = APIRouter(prefix="/availability", tags=["availability"])

MAX_RANGE_DAYS = 366


@router.get("")
def read_availability(
    date_from: date,
    date_to: date,
    safe_mode: bool = True,
    ctx: AuthContext = Depends(staff_context),
) -> dict:
    """Rooms free for [date_from, date_to), grouped by room type.

    With safe_mode (default) rooms whose calendar sync is not healthy are
    listed under stop_sell_rooms instead of being offered.
    """
    if date_to <= date_from:
        raise HTTPException(status_code=400, detail="invalid_dates")
    if (date_to - date_from).days > MAX_RANGE_DAYS:
        raise HTTPException(status_code=400, detail="max range: 366 days")

    result = get_availability(ctx.property_id, date_from, date_to, safe_mode=safe_mode)
    return {
        "date_from": date_from.isoformat(),
        "date_to": date_to.isoformat(),
        "safe_mode": safe_mode,
        **result.to_dict(),
    }
