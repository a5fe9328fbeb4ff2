"""Rates (ARI) endpoints for dashboard.

GET /rates/grid: resolved BAR rate per room type and day
POST /rates/bulk/preview: what a bulk update would write
PUT /rates/bulk: replace the rates of a date range for some room types
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator

from stayline.api.deps import require_id, staff_context
from stayline.api.errors import http_error
from stayline.domain.access import AuthContext
from stayline.domain.ari import (
    ALL_DAYS_MASK,
    BulkRateUpdate,
    commit_bulk_update,
    get_ari_grid,
    preview_bulk_update,
)
from stayline.domain.errors import BookingError

router = APIRouter(prefix="/rates", tags=["rates"])

MAX_GRID_DAYS = 366


# ── Schemas ───────────────────────────────────────────────


class BulkRateRequest(BaseModel):
    room_type_ids: list[str]
    start_date: date
    end_date: date
    rate_plan_id: str | None = None
    base_rate: Decimal | None = None
    min_los: int | None = None
    closed: bool | None = None
    dow_mask: int = ALL_DAYS_MASK

    @field_validator("room_type_ids")
    @classmethod
    def limit_batch_size(cls, v: list[str]) -> list[str]:
        if len(v) > 100:
            raise ValueError("batch size limit: 100 room types per request")
        return v

    def to_update(self, property_id: str) -> BulkRateUpdate:
        """Engine update for this request; malformed ids answer 404."""
        rate_plan_id = self.rate_plan_id
        if rate_plan_id is not None:
            rate_plan_id = require_id(rate_plan_id, "rate_plan_not_found")
        return BulkRateUpdate(
            property_id=property_id,
            room_type_ids=[require_id(rt_id, "room_type_not_found") for rt_id in self.room_type_ids],
            start_date=self.start_date,
            end_date=self.end_date,
            rate_plan_id=rate_plan_id,
            base_rate=self.base_rate,
            min_los=self.min_los,
            closed=self.closed,
            dow_mask=self.dow_mask,
        )


def _item_json(item: dict) -> dict:
    return {
        **item,
        "start_date": item["start_date"].isoformat(),
        "end_date": item["end_date"].isoformat(),
        "base_rate": str(item["base_rate"]),
    }


# ── GET /rates/grid ───────────────────────────────────────


@router.get("/grid")
def read_grid(
    date_from: date,
    date_to: date,
    ctx: AuthContext = Depends(staff_context),
) -> dict:
    """Resolved rate cells per room type for [date_from, date_to). Max range: 366 days."""
    if (date_to - date_from).days > MAX_GRID_DAYS:
        raise HTTPException(status_code=400, detail="max range: 366 days")
    try:
        grid = get_ari_grid(ctx, property_id=ctx.property_id, date_from=date_from, date_to=date_to)
    except BookingError as exc:
        raise http_error(exc) from exc
    return {
        **grid,
        "date_from": date_from.isoformat(),
        "date_to": date_to.isoformat(),
    }


# ── Bulk update ───────────────────────────────────────────


@router.post("/bulk/preview")
def post_bulk_preview(
    body: BulkRateRequest,
    ctx: AuthContext = Depends(staff_context),
) -> dict:
    try:
        preview = preview_bulk_update(ctx, body.to_update(ctx.property_id))
    except BookingError as exc:
        raise http_error(exc) from exc
    return {
        "rate_plan_id": preview["rate_plan_id"],
        "items": [_item_json(item) for item in preview["items"]],
    }


@router.put("/bulk")
def put_bulk(
    body: BulkRateRequest,
    ctx: AuthContext = Depends(staff_context),
) -> dict:
    """Replace rates for the range: overlapping intervals are removed, one is written."""
    try:
        return commit_bulk_update(ctx, body.to_update(ctx.property_id))
    except BookingError as exc:
        raise http_error(exc) from exc
