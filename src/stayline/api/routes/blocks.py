"""Manual block endpoints for dashboard."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field

from stayline.api.deps import require_id, staff_context
from stayline.api.errors import http_error
from stayline.domain.access import AuthContext
from stayline.domain.blocks import create_block, delete_block
from stayline.domain.errors import BookingError

router = APIRouter(prefix="/blocks", tags=["blocks"])


class CreateBlockRequest(BaseModel):
    room_id: str
    start_date: date
    end_date: date
    reason: str | None = Field(default=None, max_length=500)


@router.post("", status_code=201)
def post_block(
    body: CreateBlockRequest,
    ctx: AuthContext = Depends(staff_context),
) -> dict:
    try:
        result = create_block(
            ctx,
            property_id=ctx.property_id,
            room_id=require_id(body.room_id, "room_not_found"),
            start_date=body.start_date,
            end_date=body.end_date,
            reason=body.reason,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
    return {
        **result,
        "start_date": result["start_date"].isoformat(),
        "end_date": result["end_date"].isoformat(),
    }


@router.delete("/{block_id}")
def remove_block(
    block_id: str = Path(..., description="Block ID"),
    ctx: AuthContext = Depends(staff_context),
) -> dict:
    try:
        return delete_block(ctx, property_id=ctx.property_id, block_id=require_id(block_id, "block_not_found"))
    except BookingError as exc:
        raise http_error(exc) from exc
