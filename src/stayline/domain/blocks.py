"""Manual blocks - take a room off sale for a half-open date range."""

from __future__ import annotations

from datetime import date

from stayline.domain.access import AuthContext
from stayline.domain.errors import NotFoundError, ValidationError
from stayline.infra.db import txn
from stayline.infra.repositories.inventory_repository import delete_block as delete_block_row
from stayline.infra.repositories.inventory_repository import get_room, insert_block
from stayline.observability.logging import get_logger, log_event

logger = get_logger(__name__)


def create_block(
    ctx: AuthContext,
    *,
    property_id: str,
    room_id: str,
    start_date: date,
    end_date: date,
    reason: str | None = None,
) -> dict:
    """Block a room for [start_date, end_date).

    Existing bookings are left untouched; the block only stops new sales.
    """
    ctx.ensure_property(property_id)
    if end_date <= start_date:
        raise ValidationError("invalid_dates")

    with txn() as cur:
        if get_room(cur, property_id=property_id, room_id=room_id) is None:
            raise NotFoundError("room_not_found", {"room_id": room_id})
        block_id = insert_block(
            cur,
            property_id=property_id,
            room_id=room_id,
            start_date=start_date,
            end_date=end_date,
            reason=reason,
        )

    log_event(
        logger,
        "block created",
        property_id=property_id,
        block_id=block_id,
        room_id=room_id,
        start_date=start_date,
        end_date=end_date,
    )
    return {
        "block_id": block_id,
        "room_id": room_id,
        "start_date": start_date,
        "end_date": end_date,
    }


def delete_block(ctx: AuthContext, *, property_id: str, block_id: str) -> dict:
    ctx.ensure_property(property_id)
    with txn() as cur:
        deleted = delete_block_row(cur, property_id=property_id, block_id=block_id)
    if not deleted:
        raise NotFoundError("block_not_found", {"block_id": block_id})

    log_event(logger, "block deleted", property_id=property_id, block_id=block_id)
    return {"block_id": block_id, "deleted": True}
