"""Availability resolver - which rooms are free for a half-open date range.

A room is available when no active occupancy overlaps the range and, in
safe mode, its calendar sync is healthy. Occupancy sources are
non-cancelled bookings, active night allocations, manual blocks and
externally-synced reservations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from psycopg2.extensions import cursor as PgCursor

from stayline.infra.db import txn
from stayline.infra.repositories.inventory_repository import (
    UNASSIGNED_ROOM_TYPE_NAME,
    fetch_blocked_room_ids,
    list_rooms,
)
from stayline.infra.time import utc_now

SYNC_STALE_MINUTES = 15

SYNC_OK = "ok"
SYNC_NEVER = "never"
SYNC_ERROR = "error"
SYNC_STALE = "stale"


def sync_health(room: dict, now: datetime) -> str:
    """Classify a room's calendar sync state.

    Checked in order: never synced, last sync errored, last sync older
    than SYNC_STALE_MINUTES, otherwise ok.
    """
    last_synced_at = room.get("last_synced_at")
    if last_synced_at is None:
        return SYNC_NEVER
    if room.get("sync_status") == "error":
        return SYNC_ERROR
    if now - last_synced_at > timedelta(minutes=SYNC_STALE_MINUTES):
        return SYNC_STALE
    return SYNC_OK


@dataclass(frozen=True)
class AvailableRoom:
    id: str
    name: str


@dataclass(frozen=True)
class StopSellRoom:
    id: str
    name: str
    reason: str


@dataclass
class RoomTypeAvailability:
    room_type_id: str | None
    room_type_name: str
    total_units: int = 0
    available_units: int = 0
    rooms: list[AvailableRoom] = field(default_factory=list)


@dataclass
class AvailabilityResult:
    room_types: list[RoomTypeAvailability] = field(default_factory=list)
    stop_sell_rooms: list[StopSellRoom] = field(default_factory=list)
    total_rooms: int = 0
    total_available: int = 0

    def is_room_available(self, room_id: str) -> bool:
        return any(room.id == room_id for rt in self.room_types for room in rt.rooms)

    def available_rooms_of_type(self, room_type_id: str | None) -> list[AvailableRoom]:
        for rt in self.room_types:
            if rt.room_type_id == room_type_id:
                return list(rt.rooms)
        return []

    def to_dict(self) -> dict:
        return {
            "room_types": [
                {
                    "room_type_id": rt.room_type_id,
                    "room_type_name": rt.room_type_name,
                    "total_units": rt.total_units,
                    "available_units": rt.available_units,
                    "rooms": [{"id": r.id, "name": r.name} for r in rt.rooms],
                }
                for rt in self.room_types
            ],
            "stop_sell_rooms": [
                {"id": r.id, "name": r.name, "reason": r.reason}
                for r in self.stop_sell_rooms
            ],
            "total_rooms": self.total_rooms,
            "total_available": self.total_available,
        }


def resolve_availability(
    rooms: list[dict],
    blocked_room_ids: set[str],
    *,
    safe_mode: bool,
    now: datetime,
) -> AvailabilityResult:
    """Combine rooms, occupancy and sync health into an AvailabilityResult.

    Rooms are expected in display order (by name); room type groups keep
    the order of their first room. A room both blocked and stop-sold is
    reported as stop-sold.
    """
    result = AvailabilityResult(total_rooms=len(rooms))
    groups: dict[str | None, RoomTypeAvailability] = {}

    for room in rooms:
        type_id = room.get("room_type_id")
        group = groups.get(type_id)
        if group is None:
            group = RoomTypeAvailability(
                room_type_id=type_id,
                room_type_name=room.get("room_type_name") or UNASSIGNED_ROOM_TYPE_NAME,
            )
            groups[type_id] = group
            result.room_types.append(group)
        group.total_units += 1

        if safe_mode:
            health = sync_health(room, now)
            if health != SYNC_OK:
                result.stop_sell_rooms.append(
                    StopSellRoom(id=room["id"], name=room["name"], reason=health)
                )
                continue

        if room["id"] in blocked_room_ids:
            continue

        group.rooms.append(AvailableRoom(id=room["id"], name=room["name"]))
        group.available_units += 1
        result.total_available += 1

    return result


def get_availability(
    property_id: str,
    date_from: date,
    date_to: date,
    *,
    safe_mode: bool,
    exclude_booking_id: str | None = None,
    now: datetime | None = None,
    cur: PgCursor | None = None,
) -> AvailabilityResult:
    """Compute availability for a property over [date_from, date_to).

    Callers validate that date_from < date_to.

    Args:
        property_id: Property UUID.
        date_from: First night (inclusive).
        date_to: Checkout day (exclusive).
        safe_mode: Stop-sell rooms whose sync health is not ok.
        exclude_booking_id: Ignore this booking's own occupancy (moves).
        now: Clock override for sync health.
        cur: Run inside an existing transaction instead of opening one.
    """
    if cur is None:
        with txn() as own_cur:
            return get_availability(
                property_id,
                date_from,
                date_to,
                safe_mode=safe_mode,
                exclude_booking_id=exclude_booking_id,
                now=now,
                cur=own_cur,
            )

    rooms = list_rooms(cur, property_id)
    if not rooms:
        return AvailabilityResult()

    blocked = fetch_blocked_room_ids(
        cur,
        room_ids=[r["id"] for r in rooms],
        date_from=date_from,
        date_to=date_to,
        exclude_booking_id=exclude_booking_id,
    )
    return resolve_availability(
        rooms,
        blocked,
        safe_mode=safe_mode,
        now=now or utc_now(),
    )
