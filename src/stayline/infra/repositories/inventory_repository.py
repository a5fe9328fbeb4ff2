"""Inventory repository - rooms, manual blocks and occupancy lookups.

Uses raw SQL with psycopg2 (no ORM).
All overlap checks use the half-open rule:
    existing.start < requested_end AND existing.end > requested_start
"""

from __future__ import annotations

from datetime import date

from psycopg2.extensions import cursor as PgCursor

UNASSIGNED_ROOM_TYPE_NAME = "Unassigned"


def list_rooms(cur: PgCursor, property_id: str) -> list[dict]:
    """List every room of a property with its type and sync state.

    Args:
        cur: Database cursor.
        property_id: Property UUID.

    Returns:
        Rooms ordered by name.
    """
    cur.execute(
        """
        SELECT r.id, r.name, r.room_type_id, rt.name,
               r.sync_status, r.last_synced_at, r.last_sync_error
        FROM rooms r
        LEFT JOIN room_types rt ON rt.id = r.room_type_id
        WHERE r.property_id = %s
        ORDER BY r.name, r.id
        """,
        (property_id,),
    )
    return [
        {
            "id": str(row[0]),
            "name": row[1],
            "room_type_id": str(row[2]) if row[2] is not None else None,
            "room_type_name": row[3] or UNASSIGNED_ROOM_TYPE_NAME,
            "sync_status": row[4],
            "last_synced_at": row[5],
            "last_sync_error": row[6],
        }
        for row in cur.fetchall()
    ]


def get_room(cur: PgCursor, *, property_id: str, room_id: str) -> dict | None:
    """Fetch a room only if it belongs to the property.

    Returns:
        Dict with id, property_id, room_type_id, name; None otherwise.
    """
    cur.execute(
        """
        SELECT id, property_id, room_type_id, name
        FROM rooms
        WHERE id = %s AND property_id = %s
        """,
        (room_id, property_id),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return {
        "id": str(row[0]),
        "property_id": str(row[1]),
        "room_type_id": str(row[2]) if row[2] is not None else None,
        "name": row[3],
    }


def fetch_blocked_room_ids(
    cur: PgCursor,
    *,
    room_ids: list[str],
    date_from: date,
    date_to: date,
    exclude_booking_id: str | None = None,
) -> set[str]:
    """Return ids of rooms with any occupancy overlapping [date_from, date_to).

    Sources: non-cancelled bookings, active night allocations, manual
    blocks and non-cancelled external (synced) reservations.

    Args:
        cur: Database cursor.
        room_ids: Candidate rooms.
        date_from: Range start (inclusive).
        date_to: Range end (exclusive).
        exclude_booking_id: Booking to ignore (a booking being moved).
    """
    if not room_ids:
        return set()

    booking_filter = ""
    night_filter = ""
    booking_params: list = []
    night_params: list = []
    if exclude_booking_id is not None:
        booking_filter = " AND id <> %s"
        night_filter = " AND booking_id <> %s"
        booking_params = [exclude_booking_id]
        night_params = [exclude_booking_id]

    query = f"""
        SELECT room_id FROM bookings
        WHERE room_id = ANY(%s::uuid[])
          AND status <> 'cancelled'
          AND check_in < %s
          AND check_out > %s{booking_filter}
        UNION
        SELECT room_id FROM booking_nights
        WHERE room_id = ANY(%s::uuid[])
          AND is_active
          AND night < %s
          AND night + 1 > %s{night_filter}
        UNION
        SELECT room_id FROM blocks
        WHERE room_id = ANY(%s::uuid[])
          AND start_date < %s
          AND end_date > %s
        UNION
        SELECT room_id FROM external_reservations
        WHERE room_id = ANY(%s::uuid[])
          AND status <> 'cancelled'
          AND check_in < %s
          AND check_out > %s
    """
    params = [
        room_ids, date_to, date_from, *booking_params,
        room_ids, date_to, date_from, *night_params,
        room_ids, date_to, date_from,
        room_ids, date_to, date_from,
    ]
    cur.execute(query, params)
    return {str(row[0]) for row in cur.fetchall()}


def insert_block(
    cur: PgCursor,
    *,
    property_id: str,
    room_id: str,
    start_date: date,
    end_date: date,
    reason: str | None = None,
) -> str:
    """Insert a manual block and return its id."""
    cur.execute(
        """
        INSERT INTO blocks (property_id, room_id, start_date, end_date, reason)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING id
        """,
        (property_id, room_id, start_date, end_date, reason),
    )
    return str(cur.fetchone()[0])


def delete_block(cur: PgCursor, *, property_id: str, block_id: str) -> bool:
    """Delete a manual block. Returns False if it did not exist."""
    cur.execute(
        "DELETE FROM blocks WHERE id = %s AND property_id = %s",
        (block_id, property_id),
    )
    return cur.rowcount > 0
