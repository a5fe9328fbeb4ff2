"""Bookings repository - persistence for bookings and booking_nights.

Uses raw SQL with psycopg2 (no ORM).

booking_nights carries the partial unique index
    booking_nights_active_room_night_uq ON (room_id, night) WHERE is_active
which is the final arbiter against double-selling a room-night. Inserts
here let psycopg2.errors.UniqueViolation propagate; callers decide how
to compensate.
"""

from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from stayline.infra.db import fetchone, for_update

ACTIVE_NIGHT_INDEX = "booking_nights_active_room_night_uq"

_BOOKING_COLUMNS = """
    id, property_id, room_id, status, check_in, check_out,
    adults, children_count, children_ages,
    subtotal, taxes_total, total_amount, currency, quote_payload, source
"""


def _row_to_booking(row: tuple) -> dict[str, Any]:
    children_ages = row[8]
    if isinstance(children_ages, str):
        children_ages = json.loads(children_ages)
    quote_payload = row[13]
    if isinstance(quote_payload, str):
        quote_payload = json.loads(quote_payload)
    return {
        "id": str(row[0]),
        "property_id": str(row[1]),
        "room_id": str(row[2]) if row[2] is not None else None,
        "status": row[3],
        "check_in": row[4],
        "check_out": row[5],
        "adults": row[6],
        "children_count": row[7],
        "children_ages": children_ages or [],
        "subtotal": row[9],
        "taxes_total": row[10],
        "total_amount": row[11],
        "currency": row[12],
        "quote_payload": quote_payload,
        "source": row[14],
    }


def insert_booking(
    cur: PgCursor,
    *,
    property_id: str,
    room_id: str,
    guest_name: str,
    guest_email: str | None,
    guest_phone: str | None,
    check_in: date,
    check_out: date,
    status: str,
    source: str,
    adults: int,
    children_ages: list[int],
    subtotal: Decimal,
    taxes_total: Decimal,
    total_amount: Decimal,
    currency: str,
    quote_payload: dict | None = None,
) -> str:
    """Insert a booking row and return its id.

    Args:
        cur: Database cursor (within transaction).
        status: Initial status ('hold' or 'pending_payment').
        source: 'internal' (staff) or 'direct' (public flow).
        quote_payload: Quote snapshot used later by finalize.
    """
    cur.execute(
        """
        INSERT INTO bookings (
            property_id, room_id, guest_name, guest_email, guest_phone,
            check_in, check_out, status, source,
            adults, children_count, children_ages,
            subtotal, taxes_total, total_amount, currency, quote_payload
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            property_id,
            room_id,
            guest_name,
            guest_email,
            guest_phone,
            check_in,
            check_out,
            status,
            source,
            adults,
            len(children_ages),
            json.dumps(children_ages),
            subtotal,
            taxes_total,
            total_amount,
            currency,
            json.dumps(quote_payload) if quote_payload is not None else None,
        ),
    )
    return str(cur.fetchone()[0])


def get_booking(cur: PgCursor, booking_id: str, *, lock: bool = False) -> dict | None:
    """Fetch a booking by id, optionally locking the row (FOR UPDATE)."""
    query = f"SELECT {_BOOKING_COLUMNS} FROM bookings WHERE id = %s"
    if lock:
        row = for_update(cur, query, (booking_id,))
    else:
        row = fetchone(cur, query, (booking_id,))
    return _row_to_booking(row) if row is not None else None


def update_booking_status(cur: PgCursor, *, booking_id: str, status: str) -> None:
    cur.execute(
        """
        UPDATE bookings
        SET status = %s, updated_at = now()
        WHERE id = %s
        """,
        (status, booking_id),
    )


def update_booking_stay(
    cur: PgCursor,
    *,
    booking_id: str,
    room_id: str,
    check_in: date,
    check_out: date,
    subtotal: Decimal,
    taxes_total: Decimal,
    total_amount: Decimal,
    currency: str,
    quote_payload: dict,
) -> None:
    """Point a booking at a new room/date range with its new totals."""
    cur.execute(
        """
        UPDATE bookings
        SET room_id = %s, check_in = %s, check_out = %s,
            subtotal = %s, taxes_total = %s, total_amount = %s,
            currency = %s, quote_payload = %s, updated_at = now()
        WHERE id = %s
        """,
        (
            room_id,
            check_in,
            check_out,
            subtotal,
            taxes_total,
            total_amount,
            currency,
            json.dumps(quote_payload),
            booking_id,
        ),
    )


# ── booking_nights ─────────────────────────────────────────


def insert_nights(
    cur: PgCursor,
    *,
    booking_id: str,
    room_id: str,
    adults: int,
    children_count: int,
    nights: list[dict],
) -> None:
    """Insert one active allocation per night.

    Each item in nights needs: night, base_rate, extras_adults,
    extras_children, taxes, total_rate.

    Raises:
        psycopg2.errors.UniqueViolation: A night is already actively held
            for this room (ACTIVE_NIGHT_INDEX).
    """
    for n in nights:
        cur.execute(
            """
            INSERT INTO booking_nights (
                booking_id, room_id, night, is_active,
                adults, children_count,
                base_rate, extras_adults, extras_children, taxes, total_rate
            )
            VALUES (%s, %s, %s, true, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                booking_id,
                room_id,
                n["night"],
                adults,
                children_count,
                n["base_rate"],
                n["extras_adults"],
                n["extras_children"],
                n["taxes"],
                n["total_rate"],
            ),
        )


def set_nights_active(cur: PgCursor, *, booking_id: str, active: bool) -> int:
    """Flip is_active on every night of a booking. Returns rows changed."""
    cur.execute(
        """
        UPDATE booking_nights
        SET is_active = %s
        WHERE booking_id = %s AND is_active <> %s
        """,
        (active, booking_id, active),
    )
    return cur.rowcount


def delete_nights(cur: PgCursor, booking_id: str) -> int:
    """Hard-delete every night of a booking (relocation only)."""
    cur.execute("DELETE FROM booking_nights WHERE booking_id = %s", (booking_id,))
    return cur.rowcount


def count_active_nights(cur: PgCursor, booking_id: str) -> int:
    cur.execute(
        "SELECT count(*) FROM booking_nights WHERE booking_id = %s AND is_active",
        (booking_id,),
    )
    return cur.fetchone()[0]


def list_nights(cur: PgCursor, booking_id: str) -> list[dict]:
    """List a booking's nights (active and inactive) by date."""
    cur.execute(
        """
        SELECT night, room_id, is_active, base_rate, extras_adults,
               extras_children, taxes, total_rate
        FROM booking_nights
        WHERE booking_id = %s
        ORDER BY night, is_active DESC
        """,
        (booking_id,),
    )
    return [
        {
            "night": r[0],
            "room_id": str(r[1]),
            "is_active": r[2],
            "base_rate": r[3],
            "extras_adults": r[4],
            "extras_children": r[5],
            "taxes": r[6],
            "total_rate": r[7],
        }
        for r in cur.fetchall()
    ]
