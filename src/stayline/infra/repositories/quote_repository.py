"""Quote repository - persistence for booking_quotes.

Uses raw SQL with psycopg2 (no ORM).
A stored quote is an advisory pricing snapshot; it never holds inventory.
"""

import json
from datetime import date, datetime

from psycopg2.extensions import cursor as PgCursor


def insert_quote(
    cur: PgCursor,
    *,
    property_id: str,
    room_id: str,
    room_type_id: str | None,
    rate_plan_id: str | None,
    check_in: date,
    check_out: date,
    adults: int,
    children_ages: list[int],
    quote_payload: dict,
    expires_at: datetime,
) -> str:
    """Persist a quote and return its id.

    Args:
        cur: Database cursor (within transaction).
        quote_payload: Serialized QuoteResult (night breakdown and totals).
        expires_at: Absolute expiry (creation + TTL).
    """
    cur.execute(
        """
        INSERT INTO booking_quotes (
            property_id, room_id, room_type_id, rate_plan_id,
            check_in, check_out, adults, children_ages,
            quote_payload, expires_at
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            property_id,
            room_id,
            room_type_id,
            rate_plan_id,
            check_in,
            check_out,
            adults,
            json.dumps(children_ages),
            json.dumps(quote_payload),
            expires_at,
        ),
    )
    return str(cur.fetchone()[0])


def get_quote(cur: PgCursor, quote_id: str) -> dict | None:
    """Retrieve a stored quote by ID.

    Returns:
        Dict with quote data or None if not found.
    """
    cur.execute(
        """
        SELECT id, property_id, room_id, room_type_id, check_in, check_out,
               adults, children_ages, quote_payload, expires_at
        FROM booking_quotes
        WHERE id = %s
        """,
        (quote_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None

    children_ages = row[7]
    if isinstance(children_ages, str):
        children_ages = json.loads(children_ages)
    payload = row[8]
    if isinstance(payload, str):
        payload = json.loads(payload)

    return {
        "id": str(row[0]),
        "property_id": str(row[1]),
        "room_id": str(row[2]),
        "room_type_id": str(row[3]) if row[3] is not None else None,
        "check_in": row[4],
        "check_out": row[5],
        "adults": row[6],
        "children_ages": children_ages or [],
        "quote_payload": payload,
        "expires_at": row[9],
    }
