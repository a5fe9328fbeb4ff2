"""Payments repository - persistence for payment_sessions.

Uses raw SQL with psycopg2 (no ORM).
Only the engine-side record is kept here; provider state is never touched.
"""

from decimal import Decimal
from typing import Any

from psycopg2.extensions import cursor as PgCursor

VALID_STATUSES = {"created", "pending", "paid", "failed"}

PROVIDER_PROPERTY = "property"
PROVIDER_EXTERNAL = "external"


def insert_payment_session(
    cur: PgCursor,
    *,
    property_id: str,
    booking_id: str,
    provider: str,
    amount: Decimal,
    currency: str,
    status: str = "created",
) -> str:
    """Insert a payment session for a booking and return its id."""
    if status not in VALID_STATUSES:
        raise ValueError(f"Invalid payment status: {status}")

    cur.execute(
        """
        INSERT INTO payment_sessions (
            property_id, booking_id, provider, status, amount, currency
        )
        VALUES (%s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (property_id, booking_id, provider, status, amount, currency),
    )
    return str(cur.fetchone()[0])


def get_payment_session(cur: PgCursor, payment_session_id: str) -> dict[str, Any] | None:
    """Get a payment session by id.

    Returns:
        Dict with id, booking_id, provider, status, amount, currency or None.
    """
    cur.execute(
        """
        SELECT id, booking_id, provider, status, amount, currency
        FROM payment_sessions
        WHERE id = %s
        """,
        (payment_session_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None

    return {
        "id": str(row[0]),
        "booking_id": str(row[1]),
        "provider": row[2],
        "status": row[3],
        "amount": row[4],
        "currency": row[5],
    }


def mark_payment_sessions(
    cur: PgCursor,
    *,
    booking_id: str,
    status: str,
    payment_session_id: str | None = None,
) -> int:
    """Set status on a booking's payment session(s).

    With payment_session_id only that session is updated (and only if it
    belongs to the booking); otherwise every session of the booking not yet
    'paid' is updated.

    Returns:
        Number of rows updated.
    """
    if status not in VALID_STATUSES:
        raise ValueError(f"Invalid payment status: {status}")

    if payment_session_id is not None:
        cur.execute(
            """
            UPDATE payment_sessions
            SET status = %s, updated_at = now()
            WHERE id = %s AND booking_id = %s
            """,
            (status, payment_session_id, booking_id),
        )
    else:
        cur.execute(
            """
            UPDATE payment_sessions
            SET status = %s, updated_at = now()
            WHERE booking_id = %s AND status <> 'paid'
            """,
            (status, booking_id),
        )
    return cur.rowcount
