"""Rates repository - rate plans and rate plan intervals.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor

BAR_PLAN_CODE = "BAR"
BAR_PLAN_NAME = "Best Available Rate"

_INTERVAL_COLUMNS = """
    id, room_type_id, rate_plan_id, start_date, end_date,
    dow_mask, base_rate, min_los, closed, priority
"""


def _row_to_interval(row: tuple) -> dict:
    return {
        "id": str(row[0]),
        "room_type_id": str(row[1]),
        "rate_plan_id": str(row[2]),
        "start_date": row[3],
        "end_date": row[4],
        "dow_mask": row[5],
        "base_rate": row[6],
        "min_los": row[7],
        "closed": row[8],
        "priority": row[9],
    }


def get_rate_plan(cur: PgCursor, *, property_id: str, rate_plan_id: str) -> dict | None:
    """Fetch a rate plan only if it belongs to the property."""
    cur.execute(
        """
        SELECT id, code, name, is_active
        FROM rate_plans
        WHERE id = %s AND property_id = %s
        """,
        (rate_plan_id, property_id),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return {"id": str(row[0]), "code": row[1], "name": row[2], "is_active": row[3]}


def find_bar_plan(cur: PgCursor, property_id: str) -> str | None:
    cur.execute(
        "SELECT id FROM rate_plans WHERE property_id = %s AND code = %s",
        (property_id, BAR_PLAN_CODE),
    )
    row = cur.fetchone()
    return str(row[0]) if row is not None else None


def get_or_create_bar_plan(cur: PgCursor, property_id: str) -> str:
    """Return the BAR plan id for a property, creating it on first use.

    ON CONFLICT makes concurrent first-use safe; the losing insert
    re-reads the winner's row.
    """
    cur.execute(
        """
        INSERT INTO rate_plans (property_id, code, name, is_active)
        VALUES (%s, %s, %s, true)
        ON CONFLICT (property_id, code) DO NOTHING
        RETURNING id
        """,
        (property_id, BAR_PLAN_CODE, BAR_PLAN_NAME),
    )
    row = cur.fetchone()
    if row is not None:
        return str(row[0])

    return find_bar_plan(cur, property_id)


def list_room_types(
    cur: PgCursor,
    property_id: str,
    room_type_ids: list[str] | None = None,
) -> list[dict]:
    """List room types of a property (optionally restricted to ids), by name."""
    if room_type_ids is None:
        cur.execute(
            "SELECT id, name FROM room_types WHERE property_id = %s ORDER BY name, id",
            (property_id,),
        )
    else:
        cur.execute(
            """
            SELECT id, name FROM room_types
            WHERE property_id = %s AND id = ANY(%s::uuid[])
            ORDER BY name, id
            """,
            (property_id, room_type_ids),
        )
    return [{"id": str(r[0]), "name": r[1]} for r in cur.fetchall()]


def fetch_intervals(
    cur: PgCursor,
    *,
    rate_plan_id: str,
    start: date,
    end: date,
    room_type_ids: list[str] | None = None,
) -> list[dict]:
    """Fetch intervals of a plan overlapping [start, end).

    Closed intervals are included; resolution decides what they mean.
    """
    conditions = ["rate_plan_id = %s", "start_date < %s", "end_date > %s"]
    params: list = [rate_plan_id, end, start]
    if room_type_ids is not None:
        conditions.append("room_type_id = ANY(%s::uuid[])")
        params.append(room_type_ids)

    cur.execute(
        f"""
        SELECT {_INTERVAL_COLUMNS}
        FROM rate_plan_intervals
        WHERE {" AND ".join(conditions)}
        ORDER BY room_type_id, start_date, id
        """,
        params,
    )
    return [_row_to_interval(r) for r in cur.fetchall()]


def delete_intervals(cur: PgCursor, interval_ids: list[str]) -> int:
    """Hard-delete intervals by id. Returns number of rows removed."""
    if not interval_ids:
        return 0
    cur.execute(
        "DELETE FROM rate_plan_intervals WHERE id = ANY(%s::uuid[])",
        (interval_ids,),
    )
    return cur.rowcount


def insert_interval(
    cur: PgCursor,
    *,
    property_id: str,
    room_type_id: str,
    rate_plan_id: str,
    start_date: date,
    end_date: date,
    dow_mask: int,
    base_rate: Decimal,
    min_los: int | None,
    closed: bool,
    priority: int,
) -> str:
    """Insert one rate interval and return its id."""
    cur.execute(
        """
        INSERT INTO rate_plan_intervals (
            property_id, room_type_id, rate_plan_id,
            start_date, end_date, dow_mask,
            base_rate, min_los, closed, priority
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            property_id,
            room_type_id,
            rate_plan_id,
            start_date,
            end_date,
            dow_mask,
            base_rate,
            min_los,
            closed,
            priority,
        ),
    )
    return str(cur.fetchone()[0])
