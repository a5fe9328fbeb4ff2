"""Booking engine schema (SQL-only).

Creates inventory, rates, bookings, night allocations, quotes, payment
sessions and per-property pricing configuration. The partial unique index
booking_nights_active_room_night_uq is what prevents double-selling.

Revision ID: 001_booking_engine_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from pathlib import Path

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_booking_engine_schema"
down_revision = None
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "001_booking_engine.sql"

_TABLES = (
    "tax_rules",
    "child_pricing_rules",
    "property_commercial_settings",
    "payment_sessions",
    "booking_quotes",
    "booking_nights",
    "bookings",
    "rate_plan_intervals",
    "rate_plans",
    "blocks",
    "external_reservations",
    "rooms",
    "room_types",
    "properties",
)


def upgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(_SQL_FILE.read_text(encoding="utf-8"))


def downgrade() -> None:
    for table in _TABLES:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
