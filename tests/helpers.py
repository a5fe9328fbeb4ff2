"""Shared test helper functions for Stayline tests.

These are NOT fixtures - they are regular functions importable from any
test module.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

import psycopg2.errors

from stayline.domain.quote import NightQuote, QuoteResult
from stayline.infra.repositories.bookings_repository import ACTIVE_NIGHT_INDEX


class _UniqueViolation(psycopg2.errors.UniqueViolation):
    """UniqueViolation whose diag names a constraint (the C diag is read-only)."""

    @property
    def diag(self):
        return SimpleNamespace(constraint_name=self._constraint)


def unique_violation(constraint: str = ACTIVE_NIGHT_INDEX) -> psycopg2.errors.UniqueViolation:
    exc = _UniqueViolation("duplicate key value violates unique constraint")
    exc._constraint = constraint
    return exc


def mock_txn_for(cur):
    """Build a txn() replacement yielding cur."""

    @contextmanager
    def mock_txn(conn=None):
        yield cur

    return mock_txn


def interval_row(
    interval_id: str,
    *,
    room_type_id: str = "rt-1",
    rate_plan_id: str = "plan-1",
    start: date = date(2025, 3, 1),
    end: date = date(2025, 4, 1),
    base_rate: str = "100.00",
    dow_mask: int = 127,
    min_los: int | None = None,
    closed: bool = False,
    priority: int = 0,
) -> dict:
    return {
        "id": interval_id,
        "room_type_id": room_type_id,
        "rate_plan_id": rate_plan_id,
        "start_date": start,
        "end_date": end,
        "dow_mask": dow_mask,
        "base_rate": Decimal(base_rate),
        "min_los": min_los,
        "closed": closed,
        "priority": priority,
    }


def room_row(
    room_id: str,
    name: str,
    *,
    room_type_id: str | None = "rt-1",
    room_type_name: str = "Double",
    sync_status: str = "ok",
    last_synced_at=None,
) -> dict:
    return {
        "id": room_id,
        "name": name,
        "room_type_id": room_type_id,
        "room_type_name": room_type_name,
        "sync_status": sync_status,
        "last_synced_at": last_synced_at,
        "last_sync_error": None,
    }


def make_quote(
    room_id: str = "r1",
    *,
    check_in: date = date(2025, 3, 10),
    nights: int = 2,
    rate: str = "100.00",
    tax: str = "10.00",
    currency: str = "USD",
):
    """Build a QuoteResult with flat per-night prices."""
    base = Decimal(rate)
    taxes = Decimal(tax)
    night_quotes = tuple(
        NightQuote(
            night=check_in + timedelta(days=i),
            base_rate=base,
            extras_adults=Decimal("0"),
            extras_children=Decimal("0"),
            subtotal=base,
            taxes=taxes,
            total_rate=base + taxes,
        )
        for i in range(nights)
    )
    return QuoteResult(
        room_id=room_id,
        room_type_id="rt-1",
        rate_plan_id="plan-1",
        check_in=check_in,
        check_out=check_in + timedelta(days=nights),
        adults=2,
        children_ages=(),
        nights=night_quotes,
        subtotal=base * nights,
        taxes_total=taxes * nights,
        grand_total=(base + taxes) * nights,
        currency=currency,
    )
