"""ARI engine - rate resolution per room type and night.

resolve_night_rate picks, among the intervals covering a night (date range
and weekday mask), the one with the highest priority. Ties on priority go
to the lowest interval id so results never depend on storage order.

Bulk updates follow a full-range replace policy: every interval of the
room type + plan overlapping the range is deleted and exactly one interval
covering the whole range is inserted (last write wins). replace_range
computes that as a pure operation so the no-overlap result is testable.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor

from stayline.domain.access import AuthContext
from stayline.domain.errors import NotFoundError, ValidationError
from stayline.infra.db import txn
from stayline.infra.repositories.rates_repository import (
    delete_intervals,
    fetch_intervals,
    find_bar_plan,
    get_or_create_bar_plan,
    get_rate_plan,
    insert_interval,
    list_room_types,
)
from stayline.infra.time import iter_nights
from stayline.observability.logging import get_logger, log_event

logger = get_logger(__name__)

ALL_DAYS_MASK = 0b1111111


def weekday_bit(night: date) -> int:
    """dow_mask bit for a date (Monday = bit 0 ... Sunday = bit 6)."""
    return 1 << night.weekday()


def overlaps(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Half-open overlap test: [start_a, end_a) intersects [start_b, end_b)."""
    return start_a < end_b and end_a > start_b


@dataclass(frozen=True)
class RateInterval:
    id: str
    room_type_id: str
    rate_plan_id: str
    start_date: date
    end_date: date
    dow_mask: int
    base_rate: Decimal
    min_los: int | None = None
    closed: bool = False
    priority: int = 0

    @classmethod
    def from_row(cls, row: dict) -> RateInterval:
        return cls(
            id=row["id"],
            room_type_id=row["room_type_id"],
            rate_plan_id=row["rate_plan_id"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            dow_mask=row["dow_mask"],
            base_rate=Decimal(row["base_rate"]),
            min_los=row["min_los"],
            closed=row["closed"],
            priority=row["priority"],
        )

    def covers(self, night: date) -> bool:
        return (
            self.start_date <= night < self.end_date
            and self.dow_mask & weekday_bit(night) != 0
        )


@dataclass(frozen=True)
class RateCell:
    """Resolved rate for one room type and night.

    base_rate is None both when the winning interval is closed and when
    no interval applies. The second case is the "unpriced" night: it is
    not closed, so it stays sellable and prices at zero.
    """

    base_rate: Decimal | None
    min_los: int | None
    closed: bool
    interval_id: str | None = None

    @property
    def is_unpriced(self) -> bool:
        return self.base_rate is None and not self.closed

    def to_dict(self) -> dict:
        return {
            "base_rate": str(self.base_rate) if self.base_rate is not None else None,
            "min_los": self.min_los,
            "closed": self.closed,
        }


UNPRICED = RateCell(base_rate=None, min_los=None, closed=False)


def resolve_night_rate(
    room_type_id: str | None,
    night: date,
    intervals: list[RateInterval],
) -> RateCell:
    """Resolve the applicable rate for a room type on a night.

    Args:
        room_type_id: Room type, or None for rooms without a type.
        night: The night to resolve.
        intervals: Pre-fetched intervals (any room type, one plan).

    Returns:
        RateCell for the highest-priority covering interval, or UNPRICED.
    """
    if room_type_id is None:
        return UNPRICED

    candidates = [
        iv for iv in intervals
        if iv.room_type_id == room_type_id and iv.covers(night)
    ]
    if not candidates:
        return UNPRICED

    best = min(candidates, key=lambda iv: (-iv.priority, iv.id))
    if best.closed:
        return RateCell(base_rate=None, min_los=best.min_los, closed=True, interval_id=best.id)
    return RateCell(
        base_rate=best.base_rate,
        min_los=best.min_los,
        closed=False,
        interval_id=best.id,
    )


def build_ari_grid(
    room_type_ids: list[str],
    intervals: list[RateInterval],
    date_from: date,
    date_to: date,
) -> dict[str, dict[date, RateCell]]:
    """Build the room type x day grid for [date_from, date_to)."""
    return {
        rt_id: {day: resolve_night_rate(rt_id, day, intervals) for day in iter_nights(date_from, date_to)}
        for rt_id in room_type_ids
    }


# ── Range replace ─────────────────────────────────────────


@dataclass(frozen=True)
class NewInterval:
    room_type_id: str
    rate_plan_id: str
    start_date: date
    end_date: date
    dow_mask: int
    base_rate: Decimal
    min_los: int | None
    closed: bool
    priority: int = 0


@dataclass(frozen=True)
class RangeReplacement:
    """Result of replace_range: what to delete and the single interval to insert."""

    delete_ids: tuple[str, ...]
    insert: NewInterval


def replace_range(
    existing: list[RateInterval],
    *,
    room_type_id: str,
    rate_plan_id: str,
    start_date: date,
    end_date: date,
    base_rate: Decimal | None,
    min_los: int | None,
    closed: bool | None,
    dow_mask: int = ALL_DAYS_MASK,
) -> RangeReplacement:
    """Full-range replace for one room type + plan.

    Every existing interval of the same room type and plan that overlaps
    [start_date, end_date) is removed, even if it extends past the range
    or only partly intersects it.
    """
    delete_ids = tuple(
        iv.id
        for iv in existing
        if iv.room_type_id == room_type_id
        and iv.rate_plan_id == rate_plan_id
        and overlaps(iv.start_date, iv.end_date, start_date, end_date)
    )
    return RangeReplacement(
        delete_ids=delete_ids,
        insert=NewInterval(
            room_type_id=room_type_id,
            rate_plan_id=rate_plan_id,
            start_date=start_date,
            end_date=end_date,
            dow_mask=dow_mask,
            base_rate=base_rate if base_rate is not None else Decimal("0"),
            min_los=min_los,
            closed=bool(closed),
        ),
    )


def find_ambiguous_overlaps(
    intervals: list[RateInterval | NewInterval],
) -> list[tuple[RateInterval | NewInterval, RateInterval | NewInterval]]:
    """Pairs of intervals (same room type + plan + priority) that share a date and weekday."""
    pairs = []
    for i, a in enumerate(intervals):
        for b in intervals[i + 1:]:
            if (
                a.room_type_id == b.room_type_id
                and a.rate_plan_id == b.rate_plan_id
                and a.priority == b.priority
                and a.dow_mask & b.dow_mask
                and overlaps(a.start_date, a.end_date, b.start_date, b.end_date)
            ):
                pairs.append((a, b))
    return pairs


# ── Storage-backed operations ─────────────────────────────


@dataclass
class BulkRateUpdate:
    property_id: str
    room_type_ids: list[str]
    start_date: date
    end_date: date
    rate_plan_id: str | None = None
    base_rate: Decimal | None = None
    min_los: int | None = None
    closed: bool | None = None
    dow_mask: int = ALL_DAYS_MASK

    def validate(self) -> None:
        if self.end_date <= self.start_date:
            raise ValidationError("invalid_dates")
        if not self.room_type_ids:
            raise ValidationError("room_types_required")
        if self.base_rate is None and self.closed is None:
            raise ValidationError("rate_or_closed_required")
        if self.base_rate is not None and self.base_rate < 0:
            raise ValidationError("negative_rate")
        if self.min_los is not None and self.min_los < 1:
            raise ValidationError("invalid_min_los")
        if not 1 <= self.dow_mask <= ALL_DAYS_MASK:
            raise ValidationError("invalid_dow_mask")


def load_intervals(
    cur: PgCursor,
    *,
    rate_plan_id: str,
    start: date,
    end: date,
    room_type_ids: list[str] | None = None,
) -> list[RateInterval]:
    rows = fetch_intervals(
        cur,
        rate_plan_id=rate_plan_id,
        start=start,
        end=end,
        room_type_ids=room_type_ids,
    )
    return [RateInterval.from_row(r) for r in rows]


def get_ari_grid(
    ctx: AuthContext,
    *,
    property_id: str,
    date_from: date,
    date_to: date,
) -> dict:
    """Return the BAR grid for a property over [date_from, date_to).

    Returns:
        {"rate_plan_id", "date_from", "date_to", "room_types",
         "grid": {room_type_id: {"YYYY-MM-DD": cell}}}
    """
    ctx.ensure_property(property_id)
    if date_to <= date_from:
        raise ValidationError("invalid_dates")

    with txn() as cur:
        plan_id = find_bar_plan(cur, property_id)
        room_types = list_room_types(cur, property_id)
        intervals = []
        if plan_id is not None:
            intervals = load_intervals(cur, rate_plan_id=plan_id, start=date_from, end=date_to)

    grid = build_ari_grid([rt["id"] for rt in room_types], intervals, date_from, date_to)
    return {
        "rate_plan_id": plan_id,
        "date_from": date_from,
        "date_to": date_to,
        "room_types": room_types,
        "grid": {
            rt_id: {day.isoformat(): cell.to_dict() for day, cell in days.items()}
            for rt_id, days in grid.items()
        },
    }


def _plan_replacements(
    cur: PgCursor,
    update: BulkRateUpdate,
    *,
    create_bar_plan: bool,
) -> tuple[str | None, list[dict], list[RangeReplacement]]:
    if update.rate_plan_id is None:
        if create_bar_plan:
            plan_id = get_or_create_bar_plan(cur, update.property_id)
        else:
            # None until the first commit creates the BAR plan
            plan_id = find_bar_plan(cur, update.property_id)
    else:
        plan = get_rate_plan(cur, property_id=update.property_id, rate_plan_id=update.rate_plan_id)
        if plan is None:
            raise NotFoundError("rate_plan_not_found", {"rate_plan_id": update.rate_plan_id})
        plan_id = plan["id"]

    room_types = list_room_types(cur, update.property_id, update.room_type_ids)
    if len(room_types) != len(set(update.room_type_ids)):
        raise NotFoundError("room_type_not_found")

    existing: list[RateInterval] = []
    if plan_id is not None:
        existing = load_intervals(
            cur,
            rate_plan_id=plan_id,
            start=update.start_date,
            end=update.end_date,
            room_type_ids=[rt["id"] for rt in room_types],
        )
    replacements = [
        replace_range(
            existing,
            room_type_id=rt["id"],
            rate_plan_id=plan_id,
            start_date=update.start_date,
            end_date=update.end_date,
            base_rate=update.base_rate,
            min_los=update.min_los,
            closed=update.closed,
            dow_mask=update.dow_mask,
        )
        for rt in room_types
    ]
    return plan_id, room_types, replacements


def preview_bulk_update(ctx: AuthContext, update: BulkRateUpdate) -> dict:
    """Describe what commit_bulk_update would write, without writing.

    Read-only: a property with no BAR plan yet previews against an empty
    plan and reports rate_plan_id None.
    """
    ctx.ensure_property(update.property_id)
    update.validate()

    with txn() as cur:
        plan_id, room_types, replacements = _plan_replacements(cur, update, create_bar_plan=False)

    names = {rt["id"]: rt["name"] for rt in room_types}
    return {
        "rate_plan_id": plan_id,
        "items": [
            {
                "room_type_id": r.insert.room_type_id,
                "room_type_name": names[r.insert.room_type_id],
                "start_date": r.insert.start_date,
                "end_date": r.insert.end_date,
                "base_rate": r.insert.base_rate,
                "min_los": r.insert.min_los,
                "closed": r.insert.closed,
                "replaces": len(r.delete_ids),
            }
            for r in replacements
        ],
    }


def commit_bulk_update(ctx: AuthContext, update: BulkRateUpdate) -> dict:
    """Apply a bulk rate update with delete-overlapping-then-insert-one semantics.

    All room types are replaced in a single transaction.

    Returns:
        {"rate_plan_id", "deleted": int, "inserted": [interval ids]}
    """
    ctx.ensure_property(update.property_id)
    update.validate()

    deleted = 0
    inserted: list[str] = []
    with txn() as cur:
        plan_id, _room_types, replacements = _plan_replacements(cur, update, create_bar_plan=True)
        for r in replacements:
            deleted += delete_intervals(cur, list(r.delete_ids))
            inserted.append(
                insert_interval(
                    cur,
                    property_id=update.property_id,
                    room_type_id=r.insert.room_type_id,
                    rate_plan_id=r.insert.rate_plan_id,
                    start_date=r.insert.start_date,
                    end_date=r.insert.end_date,
                    dow_mask=r.insert.dow_mask,
                    base_rate=r.insert.base_rate,
                    min_los=r.insert.min_los,
                    closed=r.insert.closed,
                    priority=r.insert.priority,
                )
            )

    log_event(
        logger,
        "rate bulk update committed",
        property_id=update.property_id,
        rate_plan_id=plan_id,
        room_types=update.room_type_ids,
        start_date=update.start_date,
        end_date=update.end_date,
        deleted=deleted,
        inserted=len(inserted),
    )
    return {"rate_plan_id": plan_id, "deleted": deleted, "inserted": inserted}
