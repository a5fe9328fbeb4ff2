"""Tests for ARI rate resolution and bulk range replacement."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from helpers import interval_row, mock_txn_for
from stayline.domain.ari import (
    UNPRICED,
    BulkRateUpdate,
    RateInterval,
    build_ari_grid,
    commit_bulk_update,
    find_ambiguous_overlaps,
    get_ari_grid,
    overlaps,
    preview_bulk_update,
    replace_range,
    resolve_night_rate,
    weekday_bit,
)
from stayline.domain.errors import NotFoundError, ValidationError

PROPERTY_ID = "11111111-1111-1111-1111-111111111111"


def _iv(interval_id: str, **kwargs) -> RateInterval:
    return RateInterval.from_row(interval_row(interval_id, **kwargs))


class TestWeekdayAndOverlap:
    def test_monday_is_bit_zero(self):
        assert weekday_bit(date(2025, 3, 3)) == 1  # Monday
        assert weekday_bit(date(2025, 3, 9)) == 64  # Sunday

    def test_half_open_touching_ranges_do_not_overlap(self):
        assert not overlaps(date(2025, 3, 1), date(2025, 3, 5), date(2025, 3, 5), date(2025, 3, 8))

    def test_partial_overlap(self):
        assert overlaps(date(2025, 3, 1), date(2025, 3, 6), date(2025, 3, 5), date(2025, 3, 8))


class TestResolveNightRate:
    def test_single_interval(self):
        cell = resolve_night_rate("rt-1", date(2025, 3, 10), [_iv("a", base_rate="120.00", min_los=2)])
        assert cell.base_rate == Decimal("120.00")
        assert cell.min_los == 2
        assert cell.closed is False

    def test_end_date_is_exclusive(self):
        cell = resolve_night_rate("rt-1", date(2025, 4, 1), [_iv("a")])
        assert cell == UNPRICED

    def test_highest_priority_wins(self):
        intervals = [
            _iv("a", base_rate="100.00", priority=0),
            _iv("b", base_rate="150.00", priority=5),
        ]
        assert resolve_night_rate("rt-1", date(2025, 3, 10), intervals).base_rate == Decimal("150.00")

    def test_equal_priority_lowest_id_wins_regardless_of_order(self):
        a = _iv("aaaa", base_rate="100.00")
        b = _iv("bbbb", base_rate="200.00")
        night = date(2025, 3, 10)
        assert resolve_night_rate("rt-1", night, [a, b]).base_rate == Decimal("100.00")
        assert resolve_night_rate("rt-1", night, [b, a]).base_rate == Decimal("100.00")

    def test_weekday_mask_excludes_night(self):
        # Weekends only (Saturday bit 5, Sunday bit 6); 2025-03-10 is a Monday.
        weekend = _iv("a", dow_mask=0b1100000)
        assert resolve_night_rate("rt-1", date(2025, 3, 10), [weekend]) == UNPRICED
        assert resolve_night_rate("rt-1", date(2025, 3, 15), [weekend]).base_rate == Decimal("100.00")

    def test_closed_winner_has_no_rate(self):
        intervals = [
            _iv("a", base_rate="100.00", priority=0),
            _iv("b", closed=True, min_los=3, priority=1),
        ]
        cell = resolve_night_rate("rt-1", date(2025, 3, 10), intervals)
        assert cell.closed is True
        assert cell.base_rate is None
        assert cell.min_los == 3
        assert cell.is_unpriced is False

    def test_no_candidates_is_unpriced_not_closed(self):
        cell = resolve_night_rate("rt-1", date(2025, 3, 10), [_iv("a", room_type_id="rt-2")])
        assert cell.base_rate is None
        assert cell.closed is False
        assert cell.is_unpriced is True

    def test_room_without_type_is_unpriced(self):
        assert resolve_night_rate(None, date(2025, 3, 10), [_iv("a")]) == UNPRICED


class TestBuildGrid:
    def test_grid_covers_every_day_and_type(self):
        intervals = [_iv("a", base_rate="90.00"), _iv("b", room_type_id="rt-2", base_rate="140.00")]
        grid = build_ari_grid(["rt-1", "rt-2"], intervals, date(2025, 3, 30), date(2025, 4, 2))

        assert list(grid) == ["rt-1", "rt-2"]
        assert list(grid["rt-1"]) == [date(2025, 3, 30), date(2025, 3, 31), date(2025, 4, 1)]
        assert grid["rt-1"][date(2025, 3, 31)].base_rate == Decimal("90.00")
        assert grid["rt-1"][date(2025, 4, 1)].is_unpriced
        assert grid["rt-2"][date(2025, 3, 30)].base_rate == Decimal("140.00")


class TestReplaceRange:
    def test_deletes_every_overlapping_interval_of_same_type_and_plan(self):
        existing = [
            _iv("inside", start=date(2025, 3, 10), end=date(2025, 3, 12)),
            _iv("straddles", start=date(2025, 2, 20), end=date(2025, 3, 11)),
            _iv("after", start=date(2025, 3, 20), end=date(2025, 3, 25)),
            _iv("other-type", room_type_id="rt-2", start=date(2025, 3, 10), end=date(2025, 3, 12)),
            _iv("other-plan", rate_plan_id="plan-2", start=date(2025, 3, 10), end=date(2025, 3, 12)),
        ]
        result = replace_range(
            existing,
            room_type_id="rt-1",
            rate_plan_id="plan-1",
            start_date=date(2025, 3, 5),
            end_date=date(2025, 3, 15),
            base_rate=Decimal("110.00"),
            min_los=None,
            closed=None,
        )
        assert set(result.delete_ids) == {"inside", "straddles"}
        assert result.insert.start_date == date(2025, 3, 5)
        assert result.insert.end_date == date(2025, 3, 15)
        assert result.insert.priority == 0
        assert result.insert.closed is False

    def test_closing_defaults_rate_to_zero(self):
        result = replace_range(
            [],
            room_type_id="rt-1",
            rate_plan_id="plan-1",
            start_date=date(2025, 3, 5),
            end_date=date(2025, 3, 6),
            base_rate=None,
            min_los=None,
            closed=True,
        )
        assert result.insert.base_rate == Decimal("0")
        assert result.insert.closed is True

    def test_result_leaves_no_ambiguous_overlap(self):
        existing = [
            _iv("a", start=date(2025, 3, 1), end=date(2025, 3, 10)),
            _iv("b", start=date(2025, 3, 8), end=date(2025, 3, 20)),
            _iv("c", start=date(2025, 3, 28), end=date(2025, 4, 5)),
        ]
        result = replace_range(
            existing,
            room_type_id="rt-1",
            rate_plan_id="plan-1",
            start_date=date(2025, 3, 5),
            end_date=date(2025, 3, 28),
            base_rate=Decimal("99.00"),
            min_los=2,
            closed=False,
        )
        assert set(result.delete_ids) == {"a", "b"}
        survivors = [iv for iv in existing if iv.id not in result.delete_ids]
        assert find_ambiguous_overlaps([*survivors, result.insert]) == []

    def test_last_write_wins(self):
        first = replace_range(
            [],
            room_type_id="rt-1",
            rate_plan_id="plan-1",
            start_date=date(2025, 3, 1),
            end_date=date(2025, 3, 31),
            base_rate=Decimal("100.00"),
            min_los=None,
            closed=False,
        )
        stored = [RateInterval(id="x1", **first.insert.__dict__)]
        second = replace_range(
            stored,
            room_type_id="rt-1",
            rate_plan_id="plan-1",
            start_date=date(2025, 3, 10),
            end_date=date(2025, 3, 12),
            base_rate=Decimal("250.00"),
            min_los=None,
            closed=False,
        )
        # The whole March interval is replaced, not split.
        assert second.delete_ids == ("x1",)
        final = [RateInterval(id="x2", **second.insert.__dict__)]
        assert resolve_night_rate("rt-1", date(2025, 3, 10), final).base_rate == Decimal("250.00")
        assert resolve_night_rate("rt-1", date(2025, 3, 1), final).is_unpriced


class TestBulkRateUpdateValidation:
    def _update(self, **overrides) -> BulkRateUpdate:
        values = dict(
            property_id=PROPERTY_ID,
            room_type_ids=["rt-1"],
            start_date=date(2025, 3, 1),
            end_date=date(2025, 3, 5),
            base_rate=Decimal("100.00"),
        )
        values.update(overrides)
        return BulkRateUpdate(**values)

    @pytest.mark.parametrize(
        "overrides,reason",
        [
            ({"end_date": date(2025, 3, 1)}, "invalid_dates"),
            ({"room_type_ids": []}, "room_types_required"),
            ({"base_rate": None, "closed": None}, "rate_or_closed_required"),
            ({"base_rate": Decimal("-1")}, "negative_rate"),
            ({"min_los": 0}, "invalid_min_los"),
            ({"dow_mask": 0}, "invalid_dow_mask"),
            ({"dow_mask": 128}, "invalid_dow_mask"),
        ],
    )
    def test_rejects(self, overrides, reason):
        with pytest.raises(ValidationError) as exc_info:
            self._update(**overrides).validate()
        assert exc_info.value.reason_code == reason

    def test_closed_only_is_valid(self):
        self._update(base_rate=None, closed=True).validate()


class TestCommitBulkUpdate:
    def test_deletes_overlaps_and_inserts_one_per_room_type(self, staff_ctx, mock_cur):
        update = BulkRateUpdate(
            property_id=PROPERTY_ID,
            room_type_ids=["rt-1", "rt-2"],
            start_date=date(2025, 3, 1),
            end_date=date(2025, 3, 5),
            base_rate=Decimal("100.00"),
        )
        rows = [interval_row("old-1", room_type_id="rt-1"), interval_row("old-2", room_type_id="rt-2")]
        with patch("stayline.domain.ari.txn", mock_txn_for(mock_cur)), \
             patch("stayline.domain.ari.get_or_create_bar_plan", return_value="plan-1"), \
             patch("stayline.domain.ari.list_room_types", return_value=[
                 {"id": "rt-1", "name": "Double"}, {"id": "rt-2", "name": "Suite"},
             ]), \
             patch("stayline.domain.ari.fetch_intervals", return_value=rows), \
             patch("stayline.domain.ari.delete_intervals", return_value=1) as mock_delete, \
             patch("stayline.domain.ari.insert_interval", side_effect=["new-1", "new-2"]) as mock_insert:
            result = commit_bulk_update(staff_ctx, update)

        assert result == {"rate_plan_id": "plan-1", "deleted": 2, "inserted": ["new-1", "new-2"]}
        assert mock_delete.call_args_list[0].args == (mock_cur, ["old-1"])
        assert mock_delete.call_args_list[1].args == (mock_cur, ["old-2"])
        assert mock_insert.call_count == 2
        assert mock_insert.call_args.kwargs["priority"] == 0
        assert mock_insert.call_args.kwargs["dow_mask"] == 127

    def test_unknown_room_type_is_not_found(self, staff_ctx, mock_cur):
        update = BulkRateUpdate(
            property_id=PROPERTY_ID,
            room_type_ids=["rt-1", "rt-missing"],
            start_date=date(2025, 3, 1),
            end_date=date(2025, 3, 5),
            closed=True,
        )
        with patch("stayline.domain.ari.txn", mock_txn_for(mock_cur)), \
             patch("stayline.domain.ari.get_or_create_bar_plan", return_value="plan-1"), \
             patch("stayline.domain.ari.list_room_types", return_value=[{"id": "rt-1", "name": "Double"}]), \
             patch("stayline.domain.ari.insert_interval") as mock_insert:
            with pytest.raises(NotFoundError) as exc_info:
                commit_bulk_update(staff_ctx, update)
        assert exc_info.value.reason_code == "room_type_not_found"
        mock_insert.assert_not_called()

    def test_plan_of_other_property_is_not_found(self, staff_ctx, mock_cur):
        update = BulkRateUpdate(
            property_id=PROPERTY_ID,
            room_type_ids=["rt-1"],
            start_date=date(2025, 3, 1),
            end_date=date(2025, 3, 5),
            rate_plan_id="foreign-plan",
            base_rate=Decimal("80.00"),
        )
        with patch("stayline.domain.ari.txn", mock_txn_for(mock_cur)), \
             patch("stayline.domain.ari.get_rate_plan", return_value=None):
            with pytest.raises(NotFoundError):
                commit_bulk_update(staff_ctx, update)

    def test_other_property_scope_rejected(self, staff_ctx):
        update = BulkRateUpdate(
            property_id="22222222-2222-2222-2222-222222222222",
            room_type_ids=["rt-1"],
            start_date=date(2025, 3, 1),
            end_date=date(2025, 3, 5),
            base_rate=Decimal("80.00"),
        )
        with pytest.raises(NotFoundError):
            commit_bulk_update(staff_ctx, update)


class TestPreviewBulkUpdate:
    def _update(self) -> BulkRateUpdate:
        return BulkRateUpdate(
            property_id=PROPERTY_ID,
            room_type_ids=["rt-1"],
            start_date=date(2025, 3, 1),
            end_date=date(2025, 3, 5),
            base_rate=Decimal("120.00"),
        )

    def test_lists_replacements_without_writing(self, staff_ctx, mock_cur):
        with patch("stayline.domain.ari.txn", mock_txn_for(mock_cur)), \
             patch("stayline.domain.ari.find_bar_plan", return_value="plan-1"), \
             patch("stayline.domain.ari.get_or_create_bar_plan") as mock_create, \
             patch("stayline.domain.ari.list_room_types", return_value=[{"id": "rt-1", "name": "Double"}]), \
             patch("stayline.domain.ari.fetch_intervals", return_value=[interval_row("old-1")]), \
             patch("stayline.domain.ari.delete_intervals") as mock_delete, \
             patch("stayline.domain.ari.insert_interval") as mock_insert:
            result = preview_bulk_update(staff_ctx, self._update())

        assert result["rate_plan_id"] == "plan-1"
        assert result["items"][0]["room_type_name"] == "Double"
        assert result["items"][0]["replaces"] == 1
        mock_create.assert_not_called()
        mock_delete.assert_not_called()
        mock_insert.assert_not_called()

    def test_missing_bar_plan_is_not_created(self, staff_ctx, mock_cur):
        with patch("stayline.domain.ari.txn", mock_txn_for(mock_cur)), \
             patch("stayline.domain.ari.find_bar_plan", return_value=None), \
             patch("stayline.domain.ari.get_or_create_bar_plan") as mock_create, \
             patch("stayline.domain.ari.list_room_types", return_value=[{"id": "rt-1", "name": "Double"}]), \
             patch("stayline.domain.ari.fetch_intervals") as mock_fetch:
            result = preview_bulk_update(staff_ctx, self._update())

        assert result["rate_plan_id"] is None
        assert result["items"][0]["replaces"] == 0
        assert result["items"][0]["base_rate"] == Decimal("120.00")
        mock_create.assert_not_called()
        mock_fetch.assert_not_called()


class TestGetAriGrid:
    def test_property_without_bar_plan_reads_unpriced(self, staff_ctx, mock_cur):
        with patch("stayline.domain.ari.txn", mock_txn_for(mock_cur)), \
             patch("stayline.domain.ari.find_bar_plan", return_value=None), \
             patch("stayline.domain.ari.get_or_create_bar_plan") as mock_create, \
             patch("stayline.domain.ari.list_room_types", return_value=[{"id": "rt-1", "name": "Double"}]), \
             patch("stayline.domain.ari.fetch_intervals") as mock_fetch:
            grid = get_ari_grid(
                staff_ctx,
                property_id=PROPERTY_ID,
                date_from=date(2025, 3, 1),
                date_to=date(2025, 3, 3),
            )

        assert grid["rate_plan_id"] is None
        assert grid["grid"]["rt-1"] == {
            "2025-03-01": UNPRICED.to_dict(),
            "2025-03-02": UNPRICED.to_dict(),
        }
        mock_create.assert_not_called()
        mock_fetch.assert_not_called()
