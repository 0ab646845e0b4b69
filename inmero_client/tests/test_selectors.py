"""
Tests for the pure booking rules: table filtering, past-slot check,
tightest-fit table choice and date-time formatting.
"""
import re
from datetime import date, datetime

import pytest

from inmero_client.models import AvailableSlot
from inmero_client.selectors import (
    TightestFitSelector,
    combine_date_time,
    format_date_for_api,
    is_slot_in_past,
    is_slot_selectable,
    tables_for_slot,
)


class TestTablesForSlot:
    @pytest.mark.parametrize("guests", range(1, 10))
    def test_never_returns_table_below_party_size(self, slot_factory, guests):
        slot = slot_factory.create("20:00", capacities=(2, 4, 6, 8, 1, 3))
        tables = tables_for_slot(slot, guests)
        assert all(t.capacity >= guests for t in tables)
        assert len(tables) == sum(1 for c in (2, 4, 6, 8, 1, 3) if c >= guests)

    def test_slot_without_fitting_tables_is_not_selectable(self, slot_factory):
        slot = slot_factory.create("20:00", capacities=(2, 2))
        assert tables_for_slot(slot, 3) == []
        assert not is_slot_selectable(slot, 3)
        assert is_slot_selectable(slot, 2)


class TestTightestFitSelector:
    def test_picks_smallest_table_that_fits(self, slot_factory):
        slot = slot_factory.create("20:00", capacities=(2, 4, 6, 8))
        table = TightestFitSelector().select(slot, 3)
        assert table.capacity == 4

    def test_order_of_tables_does_not_matter(self, slot_factory):
        slot = slot_factory.create("20:00", capacities=(8, 6, 4, 2))
        assert TightestFitSelector().select(slot, 3).capacity == 4

    def test_exact_fit_wins(self, slot_factory):
        slot = slot_factory.create("20:00", capacities=(6, 4, 8))
        assert TightestFitSelector().select(slot, 4).capacity == 4

    def test_ties_keep_first_listed_table(self, slot_factory):
        slot = slot_factory.create("20:00", capacities=(4, 4), first_table_id=10)
        assert TightestFitSelector().select(slot, 3).table_id == 10

    def test_falls_back_to_first_table_when_nothing_fits(self, slot_factory):
        slot = slot_factory.create("20:00", capacities=(2, 4), first_table_id=10)
        table = TightestFitSelector().select(slot, 6)
        assert table.table_id == 10

    def test_slot_without_tables_returns_none(self):
        assert TightestFitSelector().select(AvailableSlot(time="20:00"), 2) is None


class TestIsSlotInPast:
    NOW = datetime(2026, 3, 14, 18, 0)

    @pytest.mark.parametrize(
        "slot_time,expected",
        [
            ("17:00", True),
            ("18:00", True),
            ("18:29", True),
            ("18:30", False),
            ("18:31", False),
            ("21:00", False),
        ],
    )
    def test_today_uses_thirty_minute_lead_time(self, slot_time, expected):
        assert is_slot_in_past(slot_time, date(2026, 3, 14), now=self.NOW) is expected

    def test_future_date_is_never_past(self):
        assert is_slot_in_past("00:00", date(2026, 3, 15), now=self.NOW) is False

    def test_earlier_date_is_not_treated_as_today(self):
        assert is_slot_in_past("23:59", date(2026, 3, 13), now=self.NOW) is False

    def test_lead_time_crossing_midnight(self):
        now = datetime(2026, 3, 14, 23, 45)
        assert is_slot_in_past("23:59", date(2026, 3, 14), now=now) is True


class TestFormatting:
    def test_format_date_for_api(self):
        assert format_date_for_api(date(2026, 3, 4)) == "2026-03-04"

    def test_format_date_truncates_datetime(self):
        assert format_date_for_api(datetime(2026, 3, 4, 23, 59)) == "2026-03-04"

    def test_combine_date_time_is_local_naive(self):
        value = combine_date_time(date(2026, 3, 4), "19:30")
        assert value == "2026-03-04T19:30:00"
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:00", value)

    def test_slot_time_is_normalized(self):
        assert AvailableSlot(time="9:05:00").time == "09:05"

    @pytest.mark.parametrize("bad", ["25:00", "12:60", "noon", ""])
    def test_invalid_slot_time_rejected(self, bad):
        with pytest.raises(ValueError):
            AvailableSlot(time=bad)
