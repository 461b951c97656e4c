"""
Unit tests for date normalisation helpers (paratransit_client/utils/date_helpers.py)
"""

from datetime import datetime, time

import pytest
import pytz

from paratransit_client.utils.date_helpers import (
    current_date_info,
    from_remote_date,
    normalize_remote_date,
    parse_canonical_date,
    parse_clock_time,
    parse_flexible_date,
    seconds_to_time,
    time_to_seconds,
    to_remote_date,
)

EDMONTON = pytz.timezone("America/Edmonton")

# Monday 2026-01-12, 10:00 local
MONDAY_MORNING = EDMONTON.localize(datetime(2026, 1, 12, 10, 0))


class TestParseFlexibleDate:
    """Tests for parse_flexible_date()."""

    def test_canonical_date_unchanged(self):
        assert parse_flexible_date("2026-02-01", now=MONDAY_MORNING) == "2026-02-01"

    def test_relative_days(self):
        assert parse_flexible_date("today", now=MONDAY_MORNING) == "2026-01-12"
        assert parse_flexible_date("tomorrow", now=MONDAY_MORNING) == "2026-01-13"
        assert parse_flexible_date("Yesterday", now=MONDAY_MORNING) == "2026-01-11"

    def test_weekday_resolves_to_next_occurrence(self):
        assert parse_flexible_date("thursday", now=MONDAY_MORNING) == "2026-01-15"
        assert parse_flexible_date("next friday", now=MONDAY_MORNING) == "2026-01-16"

    def test_same_weekday_means_next_week(self):
        """On a Thursday, "thursday" is the following Thursday."""
        thursday = EDMONTON.localize(datetime(2026, 1, 15, 9, 0))

        assert parse_flexible_date("thursday", now=thursday) == "2026-01-22"

    def test_tomorrow_uses_service_zone(self):
        """23:30 in Edmonton is already the next day in UTC; "today" follows the zone."""
        late_evening_utc = datetime(2026, 1, 13, 6, 30, tzinfo=pytz.utc)

        assert parse_flexible_date("today", now=late_evening_utc) == "2026-01-12"
        assert parse_flexible_date("tomorrow", now=late_evening_utc) == "2026-01-13"

    def test_unrecognised_returned_unchanged(self):
        assert parse_flexible_date("the day after payday", now=MONDAY_MORNING) == "the day after payday"


class TestNormalizeRemoteDate:
    """Tests for normalize_remote_date()."""

    @pytest.mark.parametrize(
        "value",
        [
            "Tue, Jan 13, 2026",
            "January 13, 2026",
            "Jan 13 2026",
            "Tuesday, January 13, 2026",
            "20260113",
            "2026-01-13",
        ],
    )
    def test_supported_forms(self, value):
        assert normalize_remote_date(value) == "2026-01-13"

    @pytest.mark.parametrize("value", ["", "garbage", "Foo 13, 2026", "2026-02-30", "20261332", "Xyz, Jan 13, 2026"])
    def test_unparseable_returns_empty(self, value):
        assert normalize_remote_date(value) == ""

    def test_none_returns_empty(self):
        assert normalize_remote_date(None) == ""


class TestClockAndDateParsing:
    """Tests for canonical date and clock parsing."""

    def test_parse_canonical_date(self):
        assert parse_canonical_date("2026-01-13").isoformat() == "2026-01-13"
        assert parse_canonical_date("2026-1-13") is None
        assert parse_canonical_date("2026-02-29") is None

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("14:30", time(14, 30)),
            ("07:05", time(7, 5)),
            ("2:30 PM", time(14, 30)),
            ("12:00 AM", time(0, 0)),
            ("12:15 pm", time(12, 15)),
            ("09:00:00", time(9, 0)),
        ],
    )
    def test_parse_clock_time(self, value, expected):
        assert parse_clock_time(value) == expected

    @pytest.mark.parametrize("value", ["", "25:00", "13:00 PM", "9", "9:60", "noon"])
    def test_parse_clock_time_rejects(self, value):
        assert parse_clock_time(value) is None


class TestRemoteFormats:
    """Tests for compact dates and seconds-since-midnight times."""

    def test_to_and_from_remote_date(self):
        assert to_remote_date("2026-01-13") == "20260113"
        assert from_remote_date("20260113") == "2026-01-13"
        assert from_remote_date("2026011") == ""

    def test_to_remote_date_rejects_invalid(self):
        with pytest.raises(ValueError):
            to_remote_date("tomorrow")

    @pytest.mark.parametrize(
        "seconds,expected",
        [(0, "12:00 AM"), (28200, "7:50 AM"), (43200, "12:00 PM"), (52200, "2:30 PM"), ("30000", "8:20 AM")],
    )
    def test_seconds_to_time(self, seconds, expected):
        assert seconds_to_time(seconds) == expected

    def test_seconds_to_time_invalid(self):
        assert seconds_to_time(-1) == ""
        assert seconds_to_time("abc") == ""
        assert seconds_to_time(None) == ""

    def test_time_to_seconds(self):
        assert time_to_seconds("07:50") == 28200
        assert time_to_seconds("2:30 PM") == 52200
        with pytest.raises(ValueError):
            time_to_seconds("later")


def test_current_date_info():
    info = current_date_info(now=MONDAY_MORNING)

    assert info.date == "2026-01-12"
    assert info.weekday_name == "Monday"
