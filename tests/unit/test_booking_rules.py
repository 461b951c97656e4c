"""
Unit tests for booking and cancellation window rules.

All "now" values are pinned aware datetimes in America/Edmonton.
"""

from datetime import datetime, timedelta

import pytest
import pytz

from paratransit_client.validation.booking_rules import (
    BookingPolicy,
    validate_booking_window,
    validate_cancellation,
)

EDMONTON = pytz.timezone("America/Edmonton")


def local(year, month, day, hour=0, minute=0, second=0):
    return EDMONTON.localize(datetime(year, month, day, hour, minute, second))


class TestAdvanceLimit:
    """Pickups more than N days ahead are rejected."""

    def test_exactly_n_days_accepted(self):
        result = validate_booking_window("2026-01-15", "10:00", now=local(2026, 1, 12, 10, 0))

        assert result.valid is True
        assert result.minutes_until_event == 3 * 24 * 60

    def test_one_second_inside_accepted(self):
        result = validate_booking_window("2026-01-15", "10:00", now=local(2026, 1, 12, 10, 0, 1))

        assert result.valid is True

    def test_one_second_beyond_rejected(self):
        result = validate_booking_window("2026-01-15", "10:00", now=local(2026, 1, 12, 9, 59, 59))

        assert result.valid is False
        assert "up to 3 days in advance" in result.error

    def test_far_future_reports_days(self):
        result = validate_booking_window("2026-01-22", "10:00", now=local(2026, 1, 12, 10, 0))

        assert result.valid is False
        assert "10 days away" in result.error

    def test_policy_override(self):
        result = validate_booking_window(
            "2026-01-18",
            "10:00",
            now=local(2026, 1, 12, 10, 0),
            policy=BookingPolicy(max_advance_days=7),
        )

        assert result.valid is True


class TestSameDay:
    """Same-day pickups need H hours notice."""

    def test_under_notice_rejected(self):
        result = validate_booking_window("2026-01-12", "11:59", now=local(2026, 1, 12, 10, 0))

        assert result.valid is False
        assert "at least 2 hours notice" in result.error
        assert "119 minutes" in result.error
        assert result.minutes_until_event == 119

    def test_exact_notice_accepted_with_warning(self):
        result = validate_booking_window("2026-01-12", "12:00", now=local(2026, 1, 12, 10, 0))

        assert result.valid is True
        assert "not guaranteed" in result.warning

    def test_dst_counts_real_minutes(self):
        """00:45 MST to 03:30 MDT on the spring-forward day is 105 minutes."""
        result = validate_booking_window("2026-03-08", "03:30", now=local(2026, 3, 8, 0, 45))

        assert result.valid is False
        assert result.minutes_until_event == 105

    def test_now_in_utc_is_converted(self):
        now = datetime(2026, 1, 12, 17, 0, tzinfo=pytz.utc)  # 10:00 in Edmonton

        result = validate_booking_window("2026-01-12", "11:00", now=now)

        assert result.valid is False
        assert result.minutes_until_event == 60


class TestNextDayCutoff:
    """After the cutoff hour, next-day bookings are treated as same-day."""

    def test_before_cutoff_no_warning(self):
        result = validate_booking_window("2026-01-13", "08:00", now=local(2026, 1, 12, 11, 59, 59))

        assert result.valid is True
        assert result.warning is None

    def test_exact_cutoff_counts_as_passed(self):
        result = validate_booking_window("2026-01-13", "08:00", now=local(2026, 1, 12, 12, 0))

        assert result.valid is True
        assert "noon cutoff has passed" in result.warning

    def test_after_cutoff_under_notice_rejected(self):
        result = validate_booking_window("2026-01-13", "00:30", now=local(2026, 1, 12, 23, 0))

        assert result.valid is False
        assert "noon cutoff has passed for booking Tuesday" in result.error


class TestInvalidInput:
    """Unparseable and past pickups."""

    @pytest.mark.parametrize("pickup_date,pickup_time", [("next week", "10:00"), ("2026-01-13", "25:00"), ("", "")])
    def test_unparseable_rejected(self, pickup_date, pickup_time):
        result = validate_booking_window(pickup_date, pickup_time, now=local(2026, 1, 12, 10, 0))

        assert result.valid is False
        assert "Could not parse" in result.error

    def test_past_rejected(self):
        result = validate_booking_window("2026-01-12", "09:00", now=local(2026, 1, 12, 10, 0))

        assert result.valid is False
        assert "already passed" in result.error

    def test_verbose_date_accepted(self):
        result = validate_booking_window("Tue, Jan 13, 2026", "2:30 PM", now=local(2026, 1, 12, 10, 0))

        assert result.valid is True

    def test_naive_now_rejected(self):
        with pytest.raises(ValueError):
            validate_booking_window("2026-01-13", "10:00", now=datetime(2026, 1, 12, 10, 0))


class TestCancellation:
    """Cancellation notice rule."""

    def test_sixty_one_minutes_rejected(self):
        now = local(2026, 1, 13, 9, 0)
        pickup = now + timedelta(minutes=61)

        result = validate_cancellation("2026-01-13", pickup.strftime("%H:%M"), now=now)

        assert result.valid is False
        assert result.minutes_until_event == 61
        assert "61 minutes" in result.error

    def test_exact_notice_rejected(self):
        result = validate_cancellation("2026-01-13", "11:00", now=local(2026, 1, 13, 9, 0))

        assert result.valid is False

    def test_just_over_notice_accepted_with_warning(self):
        result = validate_cancellation("2026-01-13", "11:05 AM", now=local(2026, 1, 13, 9, 0))

        assert result.valid is True
        assert "cancel early" in result.warning
        assert result.minutes_until_event == 125

    def test_plenty_of_notice(self):
        result = validate_cancellation("20260114", "7:50 AM", now=local(2026, 1, 13, 9, 0))

        assert result.valid is True
        assert result.warning is None

    def test_started_trip_rejected(self):
        result = validate_cancellation("2026-01-13", "8:00 AM", now=local(2026, 1, 13, 9, 0))

        assert result.valid is False
        assert "already started" in result.error

    def test_unparseable_allowed_with_warning(self):
        result = validate_cancellation("", "", now=local(2026, 1, 13, 9, 0))

        assert result.valid is True
        assert "Could not verify the 2-hour notice" in result.warning
