"""
Unit tests for timezone utility helpers.
"""

from datetime import date, datetime, time, timedelta

import pytz

from paratransit_client.utils.timezone import (
    DEFAULT_TIMEZONE,
    combine_local,
    get_zone,
    localize,
    minutes_between,
    now_in_zone,
)

EDMONTON = pytz.timezone("America/Edmonton")


def test_get_zone_defaults_to_service_zone():
    assert get_zone().zone == DEFAULT_TIMEZONE
    assert get_zone("America/Toronto").zone == "America/Toronto"
    assert get_zone(EDMONTON) is EDMONTON


def test_now_in_zone_is_aware():
    current = now_in_zone()
    assert current.tzinfo is not None
    assert current.tzinfo.zone == DEFAULT_TIMEZONE


def test_localize_naive_wall_clock():
    """Naive values are interpreted as wall-clock time in the zone."""
    value = localize(datetime(2026, 1, 13, 9, 0))
    assert value.utcoffset() == timedelta(hours=-7)


def test_localize_converts_aware_values():
    value = localize(datetime(2026, 7, 1, 15, 0, tzinfo=pytz.utc))
    assert value.hour == 9
    assert value.utcoffset() == timedelta(hours=-6)


def test_combine_local_after_spring_forward():
    """03:30 on the spring-forward day is already daylight time."""
    value = combine_local(date(2026, 3, 8), time(3, 30))
    assert value.utcoffset() == timedelta(hours=-6)


def test_minutes_between_counts_real_minutes_across_dst():
    """00:45 MST to 03:30 MDT is 105 real minutes, not 165."""
    start = combine_local(date(2026, 3, 8), time(0, 45))
    end = combine_local(date(2026, 3, 8), time(3, 30))

    assert minutes_between(start, end) == 105


def test_minutes_between_mixed_zones():
    start = datetime(2026, 1, 13, 16, 0, tzinfo=pytz.utc)
    end = combine_local(date(2026, 1, 13), time(10, 0))

    assert minutes_between(start, end) == 60
