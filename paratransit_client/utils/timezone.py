"""
Timezone utilities for the paratransit client.

All remote-service times are wall-clock times in one named zone (the
service's home zone). These helpers produce timezone-aware datetimes in that
zone so that comparisons stay correct when the process clock runs in UTC and
across daylight-saving transitions.
"""

from datetime import datetime, date, time as dt_time
from typing import Optional, Union

import pytz

DEFAULT_TIMEZONE = "America/Edmonton"

TzLike = Union[str, pytz.tzinfo.BaseTzInfo]


def get_zone(zone: Optional[TzLike] = None) -> pytz.tzinfo.BaseTzInfo:
    """Resolve a zone name (or pass through a pytz zone)."""
    if zone is None:
        return pytz.timezone(DEFAULT_TIMEZONE)
    if isinstance(zone, str):
        return pytz.timezone(zone)
    return zone


def now_in_zone(zone: Optional[TzLike] = None) -> datetime:
    """
    Return the current time as an aware datetime in `zone`.

    Args:
        zone: IANA zone name or pytz zone (default: service home zone)
    """
    return datetime.now(pytz.utc).astimezone(get_zone(zone))


def localize(value: datetime, zone: Optional[TzLike] = None) -> datetime:
    """
    Attach `zone` to a naive wall-clock datetime, or convert an aware one.

    Wall-clock times inside a spring-forward gap are shifted forward by the
    zone's normalisation; ambiguous fall-back times resolve to standard time.
    """
    tz = get_zone(zone)
    if value.tzinfo is None:
        return tz.normalize(tz.localize(value, is_dst=False))
    return value.astimezone(tz)


def combine_local(day: date, clock: dt_time, zone: Optional[TzLike] = None) -> datetime:
    """Build an aware datetime from a calendar date and wall-clock time in `zone`."""
    return localize(datetime.combine(day, clock), zone)


def minutes_between(start: datetime, end: datetime) -> float:
    """
    Real elapsed minutes from `start` to `end`.

    Both values are converted to UTC first so that a DST shift between them is
    counted in actual minutes, not wall-clock difference.
    """
    start_utc = start.astimezone(pytz.utc)
    end_utc = end.astimezone(pytz.utc)
    return (end_utc - start_utc).total_seconds() / 60.0
