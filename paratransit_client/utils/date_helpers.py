"""
Date and time normalisation helpers.

Canonical dates are "YYYY-MM-DD". The remote service exchanges compact
8-digit "YYYYMMDD" dates, verbose display dates ("Tue, Jan 13, 2026") and
times either as seconds since midnight or "H:MM AM" strings.
"""

import re
from datetime import date, datetime, time as dt_time, timedelta
from typing import Optional

from paratransit_client.domain.booking import CurrentDateInfo
from paratransit_client.utils.timezone import DEFAULT_TIMEZONE, TzLike, get_zone, now_in_zone

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
MONTH_NAMES = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)

CANONICAL_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
REMOTE_DATE_RE = re.compile(r"^\d{8}$")
NEXT_WEEKDAY_RE = re.compile(r"^next\s+(" + "|".join(WEEKDAY_NAMES) + r")$")

# Optional weekday, month name, day, optional comma, year
VERBOSE_DATE_RE = re.compile(
    r"^(?:(?P<weekday>[a-z]+)\.?,?\s+)?(?P<month>[a-z]+)\.?\s+(?P<day>\d{1,2}),?\s+(?P<year>\d{4})$"
)
CLOCK_RE = re.compile(r"^(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::\d{2})?\s*(?P<period>am|pm)?$", re.I)


def _month_number(name: str) -> Optional[int]:
    name = name.lower()
    for index, full in enumerate(MONTH_NAMES):
        if name == full or name == full[:3] or (len(name) >= 3 and full.startswith(name)):
            return index + 1
    return None


def _weekday_matches(name: str) -> bool:
    name = name.lower()
    return any(full == name or full.startswith(name) for full in WEEKDAY_NAMES if len(name) >= 3)


def parse_canonical_date(value: str) -> Optional[date]:
    """Parse "YYYY-MM-DD" into a date, or None if invalid (e.g. Feb 30)."""
    if not value or not CANONICAL_DATE_RE.match(value.strip()):
        return None
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_clock_time(value: str) -> Optional[dt_time]:
    """
    Parse a wall-clock time.

    Accepts 24-hour "14:30" and 12-hour "2:30 PM" forms. Returns None for
    anything else, including out-of-range hours or minutes.
    """
    if not value:
        return None
    match = CLOCK_RE.match(value.strip())
    if not match:
        return None

    hour = int(match.group("hour"))
    minute = int(match.group("minute"))
    period = (match.group("period") or "").upper()

    if period:
        if hour < 1 or hour > 12:
            return None
        if period == "PM" and hour != 12:
            hour += 12
        elif period == "AM" and hour == 12:
            hour = 0

    if hour > 23 or minute > 59:
        return None
    return dt_time(hour, minute)


def parse_flexible_date(value: str, timezone: TzLike = DEFAULT_TIMEZONE, now: Optional[datetime] = None) -> str:
    """
    Resolve a free-form date expression to a canonical date.

    Accepts canonical dates unchanged; "today", "tomorrow", "yesterday";
    weekday names and "next <weekday>", both resolving to the next occurrence
    strictly after today. Anything else is returned unchanged so the remote
    service can report its own validation error.

    Args:
        value: Date expression
        timezone: Zone that defines "today"
        now: Current moment (defaults to the real clock)
    """
    if CANONICAL_DATE_RE.match(value or ""):
        return value

    current = now.astimezone(get_zone(timezone)) if now is not None else now_in_zone(timezone)
    today = current.date()
    text = (value or "").strip().lower()

    if text == "today":
        return today.isoformat()
    if text == "tomorrow":
        return (today + timedelta(days=1)).isoformat()
    if text == "yesterday":
        return (today - timedelta(days=1)).isoformat()

    next_match = NEXT_WEEKDAY_RE.match(text)
    weekday = next_match.group(1) if next_match else text
    if weekday in WEEKDAY_NAMES:
        days_until = (WEEKDAY_NAMES.index(weekday) - today.weekday()) % 7
        if days_until == 0:
            days_until = 7
        return (today + timedelta(days=days_until)).isoformat()

    return value


def normalize_remote_date(value: str) -> str:
    """
    Convert a remote date string to a canonical date.

    Handles canonical and 8-digit compact dates, and verbose forms such as
    "Tue, Jan 13, 2026", "January 13 2026" or "Tuesday, January 13, 2026".
    Returns "" for anything unparseable; never raises.
    """
    if not value:
        return ""
    text = value.strip()

    if CANONICAL_DATE_RE.match(text):
        parsed = parse_canonical_date(text)
        return parsed.isoformat() if parsed else ""
    if REMOTE_DATE_RE.match(text):
        return from_remote_date(text)

    match = VERBOSE_DATE_RE.match(text.lower())
    if not match:
        return ""
    if match.group("weekday") and not _weekday_matches(match.group("weekday")):
        return ""

    month = _month_number(match.group("month"))
    if month is None:
        return ""
    try:
        return date(int(match.group("year")), month, int(match.group("day"))).isoformat()
    except ValueError:
        return ""


def current_date_info(timezone: TzLike = DEFAULT_TIMEZONE, now: Optional[datetime] = None) -> CurrentDateInfo:
    """Today's canonical date and weekday name as seen in `timezone`."""
    current = now.astimezone(get_zone(timezone)) if now is not None else now_in_zone(timezone)
    today = current.date()
    return CurrentDateInfo(date=today.isoformat(), weekday_name=WEEKDAY_NAMES[today.weekday()].capitalize())


def to_remote_date(value: str) -> str:
    """Canonical date to compact remote form, e.g. 2026-01-13 -> 20260113."""
    parsed = parse_canonical_date(value)
    if parsed is None:
        raise ValueError(f"Invalid canonical date: {value!r}")
    return parsed.strftime("%Y%m%d")


def from_remote_date(value: str) -> str:
    """Compact remote date to canonical form; empty string if the value is not a valid compact date."""
    if not value or not REMOTE_DATE_RE.match(value.strip()):
        return ""
    try:
        return datetime.strptime(value.strip(), "%Y%m%d").date().isoformat()
    except ValueError:
        return ""


def seconds_to_time(seconds) -> str:
    """
    Seconds since midnight to "H:MM AM/PM".

    Example:
        >>> seconds_to_time(52200)
        "2:30 PM"
    """
    try:
        total = int(seconds)
    except (TypeError, ValueError):
        return ""
    if total < 0:
        return ""

    hours = (total // 3600) % 24
    minutes = (total % 3600) // 60
    period = "PM" if hours >= 12 else "AM"
    display = hours - 12 if hours > 12 else (12 if hours == 0 else hours)
    return f"{display}:{minutes:02d} {period}"


def time_to_seconds(value: str) -> int:
    """
    "H:MM [AM|PM]" or "HH:MM" to seconds since midnight.

    Raises:
        ValueError: If the time cannot be parsed
    """
    parsed = parse_clock_time(value)
    if parsed is None:
        raise ValueError(f"Invalid time: {value!r}")
    return parsed.hour * 3600 + parsed.minute * 60
