"""
Booking and cancellation window rules.

Pure functions evaluated against "now" in the service's home zone. Pickup
dates and times are wall-clock values in that zone; elapsed time is always
measured between aware datetimes so daylight-saving shifts count in real
minutes.
"""

import math
from dataclasses import dataclass
from datetime import datetime, time as dt_time, timedelta
from typing import Any, Dict, Optional

from paratransit_client.domain.booking import ValidationResult
from paratransit_client.utils.date_helpers import normalize_remote_date, parse_canonical_date, parse_clock_time
from paratransit_client.utils.timezone import (
    DEFAULT_TIMEZONE,
    TzLike,
    combine_local,
    get_zone,
    minutes_between,
    now_in_zone,
)


@dataclass(frozen=True)
class BookingPolicy:
    """
    Temporal policy constants.

    Attributes:
        max_advance_days: Furthest a pickup may be booked ahead (days)
        same_day_min_hours: Minimum notice for same-day bookings (hours)
        cancellation_min_hours: Minimum notice to cancel a trip (hours)
        cutoff_hour: Hour of the day after which next-day bookings are not guaranteed
    """

    max_advance_days: int = 3
    same_day_min_hours: int = 2
    cancellation_min_hours: int = 2
    cutoff_hour: int = 12

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookingPolicy":
        known = {k: int(v) for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


DEFAULT_POLICY = BookingPolicy()


def _resolve_now(now: Optional[datetime], zone) -> datetime:
    if now is None:
        return now_in_zone(zone)
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now.astimezone(zone)


def validate_booking_window(
    pickup_date: str,
    pickup_time: str,
    now: Optional[datetime] = None,
    policy: BookingPolicy = DEFAULT_POLICY,
    timezone: TzLike = DEFAULT_TIMEZONE,
) -> ValidationResult:
    """
    Check a requested pickup against the booking window rules.

    Rules run in order and the first failure wins: parseable input, pickup in
    the future, not beyond the advance limit, same-day notice, next-day
    cutoff.

    Args:
        pickup_date: Canonical "YYYY-MM-DD" (compact or verbose remote forms also accepted)
        pickup_time: "HH:MM" or "H:MM AM/PM"
        now: Current moment (aware); defaults to the real clock
        policy: Policy constants
        timezone: Service home zone

    Returns:
        ValidationResult; minutes_until_event is set once the pickup parsed
    """
    zone = get_zone(timezone)
    day = parse_canonical_date(normalize_remote_date(pickup_date))
    clock = parse_clock_time(pickup_time)
    if day is None or clock is None:
        return ValidationResult.reject(
            "Could not parse the date or time. Please use YYYY-MM-DD for the date "
            "and HH:MM for the time."
        )

    current = _resolve_now(now, zone)
    pickup = combine_local(day, clock, zone)

    if pickup <= current:
        return ValidationResult.reject("The pickup time has already passed. Please choose a future time.")

    minutes = minutes_between(current, pickup)
    whole_minutes = math.floor(minutes)

    if minutes > policy.max_advance_days * 24 * 60:
        days_away = math.ceil(minutes / (24 * 60))
        return ValidationResult.reject(
            f"Trips can only be booked up to {policy.max_advance_days} days in advance. "
            f"Your requested date is {days_away} days away.",
            whole_minutes,
        )

    notice_minutes = policy.same_day_min_hours * 60
    today = current.date()

    if pickup.date() == today:
        if minutes < notice_minutes:
            return ValidationResult.reject(
                f"Same-day bookings need at least {policy.same_day_min_hours} hours notice. "
                f"Your pickup is only {whole_minutes} minutes away.",
                whole_minutes,
            )
        return ValidationResult.ok(
            "Same-day bookings are not guaranteed. The service will try to fit you in, "
            "but it depends on availability.",
            whole_minutes,
        )

    cutoff = combine_local(today, dt_time(policy.cutoff_hour), zone)
    if pickup.date() == today + timedelta(days=1) and current >= cutoff:
        if minutes < notice_minutes:
            return ValidationResult.reject(
                f"The {_format_hour(policy.cutoff_hour)} cutoff has passed for booking "
                f"{pickup.strftime('%A')}. Same-day rules apply, and you need at least "
                f"{policy.same_day_min_hours} hours notice.",
                whole_minutes,
            )
        return ValidationResult.ok(
            f"The {_format_hour(policy.cutoff_hour)} cutoff has passed. This booking is "
            "treated as same-day and is not guaranteed.",
            whole_minutes,
        )

    return ValidationResult.ok(minutes=whole_minutes)


def validate_cancellation(
    trip_date: str,
    pickup_time: str,
    now: Optional[datetime] = None,
    policy: BookingPolicy = DEFAULT_POLICY,
    timezone: TzLike = DEFAULT_TIMEZONE,
) -> ValidationResult:
    """
    Check that a trip can still be cancelled.

    Unparseable input is allowed through with a warning; the remote service
    makes the final decision.

    Args:
        trip_date: Canonical, compact or verbose remote date
        pickup_time: Start of the pickup window ("7:50 AM" or "07:50")
        now: Current moment (aware); defaults to the real clock
    """
    zone = get_zone(timezone)
    day = parse_canonical_date(normalize_remote_date(trip_date))
    clock = parse_clock_time(pickup_time)
    if day is None or clock is None:
        return ValidationResult.ok(
            f"Could not verify the {policy.cancellation_min_hours}-hour notice requirement. "
            "Please make sure you have enough notice."
        )

    current = _resolve_now(now, zone)
    pickup = combine_local(day, clock, zone)
    minutes = minutes_between(current, pickup)
    whole_minutes = math.floor(minutes)

    if pickup <= current:
        return ValidationResult.reject(
            "This trip has already started or passed. It cannot be cancelled.", whole_minutes
        )

    if minutes <= policy.cancellation_min_hours * 60:
        return ValidationResult.reject(
            f"Cancellations require {policy.cancellation_min_hours} hours notice. "
            f"Your trip starts in {whole_minutes} minutes. Please call the service "
            "directly for late cancellations.",
            whole_minutes,
        )

    if minutes < (policy.cancellation_min_hours + 1) * 60:
        return ValidationResult.ok(
            f"Your trip is in {whole_minutes // 60} hours. Cancellation is allowed, "
            "but please cancel early when possible.",
            whole_minutes,
        )

    return ValidationResult.ok(minutes=whole_minutes)


def _format_hour(hour: int) -> str:
    if hour == 12:
        return "noon"
    if hour == 0:
        return "midnight"
    suffix = "AM" if hour < 12 else "PM"
    return f"{hour % 12} {suffix}"
