"""Domain models - sessions, bookings, trips and errors."""

from .booking import (
    BookingDraft,
    BookingResult,
    BookingWindow,
    CancelResult,
    CurrentDateInfo,
    PassengerOptions,
    PickupWindow,
    TripRecord,
    TripSolution,
    ValidationResult,
)
from .errors import ErrorCategory, ErrorDetail, ParatransitError
from .session import EncryptedEnvelope, Session

__all__ = [
    "BookingDraft",
    "BookingResult",
    "BookingWindow",
    "CancelResult",
    "CurrentDateInfo",
    "PassengerOptions",
    "PickupWindow",
    "TripRecord",
    "TripSolution",
    "ValidationResult",
    "ErrorCategory",
    "ErrorDetail",
    "ParatransitError",
    "EncryptedEnvelope",
    "Session",
]
