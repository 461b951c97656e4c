"""
Booking domain models.

Caller-supplied drafts, results returned by the orchestrator and validator,
and the normalized trip records extracted from remote responses. Trip fields
are always passed through as the remote service reported them; nothing here
computes a status from dates or times.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from .errors import ErrorDetail


@dataclass
class PassengerOptions:
    """
    Optional passenger details sent with a booking.

    Attributes:
        companion: Escort or companion travelling with the client
        additional_passenger_type: Remote passenger type code ("ESC", "PCA", ...)
        additional_passenger_count: Number of additional passengers
        pickup_phone / dropoff_phone: Contact numbers at each end
        pickup_comments / dropoff_comments: Free-text driver notes
    """

    companion: bool = False
    additional_passenger_type: Optional[str] = None
    additional_passenger_count: int = 0
    pickup_phone: Optional[str] = None
    dropoff_phone: Optional[str] = None
    pickup_comments: Optional[str] = None
    dropoff_comments: Optional[str] = None


@dataclass
class BookingDraft:
    """
    Booking request as supplied by the caller.

    Unvalidated until it has passed through the booking window rules.

    Attributes:
        pickup_date: Canonical date "YYYY-MM-DD"
        pickup_time: Wall-clock time "HH:MM" (24h) or "H:MM AM"
        pickup_address: Street address of the pickup
        destination_address: Street address of the destination
        mobility_device: Remote mobility aid code ("WC", "SC", ...) or None
        passenger_options: Additional passenger details
    """

    pickup_date: str
    pickup_time: str
    pickup_address: str
    destination_address: str
    mobility_device: Optional[str] = None
    passenger_options: PassengerOptions = field(default_factory=PassengerOptions)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookingDraft":
        options = data.get("passenger_options") or {}
        return cls(
            pickup_date=data["pickup_date"],
            pickup_time=data["pickup_time"],
            pickup_address=data["pickup_address"],
            destination_address=data["destination_address"],
            mobility_device=data.get("mobility_device"),
            passenger_options=PassengerOptions(**options),
        )


@dataclass
class PickupWindow:
    """Pickup window as display strings, e.g. start="7:50 AM", end="8:20 AM"."""

    start: str
    end: str

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start, "end": self.end}


@dataclass
class ValidationResult:
    """Outcome of a booking window or cancellation check."""

    valid: bool
    error: Optional[str] = None
    warning: Optional[str] = None
    minutes_until_event: Optional[int] = None

    @classmethod
    def ok(cls, warning: Optional[str] = None, minutes: Optional[int] = None) -> "ValidationResult":
        return cls(valid=True, warning=warning, minutes_until_event=minutes)

    @classmethod
    def reject(cls, error: str, minutes: Optional[int] = None) -> "ValidationResult":
        return cls(valid=False, error=error, minutes_until_event=minutes)


@dataclass
class BookingResult:
    """
    Final outcome of a booking orchestration.

    A successful result always carries the confirmed booking id; a failed
    result carries an ErrorDetail and never a booking id.
    """

    success: bool
    booking_id: Optional[str] = None
    pickup_window: Optional[PickupWindow] = None
    error: Optional[ErrorDetail] = None
    warning: Optional[str] = None

    def __post_init__(self):
        if self.success and not self.booking_id:
            raise ValueError("A successful BookingResult requires a booking_id")
        if not self.success and self.booking_id:
            raise ValueError("A failed BookingResult must not carry a booking_id")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.booking_id:
            data["booking_id"] = self.booking_id
        if self.pickup_window:
            data["pickup_window"] = self.pickup_window.to_dict()
        if self.error:
            data["error"] = self.error.to_dict()
        if self.warning:
            data["warning"] = self.warning
        return data


@dataclass
class TripSolution:
    """Schedulable time-slot solution offered for a draft."""

    solution_id: str
    pickup_window: PickupWindow
    dropoff_time: Optional[str] = None
    fare: Optional[str] = None


@dataclass
class TripRecord:
    """
    Normalized trip as reported by the remote service.

    Attributes:
        booking_id: Remote booking id
        date: Canonical date "YYYY-MM-DD" (empty if the remote date did not parse)
        pickup_window: Pickup window display strings
        pickup_address / destination_address: Single-line addresses
        status_code: Raw remote status code ("S", "U", "CA", ...)
        status_label: Remote human-readable status, verbatim
        provider: Service provider name, if assigned
        estimated_pickup_time / estimated_dropoff_time: Remote estimates
    """

    booking_id: str
    date: str
    pickup_window: PickupWindow
    pickup_address: str
    destination_address: str
    status_code: str
    status_label: str
    provider: Optional[str] = None
    estimated_pickup_time: Optional[str] = None
    estimated_dropoff_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CancelResult:
    success: bool
    message: str
    ref_code: Optional[str] = None


@dataclass
class BookingWindow:
    """Dates and time range the remote service currently accepts bookings for."""

    available_dates: List[str] = field(default_factory=list)
    earliest_time: Optional[str] = None
    latest_time: Optional[str] = None


@dataclass
class CurrentDateInfo:
    date: str
    weekday_name: str
