"""
Extraction of model objects from remote XML responses.

The remote schema is inconsistent: some fields appear at different depths
depending on trip type. Lookups therefore take an ordered list of paths and
return the first one present, most specific first. Values are passed through
verbatim; no status or time is ever derived from other fields.
"""

import xml.etree.ElementTree as ET
from typing import List, Optional

from paratransit_client.domain.booking import (
    BookingWindow,
    CancelResult,
    PickupWindow,
    TripRecord,
    TripSolution,
)
from paratransit_client.domain.errors import ServiceError
from paratransit_client.utils.date_helpers import normalize_remote_date, seconds_to_time
from paratransit_client.utils.logger import get_logger

logger = get_logger(__name__)

RESULT_OK = "RESULTOK"
UNKNOWN_ADDRESS = "Unknown address"

# Most specific location first
STATUS_CODE_PATHS = ("PickUpLeg/EventsInfo/SchedStatus", "SchedStatus")
STATUS_LABEL_PATHS = ("PickUpLeg/EventsInfo/SchedStatusF", "SchedStatusF")
PROVIDER_PATHS = (
    "PickUpLeg/EventsProviderInfo/ProviderName",
    "PickUpLeg/EventsProviderInfo/Description",
    "EventsProviderInfo/ProviderName",
    "ProviderName",
)


def parse_xml(text: str) -> ET.Element:
    """
    Parse a response body and strip namespaces from every tag.

    Raises:
        ServiceError: If the body is empty or not well-formed XML
    """
    if not text or not text.strip():
        raise ServiceError("Empty response from scheduling service")
    try:
        root = ET.fromstring(text.strip().encode("utf-8"))
    except ET.ParseError as e:
        raise ServiceError(f"Malformed XML from scheduling service: {e}") from e

    for element in root.iter():
        if isinstance(element.tag, str) and "}" in element.tag:
            element.tag = element.tag.split("}", 1)[1]
    return root


def first_text(element: Optional[ET.Element], *paths: str) -> Optional[str]:
    """
    Return the stripped text of the first path that has a non-empty value.

    Args:
        element: Element to search from (None returns None)
        paths: ElementTree paths in order of preference

    Example:
        >>> first_text(booking, "PickUpLeg/EventsInfo/SchedStatusF", "SchedStatusF")
        "Performed"
    """
    if element is None:
        return None
    for path in paths:
        node = element.find(path)
        if node is not None and node.text and node.text.strip():
            return node.text.strip()
    return None


def find_text(root: ET.Element, tag: str) -> Optional[str]:
    """Text of the first element named `tag` anywhere below `root`."""
    return first_text(root, f".//{tag}")


def _seconds(element: Optional[ET.Element], *paths: str) -> Optional[int]:
    value = first_text(element, *paths)
    if value is None:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


def _time_text(element: Optional[ET.Element], *paths: str) -> str:
    seconds = _seconds(element, *paths)
    if seconds is None or seconds < 0:
        return ""
    return seconds_to_time(seconds)


def parse_address(leg: Optional[ET.Element]) -> str:
    """
    Single-line address for a pickup or dropoff leg.

    Uses the structured MapAddress block when present, otherwise the leg's
    LegDescr* description fields.
    """
    if leg is None:
        return UNKNOWN_ADDRESS

    parts: List[str] = []
    source = leg.find("MapAddress")
    if source is not None:
        name = first_text(source, "AddrName")
        street_no = first_text(source, "StreetNo")
        on_street = first_text(source, "OnStreet")
        if name:
            parts.append(name)
        if street_no and on_street:
            parts.append(f"{street_no} {on_street}")
        elif on_street:
            parts.append(on_street)
        fields = ("City", "State", "ZipCode")
    else:
        street_no = first_text(leg, "LegDescrAddrNo")
        on_street = first_text(leg, "LegDescrAddrOn")
        if street_no and on_street:
            parts.append(f"{street_no} {on_street}")
        elif on_street:
            parts.append(on_street)
        source = leg
        fields = ("LegDescrCity", "LegDescrState", "LegDescrZipCode")

    for field_name in fields:
        value = first_text(source, field_name)
        if value:
            parts.append(value)

    return ", ".join(parts) or UNKNOWN_ADDRESS


def parse_trip(booking: ET.Element) -> TripRecord:
    """Convert one <PassBooking> element into a TripRecord."""
    pickup_leg = booking.find("PickUpLeg")
    dropoff_leg = booking.find("DropOffLeg")

    raw_date = first_text(booking, "RawDate", "DateF") or ""
    window = PickupWindow(
        start=_time_text(pickup_leg, "SchEarly", "PickupTimeFrom"),
        end=_time_text(pickup_leg, "SchLate", "PickupTimeTo"),
    )

    return TripRecord(
        booking_id=first_text(booking, "BookingId") or "",
        date=normalize_remote_date(raw_date),
        pickup_window=window,
        pickup_address=parse_address(pickup_leg),
        destination_address=parse_address(dropoff_leg),
        status_code=first_text(booking, *STATUS_CODE_PATHS) or "",
        status_label=first_text(booking, *STATUS_LABEL_PATHS) or "",
        provider=first_text(booking, *PROVIDER_PATHS),
        estimated_pickup_time=_time_text(pickup_leg, "EstTime") or None,
        estimated_dropoff_time=_time_text(dropoff_leg, "EstTime") or None,
    )


def parse_trips(root: ET.Element) -> List[TripRecord]:
    """
    Every trip in a PassGetClientTrips response.

    Bookings without an id are skipped and logged; they cannot be acted on.
    """
    trips = []
    for booking in root.iter("PassBooking"):
        trip = parse_trip(booking)
        if not trip.booking_id:
            logger.warning("Skipping trip without BookingId", operation="parse_trips")
            continue
        trips.append(trip)
    return trips


def parse_solutions(root: ET.Element) -> List[TripSolution]:
    """Schedulable solutions from a PassScheduleTrip response."""
    solutions = []
    for solution in root.iter("Solution"):
        solution_id = first_text(solution, "SolutionId")
        if not solution_id:
            continue
        solutions.append(
            TripSolution(
                solution_id=solution_id,
                pickup_window=PickupWindow(
                    start=_time_text(solution, "SchEarly"),
                    end=_time_text(solution, "SchLate"),
                ),
                dropoff_time=_time_text(solution, "EstDropoff") or None,
                fare=first_text(solution, "Fare"),
            )
        )
    return solutions


def parse_client_id(root: ET.Element) -> Optional[str]:
    """Client id from a PassQueryValidatedClient response, only if it is > 0."""
    value = find_text(root, "ClientId")
    if value is None or not value.isdigit() or int(value) <= 0:
        return None
    return value


def is_result_ok(body: str) -> bool:
    return RESULT_OK in (body or "")


def parse_cancel_result(body: str, root: ET.Element) -> CancelResult:
    if is_result_ok(body):
        return CancelResult(
            success=True,
            message="Trip cancelled successfully",
            ref_code=find_text(root, "CancelRefCode"),
        )
    return CancelResult(success=False, message=find_text(root, "Message") or "Cancellation failed")


def parse_booking_window(days_root: ET.Element, times_root: Optional[ET.Element]) -> BookingWindow:
    """Combine PassBookingDaysWindow and PassBookingTimesWindow responses."""
    dates = []
    for node in days_root.iter("Date"):
        canonical = normalize_remote_date((node.text or "").strip())
        if canonical:
            dates.append(canonical)

    earliest = latest = None
    if times_root is not None:
        earliest = _time_text(times_root, ".//EarliestTime") or None
        latest = _time_text(times_root, ".//LatestTime") or None

    return BookingWindow(available_dates=dates, earliest_time=earliest, latest_time=latest)
