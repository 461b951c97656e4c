"""
Trip retrieval, cancellation and booking availability.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional

from paratransit_client.api import xml_parser
from paratransit_client.api.soap_client import SoapTransport
from paratransit_client.domain.booking import BookingWindow, CancelResult, TripRecord
from paratransit_client.domain.errors import InvalidRequestError
from paratransit_client.domain.session import Session
from paratransit_client.utils.date_helpers import parse_canonical_date, parse_flexible_date
from paratransit_client.utils.logger import get_logger, log_operation, mask_identifier
from paratransit_client.utils.timezone import DEFAULT_TIMEZONE, TzLike, get_zone, now_in_zone

logger = get_logger(__name__)

DEFAULT_LOOKAHEAD_DAYS = 60
SCHEDULE_TYPE_BOOKINGS = 1

UNRECOGNISED_DATE_MESSAGE = (
    "The date '{value}' was not understood. Use YYYY-MM-DD, \"today\", \"tomorrow\" or a weekday name."
)


def resolve_date(value: str, timezone: TzLike, now: Optional[datetime] = None) -> date:
    """
    Resolve a caller-supplied date expression to a calendar date.

    Raises:
        InvalidRequestError: The expression is neither canonical nor a known relative form
    """
    resolved = parse_canonical_date(parse_flexible_date(value, timezone=timezone, now=now))
    if resolved is None:
        raise InvalidRequestError(UNRECOGNISED_DATE_MESSAGE.format(value=value))
    return resolved


class TripService:
    """Read and cancel trips for an authenticated client."""

    def __init__(self, transport: SoapTransport, timezone: TzLike = DEFAULT_TIMEZONE):
        self.transport = transport
        self.timezone = timezone

    @log_operation("get_trips")
    def get_trips(
        self,
        session: Session,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[TripRecord]:
        """
        List the client's trips in a date range.

        Args:
            session: Authenticated session
            from_date: Start date, canonical or relative (default: today in the service zone)
            to_date: End date, canonical or relative (default: 60 days after from_date)
            now: Current moment, for the defaults and relative dates

        Raises:
            InvalidRequestError: A date was not understood
            SessionExpiredError: Session no longer accepted
            ServiceError: Unparseable response
        """
        current = now.astimezone(get_zone(self.timezone)) if now else now_in_zone(self.timezone)
        start = resolve_date(from_date, self.timezone, now=current) if from_date else current.date()
        if to_date:
            end = resolve_date(to_date, self.timezone, now=current)
        else:
            end = start + timedelta(days=DEFAULT_LOOKAHEAD_DAYS)

        body = self.transport.call(
            "PassGetClientTrips",
            {
                "ClientId": session.client_id,
                "FromDate": start.strftime("%Y%m%d"),
                "ToDate": end.strftime("%Y%m%d"),
                "SchTypeId": SCHEDULE_TYPE_BOOKINGS,
            },
            cookie=session.session_token,
        )
        trips = xml_parser.parse_trips(xml_parser.parse_xml(body))

        logger.info(
            "Trips retrieved",
            operation="get_trips",
            context={"client_masked": mask_identifier(session.client_id), "count": len(trips)},
        )
        return trips

    def find_trip(self, session: Session, booking_id: str, now: Optional[datetime] = None) -> Optional[TripRecord]:
        """Look up one upcoming trip by booking id; None when not listed."""
        for trip in self.get_trips(session, now=now):
            if trip.booking_id == booking_id:
                return trip
        return None

    @log_operation("cancel_trip")
    def cancel_trip(self, session: Session, booking_id: str, reason: str = "") -> CancelResult:
        """
        Cancel a trip (or release an unconfirmed draft).

        A refusal by the service is returned as an unsuccessful CancelResult
        carrying the service's message.
        """
        body = self.transport.call(
            "PassCancelTrip",
            {
                "ClientId": session.client_id,
                "BookingId": booking_id,
                "CancellationReason": reason,
            },
            cookie=session.session_token,
        )
        result = xml_parser.parse_cancel_result(body, xml_parser.parse_xml(body))

        if result.success:
            logger.info("Trip cancelled", operation="cancel_trip", context={"booking_id": booking_id})
        else:
            logger.warning(
                "Cancellation refused",
                operation="cancel_trip",
                context={"booking_id": booking_id},
                error=result.message,
            )
        return result

    @log_operation("get_booking_window")
    def get_booking_window(
        self,
        session: Session,
        pickup_date: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingWindow:
        """
        Dates currently open for booking, and the bookable time range.

        The time range is requested for `pickup_date` (canonical or relative),
        or for the first open date when none is given.

        Raises:
            InvalidRequestError: pickup_date was not understood
        """
        target = resolve_date(pickup_date, self.timezone, now=now) if pickup_date else None

        days_body = self.transport.call(
            "PassBookingDaysWindow",
            {"ClientId": session.client_id},
            cookie=session.session_token,
        )
        days_root = xml_parser.parse_xml(days_body)
        window = xml_parser.parse_booking_window(days_root, None)

        if target is None and window.available_dates:
            target = parse_canonical_date(window.available_dates[0])
        if target is None:
            return window

        times_body = self.transport.call(
            "PassBookingTimesWindow",
            {"ClientId": session.client_id, "Date": target.strftime("%Y%m%d")},
            cookie=session.session_token,
        )
        return xml_parser.parse_booking_window(days_root, xml_parser.parse_xml(times_body))
