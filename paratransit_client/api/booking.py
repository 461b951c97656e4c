"""
Individual steps of the remote booking protocol.

1. PassCreateTrip  - submit the draft, receive a provisional BookingId
2. PassScheduleTrip - request schedulable solutions for that draft
3. PassSaveSchedule - confirm one solution, finalising the booking

Sequencing and compensation live in booking.orchestrator; this module only
speaks the protocol.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from paratransit_client.api import xml_parser
from paratransit_client.api.soap_client import SoapTransport
from paratransit_client.domain.booking import BookingDraft, CancelResult, PickupWindow, TripSolution
from paratransit_client.domain.errors import BookingConflictError
from paratransit_client.domain.session import Session
from paratransit_client.utils.date_helpers import seconds_to_time, time_to_seconds, to_remote_date
from paratransit_client.utils.logger import get_logger

logger = get_logger(__name__)

ADDRESS_MODE_FREE_TEXT = "A"
RELEASE_REASON = "Unconfirmed booking released"


@dataclass
class Confirmation:
    booking_id: Optional[str]
    pickup_window: Optional[PickupWindow] = None


def _leg(address: str, phone: Optional[str], comments: Optional[str], req_time: Optional[int] = None) -> Dict[str, Any]:
    leg: Dict[str, Any] = {}
    if req_time is not None:
        leg["ReqTime"] = req_time
    leg["RequestAddress"] = {"AddressMode": ADDRESS_MODE_FREE_TEXT, "Address": address}
    leg["Phone"] = phone
    leg["Comments"] = comments
    return leg


def build_create_params(client_id: str, draft: BookingDraft) -> Dict[str, Any]:
    """PassCreateTrip parameters for a draft."""
    options = draft.passenger_options
    params: Dict[str, Any] = {
        "ClientId": client_id,
        "Date": to_remote_date(draft.pickup_date),
        "PickUpLeg": _leg(
            draft.pickup_address,
            options.pickup_phone,
            options.pickup_comments,
            req_time=time_to_seconds(draft.pickup_time),
        ),
        "DropOffLeg": _leg(draft.destination_address, options.dropoff_phone, options.dropoff_comments),
        "MobilityAids": draft.mobility_device or "",
        "Companion": options.companion,
    }
    if options.additional_passenger_type and options.additional_passenger_count > 0:
        params["AdditionalPassengers"] = {
            "PassengerType": options.additional_passenger_type,
            "Count": options.additional_passenger_count,
        }
    return params


class BookingService:
    """Booking protocol steps for an authenticated client."""

    def __init__(self, transport: SoapTransport):
        self.transport = transport

    def create_draft(self, session: Session, draft: BookingDraft) -> str:
        """
        Step 1: submit the draft.

        Returns:
            Provisional BookingId (not yet a confirmed booking)

        Raises:
            BookingConflictError: The service refused the draft
        """
        body = self.transport.call(
            "PassCreateTrip",
            build_create_params(session.client_id, draft),
            cookie=session.session_token,
        )
        root = xml_parser.parse_xml(body)
        draft_id = xml_parser.find_text(root, "BookingId")
        if not draft_id or draft_id == "0":
            message = xml_parser.find_text(root, "Message") or "The trip request was not accepted."
            raise BookingConflictError(message)

        logger.info("Draft created", operation="create_draft", context={"draft_id": draft_id})
        return draft_id

    def schedule(self, session: Session, draft_id: str) -> List[TripSolution]:
        """Step 2: schedulable solutions for the draft (may be empty)."""
        body = self.transport.call(
            "PassScheduleTrip",
            {"ClientId": session.client_id, "BookingId": draft_id},
            cookie=session.session_token,
        )
        solutions = xml_parser.parse_solutions(xml_parser.parse_xml(body))
        logger.info(
            "Solutions received",
            operation="schedule_trip",
            context={"draft_id": draft_id, "count": len(solutions)},
        )
        return solutions

    def confirm(self, session: Session, draft_id: str, solution_id: str) -> Confirmation:
        """
        Step 3: confirm one solution.

        Returns:
            Confirmation; booking_id is None when the service acknowledged
            without naming a booking

        Raises:
            BookingConflictError: The service refused the confirmation
        """
        body = self.transport.call(
            "PassSaveSchedule",
            {"ClientId": session.client_id, "BookingId": draft_id, "SolutionId": solution_id},
            cookie=session.session_token,
        )
        root = xml_parser.parse_xml(body)
        booking_id = xml_parser.find_text(root, "BookingId")
        if booking_id == "0":
            booking_id = None

        if not xml_parser.is_result_ok(body) and not booking_id:
            message = xml_parser.find_text(root, "Message") or "The selected time could not be confirmed."
            raise BookingConflictError(message)

        start = xml_parser.find_text(root, "SchEarly")
        end = xml_parser.find_text(root, "SchLate")
        window = None
        if start and end and start.isdigit() and end.isdigit():
            window = PickupWindow(start=seconds_to_time(int(start)), end=seconds_to_time(int(end)))

        return Confirmation(booking_id=booking_id, pickup_window=window)

    def release(self, session: Session, draft_id: str) -> CancelResult:
        """Release an unconfirmed draft."""
        body = self.transport.call(
            "PassCancelTrip",
            {
                "ClientId": session.client_id,
                "BookingId": draft_id,
                "CancellationReason": RELEASE_REASON,
            },
            cookie=session.session_token,
        )
        return xml_parser.parse_cancel_result(body, xml_parser.parse_xml(body))
