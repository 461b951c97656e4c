"""
Unit tests for BookingOrchestrator and the booking protocol steps.

Step failures after a draft exists must release the draft and report where
the booking stopped.
"""

from datetime import datetime
from unittest.mock import Mock, patch

import pytest
import pytz
import requests

from paratransit_client.api.booking import BookingService, build_create_params
from paratransit_client.booking.orchestrator import BookingOrchestrator
from paratransit_client.domain.booking import BookingDraft, PassengerOptions
from paratransit_client.domain.errors import ErrorCategory, NetworkError
from paratransit_client.domain.session import Session

NOW = pytz.timezone("America/Edmonton").localize(datetime(2026, 1, 12, 10, 0))

CREATED = "<PassCreateTripResponse><BookingId>9001</BookingId></PassCreateTripResponse>"
SOLUTIONS = (
    "<PassScheduleTripResponse>"
    "<Solution><SolutionId>1</SolutionId><SchEarly>27000</SchEarly><SchLate>28800</SchLate></Solution>"
    "<Solution><SolutionId>2</SolutionId><SchEarly>28800</SchEarly><SchLate>30600</SchLate></Solution>"
    "</PassScheduleTripResponse>"
)
CONFIRMED = (
    "<PassSaveScheduleResponse><Result>RESULTOK</Result><BookingId>77001</BookingId>"
    "<SchEarly>28800</SchEarly><SchLate>30600</SchLate></PassSaveScheduleResponse>"
)
RELEASED = "<PassCancelTripResponse><Result>RESULTOK</Result></PassCancelTripResponse>"


@pytest.fixture
def session():
    return Session.create(session_token="a=1", owner_id="owner-1", client_id="4242")


@pytest.fixture
def draft():
    return BookingDraft(
        pickup_date="2026-01-13",
        pickup_time="08:00",
        pickup_address="109 Kingsway NW",
        destination_address="10111 104 Ave NW",
        mobility_device="WC",
        passenger_options=PassengerOptions(companion=True, pickup_phone="780-555-0100"),
    )


@pytest.fixture
def orchestrator(transport):
    return BookingOrchestrator(BookingService(transport))


@pytest.fixture
def remote(scripted_service, soap_response):
    scripted_service.on("PassCreateTrip", soap_response(CREATED))
    scripted_service.on("PassScheduleTrip", soap_response(SOLUTIONS))
    scripted_service.on("PassSaveSchedule", soap_response(CONFIRMED))
    scripted_service.on("PassCancelTrip", soap_response(RELEASED))
    return scripted_service


class TestBuildCreateParams:
    """Tests for the PassCreateTrip payload."""

    def test_payload(self, draft):
        params = build_create_params("4242", draft)

        assert params["ClientId"] == "4242"
        assert params["Date"] == "20260113"
        assert params["PickUpLeg"]["ReqTime"] == 28800
        assert params["PickUpLeg"]["RequestAddress"]["Address"] == "109 Kingsway NW"
        assert params["PickUpLeg"]["Phone"] == "780-555-0100"
        assert params["DropOffLeg"]["RequestAddress"]["Address"] == "10111 104 Ave NW"
        assert params["MobilityAids"] == "WC"
        assert params["Companion"] is True
        assert "AdditionalPassengers" not in params

    def test_additional_passengers(self, draft):
        draft.passenger_options.additional_passenger_type = "PCA"
        draft.passenger_options.additional_passenger_count = 1

        params = build_create_params("4242", draft)

        assert params["AdditionalPassengers"] == {"PassengerType": "PCA", "Count": 1}


class TestSuccessfulBooking:
    """All three steps succeed."""

    def test_books_and_returns_confirmed_id(self, orchestrator, remote, session, draft):
        result = orchestrator.book(session, draft, now=NOW)

        assert result.success is True
        assert result.booking_id == "77001"
        assert result.pickup_window.start == "8:00 AM"
        assert remote.methods_called() == ["PassCreateTrip", "PassScheduleTrip", "PassSaveSchedule"]

    def test_solution_matching_requested_time_chosen(self, orchestrator, remote, session, draft):
        orchestrator.book(session, draft, now=NOW)

        confirm = remote.calls[2]["data"].decode("utf-8")
        assert "<SolutionId>2</SolutionId>" in confirm
        assert "<BookingId>9001</BookingId>" in confirm

    def test_first_solution_when_no_match(self, orchestrator, remote, session, draft):
        draft.pickup_time = "09:15"

        orchestrator.book(session, draft, now=NOW)

        assert "<SolutionId>1</SolutionId>" in remote.calls[2]["data"].decode("utf-8")

    def test_same_day_warning_carried(self, orchestrator, remote, session, draft):
        draft.pickup_date = "2026-01-12"
        draft.pickup_time = "14:00"

        result = orchestrator.book(session, draft, now=NOW)

        assert result.success is True
        assert "not guaranteed" in result.warning


class TestValidationFirst:
    """Rejected drafts never reach the service."""

    def test_rejected_draft_not_sent(self, orchestrator, scripted_service, session, draft):
        draft.pickup_date = "2026-01-20"

        result = orchestrator.book(session, draft, now=NOW)

        assert result.success is False
        assert result.booking_id is None
        assert result.error.category == ErrorCategory.VALIDATION_ERROR
        assert scripted_service.calls == []


class TestCompensation:
    """Failures after step 1 release the draft."""

    def test_create_refused(self, orchestrator, remote, soap_response, session, draft):
        remote.on("PassCreateTrip", soap_response("<BookingId>0</BookingId><Message>Duplicate trip</Message>"))

        result = orchestrator.book(session, draft, now=NOW)

        assert result.success is False
        assert result.error.category == ErrorCategory.BOOKING_CONFLICT
        assert result.error.message == "Duplicate trip"
        assert result.error.context == {"failed_step": "create"}
        assert "PassCancelTrip" not in remote.methods_called()

    def test_no_solutions_releases_draft(self, orchestrator, remote, soap_response, session, draft):
        remote.on("PassScheduleTrip", soap_response("<PassScheduleTripResponse/>"))

        result = orchestrator.book(session, draft, now=NOW)

        assert result.success is False
        assert result.booking_id is None
        assert result.error.category == ErrorCategory.BOOKING_CONFLICT
        assert result.error.context == {"draft_id": "9001", "failed_step": "schedule", "cleanup": "released"}
        assert remote.methods_called() == ["PassCreateTrip", "PassScheduleTrip", "PassCancelTrip"]

    def test_network_failure_in_step_two_releases_draft(self, orchestrator, remote, session, draft):
        remote.on("PassScheduleTrip", requests.ConnectionError("down"))

        with patch("paratransit_client.api.soap_client.time.sleep"):
            result = orchestrator.book(session, draft, now=NOW)

        assert result.success is False
        assert result.error.category == ErrorCategory.NETWORK_ERROR
        assert result.error.context["failed_step"] == "schedule"
        assert result.error.context["cleanup"] == "released"
        assert remote.methods_called()[-1] == "PassCancelTrip"

    def test_session_expiry_in_step_three(self, orchestrator, remote, make_response, session, draft):
        remote.on("PassSaveSchedule", make_response(status=401))

        result = orchestrator.book(session, draft, now=NOW)

        assert result.error.category == ErrorCategory.SESSION_EXPIRED
        assert result.error.context["failed_step"] == "confirm"
        assert result.error.context["draft_id"] == "9001"

    def test_confirmation_without_booking_id(self, orchestrator, remote, soap_response, session, draft):
        remote.on("PassSaveSchedule", soap_response("<Result>RESULTOK</Result><BookingId>0</BookingId>"))

        result = orchestrator.book(session, draft, now=NOW)

        assert result.success is False
        assert result.booking_id is None
        assert result.error.category == ErrorCategory.SYSTEM_ERROR
        assert result.error.context["cleanup"] == "released"

    def test_release_refused_reported(self, orchestrator, remote, soap_response, session, draft):
        remote.on("PassScheduleTrip", soap_response("<PassScheduleTripResponse/>"))
        remote.on("PassCancelTrip", soap_response("<Message>Not found</Message>"))

        result = orchestrator.book(session, draft, now=NOW)

        assert result.error.context["cleanup"] == "release_refused"

    def test_release_failure_reported(self, session, draft):
        service = Mock(spec=BookingService)
        service.create_draft.return_value = "9001"
        service.schedule.side_effect = NetworkError("down")
        service.release.side_effect = NetworkError("still down")

        result = BookingOrchestrator(service).book(session, draft, now=NOW)

        assert result.success is False
        assert result.error.context == {"draft_id": "9001", "failed_step": "schedule", "cleanup": "release_failed"}
        assert result.error.recoverable is True

    def test_unexpected_error_is_wrapped(self, session, draft):
        service = Mock(spec=BookingService)
        service.create_draft.return_value = "9001"
        service.schedule.side_effect = KeyError("SolutionId")

        result = BookingOrchestrator(service).book(session, draft, now=NOW)

        assert result.error.category == ErrorCategory.SYSTEM_ERROR
        service.release.assert_called_once_with(session, "9001")
