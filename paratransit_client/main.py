"""
Paratransit client - composition root and public facade.

build_client() wires one rate limiter, one HTTP session, one transport and
one session store from Settings and hands them to every capability. The
facade resolves the caller's session before each remote operation.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import List, Optional

import boto3
import requests

from paratransit_client.api.auth_client import AuthClient
from paratransit_client.api.booking import BookingService
from paratransit_client.api.soap_client import SoapTransport
from paratransit_client.api.trips import TripService
from paratransit_client.auth.encryption import derive_key
from paratransit_client.auth.session_manager import SessionService
from paratransit_client.auth.session_store import LocalFileSessionStore, SessionStore, load_or_create_key
from paratransit_client.booking.orchestrator import BookingOrchestrator
from paratransit_client.config.settings import BACKEND_DYNAMODB, Settings
from paratransit_client.database.dynamodb_client import DynamoDBSessionStore
from paratransit_client.domain.booking import (
    BookingDraft,
    BookingResult,
    BookingWindow,
    CancelResult,
    CurrentDateInfo,
    TripRecord,
)
from paratransit_client.domain.errors import ErrorCategory, SessionExpiredError
from paratransit_client.domain.session import Session
from paratransit_client.utils.date_helpers import current_date_info, parse_flexible_date
from paratransit_client.utils.logger import get_logger, mask_identifier
from paratransit_client.utils.rate_limiter import RateLimiter
from paratransit_client.validation.booking_rules import BookingPolicy, validate_cancellation

logger = get_logger(__name__)

NOT_CONNECTED_MESSAGE = "No active session for this account. Please connect your account again."
TRIP_NOT_FOUND_MESSAGE = "That trip was not found among your upcoming trips."


def build_store(settings: Settings, secret: Optional[str] = None) -> SessionStore:
    """
    Session store for the configured backend.

    Args:
        settings: Deployment settings
        secret: Operator secret already resolved by Settings.load_encryption_secret()
    """
    if settings.session_backend == BACKEND_DYNAMODB:
        resource = boto3.resource(
            "dynamodb",
            region_name=settings.session_region,
            endpoint_url=settings.session_endpoint,
        )
        return DynamoDBSessionStore(
            key=derive_key(secret),
            table_name=settings.session_table,
            dynamodb_resource=resource,
            ttl_hours=settings.session_ttl_hours,
        )

    key = derive_key(secret) if secret else load_or_create_key(settings.session_key_file_path)
    return LocalFileSessionStore(settings.session_file_path, key)


def build_client(
    settings: Optional[Settings] = None,
    store: Optional[SessionStore] = None,
    policy: Optional[BookingPolicy] = None,
    http: Optional[requests.Session] = None,
) -> "ParatransitClient":
    """
    Construct a fully wired client.

    Args:
        settings: Deployment settings (default: read from the environment)
        store: Session store override (default: built from settings)
        policy: Booking policy override (default: loaded from booking_policy.yaml)
        http: HTTP session override

    Raises:
        ConfigurationError: Invalid settings or policy file
    """
    settings = settings or Settings()
    secret = settings.load_encryption_secret() if store is None else None
    settings.setup_redaction_filter(secret)

    rate_limiter = RateLimiter(settings.rate_limit_ms)
    transport = SoapTransport(
        base_url=settings.base_url,
        http=http or requests.Session(),
        rate_limiter=rate_limiter,
        timeout=settings.request_timeout,
        max_retries=settings.max_retries,
    )
    policy = policy or Settings.load_policy()
    store = store or build_store(settings, secret)

    booking_service = BookingService(transport)
    sessions = SessionService(
        store=store,
        auth_client=AuthClient(transport),
        ttl=timedelta(hours=settings.session_ttl_hours),
    )

    logger.info(
        "Client constructed",
        operation="build_client",
        context={"backend": settings.session_backend, "timezone": settings.timezone},
    )
    return ParatransitClient(
        sessions=sessions,
        trips=TripService(transport, timezone=settings.timezone),
        orchestrator=BookingOrchestrator(booking_service, policy=policy, timezone=settings.timezone),
        policy=policy,
        timezone=settings.timezone,
    )


class ParatransitClient:
    """
    Public operations for one calling application.

    Every operation takes the end user's owner id; the stored session for
    that owner authenticates the remote calls. A missing or rejected session
    raises SessionExpiredError so the caller can prompt for a reconnect.
    """

    def __init__(
        self,
        sessions: SessionService,
        trips: TripService,
        orchestrator: BookingOrchestrator,
        policy: BookingPolicy,
        timezone: str,
    ):
        self.sessions = sessions
        self.trips = trips
        self.orchestrator = orchestrator
        self.policy = policy
        self.timezone = timezone

    def connect(self, owner_id: str, username: str, password: str) -> Session:
        """Log in with the end user's credentials and store the session."""
        return self.sessions.connect(owner_id, username, password)

    def disconnect(self, owner_id: str) -> bool:
        return self.sessions.disconnect(owner_id)

    def is_connected(self, owner_id: str) -> bool:
        return self.sessions.get_valid_session(owner_id) is not None

    def _require_session(self, owner_id: str, verify: bool = False) -> Session:
        session = self.sessions.get_valid_session(owner_id, verify=verify)
        if session is None:
            logger.info(
                "No usable session",
                operation="require_session",
                context={"owner_masked": mask_identifier(owner_id)},
            )
            raise SessionExpiredError(NOT_CONNECTED_MESSAGE)
        return session

    def _expire_on_rejection(self, owner_id: str, error: SessionExpiredError) -> None:
        logger.info(
            "Remote rejected the stored session",
            operation="require_session",
            context={"owner_masked": mask_identifier(owner_id)},
            error=error.message,
        )
        self.sessions.store.delete(owner_id)

    def book_trip(self, owner_id: str, draft: BookingDraft, now: Optional[datetime] = None) -> BookingResult:
        """
        Book a trip for the owner.

        Relative dates ("tomorrow", "friday") in the draft are resolved in
        the service's home zone before validation.
        """
        session = self._require_session(owner_id)
        draft = replace(draft, pickup_date=parse_flexible_date(draft.pickup_date, timezone=self.timezone, now=now))
        result = self.orchestrator.book(session, draft, now=now)
        if result.error and result.error.category == ErrorCategory.SESSION_EXPIRED:
            self.sessions.store.delete(owner_id)
        return result

    def get_trips(
        self,
        owner_id: str,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[TripRecord]:
        session = self._require_session(owner_id)
        try:
            return self.trips.get_trips(session, from_date=from_date, to_date=to_date, now=now)
        except SessionExpiredError as e:
            self._expire_on_rejection(owner_id, e)
            raise

    def cancel_trip(
        self,
        owner_id: str,
        booking_id: str,
        reason: str = "",
        now: Optional[datetime] = None,
    ) -> CancelResult:
        """
        Cancel a trip after checking the cancellation notice rule.

        The trip must be listed among the owner's upcoming trips; its date
        and pickup window start are what the notice rule is evaluated on.
        """
        session = self._require_session(owner_id)
        try:
            trip = self.trips.find_trip(session, booking_id, now=now)
            if trip is None:
                return CancelResult(success=False, message=TRIP_NOT_FOUND_MESSAGE)

            check = validate_cancellation(
                trip.date,
                trip.pickup_window.start,
                now=now,
                policy=self.policy,
                timezone=self.timezone,
            )
            if not check.valid:
                return CancelResult(success=False, message=check.error or "This trip can no longer be cancelled.")

            result = self.trips.cancel_trip(session, booking_id, reason=reason)
        except SessionExpiredError as e:
            self._expire_on_rejection(owner_id, e)
            raise

        if result.success and check.warning:
            result.message = f"{result.message}. {check.warning}"
        return result

    def check_availability(
        self,
        owner_id: str,
        pickup_date: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingWindow:
        """Open booking dates, and the time range for pickup_date (canonical or relative)."""
        session = self._require_session(owner_id)
        try:
            return self.trips.get_booking_window(session, pickup_date=pickup_date, now=now)
        except SessionExpiredError as e:
            self._expire_on_rejection(owner_id, e)
            raise

    def current_date_info(self, now: Optional[datetime] = None) -> CurrentDateInfo:
        return current_date_info(self.timezone, now=now)
