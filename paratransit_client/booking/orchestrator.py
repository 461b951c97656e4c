"""
Booking orchestration.

Runs the three-step remote booking protocol as one operation. The remote
service has no transaction: once step 1 has produced a provisional draft,
any later failure leaves that draft on the client's account until it is
released. The orchestrator releases it and reports exactly how far the
booking got so the caller can reconcile by hand if the release also failed.
"""

from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from paratransit_client.api.booking import BookingService
from paratransit_client.domain.booking import BookingDraft, BookingResult, TripSolution
from paratransit_client.domain.errors import (
    BookingConflictError,
    ErrorCategory,
    ErrorDetail,
    ParatransitError,
    ServiceError,
    wrap_error,
)
from paratransit_client.domain.session import Session
from paratransit_client.utils.date_helpers import normalize_remote_date, seconds_to_time, time_to_seconds
from paratransit_client.utils.logger import get_logger, mask_identifier
from paratransit_client.utils.timezone import DEFAULT_TIMEZONE, TzLike
from paratransit_client.validation.booking_rules import DEFAULT_POLICY, BookingPolicy, validate_booking_window

logger = get_logger(__name__)

STEP_CREATE = "create"
STEP_SCHEDULE = "schedule"
STEP_CONFIRM = "confirm"

CLEANUP_RELEASED = "released"
CLEANUP_REFUSED = "release_refused"
CLEANUP_FAILED = "release_failed"

NO_SOLUTIONS_MESSAGE = "No pickup times are available for this trip. Please try a different time or date."
NO_BOOKING_ID_MESSAGE = "The booking could not be confirmed. Please check your trips before trying again."


class BookingOrchestrator:
    """
    Validates a draft and books it through create, schedule and confirm.

    A successful result always carries the id the service returned from the
    confirm step; the provisional draft id is only ever reported inside the
    error context of a failed result.
    """

    def __init__(
        self,
        booking_service: BookingService,
        policy: BookingPolicy = DEFAULT_POLICY,
        timezone: TzLike = DEFAULT_TIMEZONE,
    ):
        self.booking_service = booking_service
        self.policy = policy
        self.timezone = timezone

    def book(self, session: Session, draft: BookingDraft, now: Optional[datetime] = None) -> BookingResult:
        """
        Book a trip.

        Args:
            session: Valid session for the client
            draft: Caller's booking request
            now: Current moment (aware); defaults to the real clock

        Returns:
            BookingResult; failures are returned, not raised
        """
        context = {"owner_masked": mask_identifier(session.owner_id)}

        validation = validate_booking_window(
            draft.pickup_date,
            draft.pickup_time,
            now=now,
            policy=self.policy,
            timezone=self.timezone,
        )
        if not validation.valid:
            logger.info("Booking rejected by window rules", operation="book_trip", context=context)
            return BookingResult(
                success=False,
                error=ErrorDetail(
                    category=ErrorCategory.VALIDATION_ERROR,
                    message=validation.error or "The requested pickup is not bookable.",
                    recoverable=True,
                ),
            )

        draft = replace(draft, pickup_date=normalize_remote_date(draft.pickup_date))

        try:
            draft_id = self.booking_service.create_draft(session, draft)
        except ParatransitError as e:
            logger.warning(
                "Draft creation failed",
                operation="book_trip",
                context={**context, "failed_step": STEP_CREATE},
                error=type(e).__name__,
            )
            return BookingResult(success=False, error=e.to_detail(failed_step=STEP_CREATE))

        step = STEP_SCHEDULE
        try:
            solutions = self.booking_service.schedule(session, draft_id)
            if not solutions:
                raise BookingConflictError(NO_SOLUTIONS_MESSAGE)

            solution = self._choose_solution(solutions, draft.pickup_time)

            step = STEP_CONFIRM
            confirmation = self.booking_service.confirm(session, draft_id, solution.solution_id)
            if not confirmation.booking_id:
                raise ServiceError(NO_BOOKING_ID_MESSAGE)

        except Exception as e:
            error = wrap_error(e)
            cleanup = self._release(session, draft_id, step)
            return BookingResult(
                success=False,
                error=error.to_detail(draft_id=draft_id, failed_step=step, cleanup=cleanup),
            )

        logger.info(
            "Trip booked",
            operation="book_trip",
            context={**context, "booking_id": confirmation.booking_id},
        )
        return BookingResult(
            success=True,
            booking_id=confirmation.booking_id,
            pickup_window=confirmation.pickup_window or solution.pickup_window,
            warning=validation.warning,
        )

    @staticmethod
    def _choose_solution(solutions: List[TripSolution], pickup_time: str) -> TripSolution:
        """Solution whose window starts at the requested time, else the first offered."""
        try:
            requested = seconds_to_time(time_to_seconds(pickup_time))
        except ValueError:
            return solutions[0]

        for solution in solutions:
            if solution.pickup_window.start == requested:
                return solution
        return solutions[0]

    def _release(self, session: Session, draft_id: str, failed_step: str) -> str:
        """Release an unconfirmed draft; returns the cleanup outcome."""
        context = {"draft_id": draft_id, "failed_step": failed_step}
        logger.warning("Booking incomplete, releasing draft", operation="release_draft", context=context)

        try:
            result = self.booking_service.release(session, draft_id)
        except ParatransitError as e:
            logger.error(
                "Draft release failed; manual reconciliation required",
                operation="release_draft",
                context={**context, "cleanup": CLEANUP_FAILED},
                error=type(e).__name__,
            )
            return CLEANUP_FAILED

        if not result.success:
            logger.error(
                "Draft release refused; manual reconciliation required",
                operation="release_draft",
                context={**context, "cleanup": CLEANUP_REFUSED},
                error=result.message,
            )
            return CLEANUP_REFUSED

        logger.info("Draft released", operation="release_draft", context={**context, "cleanup": CLEANUP_RELEASED})
        return CLEANUP_RELEASED
