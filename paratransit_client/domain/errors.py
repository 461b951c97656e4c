"""
Error categories and the exception hierarchy shared by every component.

Business-rule failures are returned as typed results (ValidationResult,
BookingResult); exceptions are reserved for infrastructure and protocol
failures, each tagged with a category so callers can react without
inspecting message text.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    AUTH_FAILURE = "auth_failure"
    SESSION_EXPIRED = "session_expired"
    VALIDATION_ERROR = "validation_error"
    BOOKING_CONFLICT = "booking_conflict"
    NETWORK_ERROR = "network_error"
    RATE_LIMITED = "rate_limited"
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


# Categories the transport may retry; everything else fails immediately
RETRYABLE_CATEGORIES = frozenset({ErrorCategory.NETWORK_ERROR, ErrorCategory.RATE_LIMITED})


@dataclass
class ErrorDetail:
    """
    Typed error payload carried by results.

    Attributes:
        category: Error category
        message: Actionable, user-facing reason
        recoverable: True when the caller can fix the problem (retry, re-login)
        context: Extra data for manual reconciliation (never PII)
    """

    category: ErrorCategory
    message: str
    recoverable: bool = False
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "category": self.category.value,
            "message": self.message,
            "recoverable": self.recoverable,
        }
        if self.context:
            data["context"] = dict(self.context)
        return data


class ParatransitError(Exception):
    """Base exception for all client errors."""

    category = ErrorCategory.SYSTEM_ERROR
    recoverable = False

    def __init__(self, message: str, recoverable: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        if recoverable is not None:
            self.recoverable = recoverable

    def to_detail(self, **context: Any) -> ErrorDetail:
        return ErrorDetail(
            category=self.category,
            message=self.message,
            recoverable=self.recoverable,
            context=context,
        )


class AuthenticationError(ParatransitError):
    """Credentials rejected, or login could not be confirmed."""

    category = ErrorCategory.AUTH_FAILURE
    recoverable = True


class SessionExpiredError(ParatransitError):
    """The remote service no longer accepts the session cookie."""

    category = ErrorCategory.SESSION_EXPIRED
    recoverable = True


class NetworkError(ParatransitError):
    """Transport failure or timeout, raised after retries are exhausted."""

    category = ErrorCategory.NETWORK_ERROR
    recoverable = True


class RateLimitedError(ParatransitError):
    """Remote service asked us to slow down and retries were exhausted."""

    category = ErrorCategory.RATE_LIMITED
    recoverable = True

    def __init__(self, message: str, retry_after_ms: Optional[int] = None):
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class InvalidRequestError(ParatransitError):
    """Caller input the service cannot be asked about (e.g. an unrecognised date)."""

    category = ErrorCategory.VALIDATION_ERROR
    recoverable = True


class BookingConflictError(ParatransitError):
    """Remote service rejected a valid-looking request (no slots, duplicate trip)."""

    category = ErrorCategory.BOOKING_CONFLICT


class ServiceError(ParatransitError):
    """Remote response had a shape we do not recognise."""

    category = ErrorCategory.SYSTEM_ERROR


class DecryptionError(ParatransitError):
    """Envelope failed authentication (wrong key or tampered data)."""

    category = ErrorCategory.SYSTEM_ERROR


def wrap_error(error: BaseException) -> ParatransitError:
    """Wrap an unknown exception into a typed ParatransitError."""
    if isinstance(error, ParatransitError):
        return error
    return ParatransitError(f"Unexpected error: {type(error).__name__}: {error}")
