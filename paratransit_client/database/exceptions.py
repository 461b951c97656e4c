"""
Exception hierarchy for session persistence backends.

Every storage failure is reported with the STORAGE_ERROR category so callers
can tell an outage apart from "no session stored" (which is returned as None,
never raised).
"""

from paratransit_client.domain.errors import ErrorCategory, ParatransitError


class SessionStoreError(ParatransitError):
    """
    Base exception for all session store failures.

    Raised for unexpected backend errors that do not match a narrower type.
    """

    category = ErrorCategory.STORAGE_ERROR


class StoreThrottlingError(SessionStoreError):
    """
    Raised when the backend keeps throttling after retry exhaustion.

    Callers may retry later; the store has already backed off internally.
    """

    recoverable = True


class StoreNetworkError(SessionStoreError):
    """
    Raised when the backend cannot be reached (timeout, DNS failure, I/O error).

    Indicates an infrastructure problem, not a missing session.
    """

    recoverable = True


class StorePermissionError(SessionStoreError):
    """
    Raised when credentials or file permissions do not allow the operation.

    A configuration issue that must be fixed by an operator.
    """

    pass
