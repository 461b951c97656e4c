"""
Session lifecycle: connect, validate and disconnect an end user's account.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional

from paratransit_client.api.auth_client import AuthClient
from paratransit_client.auth.session_store import SessionStore
from paratransit_client.domain.errors import ParatransitError, SessionExpiredError
from paratransit_client.domain.session import DEFAULT_SESSION_TTL, Session
from paratransit_client.utils.logger import get_logger, log_operation, mask_identifier

logger = get_logger(__name__)


class SessionService:
    """
    Manages one remote session per owner.

    Storage and network failures always propagate; only a session the remote
    service rejects is turned into "not connected" (None).
    """

    def __init__(
        self,
        store: SessionStore,
        auth_client: AuthClient,
        ttl: timedelta = DEFAULT_SESSION_TTL,
    ):
        """
        Initialize SessionService.

        Args:
            store: Session store shared by the whole client
            auth_client: Remote authentication capability
            ttl: Application-side session lifetime
        """
        self.store = store
        self.auth_client = auth_client
        self.ttl = ttl

    @log_operation("connect_account")
    def connect(self, owner_id: str, username: str, password: str) -> Session:
        """
        Log in and persist the resulting session.

        Raises:
            AuthenticationError: Login rejected or unconfirmable
            SessionStoreError: Session could not be saved
        """
        result = self.auth_client.login(username, password)
        session = Session.create(
            session_token=result.session_token,
            owner_id=owner_id,
            client_id=result.client_id,
            ttl=self.ttl,
        )
        self.store.save(owner_id, session)
        return session

    def get_valid_session(
        self,
        owner_id: str,
        verify: bool = True,
        now: Optional[datetime] = None,
    ) -> Optional[Session]:
        """
        Load the owner's session if it is still usable.

        Expired or remotely rejected sessions are deleted and reported as None.
        A session the remote service confirms is saved back with its expiry
        pushed out by the configured ttl.

        Args:
            owner_id: End user identifier
            verify: Confirm the session with the remote service
            now: Current moment (UTC aware)

        Raises:
            SessionStoreError: Storage backend failure
            NetworkError / RateLimitedError: Remote unreachable during verification
        """
        context = {"owner_masked": mask_identifier(owner_id)}
        session = self.store.load(owner_id)
        if session is None:
            return None

        current = now or datetime.now(timezone.utc)
        if session.is_expired(current):
            logger.info("Stored session expired", operation="get_valid_session", context=context)
            self.store.delete(owner_id)
            return None

        if not verify:
            return session

        try:
            client_id = self.auth_client.verify_session(session.session_token)
        except SessionExpiredError:
            client_id = None

        if client_id is None:
            logger.info("Remote session no longer valid", operation="get_valid_session", context=context)
            self.store.delete(owner_id)
            return None

        # Verified use extends the session and re-seals it under a fresh envelope
        refreshed = replace(session, expires_at=current + self.ttl)
        self.store.save(owner_id, refreshed)
        logger.debug("Session refreshed", operation="get_valid_session", context=context)
        return refreshed

    def disconnect(self, owner_id: str) -> bool:
        """
        Log off remotely (best effort) and delete the stored session.

        Returns:
            True if a session existed
        """
        context = {"owner_masked": mask_identifier(owner_id)}
        session = self.store.load(owner_id)
        if session is None:
            return False

        try:
            self.auth_client.logoff(session.session_token, session.client_id)
        except ParatransitError as e:
            logger.warning(
                "Remote logoff failed; deleting local session anyway",
                operation="disconnect",
                context=context,
                error=type(e).__name__,
            )

        self.store.delete(owner_id)
        logger.info("Account disconnected", operation="disconnect", context=context)
        return True
