"""
DynamoDB-backed session store.

One item per owner holding the encrypted envelope and a numeric `ttl`
attribute (epoch seconds) that DynamoDB's TTL feature uses to expire the
record. DynamoDB deletes expired items lazily, so reads also treat an item
whose ttl has passed as absent.
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, TypeVar, Union

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from paratransit_client.auth.session_store import SessionStore
from paratransit_client.domain.session import EncryptedEnvelope, Session
from paratransit_client.utils.logger import get_logger, mask_identifier
from .exceptions import (
    SessionStoreError,
    StoreNetworkError,
    StorePermissionError,
    StoreThrottlingError,
)

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_TABLE_NAME = "paratransit-sessions"
DEFAULT_TTL_HOURS = 24

THROTTLING_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
}
PERMISSION_CODES = {"AccessDeniedException", "UnrecognizedClientException"}


class DynamoDBSessionStore(SessionStore):
    """
    Session store on a DynamoDB table.

    Table Schema:
        Partition Key: owner_id (string)
        TTL attribute: ttl (number, epoch seconds)
    """

    def __init__(
        self,
        key: bytes,
        table_name: str = DEFAULT_TABLE_NAME,
        dynamodb_resource: Optional[Any] = None,
        ttl_hours: Union[int, float] = DEFAULT_TTL_HOURS,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize DynamoDBSessionStore.

        Args:
            key: 32-byte encryption key
            table_name: DynamoDB table name
            dynamodb_resource: boto3 DynamoDB resource (default: creates new)
            ttl_hours: Record lifetime enforced through the ttl attribute
            max_retries: Number of attempts for throttling errors
            backoff_base: Base exponential backoff multiplier (seconds)
            clock: Epoch-seconds source
        """
        super().__init__(key)
        self.table_name = table_name
        self.dynamodb = dynamodb_resource or boto3.resource("dynamodb")
        self.table = self.dynamodb.Table(table_name)
        self.ttl_seconds = int(ttl_hours * 3600)
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.clock = clock

    def save(self, owner_id: str, session: Session) -> None:
        context = {"owner_masked": mask_identifier(owner_id)}
        now = self.clock()
        item = {
            "owner_id": owner_id,
            **self.seal(session).to_dict(),
            "updated_at": datetime.fromtimestamp(now, timezone.utc).isoformat(),
            "ttl": int(now) + self.ttl_seconds,
        }

        logger.debug("Saving session", operation="save_session", context=context)
        self._execute("save_session", context, lambda: self.table.put_item(Item=item))
        logger.info("Session saved", operation="save_session", context=context)

    def load(self, owner_id: str) -> Optional[Session]:
        context = {"owner_masked": mask_identifier(owner_id)}

        logger.debug("Fetching session", operation="load_session", context=context)
        response = self._execute(
            "load_session",
            context,
            lambda: self.table.get_item(Key={"owner_id": owner_id}, ConsistentRead=True),
        )

        item = response.get("Item")
        if item is None:
            logger.debug("Session not found", operation="load_session", context=context)
            return None

        if self._is_expired(item):
            logger.info("Session record past its ttl", operation="load_session", context=context)
            return None

        try:
            envelope = EncryptedEnvelope.from_dict(item)
        except ValueError as e:
            logger.error("Malformed session record", operation="load_session", context=context, error=str(e))
            raise SessionStoreError(f"Malformed session record: {e}") from e

        session = self.unseal(envelope, owner_id)
        logger.info("Session retrieved", operation="load_session", context=context)
        return session

    def delete(self, owner_id: str) -> None:
        context = {"owner_masked": mask_identifier(owner_id)}

        logger.debug("Deleting session", operation="delete_session", context=context)
        self._execute("delete_session", context, lambda: self.table.delete_item(Key={"owner_id": owner_id}))
        logger.info("Session deleted", operation="delete_session", context=context)

    def _is_expired(self, item: Dict[str, Any]) -> bool:
        ttl = item.get("ttl")
        if ttl is None:
            return False
        return int(ttl) <= int(self.clock())

    def _execute(
        self,
        operation: str,
        context: Dict[str, Any],
        call: Callable[[], T],
    ) -> T:
        """
        Run one DynamoDB call with throttling retries and exception translation.

        Raises:
            StoreThrottlingError: If throttled after max retries
            StorePermissionError: If IAM permissions insufficient
            StoreNetworkError: If connection fails
            SessionStoreError: Any other DynamoDB error
        """
        for attempt in range(self.max_retries):
            try:
                start_time = time.time()
                result = call()
                duration_ms = (time.time() - start_time) * 1000
                logger.debug(
                    "DynamoDB call completed",
                    operation=operation,
                    context={**context, "duration_ms": round(duration_ms, 2)},
                )
                return result

            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")

                if error_code in THROTTLING_CODES:
                    if attempt < self.max_retries - 1:
                        wait_time = self.backoff_base * (2**attempt)
                        logger.warning(
                            f"Throttled, retrying after {wait_time}s",
                            operation=operation,
                            context=context,
                            error=error_code,
                        )
                        time.sleep(wait_time)
                        continue
                    logger.error(
                        "Throttling after max retries",
                        operation=operation,
                        context=context,
                        error=error_code,
                    )
                    raise StoreThrottlingError(f"DynamoDB throttled after {self.max_retries} retries") from e

                if error_code in PERMISSION_CODES:
                    logger.error("Permission denied", operation=operation, context=context, error=error_code)
                    raise StorePermissionError(f"Insufficient IAM permissions: {error_code}") from e

                logger.error("DynamoDB error", operation=operation, context=context, error=str(e))
                raise SessionStoreError(f"DynamoDB error: {error_code}") from e

            except (BotoCoreError, OSError) as e:
                logger.error("Network error", operation=operation, context=context, error=str(e))
                raise StoreNetworkError(f"Network error: {e}") from e

        raise SessionStoreError(f"{operation} did not complete")
