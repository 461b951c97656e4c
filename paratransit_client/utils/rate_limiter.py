"""Minimum-delay rate limiting for outgoing remote requests."""

import threading
import time

from paratransit_client.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_RATE_LIMIT_MS = 3000


class RateLimiter:
    """
    Enforces a minimum delay between consecutive requests.

    One instance is shared by every transport in the process. Each caller
    reserves the next free slot under a lock and then sleeps outside it, so
    concurrent callers are spaced out without serialising their responses.
    """

    def __init__(self, min_delay_ms: int = DEFAULT_RATE_LIMIT_MS):
        """
        Initialize rate limiter.

        Args:
            min_delay_ms: Minimum milliseconds between request starts (0 disables)
        """
        if min_delay_ms < 0:
            raise ValueError("min_delay_ms must be >= 0")
        self.min_delay_ms = min_delay_ms
        self._next_slot = 0.0
        self._lock = threading.Lock()

    def wait_for_next_request(self) -> float:
        """
        Block until the caller may send a request.

        Returns:
            Seconds waited
        """
        interval = self.min_delay_ms / 1000.0
        with self._lock:
            now = time.monotonic()
            start = max(now, self._next_slot)
            self._next_slot = start + interval
        wait_time = start - now

        if wait_time > 0:
            logger.debug(
                f"Rate limit: waiting {wait_time:.2f}s",
                operation="rate_limit",
                context={"wait_ms": round(wait_time * 1000)},
            )
            time.sleep(wait_time)
        return wait_time
