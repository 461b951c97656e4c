"""
Low-level transport for the remote scheduling service.

Builds SOAP envelopes, accumulates the session cookie across calls and sends
requests through a shared rate limiter with bounded retries. Every
capability service (auth, trips, booking) sits on top of SoapTransport.
"""

import time
from http.cookiejar import DefaultCookiePolicy
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple
from xml.sax.saxutils import escape

import requests

from paratransit_client.domain.errors import (
    NetworkError,
    RateLimitedError,
    ServiceError,
    SessionExpiredError,
)
from paratransit_client.utils.logger import get_logger
from paratransit_client.utils.rate_limiter import RateLimiter

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://datsonlinebooking.edmonton.ca"
SOAP_PATH = "/PassInfoServer"
DEFAULT_TIMEOUT = 30
DEFAULT_MAX_RETRIES = 3

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"

# Body fragments that mean the remote side dropped our session
SESSION_EXPIRED_MARKERS = (
    "notloggedin",
    "nousrlogin",
    "psigninregister",
    "session expired",
    "session has expired",
)


def _params_to_xml(params: Mapping[str, Any]) -> str:
    parts = []
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, Mapping):
            parts.append(f"<{key}>{_params_to_xml(value)}</{key}>")
        elif isinstance(value, bool):
            parts.append(f"<{key}>{'1' if value else '0'}</{key}>")
        else:
            parts.append(f"<{key}>{escape(str(value))}</{key}>")
    return "".join(parts)


def build_envelope(method: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """
    Build a SOAP request envelope.

    Nested mappings become nested elements, None values are skipped and text
    values are XML-escaped. A call without parameters renders as an empty
    element, e.g. <PassQueryValidatedClient/>.

    Args:
        method: Remote method name (e.g., "PassGetClientTrips")
        params: Method parameters in send order

    Returns:
        Complete XML document as a string
    """
    inner = _params_to_xml(params or {})
    body = f"<{method}>{inner}</{method}>" if inner else f"<{method}/>"
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<SOAP-ENV:Envelope xmlns:SOAP-ENV="{SOAP_ENV_NS}">'
        f"<SOAP-ENV:Body>{body}</SOAP-ENV:Body>"
        "</SOAP-ENV:Envelope>"
    )


class CookieJar:
    """
    Accumulates cookies across a multi-request conversation.

    Later values for the same name replace earlier ones; cookies set to an
    empty value are ignored.
    """

    def __init__(self, header: str = ""):
        self._cookies: Dict[str, str] = {}
        if header:
            self.merge_header(header)

    def set(self, name: str, value: str) -> None:
        name = (name or "").strip()
        value = (value or "").strip()
        if name and value:
            self._cookies[name] = value

    def merge_set_cookie(self, set_cookie: str) -> None:
        """Merge one Set-Cookie header value ("name=value; Path=/; HttpOnly")."""
        pair = set_cookie.split(";", 1)[0]
        if "=" not in pair:
            return
        name, value = pair.split("=", 1)
        self.set(name, value)

    def merge_header(self, header: str) -> None:
        """Merge a Cookie request header ("a=1; b=2")."""
        for pair in header.split(";"):
            if "=" in pair:
                name, value = pair.split("=", 1)
                self.set(name, value)

    def merge_response(self, response: requests.Response) -> None:
        """Merge every cookie the response set, including those set on redirect hops."""
        for hop in (*response.history, response):
            for name, value in _response_cookies(hop):
                self.set(name, value)

    def to_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def is_empty(self) -> bool:
        return not self._cookies

    def __len__(self) -> int:
        return len(self._cookies)

    def __contains__(self, name: str) -> bool:
        return name in self._cookies


def _response_cookies(response: requests.Response) -> Iterable[Tuple[str, str]]:
    cookies = getattr(response, "cookies", None)
    if cookies is None:
        return []
    return list(cookies.items())


def looks_like_session_expired(body: str) -> bool:
    """
    Detect a response that means the session is no longer valid.

    Either the service answered with its HTML sign-in page, or the body
    carries one of the known expiry markers.
    """
    if not body:
        return False
    lowered = body.lower()
    if "<html" in lowered and "signin" in lowered:
        return True
    return any(marker in lowered for marker in SESSION_EXPIRED_MARKERS)


class SoapTransport:
    """
    HTTP transport shared by every remote capability.

    Retries only transient failures (timeouts, connection errors, HTTP 5xx
    and 429) with exponential backoff. Authentication, validation and other
    4xx responses are never retried.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        http: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = 1.0,
    ):
        """
        Initialize transport.

        Args:
            base_url: Service root (scheme and host)
            http: requests.Session to send with (default: creates new)
            rate_limiter: Process-wide limiter (default: a private 3000 ms limiter)
            timeout: Per-request timeout in seconds
            max_retries: Total attempts for transient failures
            backoff_base: Base exponential backoff multiplier (seconds)
        """
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        # The shared session never stores cookies; each conversation carries its own CookieJar
        self.http.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
        self.rate_limiter = rate_limiter or RateLimiter()
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base

    @property
    def soap_url(self) -> str:
        return f"{self.base_url}{SOAP_PATH}"

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def request(
        self,
        method: str,
        url: str,
        operation: str,
        headers: Optional[Dict[str, str]] = None,
        data: Any = None,
        params: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """
        Send one HTTP request with rate limiting and transient-failure retries.

        Returns the final response for any status that is not retried; the
        caller decides what a 4xx means.

        Raises:
            NetworkError: Timeouts, connection failures or 5xx after all attempts
            RateLimitedError: HTTP 429 after all attempts
        """
        context = {"endpoint": url.replace(self.base_url, "") or "/", "method": method}

        for attempt in range(self.max_retries):
            self.rate_limiter.wait_for_next_request()
            last_attempt = attempt == self.max_retries - 1
            wait_time = self.backoff_base * (2**attempt)

            try:
                start_time = time.time()
                response = self.http.request(
                    method,
                    url,
                    headers=headers,
                    data=data,
                    params=params,
                    timeout=self.timeout,
                    allow_redirects=True,
                )
                duration_ms = (time.time() - start_time) * 1000
            except (requests.Timeout, requests.ConnectionError) as e:
                if not last_attempt:
                    logger.warning(
                        f"Network error, retrying after {wait_time}s",
                        operation=operation,
                        context=context,
                        error=type(e).__name__,
                    )
                    time.sleep(wait_time)
                    continue
                logger.error(
                    "Network error after max retries",
                    operation=operation,
                    context=context,
                    error=type(e).__name__,
                )
                raise NetworkError(
                    f"Could not reach the scheduling service after {self.max_retries} attempts"
                ) from e

            status = response.status_code

            if status == 429:
                retry_after = _retry_after_seconds(response)
                if not last_attempt:
                    delay = max(wait_time, retry_after or 0)
                    logger.warning(
                        f"Rate limited, retrying after {delay}s",
                        operation=operation,
                        context=context,
                        error="HTTP 429",
                    )
                    time.sleep(delay)
                    continue
                logger.error(
                    "Rate limited after max retries",
                    operation=operation,
                    context=context,
                    error="HTTP 429",
                )
                raise RateLimitedError(
                    "The scheduling service is rate limiting requests. Please try again shortly.",
                    retry_after_ms=int(retry_after * 1000) if retry_after else None,
                )

            if status >= 500:
                if not last_attempt:
                    logger.warning(
                        f"Server error, retrying after {wait_time}s",
                        operation=operation,
                        context=context,
                        error=f"HTTP {status}",
                    )
                    time.sleep(wait_time)
                    continue
                logger.error(
                    "Server error after max retries",
                    operation=operation,
                    context=context,
                    error=f"HTTP {status}",
                )
                raise NetworkError(f"Scheduling service unavailable (HTTP {status})")

            logger.debug(
                "Request completed",
                operation=operation,
                context={**context, "status": status, "duration_ms": round(duration_ms, 2)},
            )
            return response

        # Unreachable: the loop always returns or raises on its last attempt
        raise NetworkError("Request loop exited without a response")

    def call(
        self,
        method: str,
        params: Optional[Mapping[str, Any]] = None,
        cookie: str = "",
    ) -> str:
        """
        Invoke a SOAP method with the session cookie.

        Args:
            method: Remote method name
            params: Method parameters
            cookie: Accumulated Cookie header

        Returns:
            Response body text

        Raises:
            SessionExpiredError: HTTP 401/403, sign-in page or expiry marker
            ServiceError: Any other non-2xx response
            NetworkError / RateLimitedError: Transient failures after retries
        """
        headers = {
            "Content-Type": "text/xml;charset=UTF-8",
            "Accept": "application/json, text/plain, */*",
        }
        if cookie:
            headers["Cookie"] = cookie

        response = self.request(
            "POST",
            self.soap_url,
            operation=method,
            headers=headers,
            data=build_envelope(method, params).encode("utf-8"),
        )

        if response.status_code in (401, 403):
            logger.warning(
                "Session rejected by service",
                operation=method,
                context={"status": response.status_code},
            )
            raise SessionExpiredError("Your session has expired. Please connect your account again.")

        if not response.ok:
            logger.error(
                "Unexpected HTTP status",
                operation=method,
                context={"status": response.status_code},
            )
            raise ServiceError(f"{method} failed with HTTP {response.status_code}")

        body = response.text or ""
        if looks_like_session_expired(body):
            logger.warning("Session expired marker in response", operation=method)
            raise SessionExpiredError("Your session has expired. Please connect your account again.")

        return body


def _retry_after_seconds(response: requests.Response) -> Optional[float]:
    value = response.headers.get("Retry-After") if response.headers else None
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None
