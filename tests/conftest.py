"""
Shared fixtures: canned HTTP responses and a scripted remote service.
"""

import re
from typing import Callable, Dict, List, Optional
from unittest.mock import Mock

import pytest
import requests
from requests.cookies import cookiejar_from_dict

from paratransit_client.api.soap_client import SoapTransport
from paratransit_client.utils.rate_limiter import RateLimiter

BASE_URL = "https://paratransit.test"

METHOD_RE = re.compile(r"<SOAP-ENV:Body><(\w+)")


def build_response(
    status: int = 200,
    body: str = "",
    cookies: Optional[Dict[str, str]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = body.encode("utf-8")
    response.encoding = "utf-8"
    response.headers.update(headers or {})
    response.cookies = cookiejar_from_dict(cookies or {})
    response.url = BASE_URL
    return response


def soap_body(inner: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<SOAP-ENV:Envelope xmlns:SOAP-ENV="http://schemas.xmlsoap.org/soap/envelope/">'
        f"<SOAP-ENV:Body>{inner}</SOAP-ENV:Body></SOAP-ENV:Envelope>"
    )


class ScriptedService:
    """
    Stand-in for requests.Session.request keyed by SOAP method name.

    Each method maps to a list of responses served in order (the last one
    repeats); a callable entry raises or builds a response on demand.
    """

    def __init__(self):
        self.routes: Dict[str, List] = {}
        self.calls: List[Dict] = []

    def on(self, method: str, *responses) -> "ScriptedService":
        self.routes[method] = list(responses)
        return self

    def methods_called(self) -> List[str]:
        return [call["soap_method"] for call in self.calls]

    def __call__(self, method, url, headers=None, data=None, params=None, timeout=None, allow_redirects=True):
        soap_method = None
        if isinstance(data, bytes):
            match = METHOD_RE.search(data.decode("utf-8"))
            soap_method = match.group(1) if match else None
        key = soap_method or (params or {}).get(".a") or (data or {}).get(".a")
        self.calls.append(
            {"method": method, "url": url, "headers": headers or {}, "data": data, "params": params, "soap_method": key}
        )

        queue = self.routes.get(key)
        if not queue:
            raise AssertionError(f"Unexpected request: {key}")
        entry = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            return entry()
        return entry


@pytest.fixture
def make_response() -> Callable[..., requests.Response]:
    return build_response


@pytest.fixture
def soap_response() -> Callable[..., requests.Response]:
    def _build(inner: str, status: int = 200) -> requests.Response:
        return build_response(status=status, body=soap_body(inner))

    return _build


@pytest.fixture
def scripted_service() -> ScriptedService:
    return ScriptedService()


@pytest.fixture
def transport(scripted_service) -> SoapTransport:
    """Transport whose HTTP session is served by scripted_service."""
    http = Mock(spec=requests.Session)
    http.cookies = requests.cookies.RequestsCookieJar()
    http.request.side_effect = scripted_service
    return SoapTransport(
        base_url=BASE_URL,
        http=http,
        rate_limiter=RateLimiter(0),
        max_retries=3,
        backoff_base=0,
    )
