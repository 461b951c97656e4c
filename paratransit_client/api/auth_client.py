"""
Login, session verification and logoff against the remote scheduling service.

The service has no structured login API: a sign-in page hands out an
anonymous cookie, a form post binds credentials to it, and a home-page visit
finalises the session. Success is only declared after an independent SOAP
call confirms a client id.
"""

from dataclasses import dataclass, field
from typing import Optional

from paratransit_client.api import xml_parser
from paratransit_client.api.soap_client import CookieJar, SoapTransport
from paratransit_client.domain.errors import AuthenticationError, ServiceError, SessionExpiredError
from paratransit_client.utils.logger import get_logger, mask_identifier

logger = get_logger(__name__)

HIWIRE_PATH = "/hiwire"

# Substrings in the credential post response that mean the login was rejected
LOGIN_FAILURE_MARKERS = ("Invalid", "incorrect", "NOUSRLOGIN", "error")

AMBIGUOUS_LOGIN_MESSAGE = (
    "Login could not be confirmed by the scheduling service. "
    "Please try again later or contact support if this continues."
)


@dataclass
class LoginResult:
    session_token: str = field(repr=False)
    client_id: str


class AuthClient:
    """
    Authentication capability of the remote service.

    Never reports success on an unrecognised response: any shape other than
    a confirmed client id is raised as AuthenticationError.
    """

    def __init__(self, transport: SoapTransport):
        self.transport = transport

    def login(self, username: str, password: str) -> LoginResult:
        """
        Sign in and return the accumulated session cookie.

        Args:
            username: Client id or username for the service
            password: Passcode

        Returns:
            LoginResult with cookie header and confirmed client id

        Raises:
            AuthenticationError: Rejected credentials or unconfirmable login
            NetworkError / RateLimitedError: Transport failures after retries
        """
        if not username or not password:
            raise AuthenticationError("Username and password are required.")

        cookies = CookieJar()
        signin_url = self.transport.url(HIWIRE_PATH)
        context = {"username_masked": mask_identifier(username)}

        logger.info("Attempting login", operation="login", context=context)

        # Step 1: anonymous session cookie from the sign-in page
        response = self.transport.request(
            "GET",
            signin_url,
            operation="login_signin_page",
            headers={"Accept": "text/html,application/xhtml+xml"},
            params={".a": "pSigninRegister"},
        )
        if not response.ok:
            logger.error(
                "Sign-in page unavailable",
                operation="login",
                context={**context, "status": response.status_code},
            )
            raise AuthenticationError(AMBIGUOUS_LOGIN_MESSAGE)
        cookies.merge_response(response)
        if cookies.is_empty():
            logger.error("Sign-in page set no session cookie", operation="login", context=context)
            raise AuthenticationError(AMBIGUOUS_LOGIN_MESSAGE)

        # Step 2: credentials bound to that cookie
        response = self.transport.request(
            "POST",
            signin_url,
            operation="login_submit",
            headers={
                "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
                "Accept": "*/*",
                "Origin": self.transport.base_url,
                "Referer": f"{signin_url}?.a=pSigninRegister",
                "X-Requested-With": "XMLHttpRequest",
                "Cookie": cookies.to_header(),
            },
            data={
                ".a": "pSigninSubmit",
                "Source": "Web",
                "UN": username,
                "PW": password,
                "ReCaptchaResponseField": "",
            },
        )
        if not response.ok:
            logger.error(
                "Credential submission failed",
                operation="login",
                context={**context, "status": response.status_code},
            )
            raise AuthenticationError(AMBIGUOUS_LOGIN_MESSAGE)
        cookies.merge_response(response)

        # Step 3: rejection markers in the response body
        body = response.text or ""
        if any(marker in body for marker in LOGIN_FAILURE_MARKERS):
            logger.warning("Login rejected", operation="login", context=context)
            raise AuthenticationError(
                "The username or password was not accepted. Please check them and try again."
            )

        # Step 4: visit the home page to finalise the session
        response = self.transport.request(
            "GET",
            signin_url,
            operation="login_home",
            headers={"Accept": "text/html,application/xhtml+xml", "Cookie": cookies.to_header()},
            params={".a": "pHome"},
        )
        if not response.ok:
            logger.error(
                "Home page unavailable after login",
                operation="login",
                context={**context, "status": response.status_code},
            )
            raise AuthenticationError(AMBIGUOUS_LOGIN_MESSAGE)
        cookies.merge_response(response)

        # Step 5: independent confirmation
        session_token = cookies.to_header()
        try:
            client_id = self.verify_session(session_token)
        except (SessionExpiredError, ServiceError) as e:
            logger.error(
                "Session not established after login",
                operation="login",
                context=context,
                error=type(e).__name__,
            )
            raise AuthenticationError(AMBIGUOUS_LOGIN_MESSAGE) from e

        if client_id is None:
            logger.error("Session not established after login", operation="login", context=context)
            raise AuthenticationError(AMBIGUOUS_LOGIN_MESSAGE)

        logger.info(
            "Login successful",
            operation="login",
            context={**context, "client_masked": mask_identifier(client_id)},
        )
        return LoginResult(session_token=session_token, client_id=client_id)

    def verify_session(self, session_token: str) -> Optional[str]:
        """
        Ask the service which client the cookie belongs to.

        Returns:
            Client id when the session is valid, None when no client is bound

        Raises:
            SessionExpiredError: Service signalled the session is gone
            ServiceError: Unparseable response
        """
        body = self.transport.call("PassQueryValidatedClient", None, cookie=session_token)
        return xml_parser.parse_client_id(xml_parser.parse_xml(body))

    def logoff(self, session_token: str, client_id: str) -> None:
        """End the remote session; callers treat failures as best-effort."""
        self.transport.call("PassClientLogoff", {"ClientId": client_id}, cookie=session_token)
        logger.info(
            "Logged off",
            operation="logoff",
            context={"client_masked": mask_identifier(client_id)},
        )
