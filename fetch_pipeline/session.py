# fetch_pipeline/session.py

from __future__ import annotations
import logging
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import quote_plus

import requests
from bs4 import BeautifulSoup
from requests.cookies import RequestsCookieJar

from .errors import LoginFormError

logger = logging.getLogger(__name__)

# Identify as a regular browser on login/logout pages
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
BROWSER_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
BROWSER_ACCEPT_LANGUAGE = "en-US,en;q=0.5"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class SessionState(str, Enum):
    ANONYMOUS = "ANONYMOUS"
    AUTHENTICATING = "AUTHENTICATING"
    AUTHENTICATED = "AUTHENTICATED"


def _input_of_type(input_type: str):
    """Attribute matcher for <input type="..."> that ignores case."""
    return lambda value: value is not None and value.strip().lower() == input_type


def find_login_fields(html: str) -> Tuple[str, str]:
    """
    Discover the username and password field names on a login page.

    Takes the `name` of the first <input type="text"> and the first
    <input type="password">. Raises LoginFormError if either is missing,
    since posting to an unknown field name can never log us in.
    """
    soup = BeautifulSoup(html or "", "lxml")

    user_input = soup.find("input", attrs={"type": _input_of_type("text")})
    if user_input is None or not user_input.get("name"):
        raise LoginFormError("No named text input found on login page")

    password_input = soup.find("input", attrs={"type": _input_of_type("password")})
    if password_input is None or not password_input.get("name"):
        raise LoginFormError("No named password input found on login page")

    return user_input["name"], password_input["name"]


def build_login_body(
    username_field: str,
    password_field: str,
    username: str,
    password: str,
) -> str:
    """
    Build an application/x-www-form-urlencoded body with exactly two fields.

    >>> build_login_body("user", "pass", "alice", "s3cr3t!")
    'user=alice&pass=s3cr3t%21'
    """
    return "&".join([
        f"{username_field}={quote_plus(username)}",
        f"{password_field}={quote_plus(password)}",
    ])


class AuthSession:
    """
    Logs in to a form-protected site and keeps the resulting session cookies.

    State machine: ANONYMOUS -> AUTHENTICATING -> AUTHENTICATED -> ANONYMOUS.

    Every login/logout uses its own short-lived requests.Session, so the only
    state shared across calls is the captured cookie set. That set is guarded
    by a lock and handed out as copies, never held across network I/O.
    """

    def __init__(
        self,
        session_factory: Callable[[], requests.Session] = requests.Session,
        timeout: Tuple[float, float] = (5.0, 10.0),
        user_agent: str = BROWSER_USER_AGENT,
    ) -> None:
        """
        param session_factory: Builds the HTTP session used for one login/logout
        param timeout: (connect, read) timeout in seconds for login/logout requests
        param user_agent: User-Agent sent on login/logout requests
        """
        self._session_factory = session_factory
        self.timeout = timeout
        self.user_agent = user_agent

        self._lock = threading.Lock()
        self._state = SessionState.ANONYMOUS
        # Full jar, so same-named cookies on different domains/paths all survive
        self._cookies = RequestsCookieJar()

    # -------- State accessors -------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    def cookie_jar(self) -> RequestsCookieJar:
        """Copy of the captured cookie jar, domain and path included."""
        with self._lock:
            return self._cookies.copy()

    def cookies(self) -> List[Tuple[str, str]]:
        """(name, value) pairs of the current session cookies (empty when anonymous)."""
        with self._lock:
            return [(cookie.name, cookie.value) for cookie in self._cookies]

    def cookie_header(self) -> Optional[str]:
        """Cookie header value for the current session, or None if there are no cookies."""
        cookies = self.cookies()
        if not cookies:
            return None
        return "; ".join(f"{name}={value}" for name, value in cookies)

    def _set_state(self, state: SessionState, cookies: Optional[RequestsCookieJar] = None) -> None:
        with self._lock:
            self._state = state
            if cookies is not None:
                self._cookies = cookies

    def _reset(self) -> None:
        self._set_state(SessionState.ANONYMOUS, cookies=RequestsCookieJar())

    def _browser_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": BROWSER_ACCEPT,
            "Accept-Language": BROWSER_ACCEPT_LANGUAGE,
        }

    # -------- Login / logout --------------------------------------------

    def login(
        self,
        login_url: str,
        username: str,
        password: str,
        username_field: Optional[str] = None,
        password_field: Optional[str] = None,
    ) -> bool:
        """
        Log in by scraping the login form and posting credentials back to it.

        Field names are discovered from the page unless given explicitly.
        Returns True on a 200 response to the POST, False on any other status
        or transport failure. Raises LoginFormError if the page has no
        usable inputs. On any failure the session is left ANONYMOUS.
        """
        self._set_state(SessionState.AUTHENTICATING)
        http = self._session_factory()
        try:
            try:
                page = http.get(
                    login_url,
                    headers={**self._browser_headers(), "Cache-Control": "no-cache"},
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                logger.warning("Could not load login page %s: %s", login_url, e)
                self._reset()
                return False

            logger.info("Loaded login page %s (status %d)", login_url, page.status_code)

            if username_field is None or password_field is None:
                found_user, found_password = find_login_fields(page.text)
                username_field = username_field or found_user
                password_field = password_field or found_password

            logger.debug("Login form fields: username=%s password=%s", username_field, password_field)
            body = build_login_body(username_field, password_field, username, password)

            try:
                resp = http.post(
                    login_url,
                    data=body.encode("utf-8"),
                    headers={
                        "Accept": BROWSER_ACCEPT,
                        "Accept-Language": BROWSER_ACCEPT_LANGUAGE,
                        "Content-Type": FORM_CONTENT_TYPE,
                        "Cache-Control": "no-cache",
                    },
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                logger.warning("Login POST to %s failed: %s", login_url, e)
                self._reset()
                return False

            if resp.status_code != 200:
                logger.warning("Login failed on %s: status %d", login_url, resp.status_code)
                logger.debug("Login failure response: %s", resp.text)
                self._reset()
                return False

            cookies = http.cookies.copy()
            self._set_state(SessionState.AUTHENTICATED, cookies=cookies)
            logger.info("Login success on %s, captured %d cookie(s)", login_url, len(cookies))
            return True
        except Exception:
            self._reset()
            raise
        finally:
            http.close()

    def logout(self, logout_url: str) -> bool:
        """
        Log out and drop the local session.

        Returns True if the logout URL answered 200. Local cookies are
        cleared whatever the outcome. Logging out while anonymous is a
        no-op that returns True.
        """
        if self.state is SessionState.ANONYMOUS:
            logger.debug("Logout requested while anonymous; nothing to do")
            return True

        headers = self._browser_headers()
        cookie_header = self.cookie_header()
        if cookie_header:
            headers["Cookie"] = cookie_header

        http = self._session_factory()
        try:
            resp = http.get(
                logout_url,
                headers=headers,
                allow_redirects=False,
                timeout=self.timeout,
            )
            logged_out = resp.status_code == 200
            logger.info("Logout request to %s returned %d", logout_url, resp.status_code)
        except requests.RequestException as e:
            logger.warning("Logout request to %s failed: %s", logout_url, e)
            logged_out = False
        finally:
            http.close()
            self._reset()

        if logged_out:
            logger.info("Logged out")
        else:
            logger.warning("Failed to log out cleanly from %s; local session cleared", logout_url)
        return logged_out
