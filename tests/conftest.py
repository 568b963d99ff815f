# tests/conftest.py

import io
from typing import Callable, Dict, List, Optional, Tuple

import pytest
import requests
from requests.cookies import RequestsCookieJar
from requests.structures import CaseInsensitiveDict


def make_response(
    status: int = 200,
    body: bytes = b"",
    headers: Optional[Dict[str, str]] = None,
    url: str = "https://example.com/",
    raw: Optional[io.BytesIO] = None,
) -> requests.Response:
    """Real requests.Response backed by an in-memory body, so streaming works as usual."""
    resp = requests.models.Response()
    resp.status_code = status
    resp.headers = CaseInsensitiveDict(headers or {})
    resp.raw = raw if raw is not None else io.BytesIO(body)
    resp.url = url
    resp.encoding = "utf-8"
    return resp


def respond(status: int = 200, body: bytes = b"", headers: Optional[Dict[str, str]] = None) -> Callable:
    """Route handler returning a fresh response on every call."""
    def handler(session, kwargs):
        return make_response(status=status, body=body, headers=headers)
    return handler


def fail(exc: Exception) -> Callable:
    """Route handler raising the given exception."""
    def handler(session, kwargs):
        raise exc
    return handler


class FakeHttpSession:
    """
    Stand-in for requests.Session: routes (method, url) to handlers and
    records every request it receives.
    """

    def __init__(self, routes: Optional[Dict[Tuple[str, str], Callable]] = None) -> None:
        self.routes = routes or {}
        self.requests: List[Tuple[str, str, dict]] = []
        self.cookies = RequestsCookieJar()
        self.closed = False

    def _dispatch(self, method: str, url: str, kwargs: dict) -> requests.Response:
        self.requests.append((method, url, kwargs))
        handler = self.routes.get((method, url))
        if handler is None:
            raise requests.exceptions.ConnectionError(f"No route for {method} {url}")
        return handler(self, kwargs)

    def get(self, url, **kwargs):
        return self._dispatch("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._dispatch("POST", url, kwargs)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def http():
    return FakeHttpSession()
