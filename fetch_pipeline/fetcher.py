# fetch_pipeline/fetcher.py

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from http.cookiejar import DefaultCookiePolicy
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import requests
from requests import Response

from .models import FetchedData, Resource
from .results import FetchOutcome, fetched_result, run_fetch
from .session import AuthSession
from .user_agents import UserAgentRotator, load_user_agents

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_MS = 5000
READ_TIMEOUT_MS = 10000
CONTENT_LIMIT = 100 * 1024 * 1024  # 100 MiB
CHUNK_SIZE = 4096


@dataclass
class FetcherConfig:
    """
    Configuration for the Fetcher.

    User agents can be given inline or as a named newline-delimited file;
    the inline list wins when both are set.
    """

    # Inline rotating user agents, e.g. ["Mozilla/5.0 ...", "Mozilla/5.0 ..."]
    user_agents: Optional[List[str]] = None

    # Path or bundled resource name holding one user agent per line
    user_agents_file: Optional[str] = None

    # Static headers sent with every request (before the rotated User-Agent)
    headers: Dict[str, str] = field(default_factory=dict)

    connect_timeout_ms: int = CONNECT_TIMEOUT_MS
    read_timeout_ms: int = READ_TIMEOUT_MS

    # Bodies longer than this are cut off and flagged as truncated
    content_limit: int = CONTENT_LIMIT

    chunk_size: int = CHUNK_SIZE

    def __post_init__(self) -> None:
        if self.content_limit <= 0:
            raise ValueError("content_limit must be positive.")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive.")

    @property
    def timeout(self) -> Tuple[float, float]:
        """(connect, read) timeout in seconds, as requests expects it."""
        return (self.connect_timeout_ms / 1000.0, self.read_timeout_ms / 1000.0)

    def build_rotator(self) -> UserAgentRotator:
        if self.user_agents is not None:
            return UserAgentRotator(self.user_agents)
        if self.user_agents_file:
            return UserAgentRotator(load_user_agents(self.user_agents_file))
        return UserAgentRotator()


def _header_lists(response: Response) -> Dict[str, List[str]]:
    """
    Copy response headers as name -> list of values.

    urllib3 keeps repeated headers (e.g. Set-Cookie) apart; fall back to the
    merged requests view when the raw headers aren't available.
    """
    raw_headers = getattr(response.raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        return {name: list(raw_headers.getlist(name)) for name in raw_headers.keys()}
    return {name: [value] for name, value in response.headers.items()}


def _drop_decoded_encoding(response: Response, headers: Dict[str, List[str]]) -> Dict[str, List[str]]:
    """
    Remove Content-Encoding/Content-Length once iter_content has decoded the body.

    urllib3 only decodes the codings it knows (CONTENT_DECODERS); anything
    else is passed through raw and keeps its headers.
    """
    encoding = response.headers.get("Content-Encoding", "")
    codings = [part.strip().lower() for part in encoding.split(",") if part.strip()]
    if not codings or codings == ["identity"]:
        return headers

    decoders = getattr(response.raw, "CONTENT_DECODERS", ())
    if not all(coding in decoders or coding == "identity" for coding in codings):
        return headers

    return {
        name: values
        for name, values in headers.items()
        if name.lower() not in ("content-encoding", "content-length")
    }


class Fetcher:
    """
    Bounded single-resource HTTP fetcher built on `requests`.

    Responsibilities:
    - Apply static headers, a rotated User-Agent and session cookies
    - Enforce connect/read timeouts
    - Stream the body up to a size ceiling, flagging truncation
    - Turn every attempt, failed or not, into exactly one FetchedData

    No retries: failures come back as 400/404 results and the caller decides.

    Threading: fetch() may be called from several threads at once. Without an
    injected session, each thread gets its own pooled requests.Session, since
    requests does not guarantee a Session is thread-safe. An injected session
    is used as-is by every thread; sharing it safely is the caller's concern.
    """

    def __init__(
        self,
        config: Optional[FetcherConfig] = None,
        session: Optional[requests.Session] = None,
        auth: Optional[AuthSession] = None,
        rotator: Optional[UserAgentRotator] = None,
    ) -> None:
        """
        param config: Timeouts, size limit, headers and user-agent source
        param session: HTTP session shared by all threads; one per thread is created if omitted
        param auth: Logged-in session whose cookies are sent with every fetch
        param rotator: Overrides the rotator built from config
        """
        self.config = config or FetcherConfig()
        self.auth = auth
        self.rotator = rotator if rotator is not None else self.config.build_rotator()

        self._shared_session = session
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        """HTTP session for the calling thread."""
        if self._shared_session is not None:
            return self._shared_session

        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            # Only AuthSession cookies are sent; don't let fetched pages set their own
            session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
            self._local.session = session
            logger.debug("Created HTTP session for thread %s", threading.current_thread().name)
        return session

    def _request_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}

        if self.config.headers:
            headers.update(self.config.headers)
            logger.debug("Adding headers: %s", list(self.config.headers.keys()))
        else:
            logger.debug("No headers are available")

        user_agent = self.rotator.next()
        if user_agent is not None:
            logger.debug("User-Agent: %s", user_agent)
            headers["User-Agent"] = user_agent
        else:
            logger.debug("No rotating agents are available")

        if self.auth is not None:
            cookie_header = self.auth.cookie_header()
            if cookie_header:
                existing = headers.get("Cookie")
                headers["Cookie"] = f"{existing}; {cookie_header}" if existing else cookie_header
                logger.debug("Session cookies added")

        return headers

    def _read_body(self, response: Response, url: str) -> Tuple[bytes, bool]:
        """
        Read the body in fixed-size chunks, stopping once it exceeds the limit.

        Returns (content, truncated). Truncated content is exactly
        content_limit bytes long.
        """
        limit = self.config.content_limit
        buffer = bytearray()

        for chunk in response.iter_content(chunk_size=self.config.chunk_size):
            if not chunk:
                continue
            buffer.extend(chunk)
            if len(buffer) > limit:
                del buffer[limit:]
                logger.info(
                    "Content truncated for %s: declared size=%s, kept %d bytes",
                    url,
                    response.headers.get("Content-Length", "unknown"),
                    len(buffer),
                )
                return bytes(buffer), True

        return bytes(buffer), False

    def fetch(self, resource: Resource) -> FetchedData:
        """
        Fetch one resource.

        HTTP error statuses (403, 500, ...) are normal results. Transport
        failures (timeouts, DNS, refused connections, bad URLs) raise; use
        apply() or fetch_all() to have them converted into error results.
        """
        url = resource.url
        logger.info("Fetching %s", url)

        headers = self._request_headers()
        with self.session.get(
            url,
            headers=headers,
            timeout=self.config.timeout,
            stream=True,
        ) as response:
            logger.debug("Got status %d for %s", response.status_code, url)
            content, truncated = self._read_body(response, url)

            return fetched_result(
                resource,
                content=content,
                content_type=response.headers.get("Content-Type"),
                status_code=response.status_code,
                headers=_drop_decoded_encoding(response, _header_lists(response)),
                truncated=truncated,
            )

    def attempt(self, resource: Resource) -> FetchOutcome:
        """Fetch one resource, capturing any failure in the outcome instead of raising."""
        return run_fetch(self.fetch, resource)

    def apply(self, resource: Resource) -> FetchedData:
        """Fetch one resource; never raises for per-resource failures."""
        return self.attempt(resource).data

    def fetch_all(self, resources: Iterable[Resource]) -> Iterator[FetchedData]:
        """
        Lazily fetch a stream of resources, one result per input, in order.

        Each resource is fetched only when its result is requested, and a
        failing resource yields an error result instead of stopping the stream.
        """
        for resource in resources:
            yield self.apply(resource)
