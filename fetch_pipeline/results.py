# fetch_pipeline/results.py

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .models import FetchedData, Resource, ResourceStatus, TRUNCATED_HEADER

logger = logging.getLogger(__name__)

# Status reported for any transport failure that isn't a not-found
DEFAULT_ERROR_CODE = 400
NOT_FOUND_CODE = 404


def status_code_for(exc: BaseException) -> int:
    """
    Map a fetch failure to an HTTP-like status code.

    Not-found failures get 404; everything else (timeouts, DNS, refused
    connections, malformed URLs, read errors) collapses to 400.
    """
    if isinstance(exc, FileNotFoundError):
        return NOT_FOUND_CODE
    return DEFAULT_ERROR_CODE


def fetched_result(
    resource: Resource,
    content: bytes,
    content_type: Optional[str],
    status_code: int,
    headers: Dict[str, List[str]],
    truncated: bool = False,
) -> FetchedData:
    """
    Build the result for a completed HTTP exchange and mark the resource FETCHED.

    Any status code the server sent (including 4xx/5xx) counts as fetched.
    """
    result_headers = {name: list(values) for name, values in headers.items()}
    if truncated:
        result_headers[TRUNCATED_HEADER] = ["true"]

    resource.status = ResourceStatus.FETCHED
    return FetchedData(
        content=content,
        content_type=content_type,
        status_code=status_code,
        headers=result_headers,
        resource=resource,
    )


def error_result(resource: Resource, exc: BaseException) -> FetchedData:
    """
    Build the empty result for a failed fetch and mark the resource ERROR.
    """
    resource.status = ResourceStatus.ERROR
    return FetchedData(
        content=b"",
        content_type="",
        status_code=status_code_for(exc),
        headers={},
        resource=resource,
    )


@dataclass
class FetchOutcome:
    """
    Tagged result of one attempt: `data` is always set, `error` only on failure.
    """

    data: FetchedData
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_fetch(fetch: Callable[[Resource], FetchedData], resource: Resource) -> FetchOutcome:
    """
    Call `fetch` and convert any exception it raises into an error result.

    This is the boundary that keeps one bad resource from aborting a
    whole stream of fetches.
    """
    try:
        return FetchOutcome(data=fetch(resource))
    except Exception as e:
        logger.warning("Fetch failed for %s (%s)", resource.url, type(e).__name__)
        logger.debug("Fetch of %s failed", resource.url, exc_info=True)
        return FetchOutcome(data=error_result(resource, e), error=e)
