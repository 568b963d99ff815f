# fetch_pipeline/models.py

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class ResourceStatus(str, Enum):
    """
    Lifecycle states of a crawl resource.

    The frontier owns most of these; the fetcher only ever writes FETCHED or ERROR.
    """

    UNFETCHED = "UNFETCHED"
    FETCHING = "FETCHING"
    FETCHED = "FETCHED"
    ERROR = "ERROR"
    IGNORED = "IGNORED"


@dataclass
class Resource:
    """
    A fetch target handed to us by the crawl frontier.

    Only `url` is read; `status` is written as a side effect of fetching.
    """

    url: str
    status: ResourceStatus = ResourceStatus.UNFETCHED


# Synthetic header added to results when the content limit was reached
TRUNCATED_HEADER = "X-Content-Truncated"


@dataclass
class FetchedData:
    """
    Uniform outcome of one fetch attempt, successful or not.

    This is the raw HTTP-level result (bytes, content type, status, headers);
    parsing and link extraction happen downstream.
    """

    content: bytes              # Raw body, possibly empty (always empty on error)
    content_type: Optional[str]  # Declared Content-Type, "" on error
    status_code: int            # HTTP status, or 400/404 for transport failures
    headers: Dict[str, List[str]] = field(default_factory=dict)
    resource: Optional[Resource] = None

    @property
    def truncated(self) -> bool:
        """True when the body was cut off at the content limit."""
        return self.headers.get(TRUNCATED_HEADER) == ["true"]

    @property
    def size(self) -> int:
        return len(self.content)
