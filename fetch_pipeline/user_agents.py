# fetch_pipeline/user_agents.py

from __future__ import annotations
import logging
import threading
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .errors import UserAgentConfigError

logger = logging.getLogger(__name__)

# Bundled resources shipped inside the package (e.g. "user-agents.txt")
RESOURCES_DIR = Path(__file__).resolve().parent / "resources"


def parse_user_agent_lines(lines: Iterable[str]) -> List[str]:
    """
    Clean a raw list of user-agent lines.

    - Strip surrounding whitespace
    - Drop blank lines and lines starting with '#'
    - Remove duplicates while preserving first-seen order
    """
    cleaned = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        cleaned.append(stripped)

    # dict keeps insertion order, so this dedupes without reordering
    return list(dict.fromkeys(cleaned))


def _resolve_resource(name: Union[str, Path]) -> Optional[Path]:
    """
    Locate a user-agent resource.

    Priority:
    1. The name as a filesystem path (absolute or relative to cwd)
    2. A file of that name under the bundled resources/ directory
    """
    path = Path(name)
    if path.exists():
        return path

    bundled = RESOURCES_DIR / path
    if bundled.exists():
        return bundled

    return None


def load_user_agents(name: Union[str, Path]) -> List[str]:
    """
    Load a newline-delimited user-agent list.

    A missing resource is not fatal: we log a warning and return an empty
    list so fetches proceed without a rotated User-Agent. A resource that
    exists but cannot be read raises UserAgentConfigError.
    """
    path = _resolve_resource(name)
    if path is None:
        logger.warning("Could not find rotating user agents file: %s", name)
        return []

    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise UserAgentConfigError(f"Can't read user agent file {path}: {e}") from e

    agents = parse_user_agent_lines(raw.splitlines())
    logger.info("Loaded %d user agent(s) from %s", len(agents), path)
    return agents


class UserAgentRotator:
    """
    Round-robin source of User-Agent values, safe to share between threads.

    The lock only guards the read-and-advance of the index; callers do their
    network I/O after next() has returned.
    """

    def __init__(self, user_agents: Optional[Iterable[str]] = None) -> None:
        self._agents: List[str] = list(dict.fromkeys(user_agents or []))
        self._index = 0
        self._lock = threading.Lock()

    @classmethod
    def from_file(cls, name: Union[str, Path]) -> "UserAgentRotator":
        return cls(load_user_agents(name))

    @property
    def agents(self) -> List[str]:
        return list(self._agents)

    def __len__(self) -> int:
        return len(self._agents)

    def next(self) -> Optional[str]:
        """
        Return the next user agent and advance the index, or None if the
        list is empty.
        """
        if not self._agents:
            return None

        with self._lock:
            agent = self._agents[self._index]
            self._index = (self._index + 1) % len(self._agents)
        return agent
