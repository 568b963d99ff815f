# fetch_pipeline/errors.py

from __future__ import annotations


class FetchError(Exception):
    """Base class for errors raised by fetch_pipeline"""
    pass


class UserAgentConfigError(FetchError):
    """Raised when a user-agent list exists but cannot be read"""
    pass


class LoginFormError(FetchError):
    """Raised when a login page has no usable username/password inputs"""
    pass


class ResourceNotFoundError(FetchError, FileNotFoundError):
    """
    Raised by a fetch callable when its target is known to be absent.

    Fetcher itself never raises this: an HTTP 404 response is a normal
    result. It is for custom fetch callables handed to results.run_fetch
    (e.g. a local-file or cache lookup) that need to report not-found.
    Subclassing FileNotFoundError makes run_fetch map it to a 404 result.
    """
    pass
