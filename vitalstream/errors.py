"""Exceptions raised by the backend client."""
from __future__ import annotations

from typing import Optional


class BackendError(Exception):
    """Base class for every failure talking to the backend."""


class BackendTimeoutError(BackendError):
    """The request timer fired before the backend answered."""

    def __init__(self, url: str, timeout: float) -> None:
        super().__init__(f"request to {url} timed out after {timeout:g}s")
        self.url = url
        self.timeout = timeout


class BackendNetworkError(BackendError):
    """DNS, refused connection or other transport level failure."""


class BackendStatusError(BackendError):
    """The backend answered with a non-2xx status."""

    def __init__(self, operation: str, status_code: int, reason: Optional[str] = None) -> None:
        self.operation = operation
        self.status_code = status_code
        self.reason = reason or ""
        status_line = f"{status_code} {self.reason}".strip()
        super().__init__(f"{operation} failed: {status_line}")


class BackendProtocolError(BackendError):
    """A response body could not be decoded into the expected shape."""


class StreamTransportError(BackendError):
    """The streaming socket reported an error frame or failed to open."""


__all__ = [
    "BackendError",
    "BackendTimeoutError",
    "BackendNetworkError",
    "BackendStatusError",
    "BackendProtocolError",
    "StreamTransportError",
]
