"""Errors raised by the property backend client.

Transport failures on both backends, non-2xx statuses and malformed bodies
are all ``BackendError`` subclasses so the fetch coordinator can catch one
type and turn it into a slice-level error message.
"""

from typing import Optional


class BackendError(Exception):
    """Base exception for backend errors.

    Attributes:
        source: Which backend raised the error ("primary", "fallback", ...)
        message: Error description
    """

    def __init__(self, source: str, message: str):
        self.source = source
        self.message = message
        super().__init__(f"[{source}] {message}")


class BackendHTTPError(BackendError):
    """Raised when a backend answers with a non-2xx status."""

    def __init__(self, source: str, status_code: int, url: Optional[str] = None):
        self.status_code = status_code
        self.url = url
        super().__init__(source, f"HTTP error: {status_code}")


class BackendUnavailableError(BackendError):
    """Raised when neither the primary nor the fallback backend is reachable."""

    def __init__(self, message: str = "Both backends are unreachable"):
        super().__init__("backend", message)


class InvalidResponseError(BackendError):
    """Raised when a response body does not follow the pagination contract."""
