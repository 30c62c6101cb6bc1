"""Backend access and paginated fetching for the property cache."""

from .backend import BackendClient
from .base import (
    BackendError,
    BackendHTTPError,
    BackendUnavailableError,
    InvalidResponseError,
)
from .paginator import FetchStatus, PaginatedFetcher

__all__ = [
    "BackendClient",
    "BackendError",
    "BackendHTTPError",
    "BackendUnavailableError",
    "FetchStatus",
    "InvalidResponseError",
    "PaginatedFetcher",
]
