"""Data models for offplanmap."""

from offplanmap.models.property import (
    PageResponse,
    Pagination,
    PriceRange,
    PropertyRecord,
)

__all__ = [
    "PropertyRecord",
    "PriceRange",
    "Pagination",
    "PageResponse",
]
