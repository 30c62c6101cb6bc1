"""Property record and backend page data models."""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class PriceRange(BaseModel):
    """Price band of an off-plan project."""

    min_price: float | None = Field(default=None, ge=0)
    max_price: float | None = Field(default=None, ge=0)
    currency: str = "AED"

    model_config = {"frozen": True}

    def format(self) -> str:
        """Render as e.g. ``AED 1,200,000 - 3,400,000``."""
        low = f"{self.min_price:,.0f}" if self.min_price is not None else "?"
        high = f"{self.max_price:,.0f}" if self.max_price is not None else "?"
        return f"{self.currency} {low} - {high}"


class PropertyRecord(BaseModel):
    """A single geocoded listing as returned by the property backend.

    Records are immutable: a cache merge always builds new lists of records
    and never edits one in place. Field aliases follow the backend's JSON so
    a page payload can be validated directly.
    """

    # Identification
    id: int = Field(..., description="Unique listing identifier")
    name: str = Field(default="", description="Project display name")

    # Location
    area: str = Field(default="", description="Area / community label")
    area_unit: str | None = Field(default=None)
    coordinates: str | None = Field(
        default=None,
        description='Loosely formatted "lat,lng" or JSON {"lat","lng"}',
    )

    # Pricing
    min_price: float | None = Field(default=None, ge=0)
    max_price: float | None = Field(default=None, ge=0)
    price_currency: str = Field(default="AED")

    # Developer
    developer: str = Field(default="")
    developer_logo: str | None = Field(default=None)
    cover_image_url: str | None = Field(default=None)

    # Lifecycle
    sale_status: str | None = Field(default=None)
    status: str | None = Field(default=None)
    development_status: str | None = Field(default=None)
    completion_datetime: str | None = Field(default=None)
    description: str | None = Field(default=None)

    # Flags
    is_partner_project: bool = Field(default=False)
    featured: bool = Field(default=False)

    # Cache bookkeeping set by the backend
    last_fetched_at: datetime | None = Field(default=None, alias="lastFetchedAt")
    cache_expires_at: datetime | None = Field(default=None, alias="cacheExpiresAt")
    source: str | None = Field(default=None)

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "extra": "ignore",
        "str_strip_whitespace": True,
    }

    @field_validator("coordinates", mode="before")
    @classmethod
    def _coordinates_to_text(cls, value: Any) -> Any:
        # Some backend rows ship the pair as an object instead of a string
        if isinstance(value, dict):
            return json.dumps(value)
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return f"{value[0]},{value[1]}"
        return value

    @property
    def price_range(self) -> PriceRange:
        return PriceRange(
            min_price=self.min_price,
            max_price=self.max_price,
            currency=self.price_currency,
        )


class Pagination(BaseModel):
    """Cursor block of a backend page response."""

    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total_pages: int = Field(..., ge=0, alias="totalPages")
    total: int = Field(default=0, ge=0)

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages


class PageResponse(BaseModel):
    """One page of the backend pagination contract.

    ``backend_used`` and ``api_url`` are annotations added by the client to
    record which backend served the page.
    """

    success: bool = True
    data: list[PropertyRecord] = Field(default_factory=list)
    pagination: Pagination
    backend_used: str | None = None
    api_url: str | None = None

    model_config = {"frozen": True, "populate_by_name": True, "extra": "ignore"}

    @property
    def has_more(self) -> bool:
        return self.pagination.has_more

    def to_payload(self) -> dict[str, Any]:
        """Dump in backend JSON shape for durable storage."""
        return self.model_dump(mode="json", by_alias=True)
