"""Tests for the property record and page models."""

import json

import pytest
from pydantic import ValidationError

from offplanmap.models.property import PageResponse, Pagination, PriceRange, PropertyRecord

from .factories import make_record, record_payload


class TestPropertyRecord:
    """Test record validation from backend JSON."""

    def test_backend_aliases(self):
        """Camel-case bookkeeping fields map onto snake-case attributes."""
        record = PropertyRecord.model_validate(
            record_payload(
                7,
                lastFetchedAt="2026-10-01T08:00:00Z",
                cacheExpiresAt="2026-10-01T16:00:00Z",
            )
        )
        assert record.id == 7
        assert record.last_fetched_at is not None
        assert record.cache_expires_at > record.last_fetched_at

    def test_string_id_is_coerced(self):
        record = PropertyRecord.model_validate(record_payload(1, id="42"))
        assert record.id == 42

    def test_unknown_fields_ignored(self):
        record = PropertyRecord.model_validate(record_payload(1, **{"__v": 3, "pendingReview": True}))
        assert not hasattr(record, "pendingReview")

    def test_coordinate_object_kept_as_text(self):
        """Object-shaped coordinates are stored as a JSON string."""
        record = make_record(1, coordinates={"lat": 25.1, "lng": 55.2})
        assert json.loads(record.coordinates) == {"lat": 25.1, "lng": 55.2}

    def test_records_are_immutable(self):
        record = make_record(1)
        with pytest.raises(ValidationError):
            record.name = "Changed"

    def test_price_range(self):
        record = make_record(1, min_price=1_200_000, max_price=3_400_000)
        assert record.price_range == PriceRange(
            min_price=1_200_000, max_price=3_400_000, currency="AED"
        )
        assert record.price_range.format() == "AED 1,200,000 - 3,400,000"

    def test_missing_price_formats_placeholder(self):
        assert PriceRange(currency="USD").format() == "USD ? - ?"


class TestPagination:
    """Test the has-more rule."""

    def test_has_more_until_last_page(self):
        assert Pagination(page=1, limit=12, totalPages=3, total=36).has_more
        assert Pagination(page=2, limit=12, totalPages=3, total=36).has_more
        assert not Pagination(page=3, limit=12, totalPages=3, total=36).has_more

    def test_page_response_payload_uses_backend_names(self):
        page = PageResponse.model_validate(
            {
                "success": True,
                "data": [record_payload(1)],
                "pagination": {"page": 1, "limit": 12, "totalPages": 1, "total": 1},
            }
        )
        payload = page.to_payload()
        assert payload["pagination"]["totalPages"] == 1
        assert payload["data"][0]["id"] == 1
        assert not page.has_more
