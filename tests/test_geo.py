"""Tests for coordinate parsing and projection."""

import pytest

from offplanmap.mapping.geo import (
    DEFAULT_COORDINATE,
    CoordinateParser,
    latlng_to_pixel,
    parse_coordinates,
    pixel_to_latlng,
)


class TestParseCoordinates:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("25.08,55.14", (25.08, 55.14)),
            (" 25.08 , 55.14 ", (25.08, 55.14)),
            ('{"lat": 25.08, "lng": 55.14}', (25.08, 55.14)),
            ('{"latitude": "25.08", "longitude": "55.14"}', (25.08, 55.14)),
        ],
    )
    def test_accepted_formats(self, text, expected):
        assert parse_coordinates(text) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "text",
        [None, "", "not a coordinate", "25.08", "1,2,3", "95.0,55.0", "25.0,190.0",
         "nan,55.0", '{"lat": 25.08}', "[25.08, 55.14]"],
    )
    def test_rejected_inputs(self, text):
        assert parse_coordinates(text) is None


class TestCoordinateParser:
    def test_fallback_is_counted(self):
        parser = CoordinateParser()
        assert parser.parse("25.1,55.2") == ((25.1, 55.2), False)
        assert parser.parse("garbage") == (DEFAULT_COORDINATE, True)
        assert parser.parse(None) == (DEFAULT_COORDINATE, True)
        assert parser.fallback_count == 2

        parser.reset()
        assert parser.fallback_count == 0

    def test_custom_default(self):
        parser = CoordinateParser(default=(0.0, 0.0))
        assert parser.parse("???") == ((0.0, 0.0), True)


class TestProjection:
    def test_origin_maps_to_world_centre(self):
        assert latlng_to_pixel(0.0, 0.0, 0) == pytest.approx((128.0, 128.0))

    def test_inverse(self):
        x, y = latlng_to_pixel(25.2048, 55.2708, 12)
        assert pixel_to_latlng(x, y, 12) == pytest.approx((25.2048, 55.2708))

    def test_zoom_doubles_scale(self):
        a = latlng_to_pixel(25.2, 55.2, 10)
        b = latlng_to_pixel(25.2, 55.2, 11)
        assert b == pytest.approx((a[0] * 2, a[1] * 2))
