"""Coordinate parsing and Web-Mercator pixel projection.

Listing coordinates arrive in whatever shape the backend stored them:
``"25.08, 55.14"``, ``'{"lat": 25.08, "lng": 55.14}'`` or garbage. Parsing
never raises; anything unusable is placed on a configurable default
coordinate and counted so the number of mis-placed markers stays visible.
"""

import json
import logging
import math
from typing import Optional

logger = logging.getLogger(__name__)

LatLng = tuple[float, float]

# Dubai city centre
DEFAULT_COORDINATE: LatLng = (25.2048, 55.2708)

TILE_SIZE = 256
MAX_LATITUDE = 85.0511287798


def _valid(lat: float, lng: float) -> bool:
    return (
        math.isfinite(lat)
        and math.isfinite(lng)
        and -90 <= lat <= 90
        and -180 <= lng <= 180
    )


def _parse_pair(text: str) -> Optional[LatLng]:
    if "," not in text:
        return None
    parts = text.split(",")
    if len(parts) != 2:
        return None
    try:
        lat, lng = float(parts[0].strip()), float(parts[1].strip())
    except ValueError:
        return None
    return (lat, lng) if _valid(lat, lng) else None


def _parse_json(text: str) -> Optional[LatLng]:
    try:
        parsed = json.loads(text)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    lat = parsed.get("lat", parsed.get("latitude"))
    lng = parsed.get("lng", parsed.get("lon", parsed.get("longitude")))
    if lat is None or lng is None:
        return None
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        return None
    return (lat, lng) if _valid(lat, lng) else None


def parse_coordinates(text: Optional[str]) -> Optional[LatLng]:
    """Parse a loosely formatted coordinate string.

    Tries a ``"lat,lng"`` pair first, then a JSON object with lat/lng keys.

    Returns:
        (lat, lng) tuple, or None if nothing usable was found
    """
    if not text or not isinstance(text, str):
        return None
    text = text.strip()
    return _parse_pair(text) or _parse_json(text)


class CoordinateParser:
    """Parse coordinates with a fallback position and a fallback counter.

    Attributes:
        default: Coordinate used for unparseable input
        fallback_count: How many inputs were placed on ``default``
    """

    def __init__(self, default: LatLng = DEFAULT_COORDINATE):
        self.default = default
        self.fallback_count = 0

    def parse(self, text: Optional[str]) -> tuple[LatLng, bool]:
        """Parse ``text`` or fall back to the default coordinate.

        Returns:
            Tuple of (coordinate, used_fallback)
        """
        parsed = parse_coordinates(text)
        if parsed is not None:
            return parsed, False
        self.fallback_count += 1
        logger.debug(f"Unparseable coordinates {text!r}, using default {self.default}")
        return self.default, True

    def reset(self) -> None:
        self.fallback_count = 0


def latlng_to_pixel(lat: float, lng: float, zoom: float) -> tuple[float, float]:
    """Project a coordinate to global Web-Mercator pixels at ``zoom``."""
    scale = TILE_SIZE * (2**zoom)
    lat = max(-MAX_LATITUDE, min(MAX_LATITUDE, lat))
    sin_lat = math.sin(math.radians(lat))
    x = (lng + 180.0) / 360.0 * scale
    y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * scale
    return x, y


def pixel_to_latlng(x: float, y: float, zoom: float) -> LatLng:
    """Inverse of latlng_to_pixel."""
    scale = TILE_SIZE * (2**zoom)
    lng = x / scale * 360.0 - 180.0
    n = math.pi - 2 * math.pi * y / scale
    lat = math.degrees(math.atan(math.sinh(n)))
    return lat, lng


def pixel_distance(a: tuple[float, float], b: tuple[float, float]) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])
