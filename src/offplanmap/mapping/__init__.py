"""Map rendering: coordinate parsing, clustering and marker state."""

from .clustering import (
    Cluster,
    ClusterRenderer,
    Marker,
    MarkerIcon,
    MarkerPopup,
    RenderStats,
    build_icon,
)
from .geo import DEFAULT_COORDINATE, CoordinateParser, parse_coordinates

__all__ = [
    "Cluster",
    "ClusterRenderer",
    "CoordinateParser",
    "DEFAULT_COORDINATE",
    "Marker",
    "MarkerIcon",
    "MarkerPopup",
    "RenderStats",
    "build_icon",
    "parse_coordinates",
]
