"""Clustered map markers built without blocking the event loop.

The renderer turns property records into markers in fixed-size chunks,
yielding to the event loop between chunks, so a thousand listings never
monopolize the loop that also serves fetches and timers. Clustering is a
greedy pass in Web-Mercator pixel space: a marker joins the nearest existing
cluster whose anchor lies within ``max_cluster_radius`` pixels at the given
zoom, otherwise it starts a new one.

Hover and selection only rebuild the icons of the markers whose state
changed; the marker set itself is untouched.

Example:
    renderer = ClusterRenderer(chunk_size=50)
    renderer.on_click(lambda popup: open_detail(popup.id))
    await renderer.render(store.records(SliceName.MAP))
    for cluster in renderer.clusters(zoom=11):
        draw(cluster.center, cluster.count)
"""

import asyncio
import logging
import math
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Optional

from ..config import Settings
from ..models.property import PriceRange, PropertyRecord
from .geo import (
    CoordinateParser,
    LatLng,
    latlng_to_pixel,
    pixel_distance,
    pixel_to_latlng,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_LOGO = "/placeholder-developer.jpg"
DEFAULT_SIZE = 30
HIGHLIGHT_SIZE = 40
DEFAULT_BORDER = "#ffffff"
HIGHLIGHT_BORDER = "#d4af37"

# Spiderfy geometry, in pixels
CIRCLE_FOOT_SEPARATION = 25
SPIRAL_FOOT_SEPARATION = 28
SPIRAL_LENGTH_START = 11
SPIRAL_LENGTH_FACTOR = 5
CIRCLE_SPIRAL_SWITCHOVER = 9


@dataclass(frozen=True)
class MarkerIcon:
    """Visual description of a marker icon."""

    size: int
    border_color: str
    logo_url: str
    alt: str = ""

    @property
    def highlighted(self) -> bool:
        return self.size == HIGHLIGHT_SIZE

    @property
    def anchor(self) -> tuple[float, float]:
        return (self.size / 2, self.size / 2)

    def to_html(self) -> str:
        inner = self.size - 8
        css = " hovered" if self.highlighted else ""
        return (
            f'<div class="custom-marker{css}" style="width:{self.size}px;'
            f"height:{self.size}px;border-radius:50%;"
            f'border:3px solid {self.border_color};background:white;">'
            f'<img src="{self.logo_url}" alt="{self.alt}" '
            f'style="width:{inner}px;height:{inner}px;border-radius:50%;" />'
            f"</div>"
        )


def build_icon(record: PropertyRecord, highlighted: bool = False) -> MarkerIcon:
    """Icon for ``record``: enlarged and gold-bordered when highlighted."""
    return MarkerIcon(
        size=HIGHLIGHT_SIZE if highlighted else DEFAULT_SIZE,
        border_color=HIGHLIGHT_BORDER if highlighted else DEFAULT_BORDER,
        logo_url=record.developer_logo or PLACEHOLDER_LOGO,
        alt=record.developer,
    )


@dataclass(frozen=True)
class MarkerPopup:
    """Details handed to hover/click handlers."""

    id: int
    name: str
    area: str
    developer: str
    price_range: PriceRange

    @classmethod
    def from_record(cls, record: PropertyRecord) -> "MarkerPopup":
        return cls(
            id=record.id,
            name=record.name,
            area=record.area,
            developer=record.developer,
            price_range=record.price_range,
        )


@dataclass
class Marker:
    """A placed marker. Only ``icon`` changes after creation."""

    record: PropertyRecord
    position: LatLng
    icon: MarkerIcon
    fallback_positioned: bool = False

    @property
    def id(self) -> int:
        return self.record.id

    @property
    def popup(self) -> MarkerPopup:
        return MarkerPopup.from_record(self.record)


@dataclass
class Cluster:
    """Group of markers drawn as one aggregate at a given zoom."""

    anchor: tuple[float, float]
    markers: list[Marker] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.markers)

    @property
    def is_single(self) -> bool:
        return len(self.markers) == 1

    @property
    def center(self) -> LatLng:
        lat = sum(m.position[0] for m in self.markers) / len(self.markers)
        lng = sum(m.position[1] for m in self.markers) / len(self.markers)
        return (lat, lng)

    @property
    def ids(self) -> list[int]:
        return [m.id for m in self.markers]


@dataclass(frozen=True)
class RenderStats:
    """Outcome of one render pass."""

    chunks: tuple[int, ...]
    markers: int
    fallback_positioned: int
    elapsed: float
    completed: bool = True


class ClusterRenderer:
    """Builds and maintains clustered markers for a set of records.

    Attributes:
        chunk_size: Markers inserted per chunk
        chunk_delay: Seconds slept between chunks
        max_cluster_radius: Pixel radius within which markers are grouped
        disable_clustering_at_zoom: Zoom at and above which markers never cluster
        last_render_seconds: Wall time of the last completed render
    """

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_delay: Optional[float] = None,
        max_cluster_radius: Optional[int] = None,
        disable_clustering_at_zoom: Optional[int] = None,
        large_set_warning: Optional[int] = None,
        default_coordinate: Optional[LatLng] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or Settings()
        self.chunk_size = chunk_size or settings.chunk_size
        self.chunk_delay = settings.chunk_delay if chunk_delay is None else chunk_delay
        self.max_cluster_radius = max_cluster_radius or settings.max_cluster_radius
        self.disable_clustering_at_zoom = (
            settings.disable_clustering_at_zoom
            if disable_clustering_at_zoom is None
            else disable_clustering_at_zoom
        )
        self.large_set_warning = large_set_warning or settings.large_set_warning
        self.parser = CoordinateParser(
            default_coordinate
            or (settings.default_latitude, settings.default_longitude)
        )

        self._markers: dict[int, Marker] = {}
        self._hovered_id: Optional[int] = None
        self._selected_id: Optional[int] = None
        self._render_generation = 0
        self._hover_callbacks: list[Callable[[Optional[MarkerPopup]], None]] = []
        self._click_callbacks: list[Callable[[MarkerPopup], None]] = []

        self.last_render_seconds: Optional[float] = None
        self.last_chunks: tuple[int, ...] = ()
        self.icon_updates = 0

    # -- marker set -------------------------------------------------------

    @property
    def markers(self) -> list[Marker]:
        return list(self._markers.values())

    def marker(self, record_id: int) -> Optional[Marker]:
        return self._markers.get(record_id)

    @property
    def fallback_positioned(self) -> int:
        """Number of current markers placed on the default coordinate."""
        return sum(1 for m in self._markers.values() if m.fallback_positioned)

    def _is_highlighted(self, record_id: int) -> bool:
        return record_id in (self._hovered_id, self._selected_id)

    def _create_marker(self, record: PropertyRecord) -> Marker:
        position, used_fallback = self.parser.parse(record.coordinates)
        return Marker(
            record=record,
            position=position,
            icon=build_icon(record, self._is_highlighted(record.id)),
            fallback_positioned=used_fallback,
        )

    async def render(self, records: Iterable[PropertyRecord]) -> RenderStats:
        """Bring the marker set in line with ``records``.

        Markers for records that are gone are removed at once. New or changed
        records are inserted ``chunk_size`` at a time with a pause between
        chunks. A newer call to ``render`` stops an older one at its next
        pause.
        """
        start = time.perf_counter()
        self._render_generation += 1
        generation = self._render_generation

        valid = [r for r in records if r.coordinates]
        if len(valid) > self.large_set_warning:
            logger.warning(
                f"Large number of properties ({len(valid)}) may impact map performance"
            )

        wanted = {r.id for r in valid}
        for stale_id in [i for i in self._markers if i not in wanted]:
            del self._markers[stale_id]

        pending = [
            r for r in valid
            if r.id not in self._markers or self._markers[r.id].record != r
        ]

        chunks: list[int] = []
        for offset in range(0, len(pending), self.chunk_size):
            chunk = pending[offset:offset + self.chunk_size]
            for record in chunk:
                self._markers[record.id] = self._create_marker(record)
            chunks.append(len(chunk))

            if offset + self.chunk_size < len(pending):
                await asyncio.sleep(self.chunk_delay)
                if generation != self._render_generation:
                    logger.debug("Render superseded by a newer record set")
                    return RenderStats(
                        chunks=tuple(chunks),
                        markers=len(self._markers),
                        fallback_positioned=self.fallback_positioned,
                        elapsed=time.perf_counter() - start,
                        completed=False,
                    )

        elapsed = time.perf_counter() - start
        self.last_render_seconds = elapsed
        self.last_chunks = tuple(chunks)
        fallback = self.fallback_positioned
        if fallback:
            logger.warning(f"{fallback} markers placed on the default coordinate")
        logger.debug(
            f"Rendered {len(pending)} new markers in {len(chunks)} chunks "
            f"({len(self._markers)} total, {elapsed:.3f}s)"
        )
        return RenderStats(
            chunks=tuple(chunks),
            markers=len(self._markers),
            fallback_positioned=fallback,
            elapsed=elapsed,
        )

    def clear(self) -> None:
        self._render_generation += 1
        self._markers.clear()
        self.parser.reset()

    # -- clustering -------------------------------------------------------

    def clusters(self, zoom: int) -> list[Cluster]:
        """Group current markers for display at ``zoom``."""
        if zoom >= self.disable_clustering_at_zoom:
            return [
                Cluster(anchor=latlng_to_pixel(*m.position, zoom), markers=[m])
                for m in self._markers.values()
            ]

        radius = self.max_cluster_radius
        result: list[Cluster] = []
        grid: dict[tuple[int, int], list[Cluster]] = {}

        for marker in self._markers.values():
            point = latlng_to_pixel(*marker.position, zoom)
            cell = (math.floor(point[0] / radius), math.floor(point[1] / radius))

            nearest: Optional[Cluster] = None
            nearest_distance = radius
            for dx in (-1, 0, 1):
                for dy in (-1, 0, 1):
                    for candidate in grid.get((cell[0] + dx, cell[1] + dy), ()):
                        distance = pixel_distance(point, candidate.anchor)
                        if distance <= nearest_distance:
                            nearest, nearest_distance = candidate, distance

            if nearest is not None:
                nearest.markers.append(marker)
                continue

            cluster = Cluster(anchor=point, markers=[marker])
            grid.setdefault(cell, []).append(cluster)
            result.append(cluster)

        return result

    def spiderfy(self, cluster: Cluster, zoom: int) -> dict[int, LatLng]:
        """Spread a cluster's markers around its centre.

        Fewer than nine markers are laid on a circle, larger groups on a
        spiral, so each can be hovered and clicked individually.

        Returns:
            Mapping of record id to display coordinate
        """
        if cluster.is_single:
            marker = cluster.markers[0]
            return {marker.id: marker.position}

        cx, cy = latlng_to_pixel(*cluster.center, zoom)
        count = cluster.count
        points: list[tuple[float, float]] = []

        if count < CIRCLE_SPIRAL_SWITCHOVER:
            circumference = CIRCLE_FOOT_SEPARATION * (2 + count)
            leg = circumference / (2 * math.pi)
            step = 2 * math.pi / count
            for i in range(count):
                angle = i * step
                points.append((cx + leg * math.cos(angle), cy + leg * math.sin(angle)))
        else:
            leg = float(SPIRAL_LENGTH_START)
            angle = 0.0
            for i in range(count):
                angle += SPIRAL_FOOT_SEPARATION / leg + i * 0.0005
                points.append((cx + leg * math.cos(angle), cy + leg * math.sin(angle)))
                leg += 2 * math.pi * SPIRAL_LENGTH_FACTOR / angle

        return {
            marker.id: pixel_to_latlng(x, y, zoom)
            for marker, (x, y) in zip(cluster.markers, points)
        }

    # -- interaction ------------------------------------------------------

    def _refresh_icon(self, record_id: Optional[int]) -> bool:
        if record_id is None:
            return False
        marker = self._markers.get(record_id)
        if marker is None:
            return False
        icon = build_icon(marker.record, self._is_highlighted(record_id))
        if icon == marker.icon:
            return False
        marker.icon = icon
        self.icon_updates += 1
        return True

    def _apply(self, previous: Optional[int], current: Optional[int]) -> set[int]:
        changed = set()
        for record_id in {previous, current}:
            if self._refresh_icon(record_id):
                changed.add(record_id)
        return changed

    def set_hovered(self, record_id: Optional[int]) -> set[int]:
        """Highlight ``record_id`` (or nothing) as hovered.

        Returns:
            Ids whose icon changed
        """
        previous, self._hovered_id = self._hovered_id, record_id
        return self._apply(previous, record_id)

    def set_selected(self, record_id: Optional[int]) -> set[int]:
        """Highlight ``record_id`` (or nothing) as selected.

        Returns:
            Ids whose icon changed
        """
        previous, self._selected_id = self._selected_id, record_id
        return self._apply(previous, record_id)

    @property
    def hovered_id(self) -> Optional[int]:
        return self._hovered_id

    @property
    def selected_id(self) -> Optional[int]:
        return self._selected_id

    def on_hover(self, callback: Callable[[Optional[MarkerPopup]], None]) -> None:
        self._hover_callbacks.append(callback)

    def on_click(self, callback: Callable[[MarkerPopup], None]) -> None:
        self._click_callbacks.append(callback)

    def hover(self, record_id: int) -> Optional[MarkerPopup]:
        """Pointer entered a marker."""
        marker = self._markers.get(record_id)
        if marker is None:
            return None
        self.set_hovered(record_id)
        popup = marker.popup
        for callback in self._hover_callbacks:
            callback(popup)
        return popup

    def unhover(self) -> None:
        """Pointer left the hovered marker."""
        self.set_hovered(None)
        for callback in self._hover_callbacks:
            callback(None)

    def click(self, record_id: int) -> Optional[MarkerPopup]:
        """Marker clicked: select it and notify click handlers."""
        marker = self._markers.get(record_id)
        if marker is None:
            return None
        self.set_selected(record_id)
        popup = marker.popup
        for callback in self._click_callbacks:
            callback(popup)
        return popup
