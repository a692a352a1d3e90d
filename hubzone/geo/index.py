"""
In-memory spatial index over designated zone polygons.

Zones are bucketed into a uniform lon/lat grid by bounding box, so a point
lookup only tests the zones registered in its own cell. An index is never
modified after construction; refreshed data is published through
ZoneIndexHolder, which swaps the whole index in one step.
"""

import logging
import math
import threading
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional

from .geometry import MILES_PER_DEGREE_LAT, distance_to_zone_miles, zone_contains
from .models import Coordinate, Zone

logger = logging.getLogger(__name__)

DEFAULT_CELL_DEGREES = 0.25

# Radius search limits
MAX_RADIUS_MILES = 50.0
MAX_RADIUS_RESULTS = 100


def _sort_key(zone: Zone) -> tuple:
    # Most specific designation first, then the longest-standing one
    return (zone.specificity, zone.effective_date, zone.zone_id)


class ZoneIndex:
    """Grid-bucketed, read-only collection of zones."""

    def __init__(
        self,
        zones: Iterable[Zone],
        cell_degrees: float = DEFAULT_CELL_DEGREES,
        source: Optional[str] = None,
    ):
        if cell_degrees <= 0:
            raise ValueError(f"Grid cell size must be positive, got {cell_degrees}")

        self.cell_degrees = cell_degrees
        self.source = source
        self.built_at = datetime.now()
        self._zones: dict[str, Zone] = {}
        cells: dict[tuple[int, int], list[Zone]] = defaultdict(list)

        for zone in zones:
            if zone.zone_id in self._zones:
                logger.warning("Duplicate zone id %s; keeping the first definition", zone.zone_id)
                continue
            self._zones[zone.zone_id] = zone

            min_x, min_y = self._cell(zone.bbox.min_lon, zone.bbox.min_lat)
            max_x, max_y = self._cell(zone.bbox.max_lon, zone.bbox.max_lat)
            for x in range(min_x, max_x + 1):
                for y in range(min_y, max_y + 1):
                    cells[(x, y)].append(zone)

        self._cells = {key: tuple(bucket) for key, bucket in cells.items()}
        logger.debug(
            "Built zone index: %d zones across %d cells", len(self._zones), len(self._cells)
        )

    def __len__(self) -> int:
        return len(self._zones)

    def __repr__(self) -> str:
        return f"<ZoneIndex {len(self._zones)} zones, {len(self._cells)} cells>"

    @property
    def zones(self) -> list[Zone]:
        return list(self._zones.values())

    def get(self, zone_id: str) -> Optional[Zone]:
        return self._zones.get(zone_id)

    def _cell(self, lon: float, lat: float) -> tuple[int, int]:
        return (math.floor(lon / self.cell_degrees), math.floor(lat / self.cell_degrees))

    def _ring_cells(self, center: tuple[int, int], r: int):
        """Cells at Chebyshev distance r from the center cell."""
        cx, cy = center
        if r == 0:
            yield center
            return
        for x in range(cx - r, cx + r + 1):
            yield (x, cy - r)
            yield (x, cy + r)
        for y in range(cy - r + 1, cy + r):
            yield (cx - r, y)
            yield (cx + r, y)

    def _ring_floor_miles(self, r: int, latitude: float) -> float:
        """Lower bound on the distance to anything in ring r."""
        scale = MILES_PER_DEGREE_LAT * max(math.cos(math.radians(latitude)), 0.01)
        return max(0, r - 1) * self.cell_degrees * scale

    def _rings_for(self, radius_miles: float, latitude: float) -> int:
        scale = MILES_PER_DEGREE_LAT * max(math.cos(math.radians(latitude)), 0.01)
        return math.ceil(radius_miles / (self.cell_degrees * scale)) + 1

    def resolve(self, coordinate: Coordinate) -> list[Zone]:
        """
        Find every zone containing the coordinate.

        Returns:
            Matching zones ordered by specificity, earliest effective date first
            among equally specific zones.
        """
        key = self._cell(coordinate.longitude, coordinate.latitude)
        candidates = self._cells.get(key, ())
        matches = [zone for zone in candidates if zone_contains(zone, coordinate)]
        return sorted(matches, key=_sort_key)

    def nearest(
        self,
        coordinate: Coordinate,
        limit: int = 1,
        max_distance_miles: float = MAX_RADIUS_MILES,
    ) -> list[tuple[Zone, float]]:
        """
        Find the zones closest to a coordinate.

        Searches outward ring by ring and stops once no unvisited cell can hold
        anything closer than the current results.

        Returns:
            Up to ``limit`` (zone, distance_miles) pairs, closest first.
        """
        if limit < 1 or not self._cells:
            return []

        center = self._cell(coordinate.longitude, coordinate.latitude)
        max_rings = self._rings_for(max_distance_miles, coordinate.latitude)
        seen: set[str] = set()
        found: list[tuple[float, Zone]] = []

        for r in range(max_rings + 1):
            if len(found) >= limit:
                found.sort(key=lambda item: (item[0], _sort_key(item[1])))
                if self._ring_floor_miles(r, coordinate.latitude) > found[limit - 1][0]:
                    break

            for cell in self._ring_cells(center, r):
                for zone in self._cells.get(cell, ()):
                    if zone.zone_id in seen:
                        continue
                    seen.add(zone.zone_id)
                    distance = distance_to_zone_miles(zone, coordinate)
                    if distance <= max_distance_miles:
                        found.append((distance, zone))

        found.sort(key=lambda item: (item[0], _sort_key(item[1])))
        return [(zone, distance) for distance, zone in found[:limit]]

    def within_radius(self, coordinate: Coordinate, radius_miles: float) -> list[tuple[Zone, float]]:
        """
        Find zones within a radius of a coordinate.

        The radius is capped at MAX_RADIUS_MILES and at most MAX_RADIUS_RESULTS
        zones are returned, closest first.
        """
        radius = min(abs(radius_miles), MAX_RADIUS_MILES)
        center = self._cell(coordinate.longitude, coordinate.latitude)
        seen: set[str] = set()
        found: list[tuple[float, Zone]] = []

        for r in range(self._rings_for(radius, coordinate.latitude) + 1):
            for cell in self._ring_cells(center, r):
                for zone in self._cells.get(cell, ()):
                    if zone.zone_id in seen:
                        continue
                    seen.add(zone.zone_id)
                    distance = distance_to_zone_miles(zone, coordinate)
                    if distance <= radius:
                        found.append((distance, zone))

        found.sort(key=lambda item: (item[0], _sort_key(item[1])))
        return [(zone, distance) for distance, zone in found[:MAX_RADIUS_RESULTS]]


class ZoneIndexHolder:
    """Publishes the current ZoneIndex; readers take a snapshot per operation."""

    def __init__(self, index: Optional[ZoneIndex] = None):
        self._index = index if index is not None else ZoneIndex([])
        self._version = 1
        self._lock = threading.Lock()

    @property
    def version(self) -> int:
        return self._version

    def current(self) -> ZoneIndex:
        return self._index

    def publish(self, index: ZoneIndex) -> ZoneIndex:
        """Swap in a fully built index. Returns the index it replaced."""
        with self._lock:
            previous = self._index
            self._index = index
            self._version += 1
        logger.info(
            "Published zone index v%d (%d zones, previously %d)",
            self._version, len(index), len(previous),
        )
        return previous
