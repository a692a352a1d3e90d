"""
Planar geometry helpers for zone polygons.

Point-in-polygon uses ray casting with an explicit on-edge test first, so
polygons are closed: a point on any ring (exterior or hole) counts as inside.
Distances use an equirectangular projection around the query point, which is
accurate well within the radius limits used for zone searches.
"""

import math

from .models import Coordinate, Polygon, Ring, Zone

# Tolerance for collinearity when testing whether a point lies on an edge
EPSILON = 1e-12

MILES_PER_DEGREE_LAT = 69.0


def _on_segment(px: float, py: float, ax: float, ay: float, bx: float, by: float) -> bool:
    cross = (bx - ax) * (py - ay) - (by - ay) * (px - ax)
    if abs(cross) > EPSILON * max(1.0, abs(bx - ax) + abs(by - ay)):
        return False
    return (
        min(ax, bx) - EPSILON <= px <= max(ax, bx) + EPSILON
        and min(ay, by) - EPSILON <= py <= max(ay, by) + EPSILON
    )


def _edges(ring: Ring):
    count = len(ring)
    for i in range(count):
        a = ring[i]
        b = ring[(i + 1) % count]
        if a != b:
            yield a, b


def point_on_ring(lon: float, lat: float, ring: Ring) -> bool:
    """True when the point lies on one of the ring's edges."""
    return any(_on_segment(lon, lat, a[0], a[1], b[0], b[1]) for a, b in _edges(ring))


def point_in_ring(lon: float, lat: float, ring: Ring) -> bool:
    """Strict interior test (even-odd ray casting). Edge points are undefined here."""
    inside = False
    for (ax, ay), (bx, by) in _edges(ring):
        if (ay > lat) != (by > lat):
            x_cross = ax + (lat - ay) * (bx - ax) / (by - ay)
            if lon < x_cross:
                inside = not inside
    return inside


def point_in_polygon(lon: float, lat: float, polygon: Polygon) -> bool:
    """Closed point-in-polygon test honoring holes."""
    exterior, holes = polygon[0], polygon[1:]

    if point_on_ring(lon, lat, exterior):
        return True
    if not point_in_ring(lon, lat, exterior):
        return False

    for hole in holes:
        if point_on_ring(lon, lat, hole):
            return True
        if point_in_ring(lon, lat, hole):
            return False
    return True


def zone_contains(zone: Zone, coordinate: Coordinate) -> bool:
    """Check a coordinate against every polygon of a zone."""
    lon, lat = coordinate.longitude, coordinate.latitude
    if not zone.bbox.contains(lon, lat):
        return False
    return any(point_in_polygon(lon, lat, polygon) for polygon in zone.polygons)


def _segment_distance(px: float, py: float, ax: float, ay: float, bx: float, by: float) -> float:
    dx, dy = bx - ax, by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(px - ax, py - ay)
    t = max(0.0, min(1.0, ((px - ax) * dx + (py - ay) * dy) / length_sq))
    return math.hypot(px - (ax + t * dx), py - (ay + t * dy))


def distance_to_zone_miles(zone: Zone, coordinate: Coordinate) -> float:
    """Distance from a coordinate to the nearest edge of a zone, 0 when inside."""
    if zone_contains(zone, coordinate):
        return 0.0

    # Project to miles around the query point
    lon_scale = MILES_PER_DEGREE_LAT * math.cos(math.radians(coordinate.latitude))
    lat_scale = MILES_PER_DEGREE_LAT
    px = coordinate.longitude * lon_scale
    py = coordinate.latitude * lat_scale

    best = math.inf
    for polygon in zone.polygons:
        for ring in polygon:
            for a, b in _edges(ring):
                d = _segment_distance(
                    px, py,
                    a[0] * lon_scale, a[1] * lat_scale,
                    b[0] * lon_scale, b[1] * lat_scale,
                )
                if d < best:
                    best = d
    return best

