"""Geometry utilities — distances, lengths and areas on lat/lng coordinates.

Pure-function library, no state. Coordinates are ``LatLng(lat, lng)`` pairs
in degrees (anything indexable as ``(lat, lng)`` works).

Precision notes:
    - ``distance`` is a haversine on a sphere of radius 6371000 m, the same
      model Leaflet's ``LatLng.distanceTo`` uses.
    - ``polygon_area`` projects to spherical Mercator (R = 6378137) and applies
      the Shoelace formula. Mercator inflates areas by roughly sec²(lat), so
      results are only meaningful for city-scale polygons near the drawing
      latitude. No geodesic correction is applied; this is a known bound.
"""

from __future__ import annotations

import math
from typing import Sequence

EARTH_RADIUS_M = 6_371_000.0
MERCATOR_RADIUS_M = 6_378_137.0

# Local plane scale used for hit-testing (same constant as the geo reference).
METERS_PER_DEG_LAT = 111_320.0

Point = Sequence[float]
Bounds = tuple[float, float, float, float]  # (south, west, north, east)


def distance(a: Point, b: Point) -> float:
    """Great-circle distance in meters between two (lat, lng) points."""
    lat1 = math.radians(a[0])
    lat2 = math.radians(b[0])
    dlat = lat2 - lat1
    dlng = math.radians(b[1] - a[1])
    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def polyline_length(points: Sequence[Point]) -> float:
    """Sum of segment distances in meters. 0 for fewer than 2 points."""
    total = 0.0
    for i in range(len(points) - 1):
        total += distance(points[i], points[i + 1])
    return total


def project_mercator(point: Point) -> tuple[float, float]:
    """Project (lat, lng) degrees to spherical Mercator (x, y) meters."""
    lat, lng = point[0], point[1]
    x = MERCATOR_RADIUS_M * lng * math.pi / 180
    y = MERCATOR_RADIUS_M * math.log(math.tan(math.pi / 4 + lat * math.pi / 360))
    return (x, y)


def polygon_area(ring: Sequence[Point]) -> float:
    """Planar area in m² of a (lat, lng) ring via Mercator + Shoelace.

    The ring is implicitly closed; a duplicated closing vertex contributes a
    zero-length edge and does not change the result. Returns 0 for fewer
    than 3 points.
    """
    n = len(ring)
    if n < 3:
        return 0.0

    projected = [project_mercator(p) for p in ring]
    area = 0.0
    j = n - 1
    for i in range(n):
        x1, y1 = projected[j]
        x2, y2 = projected[i]
        area += x1 * y2 - x2 * y1
        j = i
    return abs(area / 2)


# ---------------------------------------------------------------------------
# Hit-testing helpers
# ---------------------------------------------------------------------------

def _to_local(origin: Point, p: Point) -> tuple[float, float]:
    """Equirectangular (x=East, y=North) meters of ``p`` relative to ``origin``."""
    y = (p[0] - origin[0]) * METERS_PER_DEG_LAT
    x = (p[1] - origin[1]) * METERS_PER_DEG_LAT * math.cos(math.radians(origin[0]))
    return (x, y)


def point_to_segment_distance(p: Point, a: Point, b: Point) -> float:
    """Distance in meters from ``p`` to the segment ``a``-``b``.

    Works in a local plane centered on ``p``, which is accurate for the
    short distances hit-testing cares about. Degenerate segments fall back
    to the great-circle distance to the endpoint.
    """
    ax, ay = _to_local(p, a)
    bx, by = _to_local(p, b)
    dx = bx - ax
    dy = by - ay
    seg_len_sq = dx * dx + dy * dy
    if seg_len_sq == 0.0:
        return distance(p, a)

    # Projection of the origin (p) onto the segment, clamped to [0, 1]
    t = -(ax * dx + ay * dy) / seg_len_sq
    t = max(0.0, min(1.0, t))
    cx = ax + t * dx
    cy = ay + t * dy
    return math.hypot(cx, cy)


def bounds(points: Sequence[Point]) -> Bounds:
    """Bounding box ``(south, west, north, east)`` of a non-empty point list."""
    lats = [p[0] for p in points]
    lngs = [p[1] for p in points]
    return (min(lats), min(lngs), max(lats), max(lngs))


def bounds_contains(box: Bounds, p: Point) -> bool:
    """True if ``p`` lies inside or on the edge of ``box``."""
    south, west, north, east = box
    return south <= p[0] <= north and west <= p[1] <= east


def point_in_ring(p: Point, ring: Sequence[Point]) -> bool:
    """Ray-casting point-in-polygon test on a (lat, lng) ring.

    Casts a ray towards +lng and counts edge crossings. Odd count = inside.
    """
    n = len(ring)
    if n < 3:
        return False
    py, px = p[0], p[1]
    inside = False
    j = n - 1
    for i in range(n):
        yi, xi = ring[i][0], ring[i][1]
        yj, xj = ring[j][0], ring[j][1]
        if ((yi > py) != (yj > py)) and (
            px < (xj - xi) * (py - yi) / (yj - yi) + xi
        ):
            inside = not inside
        j = i
    return inside
