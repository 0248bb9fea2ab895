"""Shape and PreviewShape dataclasses for the drawing session.

Shapes store coordinates in map convention, ``LatLng(lat, lng)``. The
GeoJSON codec is the only place that swaps to ``[lng, lat]``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

from mapsketch.geometry import polygon_area, polyline_length


class LatLng(NamedTuple):
    """A map coordinate in degrees."""

    lat: float
    lng: float


class ShapeKind(str, Enum):
    """Discriminator of the Shape variant."""
    MARKER = "marker"
    POLYLINE = "polyline"
    POLYGON = "polygon"


DEFAULT_NAMES = {
    ShapeKind.MARKER: "Marker",
    ShapeKind.POLYLINE: "Line",
    ShapeKind.POLYGON: "Polygon",
}

# Fewest points a committed shape of each kind may hold.
MIN_POINTS = {
    ShapeKind.MARKER: 1,
    ShapeKind.POLYLINE: 2,
    ShapeKind.POLYGON: 3,
}


def _new_shape_id() -> str:
    return f"shape-{uuid.uuid4().hex[:8]}"


@dataclass(eq=False)
class Shape:
    """A committed marker, polyline or polygon.

    Attributes:
        kind: Which variant this shape is.
        points: Geometry in (lat, lng).
            MARKER: exactly one point
            POLYLINE: ordered points, at least 2
            POLYGON: outer ring, at least 3, implicitly closed
        properties: Metadata exported as the GeoJSON feature properties.
            Always carries ``name``; polylines carry ``length`` (m) and
            polygons carry ``area`` (m²).
        shape_id: Unique identifier for renderers and popups.
        editable: Whether vertex handles are enabled (polygons).
    """

    kind: ShapeKind
    points: list[LatLng]
    properties: dict = field(default_factory=dict)
    shape_id: str = field(default_factory=_new_shape_id)
    editable: bool = False

    @property
    def name(self) -> str:
        return self.properties.get("name") or DEFAULT_NAMES[self.kind]

    @property
    def measurement(self) -> float | None:
        """Stored length or area, or None for markers."""
        if self.kind is ShapeKind.POLYLINE:
            return self.properties.get("length")
        if self.kind is ShapeKind.POLYGON:
            return self.properties.get("area")
        return None

    def compute_measurement(self) -> float | None:
        """Measure the current geometry without touching ``properties``."""
        if self.kind is ShapeKind.POLYLINE:
            return polyline_length(self.points)
        if self.kind is ShapeKind.POLYGON:
            return polygon_area(self.points)
        return None

    def refresh_measurement(self) -> float | None:
        """Recompute the derived measurement and store it in ``properties``."""
        value = self.compute_measurement()
        if self.kind is ShapeKind.POLYLINE:
            self.properties["length"] = value
        elif self.kind is ShapeKind.POLYGON:
            self.properties["area"] = value
        return value


def make_shape(
    kind: ShapeKind,
    points: list[LatLng],
    properties: dict | None = None,
) -> Shape:
    """Build a Shape, filling in the default name and missing measurement.

    A numeric ``length``/``area`` already present in ``properties`` is kept
    as-is; otherwise it is computed from ``points``.
    """
    props = dict(properties) if properties else {}
    name = props.get("name")
    if not isinstance(name, str) or not name.strip():
        props["name"] = DEFAULT_NAMES[kind]

    shape = Shape(kind=kind, points=list(points), properties=props)
    if kind is not ShapeKind.MARKER and not _is_number(shape.measurement):
        shape.refresh_measurement()
    return shape


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class PreviewShape:
    """Transient rendering of the points of an in-progress line or polygon.

    Never exported or persisted. ``style`` mirrors the dashed look of the
    drawing preview so a renderer can draw it without knowing the tool.
    """

    kind: ShapeKind
    points: list[LatLng]
    style: dict = field(default_factory=dict)


PREVIEW_STYLES = {
    ShapeKind.POLYLINE: {"color": "blue", "dashArray": "5,5", "weight": 2},
    ShapeKind.POLYGON: {"color": "green", "dashArray": "5,5", "fillOpacity": 0.2},
}
