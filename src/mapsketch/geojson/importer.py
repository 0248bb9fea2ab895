"""Import a GeoJSON FeatureCollection into a Session.

Import replaces the session contents: the shape layer is cleared first.
Individual malformed features are skipped with a warning; only a payload
that is not a FeatureCollection at all aborts the import.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from mapsketch.errors import GeoJSONFormatError
from mapsketch.session import Session
from mapsketch.shapes import MIN_POINTS, LatLng, Shape, ShapeKind, make_shape

if TYPE_CHECKING:
    from mapsketch.editor import FeatureEditor

_SHAPE_KINDS = {
    "Point": ShapeKind.MARKER,
    "LineString": ShapeKind.POLYLINE,
    "Polygon": ShapeKind.POLYGON,
}


@dataclass
class ImportResult:
    """Outcome of an import.

    Attributes:
        shapes: Shapes created, in feature order.
        skipped: Indexes of features that were malformed and ignored.
    """

    shapes: list[Shape] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)

    @property
    def imported(self) -> int:
        return len(self.shapes)


def import_geojson(
    session: Session,
    data: dict | str,
    editor: FeatureEditor | None = None,
) -> ImportResult:
    """Replace the session shapes with the features of a FeatureCollection.

    Args:
        session: Session to populate.
        data: FeatureCollection dict, or its JSON text.
        editor: When given, every imported shape gets a popup bound.

    Returns:
        ImportResult with the created shapes and skipped feature indexes.

    Raises:
        GeoJSONFormatError: If ``data`` is not a FeatureCollection.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise GeoJSONFormatError(f"Invalid GeoJSON text: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("features"), list):
        raise GeoJSONFormatError("Expected a FeatureCollection with a features list")
    if data.get("type", "FeatureCollection") != "FeatureCollection":
        raise GeoJSONFormatError(f"Expected a FeatureCollection, got {data.get('type')!r}")

    session.reset_drawing(full=False)
    if editor is not None:
        editor.unbind_all()
    session.clear_shapes()

    result = ImportResult()
    for idx, raw in enumerate(data["features"]):
        try:
            shape = feature_to_shape(raw)
        except (ValueError, TypeError, KeyError, IndexError) as e:
            logger.warning(f"Skipping GeoJSON feature {idx}: {e}")
            result.skipped.append(idx)
            continue

        session.add_shape(shape)
        if editor is not None:
            editor.bind(shape)
        result.shapes.append(shape)

    logger.info(
        f"Imported {result.imported} shapes"
        + (f", skipped {len(result.skipped)} malformed" if result.skipped else "")
    )
    return result


def feature_to_shape(raw: dict) -> Shape:
    """Build a Shape from one GeoJSON Feature dict.

    Raises:
        ValueError: If the feature has an unsupported geometry type or
            unusable coordinates.
    """
    if not isinstance(raw, dict):
        raise ValueError("feature is not an object")

    geometry = raw.get("geometry")
    if not isinstance(geometry, dict):
        raise ValueError("missing geometry")

    geom_type = geometry.get("type")
    kind = _SHAPE_KINDS.get(geom_type)
    if kind is None:
        raise ValueError(f"unsupported geometry type {geom_type!r}")

    coordinates = geometry.get("coordinates")
    if coordinates is None:
        raise ValueError("missing coordinates")

    if kind is ShapeKind.MARKER:
        points = [_position(coordinates)]
    elif kind is ShapeKind.POLYLINE:
        points = [_position(c) for c in coordinates]
    else:
        if not coordinates:
            raise ValueError("polygon has no rings")
        points = [_position(c) for c in coordinates[0]]
        # A closed ring ends with one copy of its first position
        if len(points) > 1 and points[0] == points[-1]:
            points.pop()

    if len(points) < MIN_POINTS[kind]:
        raise ValueError(f"{geom_type} needs at least {MIN_POINTS[kind]} positions")

    properties = raw.get("properties")
    if not isinstance(properties, dict):
        properties = {}
    shape = make_shape(kind, points, properties)
    shape.editable = kind is ShapeKind.POLYGON
    return shape


def _position(value) -> LatLng:
    """Convert a GeoJSON [lng, lat, ...] position to LatLng."""
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        raise ValueError(f"bad position {value!r}")
    lng, lat = value[0], value[1]
    if isinstance(lng, bool) or isinstance(lat, bool):
        raise ValueError(f"bad position {value!r}")
    return LatLng(float(lat), float(lng))
