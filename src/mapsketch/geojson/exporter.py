"""Export session shapes to a GeoJSON FeatureCollection dict."""

from __future__ import annotations

from typing import Iterable

from mapsketch.session import Session
from mapsketch.shapes import DEFAULT_NAMES, Shape, ShapeKind

_GEOMETRY_TYPES = {
    ShapeKind.MARKER: "Point",
    ShapeKind.POLYLINE: "LineString",
    ShapeKind.POLYGON: "Polygon",
}


def export_geojson(session: Session | Iterable[Shape]) -> dict:
    """Export committed shapes to a GeoJSON FeatureCollection dict.

    Args:
        session: A Session, or any iterable of shapes.

    Returns:
        Dict representing a GeoJSON FeatureCollection, one Feature per shape
        in insertion order.
    """
    return {
        "type": "FeatureCollection",
        "features": [shape_to_feature(shape) for shape in session],
    }


def shape_to_feature(shape: Shape) -> dict:
    """Convert a Shape to a GeoJSON Feature dict."""
    positions = [[p.lng, p.lat] for p in shape.points]
    if shape.kind is ShapeKind.MARKER:
        coordinates = positions[0]
    elif shape.kind is ShapeKind.POLYLINE:
        coordinates = positions
    elif shape.kind is ShapeKind.POLYGON:
        # Single outer ring in drawn order, closed by repeating the first position
        coordinates = [positions + [positions[0]]]
    else:
        raise ValueError(f"Unknown shape kind: {shape.kind}")

    return {
        "type": "Feature",
        "geometry": {
            "type": _GEOMETRY_TYPES[shape.kind],
            "coordinates": coordinates,
        },
        "properties": _properties(shape),
    }


def _properties(shape: Shape) -> dict:
    if shape.properties:
        return dict(shape.properties)

    props = {"name": DEFAULT_NAMES[shape.kind]}
    if shape.kind is ShapeKind.POLYLINE:
        props["length"] = shape.compute_measurement()
    elif shape.kind is ShapeKind.POLYGON:
        props["area"] = shape.compute_measurement()
    return props
