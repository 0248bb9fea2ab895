"""GeoJSON (RFC 7946) codec for session shapes.

Shapes hold (lat, lng); GeoJSON positions are [lng, lat]. Export and import
swap the order and nothing else.
"""

from mapsketch.geojson.exporter import export_geojson, shape_to_feature
from mapsketch.geojson.importer import ImportResult, feature_to_shape, import_geojson

__all__ = [
    "ImportResult",
    "export_geojson",
    "feature_to_shape",
    "import_geojson",
    "shape_to_feature",
]
