"""Map sketching core — drawing state machine, measurements and GeoJSON persistence.

Typical wiring:

    session = Session()
    engine = DrawingEngine(session)
    bridge = PersistenceBridge(session, FileApiClient.from_settings())

Both share the session's FeatureEditor (``session.editor``), so shapes
loaded by the bridge get the same popups the engine opens.
"""

from mapsketch.client import FileApiClient
from mapsketch.drawing import DrawingEngine
from mapsketch.editor import EditableFields, FeatureEditor, Unit
from mapsketch.persistence import PersistenceBridge, SaveOutcome
from mapsketch.session import Session, Tool
from mapsketch.shapes import LatLng, Shape, ShapeKind

__all__ = [
    "DrawingEngine",
    "EditableFields",
    "FeatureEditor",
    "FileApiClient",
    "LatLng",
    "PersistenceBridge",
    "SaveOutcome",
    "Session",
    "Shape",
    "ShapeKind",
    "Tool",
    "Unit",
]
