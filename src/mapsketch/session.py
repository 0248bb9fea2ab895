"""Session — the explicitly owned state of one drawing surface.

Holds the committed shapes, the active tool, the in-progress point buffer,
the transient preview and a weak selection reference. Components receive
the Session they operate on; there is no module-level session.
"""

from __future__ import annotations

import weakref
from enum import Enum
from typing import TYPE_CHECKING, Iterator

from loguru import logger

from mapsketch import events
from mapsketch.events import EventBus
from mapsketch.shapes import LatLng, PreviewShape, Shape

if TYPE_CHECKING:
    from mapsketch.editor import FeatureEditor


class Tool(str, Enum):
    """Interaction mode governing how map clicks are interpreted."""
    NONE = "none"
    MARKER = "marker"
    LINE = "line"
    POLYGON = "polygon"
    DELETE = "delete"


class Session:
    """Mutable record of the map, its shapes and the drawing state."""

    def __init__(self, event_bus: EventBus | None = None) -> None:
        self.map_handle: object | None = None
        self.events = event_bus or EventBus()
        self.active_tool: Tool = Tool.NONE
        self.pending_points: list[LatLng] = []
        self.preview: PreviewShape | None = None
        self._shapes: dict[str, Shape] = {}
        self._selection: weakref.ref[Shape] | None = None
        # Popup state shared by every component working on this session
        self.editor: FeatureEditor | None = None

    # ------------------------------------------------------------------
    # Shape layer
    # ------------------------------------------------------------------

    def add_shape(self, shape: Shape) -> str:
        """Add a committed shape to the layer.

        Returns:
            The shape_id of the added shape.
        """
        self._shapes[shape.shape_id] = shape
        self.events.publish(events.SHAPE_ADDED, events.ShapeAdded(
            shape_id=shape.shape_id, kind=shape.kind.value,
        ))
        return shape.shape_id

    def remove_shape(self, shape_id: str) -> bool:
        """Remove a shape from the layer.

        Returns:
            True if the shape was removed, False if it didn't exist.
        """
        shape = self._shapes.pop(shape_id, None)
        if shape is None:
            return False
        if self.selection is shape:
            self._selection = None
        self.events.publish(events.SHAPE_REMOVED, events.ShapeRemoved(shape_id=shape_id))
        return True

    def get_shape(self, shape_id: str) -> Shape | None:
        return self._shapes.get(shape_id)

    def list_shapes(self) -> list[Shape]:
        """All committed shapes in insertion order."""
        return list(self._shapes.values())

    def clear_shapes(self) -> int:
        """Remove every shape. Returns how many were removed."""
        count = len(self._shapes)
        self._shapes.clear()
        self._selection = None
        self.events.publish(events.SHAPES_CLEARED, events.ShapesCleared(count=count))
        if count:
            logger.debug(f"Cleared {count} shapes from session")
        return count

    def __iter__(self) -> Iterator[Shape]:
        return iter(list(self._shapes.values()))

    def __len__(self) -> int:
        return len(self._shapes)

    def __contains__(self, shape: Shape) -> bool:
        return self._shapes.get(shape.shape_id) is shape

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @property
    def selection(self) -> Shape | None:
        """Most recently interacted shape, if it is still alive."""
        if self._selection is None:
            return None
        return self._selection()

    @selection.setter
    def selection(self, shape: Shape | None) -> None:
        self._selection = weakref.ref(shape) if shape is not None else None

    # ------------------------------------------------------------------
    # Tool and in-progress drawing
    # ------------------------------------------------------------------

    def set_tool(self, tool: Tool) -> None:
        if tool is self.active_tool:
            return
        self.active_tool = tool
        self.events.publish(events.TOOL_CHANGED, events.ToolChanged(tool=tool.value))

    def set_preview(self, preview: PreviewShape | None) -> None:
        """Replace the preview: the old one is removed before the new one is added."""
        if self.preview is not None:
            self.preview = None
            self.events.publish(events.PREVIEW_CHANGED, None)
        if preview is not None:
            self.preview = preview
            self.events.publish(events.PREVIEW_CHANGED, events.PreviewChanged(
                kind=preview.kind.value,
                points=[list(p) for p in preview.points],
            ))

    def reset_drawing(self, full: bool = True) -> None:
        """Drop the preview and the point buffer.

        Args:
            full: Also return the tool to NONE.
        """
        self.set_preview(None)
        self.pending_points = []
        if full:
            self.set_tool(Tool.NONE)
