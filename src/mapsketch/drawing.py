"""Drawing engine — the tool state machine over a Session.

An adapter translates platform input into three calls:

    on_tool_selected(tool)  toolbar button
    on_map_click(coord)     click on the map surface
    on_cancel()             Escape key

Tool states:
    NONE     click hit-tests and opens the popup of the first match
    MARKER   click commits a marker immediately
    LINE     click buffers a point; preview from 2 points
    POLYGON  click buffers a point; preview from 3 points
    DELETE   click hit-tests and removes the first match

Switching tools force-commits a valid in-progress line/polygon first.
Degenerate input (too few points) is discarded silently.
"""

from __future__ import annotations

from loguru import logger

from mapsketch import events
from mapsketch.config import settings
from mapsketch.editor import FeatureEditor
from mapsketch.geometry import (
    bounds,
    bounds_contains,
    distance,
    point_in_ring,
    point_to_segment_distance,
)
from mapsketch.session import Session, Tool
from mapsketch.shapes import (
    MIN_POINTS,
    PREVIEW_STYLES,
    LatLng,
    PreviewShape,
    Shape,
    ShapeKind,
    make_shape,
)


_TOOL_KINDS = {
    Tool.LINE: ShapeKind.POLYLINE,
    Tool.POLYGON: ShapeKind.POLYGON,
}


class DrawingEngine:
    """Interprets map input according to the session's active tool."""

    def __init__(
        self,
        session: Session,
        editor: FeatureEditor | None = None,
        hit_tolerance_m: float | None = None,
    ) -> None:
        self.session = session
        self.editor = editor or FeatureEditor.for_session(session)
        if hit_tolerance_m is None:
            hit_tolerance_m = settings.hit_tolerance_m
        self.hit_tolerance_m = hit_tolerance_m

    # ------------------------------------------------------------------
    # Input entry points
    # ------------------------------------------------------------------

    def on_tool_selected(self, tool: Tool | str | None) -> None:
        """Switch tools, committing whatever was being drawn."""
        tool = Tool(tool) if tool else Tool.NONE
        self.finish_drawing()
        self.session.reset_drawing(full=False)
        self.session.set_tool(tool)

    def on_map_click(self, coord) -> Shape | None:
        """Handle a click on the map.

        Returns:
            MARKER: the new marker.
            DELETE: the removed shape, if any.
            NONE: the shape whose popup was opened, if any.
            LINE/POLYGON: None (the point is buffered).
        """
        point = LatLng(float(coord[0]), float(coord[1]))
        tool = self.session.active_tool

        if tool is Tool.MARKER:
            return self.add_marker(point)
        if tool is Tool.LINE or tool is Tool.POLYGON:
            self.add_point(point)
            return None
        if tool is Tool.DELETE:
            return self.delete_at(point)
        return self.select_at(point)

    def on_cancel(self) -> Shape | None:
        """Commit any valid in-progress shape, then return to NONE."""
        shape = self.finish_drawing()
        self.session.reset_drawing(full=True)
        return shape

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def add_marker(self, point: LatLng) -> Shape:
        """Commit a marker at ``point`` and open its name popup."""
        marker = make_shape(ShapeKind.MARKER, [point])
        self._commit(marker)
        self.editor.open_popup(marker)
        return marker

    def add_point(self, point: LatLng) -> None:
        """Buffer a point of the line/polygon being drawn and rebuild the preview."""
        kind = _TOOL_KINDS.get(self.session.active_tool)
        if kind is None:
            return

        self.session.pending_points.append(point)
        preview = None
        if len(self.session.pending_points) >= MIN_POINTS[kind]:
            preview = PreviewShape(
                kind=kind,
                points=list(self.session.pending_points),
                style=dict(PREVIEW_STYLES[kind]),
            )
        self.session.set_preview(preview)

    def finish_drawing(self) -> Shape | None:
        """Commit the buffered points as a line or polygon.

        Too few points for the active tool are discarded without error.
        The buffer and preview are cleared either way; the tool is kept.

        Returns:
            The committed shape, or None.
        """
        points = list(self.session.pending_points)
        if not points:
            return None

        kind = _TOOL_KINDS.get(self.session.active_tool)
        shape = None
        if kind is not None and len(points) >= MIN_POINTS[kind]:
            shape = make_shape(kind, points)
            if kind is ShapeKind.POLYGON:
                shape.editable = True
            self._commit(shape)
            self.editor.open_popup(shape)
        else:
            logger.debug(
                f"Discarded {len(points)} buffered points for tool "
                f"{self.session.active_tool.value}"
            )

        self.session.reset_drawing(full=False)
        return shape

    def clear_all(self) -> int:
        """Remove every shape and return to NONE. Returns the number removed."""
        self.session.reset_drawing(full=True)
        self.editor.unbind_all()
        return self.session.clear_shapes()

    def _commit(self, shape: Shape) -> None:
        self.session.add_shape(shape)
        self.editor.bind(shape)
        measurement = shape.measurement
        if measurement is None:
            logger.info(f"Committed {shape.kind.value} {shape.shape_id}")
        else:
            logger.info(
                f"Committed {shape.kind.value} {shape.shape_id} "
                f"({measurement:.2f}, {len(shape.points)} points)"
            )

    # ------------------------------------------------------------------
    # Hit-testing, selection and deletion
    # ------------------------------------------------------------------

    def hit_test(self, coord) -> Shape | None:
        """First committed shape (insertion order) under ``coord``, or None."""
        point = LatLng(float(coord[0]), float(coord[1]))
        for shape in self.session:
            if self._hits(shape, point):
                return shape
        return None

    def _hits(self, shape: Shape, point: LatLng) -> bool:
        if shape.kind is ShapeKind.MARKER:
            return distance(shape.points[0], point) < self.hit_tolerance_m
        if shape.kind is ShapeKind.POLYLINE:
            pts = shape.points
            return any(
                point_to_segment_distance(point, pts[i], pts[i + 1]) < self.hit_tolerance_m
                for i in range(len(pts) - 1)
            )
        if shape.kind is ShapeKind.POLYGON:
            if not bounds_contains(bounds(shape.points), point):
                return False
            return point_in_ring(point, shape.points)
        raise ValueError(f"Unknown shape kind: {shape.kind}")

    def delete_at(self, coord) -> Shape | None:
        """Remove the first shape under ``coord``. No match is a no-op."""
        shape = self.hit_test(coord)
        if shape is None:
            return None
        self.remove(shape)
        return shape

    def remove(self, shape: Shape) -> bool:
        """Remove a shape and drop its popup state."""
        self.editor.close_popup(shape)
        self.editor.unbind(shape.shape_id)
        removed = self.session.remove_shape(shape.shape_id)
        if removed:
            logger.info(f"Removed {shape.kind.value} {shape.shape_id}")
        return removed

    def select_at(self, coord) -> Shape | None:
        """Open the popup of the first shape under ``coord``."""
        shape = self.hit_test(coord)
        if shape is not None:
            self.editor.open_popup(shape)
        return shape

    # ------------------------------------------------------------------
    # Direct manipulation
    # ------------------------------------------------------------------

    def drag_marker(self, shape: Shape, coord) -> None:
        """Move a marker. Changes stay local until the next explicit save."""
        if shape.kind is not ShapeKind.MARKER or shape not in self.session:
            return
        shape.points[0] = LatLng(float(coord[0]), float(coord[1]))
        self.session.events.publish(events.SHAPE_CHANGED, events.ShapeChanged(
            shape_id=shape.shape_id, measurement=None,
        ))

    def drag_vertex(self, shape: Shape, index: int, coord) -> float | None:
        """Move one vertex of an editable polygon and recompute its area live.

        Returns:
            The new area in m², or None if the drag does not apply.
        """
        if (
            shape.kind is not ShapeKind.POLYGON
            or not shape.editable
            or shape not in self.session
            or not 0 <= index < len(shape.points)
        ):
            return None

        shape.points[index] = LatLng(float(coord[0]), float(coord[1]))
        area = shape.refresh_measurement()
        self.session.events.publish(events.SHAPE_CHANGED, events.ShapeChanged(
            shape_id=shape.shape_id, measurement=area,
        ))
        self.editor.refresh(shape)
        return area
