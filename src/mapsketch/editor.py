"""Feature editor — the data side of per-shape popups.

Rendering belongs to the adapter; this module keeps what a popup shows
(name, measurement, chosen unit) and applies the edits a user makes.
Unit choice is display-only: stored measurements are always meters / m².
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger

from mapsketch import events
from mapsketch.session import Session
from mapsketch.shapes import LatLng, Shape, ShapeKind


class Unit(str, Enum):
    """Display unit for lengths (m/km) and areas (m²/km²)."""
    METERS = "meters"
    KILOMETERS = "kilometers"


@dataclass
class EditableFields:
    """What a shape's popup shows and accepts.

    Attributes:
        name: Current (or edited) shape name.
        measurement: Length in m or area in m²; None for markers.
        unit: Display unit; None for markers.
        display: Formatted measurement text, e.g. "1.25 km".
    """

    name: str
    measurement: float | None = None
    unit: Unit | None = None
    display: str | None = None


@dataclass
class VertexHandle:
    """A draggable handle on one polygon vertex."""

    shape_id: str
    index: int
    position: LatLng


@dataclass
class _Popup:
    unit: Unit = Unit.METERS
    is_open: bool = False


def format_measurement(kind: ShapeKind, value: float, unit: Unit) -> str:
    """Format a stored measurement for display in the chosen unit."""
    if kind is ShapeKind.POLYLINE:
        if unit is Unit.KILOMETERS:
            return f"{value / 1000:.2f} km"
        return f"{value:.2f} m"
    if kind is ShapeKind.POLYGON:
        if unit is Unit.KILOMETERS:
            return f"{value / 1_000_000:.2f} km²"
        return f"{value:.2f} m²"
    raise ValueError(f"Markers have no measurement: {kind}")


class FeatureEditor:
    """Tracks popup state for each shape of a session."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self._popups: dict[str, _Popup] = {}
        if session.editor is None:
            session.editor = self

    @classmethod
    def for_session(cls, session: Session) -> FeatureEditor:
        """The editor registered on ``session``, created on first use."""
        return session.editor or cls(session)

    def bind(self, shape: Shape) -> None:
        """Attach a popup to a shape. Rebinding keeps the current unit."""
        self._popups.setdefault(shape.shape_id, _Popup())

    def unbind(self, shape_id: str) -> None:
        self._popups.pop(shape_id, None)

    def unbind_all(self) -> None:
        self._popups.clear()

    def is_bound(self, shape: Shape) -> bool:
        return shape.shape_id in self._popups

    def is_open(self, shape: Shape) -> bool:
        popup = self._popups.get(shape.shape_id)
        return popup is not None and popup.is_open

    def get_editable_fields(self, shape: Shape) -> EditableFields:
        """Current popup contents for ``shape``."""
        if shape.kind is ShapeKind.MARKER:
            return EditableFields(name=shape.name)

        popup = self._popups.get(shape.shape_id) or _Popup()
        value = shape.measurement
        if value is None:
            value = shape.compute_measurement()
        return EditableFields(
            name=shape.name,
            measurement=value,
            unit=popup.unit,
            display=format_measurement(shape.kind, value, popup.unit),
        )

    def open_popup(self, shape: Shape) -> EditableFields:
        """Open the popup of ``shape`` and make it the session selection."""
        self.bind(shape)
        self._popups[shape.shape_id].is_open = True
        self.session.selection = shape
        fields = self.get_editable_fields(shape)
        self.session.events.publish(events.POPUP_OPENED, events.PopupOpened(
            shape_id=shape.shape_id, name=fields.name, display=fields.display,
        ))
        return fields

    def close_popup(self, shape: Shape) -> None:
        popup = self._popups.get(shape.shape_id)
        if popup is None or not popup.is_open:
            return
        popup.is_open = False
        self.session.events.publish(events.POPUP_CLOSED, events.PopupClosed(shape_id=shape.shape_id))

    def apply_edit(self, shape: Shape, fields: EditableFields) -> bool:
        """Apply popup edits to a shape.

        The name is trimmed and written to ``shape.properties["name"]``, and
        the popup closes. An empty or whitespace-only name is rejected: the
        shape is untouched and the popup stays open. A changed unit is
        applied to the display either way.

        Returns:
            True if the name was saved.
        """
        if fields.unit is not None and shape.kind is not ShapeKind.MARKER:
            self.set_unit(shape, fields.unit)

        new_name = (fields.name or "").strip()
        if not new_name:
            logger.debug(f"Rejected empty name for {shape.shape_id}")
            return False

        shape.properties["name"] = new_name
        logger.info(f"Renamed {shape.kind.value} {shape.shape_id} to '{new_name}'")
        self.close_popup(shape)
        return True

    def set_unit(self, shape: Shape, unit: Unit) -> EditableFields:
        """Switch the display unit of a line or polygon popup."""
        self.bind(shape)
        self._popups[shape.shape_id].unit = Unit(unit)
        return self.get_editable_fields(shape)

    def toggle_unit(self, shape: Shape) -> EditableFields:
        """Flip between meters and kilometers."""
        self.bind(shape)
        current = self._popups[shape.shape_id].unit
        nxt = Unit.KILOMETERS if current is Unit.METERS else Unit.METERS
        return self.set_unit(shape, nxt)

    def refresh(self, shape: Shape) -> EditableFields | None:
        """Re-read a shape after its geometry changed.

        Publishes the new display text when the popup is open so the
        renderer can update it live. Returns the fields, or None if the
        popup is closed.
        """
        if not self.is_open(shape):
            return None
        fields = self.get_editable_fields(shape)
        self.session.events.publish(events.POPUP_OPENED, events.PopupOpened(
            shape_id=shape.shape_id, name=fields.name, display=fields.display,
        ))
        return fields

    def vertex_handles(self, shape: Shape) -> list[VertexHandle]:
        """One handle per vertex of an editable polygon; empty otherwise."""
        if shape.kind is not ShapeKind.POLYGON or not shape.editable:
            return []
        return [
            VertexHandle(shape_id=shape.shape_id, index=i, position=p)
            for i, p in enumerate(shape.points)
        ]
