"""Tests for DrawingEngine — tool state machine, previews, hit-testing, deletion, dragging."""

import pytest

from mapsketch import events
from mapsketch.drawing import DrawingEngine
from mapsketch.editor import FeatureEditor
from mapsketch.events import drain
from mapsketch.geometry import polygon_area
from mapsketch.session import Session, Tool
from mapsketch.shapes import LatLng, ShapeKind, make_shape

pytestmark = pytest.mark.unit

# ~11 m per 0.0001° of latitude
BASE = LatLng(55.75, 37.61)
NEAR = LatLng(55.7501, 37.61)
FAR = LatLng(55.7503, 37.61)

SQUARE = [
    LatLng(55.749, 37.609),
    LatLng(55.749, 37.611),
    LatLng(55.751, 37.611),
    LatLng(55.751, 37.609),
]


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def editor(session):
    return FeatureEditor(session)


@pytest.fixture
def engine(session, editor):
    return DrawingEngine(session, editor)


def _draw(engine, tool, points):
    engine.on_tool_selected(tool)
    for p in points:
        engine.on_map_click(p)


class TestMarkerTool:
    def test_click_commits_marker(self, engine, session, editor):
        engine.on_tool_selected(Tool.MARKER)
        marker = engine.on_map_click(BASE)
        assert marker.kind is ShapeKind.MARKER
        assert marker.points == [BASE]
        assert marker.name == "Marker"
        assert session.list_shapes() == [marker]

    def test_marker_popup_opens(self, engine, session, editor):
        engine.on_tool_selected(Tool.MARKER)
        marker = engine.on_map_click(BASE)
        assert editor.is_open(marker)
        assert session.selection is marker

    def test_tool_stays_active(self, engine, session):
        engine.on_tool_selected(Tool.MARKER)
        engine.on_map_click(BASE)
        engine.on_map_click(FAR)
        assert len(session) == 2
        assert session.active_tool is Tool.MARKER

    def test_accepts_plain_sequences(self, engine):
        engine.on_tool_selected("marker")
        marker = engine.on_map_click([55.75, 37.61])
        assert marker.points[0] == BASE


class TestLineAndPolygonTools:
    """Point buffering, previews and the minimum-points policy."""

    def test_points_buffered(self, engine, session):
        _draw(engine, Tool.LINE, [BASE, FAR])
        assert session.pending_points == [BASE, FAR]
        assert len(session) == 0

    def test_line_preview_from_two_points(self, engine, session):
        engine.on_tool_selected(Tool.LINE)
        engine.on_map_click(BASE)
        assert session.preview is None
        engine.on_map_click(FAR)
        assert session.preview.kind is ShapeKind.POLYLINE
        assert session.preview.points == [BASE, FAR]
        assert session.preview.style["dashArray"] == "5,5"

    def test_polygon_preview_from_three_points(self, engine, session):
        engine.on_tool_selected(Tool.POLYGON)
        engine.on_map_click(SQUARE[0])
        engine.on_map_click(SQUARE[1])
        assert session.preview is None
        engine.on_map_click(SQUARE[2])
        assert session.preview.kind is ShapeKind.POLYGON
        assert session.preview.style["color"] == "green"

    def test_finish_commits_line(self, engine, session, editor):
        _draw(engine, Tool.LINE, [BASE, FAR])
        line = engine.finish_drawing()
        assert line.kind is ShapeKind.POLYLINE
        assert line.name == "Line"
        assert line.measurement == pytest.approx(33.4, abs=0.2)
        assert editor.is_open(line)
        assert session.pending_points == []
        assert session.preview is None
        assert session.active_tool is Tool.LINE

    def test_finish_commits_editable_polygon(self, engine, session):
        _draw(engine, Tool.POLYGON, SQUARE)
        poly = engine.finish_drawing()
        assert poly.kind is ShapeKind.POLYGON
        assert poly.editable is True
        assert poly.measurement == pytest.approx(polygon_area(SQUARE))

    @pytest.mark.parametrize("tool,points,expected", [
        (Tool.LINE, [BASE], 0),
        (Tool.LINE, [BASE, FAR], 1),
        (Tool.POLYGON, SQUARE[:2], 0),
        (Tool.POLYGON, SQUARE[:3], 1),
    ])
    def test_minimum_points(self, engine, session, tool, points, expected):
        _draw(engine, tool, points)
        engine.finish_drawing()
        assert len(session) == expected
        assert session.pending_points == []

    def test_finish_with_empty_buffer(self, engine, session):
        engine.on_tool_selected(Tool.LINE)
        assert engine.finish_drawing() is None
        assert len(session) == 0


class TestToolSwitching:
    def test_switch_commits_valid_shape(self, engine, session):
        _draw(engine, Tool.LINE, [BASE, FAR])
        engine.on_tool_selected(Tool.MARKER)
        shapes = session.list_shapes()
        assert [s.kind for s in shapes] == [ShapeKind.POLYLINE]
        assert session.active_tool is Tool.MARKER
        assert session.pending_points == []

    def test_switch_discards_short_polygon(self, engine, session):
        _draw(engine, Tool.POLYGON, SQUARE[:2])
        engine.on_tool_selected(Tool.LINE)
        assert len(session) == 0
        assert session.pending_points == []
        assert session.preview is None

    def test_cancel_commits_and_returns_to_none(self, engine, session):
        _draw(engine, Tool.POLYGON, SQUARE[:3])
        poly = engine.on_cancel()
        assert poly is not None
        assert session.list_shapes() == [poly]
        assert session.active_tool is Tool.NONE

    def test_cancel_discards_degenerate(self, engine, session):
        _draw(engine, Tool.LINE, [BASE])
        assert engine.on_cancel() is None
        assert len(session) == 0
        assert session.active_tool is Tool.NONE

    def test_none_tool(self, engine, session):
        engine.on_tool_selected(None)
        assert session.active_tool is Tool.NONE

    def test_clear_all(self, engine, session, editor):
        _draw(engine, Tool.MARKER, [BASE, FAR])
        _draw(engine, Tool.LINE, [BASE])
        assert engine.clear_all() == 2
        assert len(session) == 0
        assert session.active_tool is Tool.NONE
        assert session.pending_points == []


class TestHitTesting:
    def test_marker_within_tolerance(self, engine):
        _draw(engine, Tool.MARKER, [BASE])
        assert engine.hit_test(NEAR) is not None
        assert engine.hit_test(FAR) is None

    def test_line_segment(self, engine):
        west = LatLng(55.75, 37.60)
        east = LatLng(55.75, 37.62)
        _draw(engine, Tool.LINE, [west, east])
        engine.finish_drawing()
        # Off the segment's middle by ~11 m, far from both vertices
        assert engine.hit_test(LatLng(55.7501, 37.61)) is not None
        assert engine.hit_test(LatLng(55.7503, 37.61)) is None

    def test_polygon_interior(self, engine):
        _draw(engine, Tool.POLYGON, SQUARE)
        engine.finish_drawing()
        assert engine.hit_test(BASE) is not None
        assert engine.hit_test(LatLng(55.76, 37.61)) is None

    def test_first_in_insertion_order(self, engine):
        _draw(engine, Tool.POLYGON, SQUARE)
        poly = engine.finish_drawing()
        marker = _add_marker(engine, BASE)
        assert engine.hit_test(BASE) is poly
        assert marker is not None

    def test_custom_tolerance(self, session):
        engine = DrawingEngine(session, hit_tolerance_m=40.0)
        _draw(engine, Tool.MARKER, [BASE])
        assert engine.hit_test(FAR) is not None


def _add_marker(engine, point):
    engine.on_tool_selected(Tool.MARKER)
    return engine.on_map_click(point)


class TestDeleteTool:
    def test_delete_removes_hit(self, engine, session):
        _draw(engine, Tool.MARKER, [BASE])
        engine.on_tool_selected(Tool.DELETE)
        removed = engine.on_map_click(NEAR)
        assert removed is not None
        assert len(session) == 0

    def test_miss_is_noop(self, engine, session):
        _draw(engine, Tool.MARKER, [BASE])
        engine.on_tool_selected(Tool.DELETE)
        assert engine.on_map_click(LatLng(55.76, 37.61)) is None
        assert len(session) == 1

    def test_overlap_removes_one_per_click(self, engine, session):
        """A marker inside a polygon: each click removes exactly one shape."""
        _draw(engine, Tool.POLYGON, SQUARE)
        poly = engine.finish_drawing()
        marker = _add_marker(engine, BASE)

        engine.on_tool_selected(Tool.DELETE)
        assert engine.on_map_click(BASE) is poly
        assert session.list_shapes() == [marker]
        assert engine.on_map_click(BASE) is marker
        assert len(session) == 0

    def test_delete_drops_popup(self, engine, session, editor):
        marker = _add_marker(engine, BASE)
        engine.on_tool_selected(Tool.DELETE)
        engine.on_map_click(BASE)
        assert not editor.is_bound(marker)
        assert session.selection is None


class TestSelection:
    def test_click_opens_popup(self, engine, session, editor):
        marker = _add_marker(engine, BASE)
        editor.close_popup(marker)
        engine.on_tool_selected(Tool.NONE)
        assert engine.on_map_click(NEAR) is marker
        assert editor.is_open(marker)
        assert session.selection is marker

    def test_click_on_nothing(self, engine):
        engine.on_tool_selected(Tool.NONE)
        assert engine.on_map_click(BASE) is None


class TestDragging:
    def test_drag_marker(self, engine, session):
        marker = _add_marker(engine, BASE)
        q = session.events.subscribe(events.SHAPE_CHANGED)
        engine.drag_marker(marker, FAR)
        assert marker.points == [FAR]
        assert drain(q)[0]["data"]["shape_id"] == marker.shape_id

    def test_drag_vertex_recomputes_area(self, engine, editor):
        _draw(engine, Tool.POLYGON, SQUARE)
        poly = engine.finish_drawing()
        before = poly.measurement
        area = engine.drag_vertex(poly, 2, LatLng(55.752, 37.612))
        assert area > before
        assert poly.properties["area"] == area
        assert editor.get_editable_fields(poly).measurement == area

    def test_drag_vertex_ignored_for_lines(self, engine):
        _draw(engine, Tool.LINE, [BASE, FAR])
        line = engine.finish_drawing()
        assert engine.drag_vertex(line, 0, NEAR) is None
        assert line.points[0] == BASE

    def test_drag_vertex_out_of_range(self, engine):
        _draw(engine, Tool.POLYGON, SQUARE)
        poly = engine.finish_drawing()
        assert engine.drag_vertex(poly, 4, BASE) is None

    def test_drag_detached_shape(self, engine):
        poly = make_shape(ShapeKind.POLYGON, list(SQUARE))
        poly.editable = True
        assert engine.drag_vertex(poly, 0, BASE) is None
