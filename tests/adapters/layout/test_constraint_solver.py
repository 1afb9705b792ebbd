from __future__ import annotations

import pytest

from adapters.layout.constraint_solver import ConstraintLayoutEngine, LayoutConfig
from domain.models import ResolvedBounds, Size
from domain.scene_graph import SceneGraph
from domain.services.parse_document import parse_document
from tests.helpers.scene_fixtures import load_scene


def _bounds(graph: SceneGraph, engine: ConstraintLayoutEngine | None = None) -> dict[str, tuple]:
    result = (engine or ConstraintLayoutEngine()).resolve(graph)
    return {
        graph.name(node_id): result[node_id].as_tuple()
        for node_id in graph.walk()
        if node_id in result
    }


def test_auto_sized_group_wraps_offset_children() -> None:
    graph = parse_document(
        "group @g { rect @c1{w:10 h:10} rect @c2{w:5 h:5} }\n@c2 -> offset: @c1, 20, 20\n"
    )

    bounds = _bounds(graph)

    assert bounds["g"] == (0, 0, 25, 25)
    assert bounds["c1"] == (0, 0, 10, 10)
    assert bounds["c2"] == (20, 20, 5, 5)


def test_center_in_canvas() -> None:
    graph = parse_document("rect @a { w:100 h:50 }\n@a -> center_in: canvas\n")
    engine = ConstraintLayoutEngine(LayoutConfig(viewport=Size(400, 300)))

    assert _bounds(graph, engine)["a"] == (150, 125, 100, 50)


def test_dashboard_layout() -> None:
    graph = load_scene("dashboard.fd")

    bounds = _bounds(graph)

    assert bounds["dashboard"] == (0, 0, 368, 208)
    assert bounds["title"] == pytest.approx((24, 24, 115.2, 24))
    assert bounds["card"] == (24, 64, 320, 120)
    assert bounds["badge"] == (304, 54, 40, 20)
    assert bounds["flow"] == (184, 64, 140, 40)
    assert "card_base" not in bounds


def test_column_layout_in_frame() -> None:
    graph = load_scene("login.fd")

    bounds = _bounds(graph)

    assert bounds["screen"] == (0, 0, 360, 640)
    assert bounds["heading"] == pytest.approx((32, 32, 144, 20))
    assert bounds["email"] == (32, 64, 296, 44)
    assert bounds["password"] == (32, 120, 296, 44)
    assert bounds["submit"] == (32, 176, 296, 48)
    assert bounds["modal"] == (300, 240, 200, 120)


def test_row_and_grid_layouts() -> None:
    graph = parse_document(
        "group @row {\n"
        "  layout: row gap=10 pad=5\n"
        "  rect @a { w: 10 h: 10 }\n"
        "  rect @b { w: 20 h: 30 }\n"
        "}\n"
        "group @grid {\n"
        "  x: 100 y: 0\n"
        "  layout: grid cols=2 gap=0 pad=0\n"
        "  rect @g1 { w: 10 h: 10 }\n"
        "  rect @g2 { w: 10 h: 10 }\n"
        "  rect @g3 { w: 10 h: 10 }\n"
        "}\n"
    )

    bounds = _bounds(graph)

    assert bounds["row"] == (0, 0, 50, 40)
    assert bounds["a"] == (5, 5, 10, 10)
    assert bounds["b"] == (25, 5, 20, 30)
    assert bounds["grid"] == (100, 0, 20, 20)
    assert bounds["g3"] == (100, 10, 10, 10)


def test_fill_parent_uses_container_bounds() -> None:
    graph = parse_document(
        "frame @f {\n  x: 10 y: 10\n  w: 200 h: 100\n  rect @inner\n}\nrect @cover\n"
        "@inner -> fill_parent: 10\n@cover -> fill_parent: 0\n"
    )
    engine = ConstraintLayoutEngine(LayoutConfig(viewport=Size(400, 300)))

    bounds = _bounds(graph, engine)

    assert bounds["inner"] == (20, 20, 180, 80)
    assert bounds["cover"] == (0, 0, 400, 300)


def test_text_is_measured_from_effective_font() -> None:
    graph = parse_document('style big {\n  font: "Inter" regular 20\n}\ntext @t "abcd" {\n  use: big\n}\ntext @plain "ab"\n')

    bounds = _bounds(graph)

    assert bounds["t"] == pytest.approx((0, 0, 48, 20))
    assert bounds["plain"] == pytest.approx((0, 0, 16.8, 14))


def test_cycle_is_contained_and_flagged() -> None:
    graph = load_scene("cycle.fd")

    result = ConstraintLayoutEngine().resolve(graph)
    named = {graph.name(node_id): flag for node_id, flag in result.flagged.items()}

    assert named == {"a": "cycle", "b": "cycle"}
    assert result[graph.require("a")].as_tuple() == (0, 0, 10, 10)
    assert result[graph.require("b")].as_tuple() == (0, 0, 20, 20)
    assert result[graph.require("c")].as_tuple() == (5, 5, 30, 30)
    assert result[graph.require("d")].as_tuple() == (3, 3, 4, 4)


def test_cycle_does_not_disturb_siblings() -> None:
    with_cycle = load_scene("cycle.fd")
    without_cycle = parse_document("rect @c {\n  x: 5 y: 5\n  w: 30 h: 30\n}\n")

    assert _bounds(with_cycle)["c"] == _bounds(without_cycle)["c"]


def test_resolution_is_deterministic() -> None:
    graph = load_scene("cycle.fd")
    engine = ConstraintLayoutEngine()

    first = engine.resolve(graph)
    second = engine.resolve(graph)

    assert dict(first) == dict(second)
    assert list(first.flagged) == list(second.flagged)


def test_unresolved_targets_are_flagged() -> None:
    graph = parse_document(
        "group @g {\n  x: 50 y: 50\n  rect @r { w: 10 h: 10 }\n}\nrect @a\n"
        "edge @e {\n  from: @a\n}\n@r -> center_in: @ghost\n"
    )

    result = ConstraintLayoutEngine().resolve(graph)

    assert result.flagged[graph.require("r")] == "unresolved_reference"
    assert result[graph.require("r")].as_tuple() == (50, 50, 10, 10)
    assert result.flagged[graph.require("e")] == "unresolved_reference"
    assert result[graph.require("e")].width == 0


def test_resolve_writes_bounds_back_to_nodes() -> None:
    graph = load_scene("dashboard.fd")

    result = ConstraintLayoutEngine().resolve(graph)

    card = graph.node("card")
    assert card.bounds == result[card.id]
    assert card.origin == result.origin_of(card.id)
    assert result[graph.root] == ResolvedBounds(0, 0, 800, 600)


def test_scoped_resolve_matches_full_resolve() -> None:
    graph = load_scene("dashboard.fd")
    engine = ConstraintLayoutEngine()
    previous = engine.resolve(graph)
    card = graph.node("card")
    card.shape = type(card.shape)(width=400, height=150)

    scoped = engine.resolve(graph, scope=[card.id], previous=previous)
    full = engine.resolve(graph)

    assert dict(scoped) == dict(full)
    assert scoped[graph.require("badge")].as_tuple() == (304, 54, 40, 20)
    assert scoped[graph.require("dashboard")].as_tuple() == (0, 0, 448, 238)


def test_scope_naming_a_removed_node_falls_back_to_full_resolve() -> None:
    graph = load_scene("dashboard.fd")
    engine = ConstraintLayoutEngine()
    previous = engine.resolve(graph)
    badge = graph.require("badge")
    graph.detach(badge)

    result = engine.resolve(graph, scope=[badge], previous=previous)

    assert badge not in result
    assert result.flagged == {graph.require("flow"): "unresolved_reference"}
    assert result[graph.require("card")].as_tuple() == (24, 64, 320, 120)
