from __future__ import annotations

from domain.services.parse_document import parse_document
from tests.helpers.scene_fixtures import load_scene


def test_constraint_targets_map_relative_constraints() -> None:
    graph = load_scene("cycle.fd")

    targets = {
        graph.name(node_id): graph.name(target)
        for node_id, target in graph.constraint_targets().items()
    }

    assert targets == {"a": "b", "b": "a", "d": "a"}


def test_canvas_and_absolute_constraints_have_no_target() -> None:
    graph = parse_document("rect @a {\n  x: 1 y: 2\n}\nrect @b\n\n@b -> center_in: canvas\n")

    assert graph.constraint_targets() == {}


def test_edge_endpoints_follow_document_order() -> None:
    graph = load_scene("dashboard.fd")

    endpoints = graph.edge_endpoints()

    assert list(endpoints) == [graph.require("flow")]
    assert endpoints[graph.require("flow")] == (graph.require("dashboard"), graph.require("badge"))


def test_edge_endpoints_keep_missing_ends() -> None:
    graph = parse_document("rect @a\nedge @e {\n  from: @a\n}\n")

    assert graph.edge_endpoints() == {graph.require("e"): (graph.require("a"), None)}


def test_top_most_drops_descendants_of_selected_nodes() -> None:
    graph = load_scene("dashboard.fd")
    card, dashboard, badge = (graph.require(name) for name in ("card", "dashboard", "badge"))

    assert graph.top_most([card, dashboard, badge, card]) == [dashboard, badge]
