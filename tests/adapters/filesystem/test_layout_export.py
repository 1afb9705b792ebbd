from __future__ import annotations

from pathlib import Path

from adapters.filesystem.json_utils import read_json_object
from adapters.filesystem.layout_export import FileSystemLayoutExporter, layout_payload
from adapters.layout.constraint_solver import ConstraintLayoutEngine
from tests.helpers.scene_fixtures import load_scene


def test_layout_payload_lists_positioned_nodes() -> None:
    graph = load_scene("cycle.fd")
    result = ConstraintLayoutEngine().resolve(graph)

    payload = layout_payload(graph, result)

    assert payload["viewport"] == {"width": 800, "height": 600}
    assert [item["id"] for item in payload["nodes"]] == ["a", "b", "c", "d"]
    assert payload["nodes"][0] == {
        "id": "a",
        "kind": "rect",
        "parent": None,
        "x": 0.0,
        "y": 0.0,
        "width": 10.0,
        "height": 10.0,
        "flag": "cycle",
    }
    assert "flag" not in payload["nodes"][2]


def test_export_writes_json(tmp_path: Path) -> None:
    graph = load_scene("dashboard.fd")
    result = ConstraintLayoutEngine().resolve(graph)
    target = tmp_path / "out" / "layout.json"

    FileSystemLayoutExporter().export(graph, result, target)

    payload = read_json_object(target)
    nodes = {item["id"]: item for item in payload["nodes"]}
    assert nodes["card"]["parent"] == "dashboard"
    assert (nodes["badge"]["x"], nodes["badge"]["y"]) == (304, 54)
    assert "card_base" not in nodes
