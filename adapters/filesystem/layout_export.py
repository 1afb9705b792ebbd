from __future__ import annotations

from pathlib import Path
from typing import Any

from adapters.filesystem.document_repository import lock_for
from adapters.filesystem.json_utils import write_json_file
from domain.models import LayoutResult
from domain.ports.repositories import LayoutExporter
from domain.scene_graph import SceneGraph


def layout_payload(graph: SceneGraph, layout: LayoutResult) -> dict[str, Any]:
    nodes = []
    for node_id in graph.walk():
        if node_id not in layout:
            continue
        bounds = layout[node_id]
        parent = graph.parent_of(node_id)
        entry: dict[str, Any] = {
            "id": graph.name(node_id),
            "kind": graph.nodes[node_id].kind,
            "parent": None if parent == graph.root else graph.name(parent),
            "x": bounds.x,
            "y": bounds.y,
            "width": bounds.width,
            "height": bounds.height,
        }
        flag = layout.flagged.get(node_id)
        if flag is not None:
            entry["flag"] = flag
        nodes.append(entry)
    return {
        "viewport": {"width": layout.viewport.width, "height": layout.viewport.height},
        "nodes": nodes,
    }


class FileSystemLayoutExporter(LayoutExporter):
    def export(self, graph: SceneGraph, layout: LayoutResult, path: Path) -> None:
        with lock_for(path):
            write_json_file(path, layout_payload(graph, layout))
