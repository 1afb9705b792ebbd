from __future__ import annotations

from domain.ids import NodeId
from domain.models import Accept, Annotation, Description, EdgeShape, Priority, Status, Tag
from domain.scene_graph import SceneGraph


def _annotation_lines(annotations: list[Annotation], prefix: str = "") -> list[str]:
    lines: list[str] = []
    for annotation in annotations:
        if isinstance(annotation, Description):
            lines.append(f"{prefix}> {annotation.text}")
        elif isinstance(annotation, Accept):
            lines.append(f"{prefix}- [ ] {annotation.text}")
        elif isinstance(annotation, Status):
            lines.append(f"{prefix}- **Status:** {annotation.value}")
        elif isinstance(annotation, Priority):
            lines.append(f"{prefix}- **Priority:** {annotation.value}")
        elif isinstance(annotation, Tag):
            lines.append(f"{prefix}- **Tags:** {', '.join(annotation.names)}")
    return lines


def _has_annotations(graph: SceneGraph, node_id: NodeId) -> bool:
    if graph.nodes[node_id].annotations:
        return True
    return any(graph.nodes[child].annotations for child in graph.walk(node_id))


def emit_spec_markdown(graph: SceneGraph, title: str) -> str:
    lines = [f"# Spec: {title}", ""]

    def visit(node_id: NodeId, level: int) -> None:
        node = graph.nodes[node_id]
        if node.kind == "edge" or not _has_annotations(graph, node_id):
            return
        lines.append(f"{'#' * min(level, 6)} @{graph.name(node_id)} `{node.kind}`")
        lines.append("")
        if node.annotations:
            lines.extend(_annotation_lines(node.annotations))
            lines.append("")
        for child in graph.children_of(node_id):
            visit(child, level + 1)

    for child in graph.children_of(graph.root):
        visit(child, 2)

    endpoints = graph.edge_endpoints()
    if endpoints:
        lines.extend(["---", "", "## Flows", ""])
        for edge_id, (source_id, target_id) in endpoints.items():
            edge = graph.nodes[edge_id]
            source = f"@{graph.name(source_id)}" if source_id is not None else "?"
            target = f"@{graph.name(target_id)}" if target_id is not None else "?"
            entry = f"- **{source}** → **{target}**"
            if isinstance(edge.shape, EdgeShape) and edge.shape.label:
                entry += f": {edge.shape.label}"
            lines.append(entry)
            lines.extend(_annotation_lines(edge.annotations, prefix="  "))
        lines.append("")
    return "\n".join(lines).rstrip("\n") + "\n"
