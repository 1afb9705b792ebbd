from __future__ import annotations

import logging
from dataclasses import dataclass

from domain.ids import NodeId
from domain.models import Node, Style, StyleShape
from domain.scene_graph import SceneGraph
from domain.services.emit_document import emit_document
from domain.services.parse_document import parse_document

logger = logging.getLogger(__name__)

HOISTED_STYLE_PREFIX = "_auto_"


@dataclass(frozen=True)
class FormatConfig:
    dedup_use: bool = True
    # Adds style blocks and rewrites nodes, so it is opt-in.
    hoist_styles: bool = False


def dedup_use_styles(graph: SceneGraph) -> int:
    removed = 0
    for node_id in graph.walk():
        node = graph.nodes[node_id]
        # Later entries win when styles merge, so the last occurrence is the one that counts.
        kept: list[NodeId] = []
        for ref in reversed(node.use_styles):
            if ref not in kept:
                kept.append(ref)
        kept.reverse()
        removed += len(node.use_styles) - len(kept)
        node.use_styles = kept
    if removed:
        logger.debug("Removed %d duplicate use: reference(s)", removed)
    return removed


def _style_name(graph: SceneGraph, counter: int) -> tuple[str, int]:
    while True:
        counter += 1
        name = f"{HOISTED_STYLE_PREFIX}{counter}"
        if name not in graph.interner:
            return name, counter


def hoist_styles(graph: SceneGraph) -> list[NodeId]:
    shared: dict[Style, list[NodeId]] = {}
    for node_id in graph.walk():
        node = graph.nodes[node_id]
        if node.kind in ("style", "edge") or node.style == Style():
            continue
        shared.setdefault(node.style, []).append(node_id)

    root_children = graph.children_of(graph.root)
    index = 0
    while index < len(root_children) and graph.nodes[root_children[index]].kind == "style":
        index += 1

    created: list[NodeId] = []
    counter = 0
    for style, members in shared.items():
        if len(members) < 2:
            continue
        name, counter = _style_name(graph, counter)
        style_id = graph.interner.intern(name)
        graph.add(Node(id=style_id, shape=StyleShape(), style=style), graph.root, index + len(created))
        created.append(style_id)
        for member in members:
            node = graph.nodes[member]
            node.style = Style()
            # Appended last so the shared style keeps the precedence the inline one had.
            node.use_styles = [ref for ref in node.use_styles if ref != style_id] + [style_id]
    if created:
        logger.debug("Hoisted %d shared inline style(s)", len(created))
    return created


def format_graph(graph: SceneGraph, config: FormatConfig | None = None) -> str:
    config = config or FormatConfig()
    if config.dedup_use:
        dedup_use_styles(graph)
    if config.hoist_styles:
        hoist_styles(graph)
    return emit_document(graph)


def format_document(text: str, config: FormatConfig | None = None) -> str:
    return format_graph(parse_document(text), config)
