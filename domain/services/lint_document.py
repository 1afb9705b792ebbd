from __future__ import annotations

import re

from domain.models import NODE_KEYWORDS, Diagnostic
from domain.scene_graph import SceneGraph

_ANONYMOUS_ID_RE = re.compile(rf"^_(?:{'|'.join((*NODE_KEYWORDS, 'edge'))})_\d+$")


def lint_document(graph: SceneGraph) -> list[Diagnostic]:
    diagnostics: list[Diagnostic] = []
    diagnostics.extend(item for item in graph.diagnostics if item.node is None)
    _lint_anonymous_ids(graph, diagnostics)
    _lint_style_references(graph, diagnostics)
    _lint_unused_styles(graph, diagnostics)
    _lint_unresolved_references(graph, diagnostics)
    _lint_unknown_properties(graph, diagnostics)
    return diagnostics


def _lint_anonymous_ids(graph: SceneGraph, diagnostics: list[Diagnostic]) -> None:
    for node_id in graph.walk():
        node = graph.nodes[node_id]
        name = graph.name(node_id)
        if node.anonymous or _ANONYMOUS_ID_RE.match(name):
            diagnostics.append(
                Diagnostic(
                    rule="anonymous-id",
                    message=f"{node.kind} has no semantic id ('@{name}'); consider naming it",
                    severity="info",
                    node=node_id,
                    line=node.line,
                )
            )


def _lint_style_references(graph: SceneGraph, diagnostics: list[Diagnostic]) -> None:
    for node_id in graph.walk():
        node = graph.nodes[node_id]
        seen = set()
        for ref in node.use_styles:
            if ref in seen:
                diagnostics.append(
                    Diagnostic(
                        rule="duplicate-use",
                        message=f"'@{graph.name(node_id)}' uses style '{graph.name(ref)}' more than once",
                        node=node_id,
                        line=node.line,
                    )
                )
            seen.add(ref)
            target = graph.nodes.get(ref)
            if target is not None and target.kind != "style":
                diagnostics.append(
                    Diagnostic(
                        rule="use-non-style",
                        message=f"'use: {graph.name(ref)}' on '@{graph.name(node_id)}' names a {target.kind}, not a style",
                        node=node_id,
                        line=node.line,
                    )
                )


def _lint_unused_styles(graph: SceneGraph, diagnostics: list[Diagnostic]) -> None:
    used = {ref for node in graph.nodes.values() for ref in node.use_styles}
    for node_id in graph.walk():
        node = graph.nodes[node_id]
        if node.kind == "style" and node_id not in used:
            diagnostics.append(
                Diagnostic(
                    rule="unused-style",
                    message=f"style '{graph.name(node_id)}' is never used",
                    node=node_id,
                    line=node.line,
                )
            )


def _lint_unresolved_references(graph: SceneGraph, diagnostics: list[Diagnostic]) -> None:
    for referrer, target in graph.dangling_references():
        diagnostics.append(
            Diagnostic(
                rule="unresolved-reference",
                message=f"'@{graph.name(referrer)}' references undeclared '@{graph.name(target)}'",
                node=referrer,
                line=graph.nodes[referrer].line,
            )
        )


def _lint_unknown_properties(graph: SceneGraph, diagnostics: list[Diagnostic]) -> None:
    for node_id in graph.walk():
        node = graph.nodes[node_id]
        for name, _ in node.raw:
            diagnostics.append(
                Diagnostic(
                    rule="unknown-property",
                    message=f"'{name}' is not a {node.kind} property; it is kept verbatim",
                    severity="info",
                    node=node_id,
                    line=node.line,
                )
            )
