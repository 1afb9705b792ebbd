from __future__ import annotations

import pytest

from domain.services.format_document import (
    FormatConfig,
    dedup_use_styles,
    format_document,
    hoist_styles,
)
from domain.services.lint_document import lint_document
from domain.services.parse_document import parse_document
from tests.helpers.scene_fixtures import load_scene_text

REPEATED_USE = (
    "style a {\n  fill: #000\n}\n"
    "style b {\n  fill: #fff\n  corner: 2\n}\n"
    "rect @r {\n  use: a, b, a\n}\n"
)

SHARED_INLINE = (
    "rect @a {\n  fill: #f00\n  corner: 4\n}\n"
    "rect @b {\n  fill: #f00\n  corner: 4\n}\n"
    "rect @c {\n  fill: #0f0\n}\n"
)


def test_dedup_keeps_the_winning_occurrence() -> None:
    graph = parse_document(REPEATED_USE)
    node = graph.node("r")
    before = graph.effective_style(node)

    assert dedup_use_styles(graph) == 1

    assert [graph.name(ref) for ref in node.use_styles] == ["b", "a"]
    assert graph.effective_style(node) == before
    assert not [item for item in lint_document(graph) if item.rule == "duplicate-use"]


def test_format_removes_duplicate_use_by_default() -> None:
    formatted = format_document(REPEATED_USE)

    assert "  use: b, a\n" in formatted
    assert format_document(formatted) == formatted


@pytest.mark.parametrize("name", ["dashboard.fd", "cycle.fd", "login.fd"])
def test_format_leaves_canonical_scenes_alone(name: str) -> None:
    text = load_scene_text(name)

    assert format_document(text) == text


def test_dedup_can_be_switched_off() -> None:
    formatted = format_document(REPEATED_USE, FormatConfig(dedup_use=False))

    assert "  use: a, b, a\n" in formatted


def test_hoist_styles_shares_repeated_inline_styles() -> None:
    graph = parse_document(SHARED_INLINE)
    before = {name: graph.effective_style(graph.node(name)) for name in ("a", "b", "c")}

    created = hoist_styles(graph)

    assert [graph.name(style_id) for style_id in created] == ["_auto_1"]
    assert {name: graph.effective_style(graph.node(name)) for name in ("a", "b", "c")} == before
    assert format_document(SHARED_INLINE, FormatConfig(hoist_styles=True)) == (
        "style _auto_1 {\n  fill: #f00\n  corner: 4\n}\n"
        "rect @a {\n  use: _auto_1\n}\n"
        "rect @b {\n  use: _auto_1\n}\n"
        "rect @c {\n  fill: #0f0\n}\n"
    )


def test_hoisted_style_goes_after_existing_uses() -> None:
    source = (
        "style base {\n  fill: #111\n  opacity: 0.5\n}\n"
        "rect @a {\n  use: base\n  fill: #222\n}\n"
        "rect @b {\n  fill: #222\n}\n"
    )
    graph = parse_document(source)
    before = graph.effective_style(graph.node("a"))

    hoist_styles(graph)

    assert [graph.name(ref) for ref in graph.node("a").use_styles] == ["base", "_auto_1"]
    assert graph.effective_style(graph.node("a")) == before
    formatted = format_document(source, FormatConfig(hoist_styles=True))
    assert "  use: base, _auto_1\n" in formatted
    assert format_document(formatted) == formatted


def test_hoisted_names_skip_taken_ids() -> None:
    graph = parse_document(
        "rect @_auto_1 {\n  fill: #abc\n}\nrect @x {\n  fill: #abc\n}\n"
    )

    created = hoist_styles(graph)

    assert [graph.name(style_id) for style_id in created] == ["_auto_2"]
    assert graph.node("_auto_1").use_styles == created
