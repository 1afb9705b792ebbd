from __future__ import annotations

from domain.services.lint_document import lint_document
from domain.services.parse_document import parse_document
from tests.helpers.scene_fixtures import load_scene

MESSY_SCENE = (
    "style unused {\n  fill: #000\n}\n"
    "style base {\n  fill: #fff\n}\n"
    "rect @a {\n  use: base, base\n  blur: 2\n}\n"
    "rect @b {\n  use: a\n}\n"
    "rect\n"
    "@b -> center_in: @ghost\n"
    "@nobody -> fill_parent: 0\n"
)


def test_clean_scene_has_no_findings() -> None:
    assert lint_document(load_scene("dashboard.fd")) == []


def test_messy_scene_findings() -> None:
    graph = parse_document(MESSY_SCENE)

    diagnostics = lint_document(graph)

    assert [item.rule for item in diagnostics] == [
        "unresolved-reference",
        "anonymous-id",
        "duplicate-use",
        "use-non-style",
        "unused-style",
        "unresolved-reference",
        "unknown-property",
    ]
    by_rule = {item.rule: item for item in diagnostics}
    assert by_rule["anonymous-id"].severity == "info"
    assert by_rule["unknown-property"].severity == "info"
    assert by_rule["use-non-style"].node == graph.require("b")
    assert "'@b' references undeclared '@ghost'" in diagnostics[5].message
    assert diagnostics[0].line == 16


def test_generated_looking_ids_are_reported() -> None:
    graph = parse_document("rect @_rect_7 {\n  w: 10 h: 10\n}\n")

    diagnostics = lint_document(graph)

    assert [item.rule for item in diagnostics] == ["anonymous-id"]
    assert diagnostics[0].line == 1
