from __future__ import annotations

import pytest

from adapters.layout.constraint_solver import ConstraintLayoutEngine
from domain.commands import (
    AddAnimation,
    AddNode,
    Batch,
    Command,
    DeleteNodes,
    DuplicateNodes,
    GroupNodes,
    MoveNode,
    RemoveAnimation,
    RenameNode,
    ResizeNode,
    SetAnnotations,
    SetConstraint,
    SetProperty,
    UngroupNode,
)
from domain.errors import BoundsNotInitializedError, CommandError, ForeignNodeIdError
from domain.models import (
    Absolute,
    Animation,
    CenterIn,
    Color,
    Description,
    Node,
    Offset,
    RectShape,
    Status,
    Stroke,
)
from domain.scene_graph import SceneGraph, Subtree
from domain.services.apply_command import apply_command, compute_inverse
from domain.services.emit_document import emit_document
from domain.services.parse_document import parse_document
from tests.helpers.scene_fixtures import load_scene, load_scene_text

LOOSE_SCENE = (
    "rect @a {\n  x: 10 y: 10\n  w: 50 h: 50\n}\n"
    "rect @b {\n  x: 100 y: 10\n  w: 20 h: 20\n}\n"
    "ellipse @c\n"
    "@c -> center_in: @a\n"
)


def _laid_out(source: str) -> SceneGraph:
    graph = parse_document(source)
    ConstraintLayoutEngine().resolve(graph)
    return graph


def _assert_inverse_law(source: str, command: Command) -> SceneGraph:
    graph = _laid_out(source)
    before = emit_document(graph)

    applied = apply_command(graph, command)
    assert emit_document(graph) != before
    apply_command(graph, compute_inverse(applied))

    assert graph == parse_document(source)
    assert emit_document(graph) == before
    return graph


@pytest.mark.parametrize(
    "command",
    [
        MoveNode("a", 15, -5),
        MoveNode("c", 5, 5),
        SetConstraint("b", CenterIn("canvas")),
        ResizeNode("b", 40, None),
        SetProperty("a", "fill", "#FF0000"),
        SetProperty("c", "opacity", 0.5),
        GroupNodes(("b", "a")),
        GroupNodes(("a", "c"), group_id="pair"),
        DeleteNodes(("a",)),
        DeleteNodes(("c", "b")),
        DuplicateNodes(("a",)),
        DuplicateNodes(("a", "b"), 5, 5),
        AddAnimation("a", Animation("hover", scale=1.1)),
        SetAnnotations("b", (Description("Secondary"), Status("draft"))),
        RenameNode("a", "primary"),
        Batch((MoveNode("a", 1, 1), ResizeNode("b", 1, 1))),
    ],
)
def test_inverse_law_on_loose_scene(command: Command) -> None:
    _assert_inverse_law(LOOSE_SCENE, command)


@pytest.mark.parametrize(
    "command",
    [
        MoveNode("title", 10, 10),
        UngroupNode("dashboard"),
        DeleteNodes(("dashboard", "title")),
        DuplicateNodes(("card",)),
        RemoveAnimation("card", 0),
        SetProperty("card", "use", "heading"),
        SetProperty("flow", "curve", "smooth"),
        SetAnnotations("dashboard", ()),
    ],
)
def test_inverse_law_on_dashboard(command: Command) -> None:
    _assert_inverse_law(load_scene_text("dashboard.fd"), command)


def test_move_stores_parent_relative_absolute() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))

    applied = apply_command(graph, MoveNode("badge", 6, 6))

    assert graph.node("badge").constraint == Absolute(310, 60)
    assert graph.node("badge").bounds.as_tuple() == (310, 60, 40, 20)
    assert applied.inverse == SetConstraint(graph.require("badge"), Offset(graph.require("card"), 280, -10))
    assert not applied.structural


def test_move_inside_a_group_is_relative_to_group_origin() -> None:
    graph = _laid_out("group @g {\n  x: 100 y: 100\n  rect @r {\n    x: 10 y: 10\n  }\n}\n")

    apply_command(graph, MoveNode("r", 5, 0))

    assert graph.node("r").constraint == Absolute(15, 10)


def test_move_needs_resolved_bounds() -> None:
    graph = parse_document(LOOSE_SCENE)

    with pytest.raises(BoundsNotInitializedError):
        apply_command(graph, MoveNode("a", 1, 1))


def test_group_then_ungroup_restores_order_and_constraints() -> None:
    graph = _laid_out(LOOSE_SCENE)
    original = emit_document(graph)

    grouped = apply_command(graph, GroupNodes(("c", "a")))
    group_id = grouped.inverse.target
    assert [graph.name(child) for child in graph.children_of(group_id)] == ["a", "c"]
    assert graph.index_of(group_id) == 0
    assert grouped.structural

    ungrouped = apply_command(graph, grouped.inverse)
    assert emit_document(graph) == original

    regrouped = apply_command(graph, ungrouped.inverse)
    assert regrouped.inverse.target == group_id
    assert graph.name(group_id) == "_group_1"


def test_ungroup_folds_group_offset_into_children() -> None:
    graph = _laid_out(
        "group @g {\n  x: 100 y: 50\n  rect @r {\n    x: 10 y: 10\n  }\n  rect @s\n}\n"
    )

    apply_command(graph, UngroupNode("g"))

    assert "g" not in graph
    assert graph.node("r").constraint == Absolute(110, 60)
    assert graph.node("s").constraint == Absolute(100, 50)


def test_ungroup_leaves_edges_unpositioned() -> None:
    source = (
        "group @g {\n  x: 10 y: 10\n  rect @a\n  rect @b\n"
        "  edge @e {\n    from: @a\n    to: @b\n  }\n}\n"
    )
    graph = _laid_out(source)

    apply_command(graph, UngroupNode("g"))

    assert graph.node("e").constraint is None
    assert graph.node("a").constraint == Absolute(10, 10)
    assert not graph.node("e").raw
    assert parse_document(emit_document(graph)) == graph
    with pytest.raises(CommandError, match="has no position"):
        apply_command(graph, SetConstraint("e", Absolute(1, 1)))


def test_ungroup_of_layout_group_keeps_resolved_positions() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))

    apply_command(graph, UngroupNode("dashboard"))

    assert graph.node("card").constraint == Absolute(24, 64)
    assert graph.parent_of(graph.require("card")) == graph.root


def test_group_rejects_non_siblings_and_styles() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))

    with pytest.raises(CommandError, match="siblings"):
        apply_command(graph, GroupNodes(("card", "badge")))
    with pytest.raises(CommandError, match="cannot be grouped"):
        apply_command(graph, GroupNodes(("heading",)))
    with pytest.raises(CommandError, match="cannot be used as a group id"):
        apply_command(graph, GroupNodes(("badge",), group_id="card"))


def test_duplicate_names_and_offsets_copies() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))

    first = apply_command(graph, DuplicateNodes(("card",)))
    second = apply_command(graph, DuplicateNodes(("card",), 0, 40))

    assert first.command.names == ("card_copy",)
    assert second.command.names == ("card_copy_2",)
    copy = graph.node("card_copy")
    assert copy.constraint == Offset(graph.require("card"), 20, 20)
    assert graph.index_of(copy.id) == graph.index_of(graph.require("card")) + 2
    assert copy.trivia == []


def test_duplicate_remaps_internal_references() -> None:
    graph = _laid_out(
        "group @pair {\n  rect @left\n  rect @right\n}\n@right -> offset: @left 120, 0\n"
    )

    apply_command(graph, DuplicateNodes(("pair",)))

    right_copy = graph.node("right_copy")
    assert right_copy.constraint == Offset(graph.require("left_copy"), 120, 0)


def test_delete_and_restore_nested_selection() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))
    dashboard, badge = graph.require("dashboard"), graph.require("badge")

    applied = apply_command(graph, DeleteNodes(("title", "dashboard", "badge")))

    assert applied.command.targets == (dashboard, badge)
    assert "title" not in graph
    assert isinstance(applied.inverse, Batch)
    apply_command(graph, applied.inverse)
    assert graph == load_scene("dashboard.fd")


def test_set_property_accepts_color_text() -> None:
    graph = _laid_out(LOOSE_SCENE)

    apply_command(graph, SetProperty("a", "fill", "#FF0000"))
    apply_command(graph, SetProperty("b", "stroke", "#000 2"))

    assert graph.node("a").style.fill == Color("#FF0000")
    assert graph.node("b").style.stroke == Stroke(Color("#000"), 2)
    assert parse_document(emit_document(graph)) == graph


def test_add_node_and_parent_checks() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))
    node_id = graph.interner.intern("extra")
    subtree = Subtree(
        root=node_id,
        nodes={node_id: Node(id=node_id, shape=RectShape(width=5, height=5))},
        children={node_id: []},
    )

    applied = apply_command(graph, AddNode(subtree, parent="dashboard", index=0))

    assert graph.children_of(graph.require("dashboard"))[0] == node_id
    assert applied.inverse == DeleteNodes((node_id,))
    apply_command(graph, applied.inverse)
    with pytest.raises(CommandError, match="cannot contain"):
        apply_command(graph, AddNode(subtree, parent="flow"))


def test_set_property_validation() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))

    apply_command(graph, SetProperty("badge", "fill", Color("#00FF00")))
    assert graph.node("badge").style.fill == Color("#00FF00")

    with pytest.raises(CommandError, match="Unknown property"):
        apply_command(graph, SetProperty("badge", "glow", "#fff"))
    with pytest.raises(CommandError, match="does not apply"):
        apply_command(graph, SetProperty("badge", "layout", "column"))
    with pytest.raises(CommandError, match="Invalid value"):
        apply_command(graph, SetProperty("badge", "fill", "#12345"))
    with pytest.raises(CommandError, match="expects a number"):
        apply_command(graph, SetProperty("badge", "corner", True))
    with pytest.raises(CommandError, match="expects one of"):
        apply_command(graph, SetProperty("flow", "arrow", "sideways"))


def test_resize_rejects_negative_and_unsized() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))

    with pytest.raises(CommandError, match="negative"):
        apply_command(graph, ResizeNode("badge", -1, 10))
    with pytest.raises(CommandError, match="cannot be resized"):
        apply_command(graph, ResizeNode("flow", 10, 10))


def test_animation_index_checks() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))

    with pytest.raises(CommandError, match="out of range"):
        apply_command(graph, AddAnimation("card", Animation("press"), index=5))
    with pytest.raises(CommandError, match="no animation at index"):
        apply_command(graph, RemoveAnimation("badge", 0))


def test_rename_rewrites_every_reference() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))

    apply_command(graph, RenameNode("card", "summary"))
    apply_command(graph, RenameNode("card_base", "surface"))
    text = emit_document(graph)

    assert "rect @summary {" in text
    assert "@badge -> offset: @summary 280, -10" in text
    assert "use: surface" in text
    assert "style surface {" in text
    assert "@card" not in text


def test_rename_conflicts_are_declined() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))

    for name in ("badge", "canvas", "2fast"):
        with pytest.raises(CommandError):
            apply_command(graph, RenameNode("card", name))
    assert "card" in graph


def test_failed_batch_rolls_back() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))
    before = emit_document(graph)

    with pytest.raises(CommandError):
        apply_command(graph, Batch((ResizeNode("badge", 1, 1), ResizeNode("flow", 1, 1))))

    assert emit_document(graph) == before


def test_foreign_ids_are_programmer_errors() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))
    other = load_scene("dashboard.fd")

    with pytest.raises(ForeignNodeIdError):
        apply_command(graph, ResizeNode(other.require("badge"), 1, 1))
    with pytest.raises(ForeignNodeIdError):
        apply_command(graph, SetConstraint("badge", CenterIn(other.require("card"))))


def test_unknown_target_is_declined() -> None:
    graph = _laid_out(load_scene_text("dashboard.fd"))

    with pytest.raises(CommandError, match="Unknown node '@ghost'"):
        apply_command(graph, ResizeNode("ghost", 1, 1))
