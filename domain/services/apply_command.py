from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterable
from dataclasses import replace

from domain.commands import (
    AddAnimation,
    AddNode,
    AppliedCommand,
    Batch,
    Command,
    DeleteNodes,
    DuplicateNodes,
    GroupNodes,
    GroupRestore,
    MoveNode,
    RemoveAnimation,
    RenameNode,
    ResizeNode,
    SetAnnotations,
    SetConstraint,
    SetProperty,
    UngroupNode,
    UngroupRestore,
    is_structural,
)
from domain.errors import BoundsNotInitializedError, CommandError, ParseError
from domain.ids import NodeId, is_identifier
from domain.models import (
    CANVAS,
    SIZED_KINDS,
    Absolute,
    CenterIn,
    Constraint,
    EdgeShape,
    GroupShape,
    Node,
    Offset,
    Point,
)
from domain.properties import (
    EDITABLE_PROPERTIES,
    check_property_value,
    get_property,
    property_applies,
    set_property,
)
from domain.scene_graph import NodeRef, SceneGraph, Subtree
from domain.services.parse_document import parse_property_value

logger = logging.getLogger(__name__)

# Properties whose plain string value is taken literally rather than parsed.
LITERAL_TEXT_PROPERTIES = ("d", "content", "label", "arrow", "curve")


def apply_command(graph: SceneGraph, command: Command) -> AppliedCommand:
    handler = _HANDLERS.get(type(command))
    if handler is None:
        msg = f"Unsupported command: {type(command).__name__}"
        raise CommandError(msg)
    applied = handler(graph, command)
    logger.debug(
        "Applied %s (%d node(s) affected)", type(command).__name__, len(applied.affected)
    )
    return applied


def compute_inverse(applied: AppliedCommand) -> Command:
    return applied.inverse


def _applied(
    command: Command, inverse: Command, affected: Iterable[NodeId]
) -> AppliedCommand:
    return AppliedCommand(
        command=command,
        inverse=inverse,
        affected=frozenset(affected),
        structural=is_structural(command),
    )


def _label(graph: SceneGraph, node_id: NodeId) -> str:
    return "@" + graph.name(node_id)


def _unique(graph: SceneGraph, targets: Iterable[NodeRef]) -> list[NodeId]:
    ids: list[NodeId] = []
    for target in targets:
        node_id = graph.require(target)
        if node_id not in ids:
            ids.append(node_id)
    return ids


def _require_positioned(graph: SceneGraph, node_id: NodeId) -> Node:
    node = graph.nodes[node_id]
    if node.kind in ("style", "edge"):
        msg = f"{_label(graph, node_id)} is a {node.kind} and has no position"
        raise CommandError(msg)
    return node


def _check_constraint(graph: SceneGraph, constraint: Constraint | None) -> None:
    if isinstance(constraint, (CenterIn, Offset)) and constraint.target != CANVAS:
        graph.interner.check(constraint.target)


def _move(graph: SceneGraph, command: MoveNode) -> AppliedCommand:
    node_id = graph.require(command.target)
    node = _require_positioned(graph, node_id)
    parent = graph.parent_of(node_id)
    parent_origin = Point(0.0, 0.0) if parent == graph.root else graph.nodes[parent].origin
    if node.bounds is None or node.origin is None or parent_origin is None:
        msg = f"{_label(graph, node_id)} has no resolved bounds; run layout before moving it"
        raise BoundsNotInitializedError(msg)
    previous = node.constraint
    node.constraint = Absolute(
        round(node.origin.x + command.dx - parent_origin.x, 2),
        round(node.origin.y + command.dy - parent_origin.y, 2),
    )
    for member in [node_id, *graph.walk(node_id)]:
        cached = graph.nodes[member]
        if cached.bounds is not None:
            cached.bounds = cached.bounds.shifted(command.dx, command.dy)
        if cached.origin is not None:
            cached.origin = Point(cached.origin.x + command.dx, cached.origin.y + command.dy)
    return _applied(
        MoveNode(node_id, command.dx, command.dy), SetConstraint(node_id, previous), [node_id]
    )


def _set_constraint(graph: SceneGraph, command: SetConstraint) -> AppliedCommand:
    node_id = graph.require(command.target)
    node = graph.nodes[node_id]
    if command.constraint is not None:
        _require_positioned(graph, node_id)
    _check_constraint(graph, command.constraint)
    previous = node.constraint
    node.constraint = command.constraint
    return _applied(
        SetConstraint(node_id, command.constraint), SetConstraint(node_id, previous), [node_id]
    )


def _resize(graph: SceneGraph, command: ResizeNode) -> AppliedCommand:
    node_id = graph.require(command.target)
    node = graph.nodes[node_id]
    if node.kind not in SIZED_KINDS:
        msg = f"{_label(graph, node_id)} is a {node.kind} and cannot be resized"
        raise CommandError(msg)
    for value in (command.width, command.height):
        if value is not None and value < 0:
            msg = f"Size of {_label(graph, node_id)} cannot be negative"
            raise CommandError(msg)
    shape = node.shape
    previous = (shape.width, shape.height)
    node.shape = replace(shape, width=command.width, height=command.height)
    return _applied(
        ResizeNode(node_id, command.width, command.height),
        ResizeNode(node_id, *previous),
        [node_id],
    )


def _property_value(graph: SceneGraph, command: SetProperty) -> object:
    value = command.value
    if isinstance(value, str) and command.name not in LITERAL_TEXT_PROPERTIES:
        try:
            value = parse_property_value(command.name, value, graph)
        except (ParseError, ValueError) as exc:
            msg = f"Invalid value for '{command.name}': {exc}"
            raise CommandError(msg) from exc
    try:
        check_property_value(command.name, value)
    except TypeError as exc:
        raise CommandError(str(exc)) from exc
    if command.name == "use" and value is not None:
        value = tuple(_style_ref(graph, item) for item in value)
    if isinstance(value, NodeId):
        graph.interner.check(value)
    return value


def _style_ref(graph: SceneGraph, item: NodeRef) -> NodeId:
    if isinstance(item, NodeId):
        graph.interner.check(item)
        return item
    return graph.interner.intern(item.removeprefix("@"))


def _set_property(graph: SceneGraph, command: SetProperty) -> AppliedCommand:
    node_id = graph.require(command.target)
    node = graph.nodes[node_id]
    if command.name not in EDITABLE_PROPERTIES:
        msg = f"Unknown property '{command.name}'"
        raise CommandError(msg)
    if not property_applies(node.kind, command.name):
        msg = f"'{command.name}' does not apply to {node.kind} {_label(graph, node_id)}"
        raise CommandError(msg)
    value = _property_value(graph, command)
    previous = get_property(node, command.name)
    set_property(node, command.name, value)
    return _applied(
        SetProperty(node_id, command.name, value),
        SetProperty(node_id, command.name, previous),
        [node_id],
    )


def _relocate(
    graph: SceneGraph,
    parent: NodeId,
    placements: Iterable[tuple[NodeId, int, Constraint | None]],
) -> None:
    # Ascending target indices keep earlier placements stable.
    for child, index, constraint in sorted(placements, key=lambda item: item[1]):
        graph.reparent(child, parent, index)
        graph.nodes[child].constraint = constraint


def _group(graph: SceneGraph, command: GroupNodes) -> AppliedCommand:
    ids = _unique(graph, command.targets)
    if not ids:
        msg = "Nothing selected to group"
        raise CommandError(msg)
    parents = {graph.parent_of(node_id) for node_id in ids}
    if len(parents) > 1:
        msg = "Only siblings can be grouped together"
        raise CommandError(msg)
    for node_id in ids:
        if graph.nodes[node_id].kind == "style":
            msg = f"Style {_label(graph, node_id)} cannot be grouped"
            raise CommandError(msg)
    parent = parents.pop()
    ordered = sorted(ids, key=graph.index_of)
    index = graph.index_of(ordered[0])
    placements = tuple(
        (node_id, graph.index_of(node_id), graph.nodes[node_id].constraint) for node_id in ordered
    )

    if command.restore is not None:
        template = command.restore.group
        if template.id in graph.nodes:
            msg = f"Node {_label(graph, template.id)} is already declared"
            raise CommandError(msg)
        group = copy.deepcopy(template)
        index = command.restore.index
        constraints = dict(command.restore.constraints)
    else:
        if command.group_id is not None:
            name = command.group_id.removeprefix("@")
            if not is_identifier(name) or name == CANVAS or name in graph.interner:
                msg = f"'@{name}' cannot be used as a group id"
                raise CommandError(msg)
            group_id = graph.interner.intern(name)
        else:
            group_id = graph.interner.fresh("group")
        group = Node(id=group_id, shape=GroupShape(), anonymous=command.group_id is None)
        constraints = {}

    graph.add(group, parent, index)
    for node_id in ordered:
        graph.reparent(node_id, group.id)
        if node_id in constraints:
            graph.nodes[node_id].constraint = constraints[node_id]

    restore = UngroupRestore(placements=placements)
    resolved = GroupNodes(tuple(ordered), graph.name(group.id), command.restore)
    return _applied(resolved, UngroupNode(group.id, restore), [group.id, *ordered])


def _ungroup(graph: SceneGraph, command: UngroupNode) -> AppliedCommand:
    group_id = graph.require(command.target)
    group = graph.nodes[group_id]
    if not isinstance(group.shape, GroupShape):
        msg = f"{_label(graph, group_id)} is a {group.kind}, not a group"
        raise CommandError(msg)
    parent = graph.parent_of(group_id)
    index = graph.index_of(group_id)
    children = graph.children_of(group_id)
    previous = tuple((child, graph.nodes[child].constraint) for child in children)

    if command.restore is not None:
        placements = command.restore.placements
    else:
        placements = tuple(
            (child, index + offset, _folded(graph, group, parent, child))
            for offset, child in enumerate(children)
        )

    template = copy.deepcopy(group)
    for child in children:
        graph.reparent(child, parent)
    graph.detach(group_id)
    _relocate(graph, parent, placements)

    restore = GroupRestore(group=template, index=index, constraints=previous)
    resolved = UngroupNode(group_id, command.restore)
    inverse = GroupNodes(tuple(children), graph.name(group_id), restore)
    return _applied(resolved, inverse, [group_id, *children])


def _folded(graph: SceneGraph, group: Node, parent: NodeId, child: NodeId) -> Constraint | None:
    constraint = graph.nodes[child].constraint
    if graph.nodes[child].kind in ("style", "edge"):
        return constraint
    shape = group.shape
    if isinstance(shape, GroupShape) and shape.layout is not None:
        origin = graph.nodes[child].origin
        parent_origin = Point(0.0, 0.0) if parent == graph.root else graph.nodes[parent].origin
        if origin is not None and parent_origin is not None:
            return Absolute(
                round(origin.x - parent_origin.x, 2), round(origin.y - parent_origin.y, 2)
            )
    if not isinstance(group.constraint, Absolute):
        return constraint
    offset = group.constraint
    if isinstance(constraint, Absolute):
        return Absolute(constraint.x + offset.x, constraint.y + offset.y)
    if constraint is None:
        return Absolute(offset.x, offset.y)
    return constraint


def _add(graph: SceneGraph, command: AddNode) -> AppliedCommand:
    if command.parent is None or command.parent == graph.root:
        parent = graph.root
    else:
        parent = graph.require(command.parent)
        kind = graph.nodes[parent].kind
        if kind in ("style", "edge"):
            msg = f"A {kind} cannot contain other nodes"
            raise CommandError(msg)
    subtree = command.subtree.copy()
    graph.attach(subtree, parent, command.index)
    index = graph.index_of(subtree.root)
    resolved = AddNode(command.subtree, None if parent == graph.root else parent, index)
    return _applied(resolved, DeleteNodes((subtree.root,)), list(subtree.nodes))


def _delete(graph: SceneGraph, command: DeleteNodes) -> AppliedCommand:
    ids = _unique(graph, command.targets)
    if not ids:
        msg = "Nothing selected to delete"
        raise CommandError(msg)
    top = graph.top_most(ids)
    positions = [(node_id, graph.parent_of(node_id), graph.index_of(node_id)) for node_id in top]
    restored: list[tuple[int, AddNode]] = []
    affected: list[NodeId] = []
    for node_id, parent, index in positions:
        _, _, subtree = graph.detach(node_id)
        affected.extend(subtree.nodes)
        restored.append((index, AddNode(subtree, None if parent == graph.root else parent, index)))
    restored.sort(key=lambda item: item[0])
    inverse = Batch(tuple(add for _, add in restored))
    return _applied(DeleteNodes(tuple(top)), inverse, affected)


def _copy_names(graph: SceneGraph, members: list[NodeId], names: tuple[str, ...] | None) -> list[str]:
    if names is not None:
        if len(names) != len(members):
            msg = "Duplicate names do not match the copied nodes"
            raise CommandError(msg)
        for name in names:
            if name in graph.interner:
                msg = f"'@{name}' is already in use"
                raise CommandError(msg)
        return list(names)
    chosen: list[str] = []
    for member in members:
        base = f"{graph.name(member)}_copy"
        candidate = base
        counter = 1
        while candidate in graph.interner or candidate in chosen:
            counter += 1
            candidate = f"{base}_{counter}"
        chosen.append(candidate)
    return chosen


def _remap(node: Node, mapping: dict[NodeId, NodeId]) -> None:
    constraint = node.constraint
    if isinstance(constraint, (CenterIn, Offset)) and constraint.target in mapping:
        node.constraint = replace(constraint, target=mapping[constraint.target])
    shape = node.shape
    if isinstance(shape, EdgeShape):
        node.shape = replace(
            shape,
            source=mapping.get(shape.source, shape.source),
            target=mapping.get(shape.target, shape.target),
        )


def _duplicate(graph: SceneGraph, command: DuplicateNodes) -> AppliedCommand:
    ids = _unique(graph, command.targets)
    if not ids:
        msg = "Nothing selected to duplicate"
        raise CommandError(msg)
    top = graph.top_most(ids)
    for node_id in top:
        _require_positioned(graph, node_id)
    members = [member for node_id in top for member in (node_id, *graph.walk(node_id))]
    names = _copy_names(graph, members, command.names)
    mapping = {member: graph.interner.intern(name) for member, name in zip(members, names)}

    copies: list[NodeId] = []
    for original in top:
        source = [original, *graph.walk(original)]
        nodes: dict[NodeId, Node] = {}
        children: dict[NodeId, list[NodeId]] = {}
        for member in source:
            node = copy.deepcopy(graph.nodes[member])
            node.id = mapping[member]
            node.trivia = []
            node.constraint_trivia = []
            node.bounds = None
            node.origin = None
            _remap(node, mapping)
            nodes[node.id] = node
            children[node.id] = [mapping[child] for child in graph.children_of(member)]
        root = mapping[original]
        nodes[root].constraint = Offset(original, command.dx, command.dy)
        nodes[root].anonymous = False
        graph.attach(
            Subtree(root=root, nodes=nodes, children=children),
            graph.parent_of(original),
            graph.index_of(original) + 1,
        )
        copies.append(root)

    resolved = DuplicateNodes(tuple(top), command.dx, command.dy, tuple(names))
    return _applied(resolved, DeleteNodes(tuple(copies)), mapping.values())


def _add_animation(graph: SceneGraph, command: AddAnimation) -> AppliedCommand:
    node_id = graph.require(command.target)
    node = graph.nodes[node_id]
    if node.kind == "style":
        msg = f"Style {_label(graph, node_id)} cannot be animated"
        raise CommandError(msg)
    index = len(node.animations) if command.index is None else command.index
    if not 0 <= index <= len(node.animations):
        msg = f"Animation index {index} is out of range for {_label(graph, node_id)}"
        raise CommandError(msg)
    node.animations.insert(index, command.animation)
    return _applied(
        AddAnimation(node_id, command.animation, index),
        RemoveAnimation(node_id, index),
        [node_id],
    )


def _remove_animation(graph: SceneGraph, command: RemoveAnimation) -> AppliedCommand:
    node_id = graph.require(command.target)
    node = graph.nodes[node_id]
    if not 0 <= command.index < len(node.animations):
        msg = f"{_label(graph, node_id)} has no animation at index {command.index}"
        raise CommandError(msg)
    animation = node.animations.pop(command.index)
    return _applied(
        RemoveAnimation(node_id, command.index),
        AddAnimation(node_id, animation, command.index),
        [node_id],
    )


def _set_annotations(graph: SceneGraph, command: SetAnnotations) -> AppliedCommand:
    node_id = graph.require(command.target)
    node = graph.nodes[node_id]
    previous = tuple(node.annotations)
    node.annotations = list(command.annotations)
    return _applied(
        SetAnnotations(node_id, tuple(command.annotations)),
        SetAnnotations(node_id, previous),
        [node_id],
    )


def _rename(graph: SceneGraph, command: RenameNode) -> AppliedCommand:
    node_id = graph.require(command.target)
    node = graph.nodes[node_id]
    was_anonymous = node.anonymous
    old_name = graph.rename(node_id, command.new_name)
    node.anonymous = command.anonymous
    resolved = RenameNode(node_id, graph.name(node_id), command.anonymous)
    return _applied(resolved, RenameNode(node_id, old_name, was_anonymous), [node_id])


def _batch(graph: SceneGraph, command: Batch) -> AppliedCommand:
    done: list[AppliedCommand] = []
    try:
        for item in command.commands:
            done.append(apply_command(graph, item))
    except CommandError:
        for applied in reversed(done):
            apply_command(graph, applied.inverse)
        raise
    affected = frozenset().union(*(applied.affected for applied in done))
    return AppliedCommand(
        command=Batch(tuple(applied.command for applied in done)),
        inverse=Batch(tuple(applied.inverse for applied in reversed(done))),
        affected=affected,
        structural=any(applied.structural for applied in done),
    )


_HANDLERS: dict[type, Callable[[SceneGraph, Command], AppliedCommand]] = {
    MoveNode: _move,
    SetConstraint: _set_constraint,
    ResizeNode: _resize,
    SetProperty: _set_property,
    GroupNodes: _group,
    UngroupNode: _ungroup,
    AddNode: _add,
    DeleteNodes: _delete,
    DuplicateNodes: _duplicate,
    AddAnimation: _add_animation,
    RemoveAnimation: _remove_animation,
    SetAnnotations: _set_annotations,
    RenameNode: _rename,
    Batch: _batch,
}
