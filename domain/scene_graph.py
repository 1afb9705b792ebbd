from __future__ import annotations

import copy
import dataclasses
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any, Union

from domain.errors import CommandError, RenameConflict
from domain.ids import IdInterner, NodeId, is_identifier
from domain.models import (
    CANVAS,
    Absolute,
    Diagnostic,
    EdgeShape,
    Node,
    Style,
    constraint_target,
)

logger = logging.getLogger(__name__)

ROOT_NAME = ":root"

NodeRef = Union[NodeId, str]


@dataclass
class Subtree:
    root: NodeId
    nodes: dict[NodeId, Node]
    children: dict[NodeId, list[NodeId]]

    def walk(self) -> Iterator[NodeId]:
        stack = [self.root]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self.children.get(current, [])))

    def copy(self) -> Subtree:
        return Subtree(
            root=self.root,
            nodes={node_id: copy.deepcopy(node) for node_id, node in self.nodes.items()},
            children={node_id: list(ids) for node_id, ids in self.children.items()},
        )


class SceneGraph:
    def __init__(self, interner: IdInterner | None = None) -> None:
        self.interner = interner or IdInterner()
        self.root = self.interner.intern(ROOT_NAME)
        self.nodes: dict[NodeId, Node] = {}
        self.children: dict[NodeId, list[NodeId]] = {self.root: []}
        self.parents: dict[NodeId, NodeId] = {}
        self.diagnostics: list[Diagnostic] = []
        self.trailing_trivia: list[str] = []

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, ref: object) -> bool:
        if isinstance(ref, str):
            found = self.interner.lookup(ref)
            return found is not None and found in self.nodes
        if isinstance(ref, NodeId):
            return ref.scope == self.interner.scope and ref in self.nodes
        return False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SceneGraph):
            return NotImplemented
        return self.snapshot() == other.snapshot()

    __hash__ = None  # type: ignore[assignment]

    def name(self, node_id: NodeId) -> str:
        return self.interner.resolve(node_id)

    def lookup(self, ref: NodeRef) -> NodeId | None:
        if isinstance(ref, str):
            return self.interner.lookup(ref.removeprefix("@"))
        self.interner.check(ref)
        return ref

    def require(self, ref: NodeRef) -> NodeId:
        node_id = self.lookup(ref)
        if node_id is None or node_id not in self.nodes:
            label = ref if isinstance(ref, str) else self.name(ref)
            msg = f"Unknown node '@{str(label).removeprefix('@')}'"
            raise CommandError(msg)
        return node_id

    def node(self, ref: NodeRef) -> Node:
        return self.nodes[self.require(ref)]

    def get(self, ref: NodeRef) -> Node | None:
        node_id = self.lookup(ref)
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def add(self, node: Node, parent: NodeId | None = None, index: int | None = None) -> None:
        self.interner.check(node.id)
        if node.id in self.nodes:
            msg = f"Node '@{self.name(node.id)}' is already declared"
            raise CommandError(msg)
        parent_id = self.root if parent is None else parent
        if parent_id != self.root and parent_id not in self.nodes:
            msg = f"Unknown parent '@{self.name(parent_id)}'"
            raise CommandError(msg)
        self.nodes[node.id] = node
        self.children[node.id] = []
        siblings = self.children[parent_id]
        siblings.insert(len(siblings) if index is None else index, node.id)
        self.parents[node.id] = parent_id

    def children_of(self, node_id: NodeId) -> list[NodeId]:
        return list(self.children.get(node_id, []))

    def parent_of(self, node_id: NodeId) -> NodeId:
        return self.parents[node_id]

    def index_of(self, node_id: NodeId) -> int:
        return self.children[self.parents[node_id]].index(node_id)

    def walk(self, start: NodeId | None = None) -> Iterator[NodeId]:
        origin = self.root if start is None else start
        stack = list(reversed(self.children.get(origin, [])))
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self.children.get(current, [])))

    def descendants(self, node_id: NodeId) -> list[NodeId]:
        return list(self.walk(node_id))

    def ancestors(self, node_id: NodeId) -> list[NodeId]:
        chain: list[NodeId] = []
        current = self.parents.get(node_id)
        while current is not None and current != self.root:
            chain.append(current)
            current = self.parents.get(current)
        return chain

    def is_ancestor(self, candidate: NodeId, node_id: NodeId) -> bool:
        return candidate in self.ancestors(node_id)

    def top_most(self, ids: Iterable[NodeId]) -> list[NodeId]:
        ordered = list(dict.fromkeys(ids))
        selected = set(ordered)
        return [node_id for node_id in ordered if not selected.intersection(self.ancestors(node_id))]

    def detach(self, node_id: NodeId) -> tuple[NodeId, int, Subtree]:
        parent_id = self.parents[node_id]
        index = self.children[parent_id].index(node_id)
        members = [node_id, *self.walk(node_id)]
        subtree = Subtree(
            root=node_id,
            nodes={member: self.nodes.pop(member) for member in members},
            children={member: self.children.pop(member) for member in members},
        )
        for member in members:
            self.parents.pop(member, None)
        self.children[parent_id].remove(node_id)
        return parent_id, index, subtree

    def attach(self, subtree: Subtree, parent: NodeId | None = None, index: int | None = None) -> None:
        parent_id = self.root if parent is None else parent
        if parent_id != self.root and parent_id not in self.nodes:
            msg = f"Unknown parent '@{self.name(parent_id)}'"
            raise CommandError(msg)
        for member in subtree.nodes:
            self.interner.check(member)
            if member in self.nodes:
                msg = f"Node '@{self.name(member)}' is already declared"
                raise CommandError(msg)
        siblings = self.children[parent_id]
        position = len(siblings) if index is None else max(0, min(index, len(siblings)))
        siblings.insert(position, subtree.root)
        self.parents[subtree.root] = parent_id
        for member, node in subtree.nodes.items():
            self.nodes[member] = node
            child_ids = list(subtree.children.get(member, []))
            self.children[member] = child_ids
            for child_id in child_ids:
                self.parents[child_id] = member

    def reparent(self, node_id: NodeId, parent: NodeId, index: int | None = None) -> None:
        if parent == node_id or (parent != self.root and self.is_ancestor(node_id, parent)):
            msg = f"Cannot move '@{self.name(node_id)}' inside itself"
            raise CommandError(msg)
        self.children[self.parents[node_id]].remove(node_id)
        siblings = self.children[parent]
        position = len(siblings) if index is None else max(0, min(index, len(siblings)))
        siblings.insert(position, node_id)
        self.parents[node_id] = parent

    def constraint_targets(self) -> dict[NodeId, NodeId]:
        targets: dict[NodeId, NodeId] = {}
        for node_id in self.walk():
            target = constraint_target(self.nodes[node_id].constraint)
            if target is not None:
                targets[node_id] = target
        return targets

    def edge_endpoints(self) -> dict[NodeId, tuple[NodeId | None, NodeId | None]]:
        endpoints: dict[NodeId, tuple[NodeId | None, NodeId | None]] = {}
        for node_id in self.walk():
            shape = self.nodes[node_id].shape
            if isinstance(shape, EdgeShape):
                endpoints[node_id] = (shape.source, shape.target)
        return endpoints

    def referrer_index(self) -> dict[NodeId, list[NodeId]]:
        index: dict[NodeId, list[NodeId]] = {}
        for node_id in self.walk():
            for target in self.nodes[node_id].references():
                referrers = index.setdefault(target, [])
                if node_id not in referrers:
                    referrers.append(node_id)
        return index

    def referrers(self, node_id: NodeId) -> list[NodeId]:
        return self.referrer_index().get(node_id, [])

    def dangling_references(self) -> list[tuple[NodeId, NodeId]]:
        dangling: list[tuple[NodeId, NodeId]] = []
        for node_id in self.walk():
            for target in self.nodes[node_id].references():
                if target not in self.nodes:
                    dangling.append((node_id, target))
        return dangling

    def needs_explicit_id(self, node_id: NodeId, referenced: Iterable[NodeId]) -> bool:
        node = self.nodes[node_id]
        if not node.anonymous:
            return True
        if node.constraint is not None and not isinstance(node.constraint, Absolute):
            return True
        return node_id in referenced

    def effective_style(self, node: Node) -> Style:
        style = Style()
        for ref in node.use_styles:
            source = self.nodes.get(ref)
            if source is not None and source.kind == "style":
                style = source.style.merged_over(style)
        return node.style.merged_over(style)

    def rename(self, ref: NodeRef, new_name: str) -> str:
        node_id = self.require(ref)
        old_name = self.name(node_id)
        new_name = new_name.removeprefix("@")
        if new_name == old_name:
            return old_name
        if not is_identifier(new_name):
            msg = f"'{new_name}' is not a valid identifier"
            raise RenameConflict(msg)
        if new_name == CANVAS:
            msg = f"'{CANVAS}' is reserved for the viewport"
            raise RenameConflict(msg)
        if new_name in self.interner:
            msg = f"'@{new_name}' is already in use"
            raise RenameConflict(msg)
        self.interner.rebind(node_id, new_name)
        self.nodes[node_id].anonymous = False
        logger.debug("Renamed @%s to @%s", old_name, new_name)
        return old_name

    def invalidate(self, node_ids: Iterable[NodeId] | None = None) -> None:
        targets = self.nodes.keys() if node_ids is None else node_ids
        for node_id in targets:
            node = self.nodes.get(node_id)
            if node is not None:
                node.bounds = None
                node.origin = None

    def snapshot(self) -> tuple[Any, ...]:
        referenced = set(self.referrer_index())
        return tuple(self._snapshot_node(child, referenced) for child in self.children[self.root])

    def _snapshot_node(self, node_id: NodeId, referenced: set[NodeId]) -> tuple[Any, ...]:
        node = self.nodes[node_id]
        label = self.name(node_id) if self.needs_explicit_id(node_id, referenced) else None
        return (
            node.kind,
            label,
            self._plain(node.shape),
            self._plain(node.style),
            tuple(self.name(ref) for ref in node.use_styles),
            self._plain(node.annotations),
            self._plain(node.constraint),
            self._plain(node.animations),
            tuple(node.raw),
            tuple(self._snapshot_node(child, referenced) for child in self.children[node_id]),
        )

    def _plain(self, value: Any) -> Any:
        if isinstance(value, NodeId):
            return "@" + self.name(value)
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return (
                type(value).__name__,
                tuple(
                    self._plain(getattr(value, item.name))
                    for item in dataclasses.fields(value)
                    if item.compare
                ),
            )
        if isinstance(value, (list, tuple)):
            return tuple(self._plain(item) for item in value)
        return value
