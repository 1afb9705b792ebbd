from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from domain.ids import NodeId
from domain.models import Animation, Annotation, Constraint, Node
from domain.scene_graph import NodeRef, Subtree


@dataclass(frozen=True)
class MoveNode:
    target: NodeRef
    dx: float
    dy: float


@dataclass(frozen=True)
class SetConstraint:
    target: NodeRef
    constraint: Optional[Constraint]


@dataclass(frozen=True)
class ResizeNode:
    target: NodeRef
    width: Optional[float]
    height: Optional[float]


@dataclass(frozen=True)
class SetProperty:
    target: NodeRef
    name: str
    # A typed value, DSL text for the property, or None to clear it.
    value: Any


@dataclass(frozen=True)
class GroupRestore:
    group: Node
    index: int
    constraints: tuple[tuple[NodeId, Optional[Constraint]], ...]


@dataclass(frozen=True)
class GroupNodes:
    targets: tuple[NodeRef, ...]
    group_id: Optional[str] = None
    restore: Optional[GroupRestore] = field(default=None, compare=False)


@dataclass(frozen=True)
class UngroupRestore:
    placements: tuple[tuple[NodeId, int, Optional[Constraint]], ...]


@dataclass(frozen=True)
class UngroupNode:
    target: NodeRef
    restore: Optional[UngroupRestore] = field(default=None, compare=False)


@dataclass(frozen=True)
class AddNode:
    subtree: Subtree
    parent: Optional[NodeRef] = None
    index: Optional[int] = None


@dataclass(frozen=True)
class DeleteNodes:
    targets: tuple[NodeRef, ...]


@dataclass(frozen=True)
class DuplicateNodes:
    targets: tuple[NodeRef, ...]
    dx: float = 20.0
    dy: float = 20.0
    # Copy names chosen on first application; redo reuses them.
    names: Optional[tuple[str, ...]] = None


@dataclass(frozen=True)
class AddAnimation:
    target: NodeRef
    animation: Animation
    index: Optional[int] = None


@dataclass(frozen=True)
class RemoveAnimation:
    target: NodeRef
    index: int


@dataclass(frozen=True)
class SetAnnotations:
    target: NodeRef
    annotations: tuple[Annotation, ...]


@dataclass(frozen=True)
class RenameNode:
    target: NodeRef
    new_name: str
    anonymous: bool = False


@dataclass(frozen=True)
class Batch:
    commands: tuple[Command, ...]


Command = Union[
    MoveNode,
    SetConstraint,
    ResizeNode,
    SetProperty,
    GroupNodes,
    UngroupNode,
    AddNode,
    DeleteNodes,
    DuplicateNodes,
    AddAnimation,
    RemoveAnimation,
    SetAnnotations,
    RenameNode,
    Batch,
]

STRUCTURAL_COMMANDS = (GroupNodes, UngroupNode, AddNode, DeleteNodes, DuplicateNodes)


def is_structural(command: Command) -> bool:
    if isinstance(command, Batch):
        return any(is_structural(item) for item in command.commands)
    return isinstance(command, STRUCTURAL_COMMANDS)


@dataclass(frozen=True)
class AppliedCommand:
    command: Command
    inverse: Command
    affected: frozenset[NodeId]
    structural: bool
