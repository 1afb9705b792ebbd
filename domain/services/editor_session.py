from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

from domain.commands import AddNode, Batch, DuplicateNodes, MoveNode
from domain.ids import NodeId
from domain.models import (
    Absolute,
    EllipseShape,
    FrameShape,
    Node,
    PathShape,
    Point,
    RectShape,
    ResolvedBounds,
    TextShape,
)
from domain.scene_graph import NodeRef, SceneGraph, Subtree
from domain.services.sync_coordinator import CommandResult, SyncCoordinator

logger = logging.getLogger(__name__)

Tool = Literal["select", "rect", "ellipse", "text", "path", "frame"]
TOOLS = ("select", "rect", "ellipse", "text", "path", "frame")

SHAPE_TOOLS = {
    "rect": RectShape,
    "ellipse": EllipseShape,
    "text": TextShape,
    "path": PathShape,
    "frame": FrameShape,
}


@dataclass
class DragGesture:
    targets: tuple[NodeId, ...]
    start: Point
    dx: float = 0.0
    dy: float = 0.0


@dataclass
class EditorSession:
    active_tool: Tool = "select"
    previous_tool: Tool = "select"
    tool_locked: bool = False
    selection: list[NodeId] = field(default_factory=list)
    drag: DragGesture | None = None
    duplicate_offset: float = 20.0

    def set_tool(self, tool: Tool, lock: bool = False) -> None:
        if tool not in TOOLS:
            msg = f"Unknown tool '{tool}'"
            raise ValueError(msg)
        if tool != self.active_tool:
            self.previous_tool = self.active_tool
            self.active_tool = tool
        self.tool_locked = lock

    def toggle_tool(self) -> Tool:
        self.active_tool, self.previous_tool = self.previous_tool, self.active_tool
        return self.active_tool

    def finish_tool_use(self) -> None:
        # One-shot drawing tools fall back to selection unless locked.
        if not self.tool_locked and self.active_tool != "select":
            self.set_tool("select")

    def select(self, graph: SceneGraph, targets: list[NodeRef], extend: bool = False) -> None:
        ids = [graph.require(target) for target in targets]
        if not extend:
            self.selection = []
        for node_id in ids:
            if node_id not in self.selection:
                self.selection.append(node_id)

    def clear_selection(self) -> None:
        self.selection = []

    def begin_drag(self, x: float, y: float) -> bool:
        if not self.selection or self.active_tool != "select":
            return False
        self.drag = DragGesture(tuple(self.selection), Point(x, y))
        return True

    def drag_to(self, x: float, y: float) -> None:
        if self.drag is None:
            return
        self.drag.dx = x - self.drag.start.x
        self.drag.dy = y - self.drag.start.y

    def preview_bounds(self, graph: SceneGraph) -> dict[NodeId, ResolvedBounds]:
        if self.drag is None:
            return {}
        preview: dict[NodeId, ResolvedBounds] = {}
        for target in graph.top_most(self.drag.targets):
            for member in (target, *graph.walk(target)):
                bounds = graph.nodes[member].bounds
                if bounds is not None:
                    preview[member] = bounds.shifted(self.drag.dx, self.drag.dy)
        return preview

    def end_drag(self, coordinator: SyncCoordinator) -> CommandResult | None:
        drag, self.drag = self.drag, None
        if drag is None or (drag.dx == 0 and drag.dy == 0):
            return None
        # Descendants of a selected node move with it.
        targets = coordinator.graph.top_most(drag.targets)
        moves = tuple(MoveNode(target, drag.dx, drag.dy) for target in targets)
        command = moves[0] if len(moves) == 1 else Batch(moves)
        logger.debug("Drag committed for %d node(s)", len(moves))
        return coordinator.apply_command(command)

    def cancel_drag(self) -> None:
        self.drag = None

    def commit_shape(
        self,
        coordinator: SyncCoordinator,
        start: tuple[float, float],
        end: tuple[float, float],
        content: str = "",
    ) -> CommandResult | None:
        shape_type = SHAPE_TOOLS.get(self.active_tool)
        if shape_type is None:
            return None
        graph = coordinator.graph
        left, top = min(start[0], end[0]), min(start[1], end[1])
        width, height = abs(end[0] - start[0]), abs(end[1] - start[1])
        if shape_type is TextShape:
            shape = TextShape(content=content)
        elif width and height:
            shape = shape_type(width=width, height=height)
        else:
            shape = shape_type()
        node_id = graph.interner.fresh(shape_type.kind)
        node = Node(id=node_id, shape=shape, constraint=Absolute(left, top), anonymous=True)
        result = coordinator.apply_command(
            AddNode(Subtree(root=node_id, nodes={node_id: node}, children={node_id: []}))
        )
        if result.ok:
            self.selection = [node_id]
            self.finish_tool_use()
        return result

    def duplicate_selection(self, coordinator: SyncCoordinator) -> CommandResult | None:
        if not self.selection:
            return None
        offset = self.duplicate_offset
        result = coordinator.apply_command(DuplicateNodes(tuple(self.selection), offset, offset))
        if result.ok and result.applied is not None:
            self.selection = list(result.applied.inverse.targets)
        return result

    def reset(self) -> None:
        self.selection = []
        self.drag = None
        self.active_tool = self.previous_tool = "select"
        self.tool_locked = False
