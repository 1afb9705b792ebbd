from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal, Tuple

from domain.ids import NodeId
from domain.models import (
    CANVAS,
    Absolute,
    CenterIn,
    EdgeShape,
    FillParent,
    Font,
    FrameShape,
    GroupShape,
    LayoutFlag,
    LayoutResult,
    LayoutSpec,
    Offset,
    Point,
    ResolvedBounds,
    Size,
    TextShape,
    constraint_target,
)
from domain.ports.layout import LayoutEngine
from domain.scene_graph import SceneGraph

logger = logging.getLogger(__name__)

Task = Tuple[Literal["place", "bounds"], NodeId]

ORIGIN = Point(0.0, 0.0)


@dataclass(frozen=True)
class LayoutConfig:
    viewport: Size = Size(800, 600)
    default_size: Size = Size(100, 100)
    frame_size: Size = Size(200, 200)
    char_width_ratio: float = 0.6
    default_font: Font = Font()


@dataclass
class _Extent:
    size: Size
    # Bounds corner relative to the node's frame origin.
    offset: Point = ORIGIN
    # Child bounds corners relative to the container's frame origin.
    slots: dict[NodeId, Point] = field(default_factory=dict)


class ConstraintLayoutEngine(LayoutEngine):
    def __init__(self, config: LayoutConfig | None = None) -> None:
        self.config = config or LayoutConfig()

    def resolve(
        self,
        graph: SceneGraph,
        scope: Iterable[NodeId] | None = None,
        previous: LayoutResult | None = None,
    ) -> LayoutResult:
        resolution = _Resolution(graph, self.config)
        if scope is not None and previous is not None:
            closure = resolution.closure(list(scope))
            if closure is not None and resolution.seed_from(previous, closure):
                logger.debug("Scoped layout over %d of %d nodes", len(closure), len(graph))
                return resolution.run(closure)
        return resolution.run(None)


class _Resolution:
    def __init__(self, graph: SceneGraph, config: LayoutConfig) -> None:
        self.graph = graph
        self.config = config
        self.order = list(graph.walk())
        self.position = {node_id: index for index, node_id in enumerate(self.order)}
        self.extents: dict[NodeId, _Extent] = {}
        self.origins: dict[NodeId, Point] = {graph.root: ORIGIN}
        self.bounds: dict[NodeId, ResolvedBounds] = {}
        self.flagged: dict[NodeId, LayoutFlag] = {}
        self.viewport = ResolvedBounds(0.0, 0.0, config.viewport.width, config.viewport.height)
        for node_id in reversed(self.order):
            extent = self._measure(node_id)
            if extent is not None:
                self.extents[node_id] = extent

    # Phase 1: intrinsic sizes, bottom-up.

    def _measure(self, node_id: NodeId) -> _Extent | None:
        node = self.graph.nodes[node_id]
        shape = node.shape
        if node.kind in ("style", "edge"):
            return None
        if isinstance(shape, TextShape):
            font = self.graph.effective_style(node).font or self.config.default_font
            measured = Size(len(shape.content) * font.size * self.config.char_width_ratio, font.size)
            return _Extent(self._explicit(shape.width, shape.height, measured))
        if isinstance(shape, FrameShape):
            extent = _Extent(self._explicit(shape.width, shape.height, self.config.frame_size))
            if shape.layout is not None:
                extent.slots = self._stack(node_id, shape.layout).slots
            return extent
        if isinstance(shape, GroupShape):
            if shape.layout is not None:
                stacked = self._stack(node_id, shape.layout)
                stacked.size = self._explicit(shape.width, shape.height, stacked.size)
                return stacked
            return self._union_extent(node_id, shape)
        return _Extent(self._explicit(shape.width, shape.height, self.config.default_size))

    def _explicit(self, width: float | None, height: float | None, fallback: Size) -> Size:
        return Size(
            fallback.width if width is None else width,
            fallback.height if height is None else height,
        )

    def _union_extent(self, node_id: NodeId, shape: GroupShape) -> _Extent:
        boxes = []
        for child_id in self.graph.children_of(node_id):
            if not self._in_union(node_id, child_id):
                continue
            extent = self.extents[child_id]
            constraint = self.graph.nodes[child_id].constraint
            local = Point(constraint.x, constraint.y) if isinstance(constraint, Absolute) else ORIGIN
            left = local.x + extent.offset.x
            top = local.y + extent.offset.y
            boxes.append((left, top, left + extent.size.width, top + extent.size.height))
        if not boxes:
            return _Extent(self._explicit(shape.width, shape.height, Size(0.0, 0.0)))
        left = min(box[0] for box in boxes)
        top = min(box[1] for box in boxes)
        size = Size(max(box[2] for box in boxes) - left, max(box[3] for box in boxes) - top)
        offset = Point(
            0.0 if shape.width is not None else left,
            0.0 if shape.height is not None else top,
        )
        return _Extent(self._explicit(shape.width, shape.height, size), offset)

    def _stack(self, node_id: NodeId, layout: LayoutSpec) -> _Extent:
        members = [child for child in self.graph.children_of(node_id) if self._is_stacked(child)]
        slots: dict[NodeId, Point] = {}
        pad, gap = layout.pad, layout.gap
        right = bottom = pad
        if layout.mode == "column":
            y = pad
            for child in members:
                size = self.extents[child].size
                slots[child] = Point(pad, y)
                right = max(right, pad + size.width)
                bottom = y + size.height
                y = bottom + gap
        elif layout.mode == "row":
            x = pad
            for child in members:
                size = self.extents[child].size
                slots[child] = Point(x, pad)
                bottom = max(bottom, pad + size.height)
                right = x + size.width
                x = right + gap
        else:
            x = y = pad
            row_height = 0.0
            for index, child in enumerate(members):
                if index and index % layout.cols == 0:
                    x = pad
                    y += row_height + gap
                    row_height = 0.0
                size = self.extents[child].size
                slots[child] = Point(x, y)
                right = max(right, x + size.width)
                bottom = max(bottom, y + size.height)
                row_height = max(row_height, size.height)
                x += size.width + gap
        return _Extent(Size(right + pad, bottom + pad), ORIGIN, slots)

    def _is_stacked(self, node_id: NodeId) -> bool:
        node = self.graph.nodes[node_id]
        if node.kind in ("style", "edge"):
            return False
        return node.constraint is None or isinstance(node.constraint, Absolute)

    def _in_union(self, group_id: NodeId, child_id: NodeId) -> bool:
        child = self.graph.nodes[child_id]
        if child.kind in ("style", "edge") or isinstance(child.constraint, FillParent):
            return False
        target = constraint_target(child.constraint)
        if target is None:
            return True
        return target != group_id and not self.graph.is_ancestor(target, group_id)

    def _is_auto_group(self, node_id: NodeId) -> bool:
        shape = self.graph.nodes[node_id].shape
        return (
            isinstance(shape, GroupShape)
            and shape.layout is None
            and (shape.width is None or shape.height is None)
        )

    def _resolvable(self, target: NodeId | None) -> bool:
        if target is None or target not in self.graph.nodes:
            return False
        return self.graph.nodes[target].kind != "style"

    def _slot(self, node_id: NodeId) -> Point | None:
        parent = self.graph.parent_of(node_id)
        extent = self.extents.get(parent)
        if extent is None:
            return None
        return extent.slots.get(node_id)

    # Phase 2: dependency-ordered placement.

    def _dependencies(self, task: Task) -> list[Task]:
        kind, node_id = task
        graph = self.graph
        node = graph.nodes[node_id]
        parent = graph.parent_of(node_id)
        parent_place: list[Task] = [] if parent == graph.root else [("place", parent)]
        if kind == "bounds":
            if isinstance(node.shape, EdgeShape):
                return [
                    ("bounds", endpoint)
                    for endpoint in (node.shape.source, node.shape.target)
                    if self._resolvable(endpoint)
                ]
            deps: list[Task] = [("place", node_id)]
            if self._is_auto_group(node_id):
                deps.extend(
                    ("bounds", child)
                    for child in graph.children_of(node_id)
                    if self._in_union(node_id, child)
                )
            return deps
        constraint = node.constraint
        if self._slot(node_id) is not None:
            return parent_place
        if isinstance(constraint, (CenterIn, Offset)):
            if constraint.target == CANVAS:
                return []
            if self._resolvable(constraint.target):
                return [("bounds", constraint.target)]
            return parent_place
        if isinstance(constraint, FillParent):
            return [] if parent == graph.root else [("bounds", parent)]
        return parent_place

    def _container(self, node_id: NodeId) -> ResolvedBounds:
        parent = self.graph.parent_of(node_id)
        if parent == self.graph.root:
            return self.viewport
        return self.bounds[parent]

    def _place(self, node_id: NodeId) -> None:
        graph = self.graph
        node = graph.nodes[node_id]
        extent = self.extents[node_id]
        parent_origin = self.origins.get(graph.parent_of(node_id), ORIGIN)
        constraint = node.constraint
        slot = self._slot(node_id)
        if slot is not None:
            origin = Point(
                parent_origin.x + slot.x - extent.offset.x,
                parent_origin.y + slot.y - extent.offset.y,
            )
        elif isinstance(constraint, (CenterIn, Offset)):
            target = constraint.target
            if target != CANVAS and not self._resolvable(target):
                self._flag(node_id, "unresolved_reference")
                origin = parent_origin
            elif isinstance(constraint, CenterIn):
                container = self.viewport if target == CANVAS else self.bounds[target]
                center = container.center
                origin = Point(
                    center.x - extent.size.width / 2 - extent.offset.x,
                    center.y - extent.size.height / 2 - extent.offset.y,
                )
            else:
                anchor = ORIGIN if target == CANVAS else self.origins[target]
                origin = Point(
                    anchor.x + constraint.dx - extent.offset.x,
                    anchor.y + constraint.dy - extent.offset.y,
                )
        elif isinstance(constraint, FillParent):
            container = self._container(node_id)
            origin = Point(container.x + constraint.margin, container.y + constraint.margin)
        elif isinstance(constraint, Absolute):
            origin = Point(parent_origin.x + constraint.x, parent_origin.y + constraint.y)
        else:
            origin = parent_origin
        self.origins[node_id] = origin

    def _measure_bounds(self, node_id: NodeId) -> None:
        graph = self.graph
        node = graph.nodes[node_id]
        shape = node.shape
        if isinstance(shape, EdgeShape):
            self._edge_bounds(node_id, shape)
            return
        origin = self.origins[node_id]
        extent = self.extents[node_id]
        if isinstance(node.constraint, FillParent):
            container = self._container(node_id)
            margin = node.constraint.margin
            self.bounds[node_id] = ResolvedBounds(
                origin.x,
                origin.y,
                max(0.0, container.width - 2 * margin),
                max(0.0, container.height - 2 * margin),
            )
            return
        if isinstance(shape, GroupShape) and self._is_auto_group(node_id):
            members = [
                self.bounds[child]
                for child in graph.children_of(node_id)
                if self._in_union(node_id, child) and child in self.bounds
            ]
            if members:
                left = min(item.x for item in members)
                top = min(item.y for item in members)
                right = max(item.x + item.width for item in members)
                bottom = max(item.y + item.height for item in members)
            else:
                left, top, right, bottom = origin.x, origin.y, origin.x, origin.y
            if shape.width is not None:
                left, right = origin.x, origin.x + shape.width
            if shape.height is not None:
                top, bottom = origin.y, origin.y + shape.height
            self.bounds[node_id] = ResolvedBounds(left, top, right - left, bottom - top)
            return
        self.bounds[node_id] = ResolvedBounds(
            origin.x + extent.offset.x,
            origin.y + extent.offset.y,
            extent.size.width,
            extent.size.height,
        )

    def _edge_bounds(self, node_id: NodeId, shape: EdgeShape) -> None:
        ends = [
            self.bounds.get(endpoint)
            for endpoint in (shape.source, shape.target)
            if endpoint is not None
        ]
        if len(ends) != 2 or ends[0] is None or ends[1] is None:
            self._flag(node_id, "unresolved_reference")
            self._fallback(node_id, None)
            return
        start, end = ends[0].center, ends[1].center
        left, top = min(start.x, end.x), min(start.y, end.y)
        self.origins[node_id] = Point(left, top)
        self.bounds[node_id] = ResolvedBounds(left, top, abs(end.x - start.x), abs(end.y - start.y))

    def _fallback(self, node_id: NodeId, component: set[Task] | None) -> None:
        parent = self.graph.parent_of(node_id)
        in_cycle = component is not None and ("place", parent) in component
        if component is None or ("place", node_id) in component or node_id not in self.origins:
            self.origins[node_id] = ORIGIN if in_cycle else self.origins.get(parent, ORIGIN)
        origin = self.origins[node_id]
        extent = self.extents.get(node_id)
        if extent is None:
            self.bounds[node_id] = ResolvedBounds(origin.x, origin.y, 0.0, 0.0)
            return
        self.bounds[node_id] = ResolvedBounds(
            origin.x + extent.offset.x,
            origin.y + extent.offset.y,
            extent.size.width,
            extent.size.height,
        )

    def _flag(self, node_id: NodeId, reason: LayoutFlag) -> None:
        if self.flagged.get(node_id) == "cycle":
            return
        self.flagged[node_id] = reason
        logger.warning("Layout fallback for @%s: %s", self.graph.name(node_id), reason)

    def _tasks(self, nodes: Iterable[NodeId]) -> list[Task]:
        tasks: list[Task] = []
        for node_id in nodes:
            kind = self.graph.nodes[node_id].kind
            if kind == "style":
                continue
            if kind != "edge":
                tasks.append(("place", node_id))
            tasks.append(("bounds", node_id))
        return tasks

    def _components(self, tasks: list[Task]) -> tuple[list[list[Task]], dict[Task, list[Task]]]:
        # Iterative Tarjan; components come out dependencies first.
        active = set(tasks)
        edges = {task: [dep for dep in self._dependencies(task) if dep in active] for task in tasks}
        index: dict[Task, int] = {}
        low: dict[Task, int] = {}
        stack: list[Task] = []
        on_stack: set[Task] = set()
        components: list[list[Task]] = []
        for start in tasks:
            if start in index:
                continue
            index[start] = low[start] = len(index)
            stack.append(start)
            on_stack.add(start)
            work = [(start, iter(edges[start]))]
            while work:
                task, pending = work[-1]
                descended = False
                for dep in pending:
                    if dep not in index:
                        index[dep] = low[dep] = len(index)
                        stack.append(dep)
                        on_stack.add(dep)
                        work.append((dep, iter(edges[dep])))
                        descended = True
                        break
                    if dep in on_stack:
                        low[task] = min(low[task], index[dep])
                if descended:
                    continue
                work.pop()
                if work:
                    caller = work[-1][0]
                    low[caller] = min(low[caller], low[task])
                if low[task] == index[task]:
                    component: list[Task] = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == task:
                            break
                    components.append(component)
        return components, edges

    def _evaluate(self, component: list[Task], edges: dict[Task, list[Task]]) -> None:
        if len(component) == 1 and component[0] not in edges[component[0]]:
            kind, node_id = component[0]
            if kind == "place":
                self._place(node_id)
            else:
                self._measure_bounds(node_id)
            return
        members = set(component)
        nodes = sorted({node_id for _, node_id in component}, key=self.position.__getitem__)
        for node_id in nodes:
            self.flagged.pop(node_id, None)
            self._flag(node_id, "cycle")
            self._fallback(node_id, members)

    # Scoped re-resolution.

    def _manages(self, node_id: NodeId) -> bool:
        shape = self.graph.nodes[node_id].shape
        return isinstance(shape, (GroupShape, FrameShape)) and shape.layout is not None

    def closure(self, scope: list[NodeId]) -> set[NodeId] | None:
        graph = self.graph
        if any(node_id not in graph.nodes for node_id in scope):
            return None
        referrers = graph.referrer_index()
        moved: set[NodeId] = set()
        resized: set[NodeId] = set()
        pending_moved = list(scope)
        pending_resized: list[NodeId] = []
        while pending_moved or pending_resized:
            if pending_moved:
                node_id = pending_moved.pop()
                if node_id in moved:
                    continue
                moved.add(node_id)
                parent = graph.parent_of(node_id)
                if parent != graph.root:
                    if self._manages(parent):
                        pending_moved.extend(graph.children_of(parent))
                    pending_resized.append(parent)
                pending_moved.extend(graph.children_of(node_id))
                pending_moved.extend(referrers.get(node_id, ()))
                continue
            node_id = pending_resized.pop()
            if node_id in moved or node_id in resized:
                continue
            resized.add(node_id)
            pending_moved.extend(referrers.get(node_id, ()))
            pending_moved.extend(
                child
                for child in graph.children_of(node_id)
                if isinstance(graph.nodes[child].constraint, FillParent)
            )
            parent = graph.parent_of(node_id)
            constraint = graph.nodes[node_id].constraint
            if isinstance(constraint, (CenterIn, Offset)) or (
                parent != graph.root and self._manages(parent)
            ):
                pending_moved.append(node_id)
            elif parent != graph.root:
                pending_resized.append(parent)
        return moved | resized

    def seed_from(self, previous: LayoutResult, closure: set[NodeId]) -> bool:
        for node_id in self.order:
            if node_id in closure or self.graph.nodes[node_id].kind == "style":
                continue
            if node_id not in previous or node_id not in previous.origins:
                return False
            self.bounds[node_id] = previous[node_id]
            self.origins[node_id] = previous.origin_of(node_id)
            if node_id in previous.flagged:
                self.flagged[node_id] = previous.flagged[node_id]
        return True

    def run(self, closure: set[NodeId] | None) -> LayoutResult:
        nodes = self.order if closure is None else [n for n in self.order if n in closure]
        components, edges = self._components(self._tasks(nodes))
        for component in components:
            self._evaluate(component, edges)
        graph = self.graph
        bounds = {graph.root: self.viewport}
        origins = {graph.root: ORIGIN}
        for node_id in self.order:
            node = graph.nodes[node_id]
            node.bounds = self.bounds.get(node_id)
            node.origin = self.origins.get(node_id) if node.bounds is not None else None
            if node.bounds is not None:
                bounds[node_id] = node.bounds
                origins[node_id] = self.origins[node_id]
        flagged = {node_id: self.flagged[node_id] for node_id in self.order if node_id in self.flagged}
        return LayoutResult(bounds, origins, flagged, self.config.viewport)
