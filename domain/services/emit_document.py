from __future__ import annotations

from domain.ids import NodeId
from domain.models import (
    CANVAS,
    DEFAULT_GRID_COLS,
    FONT_WEIGHT_NAMES,
    Absolute,
    Accept,
    Animation,
    Annotation,
    CenterIn,
    Constraint,
    Description,
    EdgeShape,
    FillParent,
    FrameShape,
    GroupShape,
    Node,
    Offset,
    PathShape,
    Priority,
    Status,
    Style,
    Tag,
    Target,
    TextShape,
)
from domain.scene_graph import SceneGraph
from domain.services.tokenize_document import escape_string

INDENT = "  "


def format_number(value: float) -> str:
    number = float(value)
    if number.is_integer():
        return str(int(number))
    text = repr(number)
    if "e" in text or "E" in text:
        text = f"{number:.10f}".rstrip("0").rstrip(".")
    return text


class DocumentEmitter:
    def __init__(self, graph: SceneGraph) -> None:
        self.graph = graph
        self.referenced = set(graph.referrer_index())
        self.lines: list[str] = []

    def emit(self) -> str:
        graph = self.graph
        for child in graph.children_of(graph.root):
            self.emit_node(child, 0)
        constrained = [
            node_id
            for node_id in graph.walk()
            if graph.nodes[node_id].constraint is not None
            and not isinstance(graph.nodes[node_id].constraint, Absolute)
        ]
        if constrained:
            first = graph.nodes[constrained[0]]
            if self.lines and first.constraint_trivia[:1] != [""]:
                self.lines.append("")
            for node_id in constrained:
                node = graph.nodes[node_id]
                self.emit_trivia(node.constraint_trivia, 0)
                self.lines.append(self.constraint_line(node_id, node.constraint))
        self.emit_trivia(graph.trailing_trivia, 0)
        return "\n".join(self.lines) + "\n" if self.lines else ""

    def ref(self, node_id: NodeId) -> str:
        return "@" + self.graph.name(node_id)

    def target(self, target: Target) -> str:
        return CANVAS if target == CANVAS else self.ref(target)

    def emit_trivia(self, trivia: list[str], depth: int) -> None:
        for item in trivia:
            self.lines.append(INDENT * depth + item if item else "")

    def header(self, node_id: NodeId, node: Node) -> str:
        if node.kind == "style":
            return f"style {self.graph.name(node_id)}"
        parts = [node.kind]
        if self.graph.needs_explicit_id(node_id, self.referenced):
            parts.append(self.ref(node_id))
        if isinstance(node.shape, TextShape) and node.shape.content:
            parts.append(escape_string(node.shape.content))
        return " ".join(parts)

    def emit_node(self, node_id: NodeId, depth: int) -> None:
        node = self.graph.nodes[node_id]
        prefix = INDENT * depth
        self.emit_trivia(node.trivia, depth)
        start = len(self.lines)
        self.lines.append("")
        self.emit_body(node_id, node, depth + 1)
        header = prefix + self.header(node_id, node)
        if len(self.lines) == start + 1:
            self.lines[start] = header
        else:
            self.lines[start] = header + " {"
            self.lines.append(prefix + "}")

    def emit_body(self, node_id: NodeId, node: Node, depth: int) -> None:
        prefix = INDENT * depth
        self.emit_annotations(node.annotations, depth)
        if isinstance(node.constraint, Absolute):
            self.lines.append(
                f"{prefix}x: {format_number(node.constraint.x)} y: {format_number(node.constraint.y)}"
            )
        shape = node.shape
        if isinstance(shape, EdgeShape):
            if shape.source is not None:
                self.lines.append(f"{prefix}from: {self.ref(shape.source)}")
            if shape.target is not None:
                self.lines.append(f"{prefix}to: {self.ref(shape.target)}")
            if shape.label is not None:
                self.lines.append(f"{prefix}label: {escape_string(shape.label)}")
            if shape.arrow != "none":
                self.lines.append(f"{prefix}arrow: {shape.arrow}")
            if shape.curve != "straight":
                self.lines.append(f"{prefix}curve: {shape.curve}")
        else:
            size = []
            width = getattr(shape, "width", None)
            height = getattr(shape, "height", None)
            if width is not None:
                size.append(f"w: {format_number(width)}")
            if height is not None:
                size.append(f"h: {format_number(height)}")
            if size:
                self.lines.append(prefix + " ".join(size))
        if node.use_styles:
            names = ", ".join(self.graph.name(ref) for ref in node.use_styles)
            self.lines.append(f"{prefix}use: {names}")
        self.emit_style(node.style, depth)
        if isinstance(shape, FrameShape) and shape.clip:
            self.lines.append(f"{prefix}clip: true")
        if isinstance(shape, PathShape) and shape.data is not None:
            self.lines.append(f"{prefix}d: {escape_string(shape.data)}")
        for name, text in node.raw:
            self.lines.append(f"{prefix}{name}: {text}" if text else f"{prefix}{name}:")
        if isinstance(shape, (GroupShape, FrameShape)) and shape.layout is not None:
            layout = shape.layout
            options = f"gap={format_number(layout.gap)} pad={format_number(layout.pad)}"
            if layout.mode == "grid" or layout.cols != DEFAULT_GRID_COLS:
                options = f"cols={layout.cols} " + options
            self.lines.append(f"{prefix}layout: {layout.mode} {options}")
        for animation in node.animations:
            self.emit_animation(animation, depth)
        for child in self.graph.children_of(node_id):
            self.emit_node(child, depth)
        self.emit_trivia(node.trailing_trivia, depth)

    def emit_style(self, style: Style, depth: int) -> None:
        prefix = INDENT * depth
        if style.fill is not None:
            self.lines.append(f"{prefix}fill: {style.fill.hex}")
        if style.stroke is not None:
            self.lines.append(
                f"{prefix}stroke: {style.stroke.color.hex} {format_number(style.stroke.width)}"
            )
        if style.corner is not None:
            self.lines.append(f"{prefix}corner: {format_number(style.corner)}")
        if style.opacity is not None:
            self.lines.append(f"{prefix}opacity: {format_number(style.opacity)}")
        if style.font is not None:
            font = style.font
            weight = FONT_WEIGHT_NAMES.get(font.weight, str(font.weight))
            self.lines.append(
                f"{prefix}font: {escape_string(font.family)} {weight} {format_number(font.size)}"
            )
        if style.shadow is not None:
            shadow = style.shadow
            values = ",".join(format_number(item) for item in (shadow.dx, shadow.dy, shadow.blur))
            self.lines.append(f"{prefix}shadow: ({values},{shadow.color.hex})")

    def emit_annotations(self, annotations: list[Annotation], depth: int) -> None:
        if not annotations:
            return
        prefix = INDENT * depth
        if len(annotations) == 1 and isinstance(annotations[0], Description):
            self.lines.append(f"{prefix}spec {escape_string(annotations[0].text)}")
            return
        inner = prefix + INDENT
        self.lines.append(f"{prefix}spec {{")
        for annotation in annotations:
            if isinstance(annotation, Description):
                self.lines.append(inner + escape_string(annotation.text))
            elif isinstance(annotation, Accept):
                self.lines.append(f"{inner}accept: {escape_string(annotation.text)}")
            elif isinstance(annotation, Status):
                self.lines.append(f"{inner}status: {annotation.value}")
            elif isinstance(annotation, Priority):
                self.lines.append(f"{inner}priority: {annotation.value}")
            elif isinstance(annotation, Tag):
                self.lines.append(f"{inner}tag: {', '.join(annotation.names)}")
        self.lines.append(prefix + "}")

    def emit_animation(self, animation: Animation, depth: int) -> None:
        prefix = INDENT * depth
        inner = prefix + INDENT
        self.lines.append(f"{prefix}anim :{animation.trigger} {{")
        if animation.fill is not None:
            self.lines.append(f"{inner}fill: {animation.fill.hex}")
        for name in ("opacity", "scale", "rotate"):
            value = getattr(animation, name)
            if value is not None:
                self.lines.append(f"{inner}{name}: {format_number(value)}")
        easing = animation.easing
        self.lines.append(f"{inner}ease: {easing.name} {easing.duration_ms}ms")
        self.lines.append(prefix + "}")

    def constraint_line(self, node_id: NodeId, constraint: Constraint) -> str:
        subject = self.ref(node_id)
        if isinstance(constraint, CenterIn):
            return f"{subject} -> center_in: {self.target(constraint.target)}"
        if isinstance(constraint, Offset):
            return (
                f"{subject} -> offset: {self.target(constraint.target)} "
                f"{format_number(constraint.dx)}, {format_number(constraint.dy)}"
            )
        if isinstance(constraint, FillParent):
            return f"{subject} -> fill_parent: {format_number(constraint.margin)}"
        msg = f"Unsupported constraint line for {subject}: {constraint!r}"
        raise TypeError(msg)


def emit_document(graph: SceneGraph) -> str:
    return DocumentEmitter(graph).emit()
