from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import ClassVar, Literal, Union

from domain.ids import NodeId

NodeKind = Literal["group", "rect", "ellipse", "text", "path", "frame", "style", "edge"]
NODE_KEYWORDS = ("group", "rect", "ellipse", "text", "path", "frame")
SIZED_KINDS = {"group", "rect", "ellipse", "text", "path", "frame"}

LayoutMode = Literal["column", "row", "grid"]
LAYOUT_MODES = ("column", "row", "grid")

StatusValue = Literal["draft", "in_progress", "done", "blocked"]
STATUS_VALUES = ("draft", "in_progress", "done", "blocked")
PriorityValue = Literal["high", "medium", "low"]
PRIORITY_VALUES = ("high", "medium", "low")

STANDARD_TRIGGERS = ("hover", "press", "enter")
EasingName = Literal["linear", "ease_in", "ease_out", "ease_in_out", "spring"]
EASING_NAMES = ("linear", "ease_in", "ease_out", "ease_in_out", "spring")

ArrowKind = Literal["none", "start", "end", "both"]
ARROW_KINDS = ("none", "start", "end", "both")
CurveKind = Literal["straight", "smooth", "step"]
CURVE_KINDS = ("straight", "smooth", "step")

Severity = Literal["error", "warning", "info"]

CANVAS: Literal["canvas"] = "canvas"
Target = Union[NodeId, Literal["canvas"]]

FONT_WEIGHTS = {
    "thin": 100,
    "extralight": 200,
    "light": 300,
    "regular": 400,
    "medium": 500,
    "semibold": 600,
    "bold": 700,
    "extrabold": 800,
    "black": 900,
}
FONT_WEIGHT_NAMES = {value: name for name, value in FONT_WEIGHTS.items()}

_HEX_COLOR_RE = re.compile(r"^#(?:[0-9A-Fa-f]{3}|[0-9A-Fa-f]{4}|[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")


@dataclass(frozen=True)
class Color:
    hex: str

    def __post_init__(self) -> None:
        if not _HEX_COLOR_RE.match(self.hex):
            msg = f"Invalid hex color '{self.hex}': expected 3, 4, 6 or 8 hex digits"
            raise ValueError(msg)

    def __str__(self) -> str:
        return self.hex


@dataclass(frozen=True)
class Stroke:
    color: Color
    width: float = 1.0


@dataclass(frozen=True)
class Font:
    family: str = "Inter"
    weight: int = 400
    size: float = 14.0


@dataclass(frozen=True)
class Shadow:
    dx: float
    dy: float
    blur: float
    color: Color


@dataclass(frozen=True)
class Style:
    fill: Color | None = None
    stroke: Stroke | None = None
    corner: float | None = None
    opacity: float | None = None
    font: Font | None = None
    shadow: Shadow | None = None

    def merged_over(self, base: Style) -> Style:
        return Style(
            fill=self.fill if self.fill is not None else base.fill,
            stroke=self.stroke if self.stroke is not None else base.stroke,
            corner=self.corner if self.corner is not None else base.corner,
            opacity=self.opacity if self.opacity is not None else base.opacity,
            font=self.font if self.font is not None else base.font,
            shadow=self.shadow if self.shadow is not None else base.shadow,
        )


DEFAULT_GRID_COLS = 2


@dataclass(frozen=True)
class LayoutSpec:
    mode: LayoutMode
    gap: float = 0.0
    pad: float = 0.0
    cols: int = DEFAULT_GRID_COLS

    def __post_init__(self) -> None:
        if self.mode not in LAYOUT_MODES:
            msg = f"Unknown layout mode '{self.mode}'"
            raise ValueError(msg)
        if self.cols < 1:
            msg = "Grid layout needs at least one column"
            raise ValueError(msg)


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Size:
    width: float
    height: float


@dataclass(frozen=True)
class ResolvedBounds:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    def shifted(self, dx: float, dy: float) -> ResolvedBounds:
        return ResolvedBounds(self.x + dx, self.y + dy, self.width, self.height)

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)


# Positioning constraints. A node carries at most one.
@dataclass(frozen=True)
class Absolute:
    x: float
    y: float


@dataclass(frozen=True)
class CenterIn:
    target: Target


@dataclass(frozen=True)
class Offset:
    target: Target
    dx: float
    dy: float


@dataclass(frozen=True)
class FillParent:
    margin: float = 0.0


Constraint = Union[Absolute, CenterIn, Offset, FillParent]


def constraint_target(constraint: Constraint | None) -> NodeId | None:
    if isinstance(constraint, (CenterIn, Offset)) and isinstance(constraint.target, NodeId):
        return constraint.target
    return None


@dataclass(frozen=True)
class Description:
    text: str


@dataclass(frozen=True)
class Accept:
    text: str


@dataclass(frozen=True)
class Status:
    value: StatusValue

    def __post_init__(self) -> None:
        if self.value not in STATUS_VALUES:
            msg = f"Invalid status '{self.value}', expected one of: {', '.join(STATUS_VALUES)}"
            raise ValueError(msg)


@dataclass(frozen=True)
class Priority:
    value: PriorityValue

    def __post_init__(self) -> None:
        if self.value not in PRIORITY_VALUES:
            msg = f"Invalid priority '{self.value}', expected one of: {', '.join(PRIORITY_VALUES)}"
            raise ValueError(msg)


@dataclass(frozen=True)
class Tag:
    names: tuple[str, ...]


Annotation = Union[Description, Accept, Status, Priority, Tag]


@dataclass(frozen=True)
class Easing:
    name: EasingName = "ease_in_out"
    duration_ms: int = 300

    def __post_init__(self) -> None:
        if self.name not in EASING_NAMES:
            msg = f"Unknown easing '{self.name}'"
            raise ValueError(msg)


@dataclass(frozen=True)
class Animation:
    trigger: str
    fill: Color | None = None
    opacity: float | None = None
    scale: float | None = None
    rotate: float | None = None
    easing: Easing = Easing()


# Kind-specific payloads. Shared fields live on Node.
@dataclass(frozen=True)
class GroupShape:
    kind: ClassVar[NodeKind] = "group"
    width: float | None = None
    height: float | None = None
    layout: LayoutSpec | None = None


@dataclass(frozen=True)
class RectShape:
    kind: ClassVar[NodeKind] = "rect"
    width: float | None = None
    height: float | None = None


@dataclass(frozen=True)
class EllipseShape:
    kind: ClassVar[NodeKind] = "ellipse"
    width: float | None = None
    height: float | None = None


@dataclass(frozen=True)
class TextShape:
    kind: ClassVar[NodeKind] = "text"
    content: str = ""
    width: float | None = None
    height: float | None = None


@dataclass(frozen=True)
class PathShape:
    kind: ClassVar[NodeKind] = "path"
    data: str | None = None
    width: float | None = None
    height: float | None = None


@dataclass(frozen=True)
class FrameShape:
    kind: ClassVar[NodeKind] = "frame"
    width: float | None = None
    height: float | None = None
    clip: bool = False
    layout: LayoutSpec | None = None


@dataclass(frozen=True)
class StyleShape:
    kind: ClassVar[NodeKind] = "style"


@dataclass(frozen=True)
class EdgeShape:
    kind: ClassVar[NodeKind] = "edge"
    source: NodeId | None = None
    target: NodeId | None = None
    label: str | None = None
    arrow: ArrowKind = "none"
    curve: CurveKind = "straight"


Shape = Union[
    GroupShape, RectShape, EllipseShape, TextShape, PathShape, FrameShape, StyleShape, EdgeShape
]

SHAPES_BY_KIND: dict[str, type] = {
    shape.kind: shape
    for shape in (
        GroupShape,
        RectShape,
        EllipseShape,
        TextShape,
        PathShape,
        FrameShape,
        StyleShape,
        EdgeShape,
    )
}


@dataclass
class Node:
    id: NodeId
    shape: Shape
    style: Style = field(default_factory=Style)
    use_styles: list[NodeId] = field(default_factory=list)
    annotations: list[Annotation] = field(default_factory=list)
    constraint: Constraint | None = None
    animations: list[Animation] = field(default_factory=list)
    raw: list[tuple[str, str]] = field(default_factory=list)
    # Out-of-band source text: "" is a blank line, anything else a comment line.
    trivia: list[str] = field(default_factory=list, compare=False)
    trailing_trivia: list[str] = field(default_factory=list, compare=False)
    constraint_trivia: list[str] = field(default_factory=list, compare=False)
    anonymous: bool = field(default=False, compare=False)
    line: int | None = field(default=None, compare=False)
    bounds: ResolvedBounds | None = field(default=None, compare=False, repr=False)
    origin: Point | None = field(default=None, compare=False, repr=False)

    @property
    def kind(self) -> NodeKind:
        return self.shape.kind

    def references(self) -> list[NodeId]:
        refs: list[NodeId] = list(self.use_styles)
        target = constraint_target(self.constraint)
        if target is not None:
            refs.append(target)
        if isinstance(self.shape, EdgeShape):
            if self.shape.source is not None:
                refs.append(self.shape.source)
            if self.shape.target is not None:
                refs.append(self.shape.target)
        return refs


@dataclass(frozen=True)
class Diagnostic:
    rule: str
    message: str
    severity: Severity = "warning"
    node: NodeId | None = None
    line: int | None = None


LayoutFlag = Literal["cycle", "unresolved_reference"]


class LayoutResult(Mapping[NodeId, ResolvedBounds]):
    def __init__(
        self,
        bounds: dict[NodeId, ResolvedBounds],
        origins: dict[NodeId, Point],
        flagged: dict[NodeId, LayoutFlag],
        viewport: Size,
    ) -> None:
        self._bounds = bounds
        self.origins = origins
        self.flagged = flagged
        self.viewport = viewport

    def __getitem__(self, node_id: NodeId) -> ResolvedBounds:
        return self._bounds[node_id]

    def __iter__(self) -> Iterator[NodeId]:
        return iter(self._bounds)

    def __len__(self) -> int:
        return len(self._bounds)

    def origin_of(self, node_id: NodeId) -> Point:
        return self.origins[node_id]
