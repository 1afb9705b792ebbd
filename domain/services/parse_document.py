from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from domain.errors import ParseError
from domain.ids import NodeId
from domain.models import (
    ARROW_KINDS,
    CANVAS,
    CURVE_KINDS,
    DEFAULT_GRID_COLS,
    EASING_NAMES,
    FONT_WEIGHTS,
    LAYOUT_MODES,
    NODE_KEYWORDS,
    SHAPES_BY_KIND,
    Absolute,
    Accept,
    Animation,
    Annotation,
    CenterIn,
    Color,
    Constraint,
    Description,
    Diagnostic,
    EdgeShape,
    Easing,
    FillParent,
    Font,
    LayoutSpec,
    Node,
    Offset,
    Priority,
    Shadow,
    Status,
    Stroke,
    Tag,
    Target,
    TextShape,
)
from domain.properties import property_applies, set_property
from domain.scene_graph import SceneGraph, Subtree
from domain.services.tokenize_document import Token, tokenize, tokenize_value

logger = logging.getLogger(__name__)

STYLE_KEYWORDS = ("style", "theme")
ANIMATION_KEYWORDS = ("anim", "when")
COLON_OPTIONAL = ("stroke", "font")
PROPERTY_ALIASES = {"width": "w", "height": "h"}
VALUE_TERMINATORS = {"newline", "semicolon", "blank", "comment", "rbrace", "lbrace", "eof"}


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    error: ParseError | None = None
    diagnostics: tuple[Diagnostic, ...] = ()


@dataclass
class _ConstraintLine:
    subject: Token
    constraint: Constraint
    trivia: list[str]


@dataclass
class _BodyState:
    x: float | None = None
    y: float | None = None
    nodes_allowed: bool = True


def _describe(token: Token) -> str:
    if token.kind == "eof":
        return "end of input"
    if token.kind in ("newline", "blank"):
        return "end of line"
    return f"'{token.text}'"


class _ValueCursor:
    def __init__(self, parser: DocumentParser, tokens: list[Token], label: str, anchor: Token) -> None:
        self.parser = parser
        self.tokens = tokens
        self.index = 0
        self.label = label
        self.anchor = anchor

    def peek(self, offset: int = 0) -> Token | None:
        position = self.index + offset
        return self.tokens[position] if position < len(self.tokens) else None

    def remaining(self) -> bool:
        return self.index < len(self.tokens)

    def fail(self, message: str, token: Token | None = None) -> ParseError:
        anchor = token or (self.tokens[-1] if self.tokens else self.anchor)
        return ParseError(anchor.line, anchor.col, message)

    def take(self, kind: str, what: str) -> Token:
        token = self.peek()
        if token is None:
            raise self.fail(f"'{self.label}' expects {what}")
        if token.kind != kind:
            raise self.fail(f"'{self.label}' expects {what}, found '{token.text}'", token)
        self.index += 1
        return token

    def accept(self, kind: str) -> Token | None:
        token = self.peek()
        if token is not None and token.kind == kind:
            self.index += 1
            return token
        return None

    def number(self) -> float:
        return self.take("number", "a number").value[0]

    def color(self) -> Color:
        return Color(self.take("color", "a hex color").value)

    def string(self) -> str:
        return self.take("string", "a quoted string").value

    def word(self, choices: tuple[str, ...], what: str) -> str:
        token = self.take("ident", what)
        if choices and token.text not in choices:
            raise self.fail(f"'{self.label}' expects one of: {', '.join(choices)}; found '{token.text}'", token)
        return token.text

    def reference(self) -> NodeId:
        token = self.peek()
        if token is None or token.kind not in ("at_id", "ident"):
            raise self.fail(f"'{self.label}' expects a node reference", token)
        self.index += 1
        name = token.value if token.kind == "at_id" else token.text
        return self.parser.graph.interner.intern(name)

    def target(self) -> Target:
        token = self.peek()
        if token is not None and token.kind == "ident" and token.text == CANVAS:
            self.index += 1
            return CANVAS
        if token is None or token.kind != "at_id":
            raise self.fail(f"'{self.label}' expects '@id' or 'canvas'", token)
        return self.reference()

    def done(self) -> None:
        token = self.peek()
        if token is not None:
            raise self.fail(f"unexpected '{token.text}' in '{self.label}'", token)


class DocumentParser:
    def __init__(
        self,
        source: str,
        graph: SceneGraph,
        existing: SceneGraph | None = None,
        value_mode: bool = False,
    ) -> None:
        self.source = source
        self.tokens = tokenize_value(source) if value_mode else tokenize(source)
        self.pos = 0
        self.graph = graph
        self.existing = existing
        self.pending: list[str] = []
        self.open_braces: list[Token] = []
        self.constraint_lines: list[_ConstraintLine] = []
        self.declared: dict[NodeId, int] = {}

    def peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        token = self.peek()
        if token.kind != "eof":
            self.pos += 1
        return token

    def expect(self, kind: str, what: str) -> Token:
        token = self.peek()
        if token.kind != kind:
            raise self.error_at(token, f"expected {what}, found {_describe(token)}")
        return self.advance()

    def error_at(self, token: Token, message: str) -> ParseError:
        return ParseError(token.line, token.col, message)

    def unclosed(self) -> ParseError:
        innermost = self.open_braces[-1]
        count = len(self.open_braces)
        plural = "brace" if count == 1 else "braces"
        return self.error_at(innermost, f"unclosed '{{': {count} {plural} still open at end of input")

    def take_pending(self) -> list[str]:
        pending, self.pending = self.pending, []
        return pending

    def collect_trivia(self) -> None:
        while True:
            token = self.peek()
            if token.kind == "comment":
                self.pending.append(token.value)
            elif token.kind == "blank":
                if not self.pending or self.pending[-1] != "":
                    self.pending.append("")
            elif token.kind not in ("newline", "semicolon"):
                return
            self.advance()

    def report(self, rule: str, message: str, node: NodeId | None = None, line: int | None = None) -> None:
        logger.warning("%s: %s", rule, message)
        self.graph.diagnostics.append(
            Diagnostic(rule=rule, message=message, severity="warning", node=node, line=line)
        )

    def parse(self) -> SceneGraph:
        self.graph.interner.reserve(
            token.value if token.kind == "at_id" else token.text
            for token in self.tokens
            if token.kind in ("at_id", "ident")
        )
        while True:
            self.collect_trivia()
            if self.peek().kind == "eof":
                break
            self.parse_statement(self.graph.root, top_level=True)
        self.graph.trailing_trivia = self.take_pending()
        self.resolve_references()
        return self.graph

    def parse_statement(self, parent: NodeId, top_level: bool) -> None:
        token = self.peek()
        following = self.peek(1)
        if token.kind == "rbrace":
            raise self.error_at(token, "unmatched '}'")
        if token.kind == "at_id":
            if following.kind == "arrow":
                if not top_level:
                    raise self.error_at(token, "constraint lines must appear at the top level")
                self.parse_constraint_line()
                return
            if following.kind in ("lbrace", "string"):
                self.parse_node(parent, "group")
                return
            raise self.error_at(following, f"expected '{{' or '->' after '{token.text}', found {_describe(following)}")
        if token.kind == "ident" and following.kind != "colon":
            word = token.text
            if word in NODE_KEYWORDS or word == "edge":
                self.parse_node(parent, word)
                return
            if word in STYLE_KEYWORDS:
                if not top_level:
                    raise self.error_at(token, "style blocks must appear at the top level")
                self.parse_style()
                return
            if word == "spec" and top_level:
                self.advance()
                self.parse_annotations()
                self.take_pending()
                self.report("ignored-spec", "top-level spec block has no node to attach to", line=token.line)
                return
        raise self.error_at(token, f"unexpected {_describe(token)}")

    def declare(self, name_token: Token | None, kind: str) -> tuple[NodeId, bool]:
        interner = self.graph.interner
        if name_token is None:
            return interner.fresh(kind), True
        name = name_token.value if name_token.kind == "at_id" else name_token.text
        node_id = interner.intern(name)
        first_line = self.declared.get(node_id)
        if first_line is None and self.existing is not None and node_id in self.existing.nodes:
            first_line = self.existing.nodes[node_id].line or 0
        if first_line is not None:
            raise self.error_at(
                name_token, f"duplicate id '@{name}' (first declared on line {first_line})"
            )
        self.declared[node_id] = name_token.line
        return node_id, False

    def parse_node(self, parent: NodeId, kind: str) -> Node:
        keyword = self.advance()
        if keyword.kind == "at_id":
            name_token: Token | None = keyword
        else:
            name_token = self.advance() if self.peek().kind == "at_id" else None
        node_id, anonymous = self.declare(name_token, kind)
        node = Node(
            id=node_id,
            shape=SHAPES_BY_KIND[kind](),
            trivia=self.take_pending(),
            anonymous=anonymous,
            line=keyword.line,
        )
        self.graph.add(node, parent)
        if self.peek().kind == "string":
            label = self.advance()
            if kind == "text":
                node.shape = replace(node.shape, content=label.value)
            elif kind == "edge":
                node.shape = replace(node.shape, label=label.value)
            else:
                self.add_label_child(node, label)
        if self.peek().kind == "lbrace":
            self.parse_body(node)
        return node

    def add_label_child(self, node: Node, label: Token) -> None:
        child = Node(
            id=self.graph.interner.fresh("text"),
            shape=TextShape(content=label.value),
            anonymous=True,
            line=label.line,
        )
        self.graph.add(child, node.id)

    def parse_style(self) -> None:
        self.advance()
        name_token = self.peek()
        if name_token.kind not in ("ident", "at_id"):
            raise self.error_at(name_token, f"expected style name, found {_describe(name_token)}")
        self.advance()
        node_id, _ = self.declare(name_token, "style")
        node = Node(
            id=node_id,
            shape=SHAPES_BY_KIND["style"](),
            trivia=self.take_pending(),
            line=name_token.line,
        )
        self.graph.add(node)
        if self.peek().kind == "lbrace":
            self.parse_body(node)

    def parse_body(self, node: Node) -> None:
        self.open_braces.append(self.expect("lbrace", "'{'"))
        state = _BodyState(nodes_allowed=node.kind not in ("style", "edge"))
        while True:
            self.collect_trivia()
            token = self.peek()
            if token.kind == "eof":
                raise self.unclosed()
            if token.kind == "rbrace":
                self.advance()
                break
            following = self.peek(1)
            if token.kind == "ident":
                word = token.text
                if word == "spec" and following.kind in ("string", "lbrace"):
                    self.advance()
                    node.annotations.extend(self.parse_annotations())
                    continue
                if word in ANIMATION_KEYWORDS:
                    node.animations.append(self.parse_animation())
                    continue
                if following.kind == "colon" or word in COLON_OPTIONAL:
                    self.parse_property(node, state)
                    continue
            if not state.nodes_allowed:
                raise self.error_at(token, f"{node.kind} blocks cannot contain {_describe(token)}")
            self.parse_statement(node.id, top_level=False)
        if state.x is not None or state.y is not None:
            node.constraint = Absolute(state.x or 0.0, state.y or 0.0)
        node.trailing_trivia = self.take_pending()
        self.open_braces.pop()

    def read_values(self) -> list[Token]:
        values: list[Token] = []
        while True:
            token = self.peek()
            if token.kind in VALUE_TERMINATORS:
                return values
            if token.kind == "ident" and self.peek(1).kind == "colon":
                return values
            values.append(self.advance())

    def source_text(self, tokens: list[Token]) -> str:
        if not tokens:
            return ""
        return self.source[tokens[0].start : tokens[-1].end]

    def parse_property(self, node: Node, state: _BodyState) -> None:
        name_token = self.advance()
        if self.peek().kind == "colon":
            self.advance()
        values = self.read_values()
        name = PROPERTY_ALIASES.get(name_token.text, name_token.text)
        if not property_applies(node.kind, name):
            node.raw.append((name_token.text, self.source_text(values)))
            return
        if not values:
            raise self.error_at(name_token, f"missing value for '{name_token.text}'")
        cursor = _ValueCursor(self, values, name_token.text, name_token)
        if name in ("x", "y"):
            setattr(state, name, cursor.number())
            cursor.done()
            return
        if name == "bg":
            fill, corner, shadow = self.read_background(cursor)
            node.style = replace(
                node.style,
                fill=fill,
                corner=corner if corner is not None else node.style.corner,
                shadow=shadow if shadow is not None else node.style.shadow,
            )
            return
        value = self.read_property(name, cursor)
        if name == "use":
            node.use_styles.extend(value)
            return
        set_property(node, name, value)

    def parse_value(self, name: str) -> object:
        skipped = ("newline", "blank", "comment", "eof")
        values = [token for token in self.tokens if token.kind not in skipped]
        anchor = values[0] if values else self.peek()
        cursor = _ValueCursor(self, values, name, anchor)
        return self.read_property(name, cursor)

    def read_property(self, name: str, cursor: _ValueCursor) -> object:
        if name in ("w", "h", "corner", "opacity"):
            value: object = cursor.number()
        elif name == "fill":
            value = cursor.color()
        elif name == "stroke":
            color = cursor.color()
            width = cursor.number() if cursor.remaining() else 1.0
            value = Stroke(color, width)
        elif name == "font":
            value = self.read_font(cursor)
        elif name == "shadow":
            value = self.read_shadow(cursor)
        elif name == "use":
            names = [cursor.reference()]
            while cursor.remaining():
                cursor.accept("comma")
                names.append(cursor.reference())
            value = names
        elif name == "layout":
            value = self.read_layout(cursor)
        elif name == "clip":
            value = cursor.word(("true", "false"), "true or false") == "true"
        elif name in ("d", "label", "content"):
            value = cursor.string()
        elif name in ("from", "to"):
            value = cursor.reference()
        elif name == "arrow":
            value = cursor.word(ARROW_KINDS, "an arrow kind")
        elif name == "curve":
            value = cursor.word(CURVE_KINDS, "a curve kind")
        else:
            raise cursor.fail(f"unknown property '{name}'", cursor.anchor)
        cursor.done()
        return value

    def read_font(self, cursor: _ValueCursor) -> Font:
        family, weight, size = "Inter", 400, 14.0
        consumed = False
        family_token = cursor.accept("string")
        if family_token is not None:
            family, consumed = family_token.value, True
        token = cursor.peek()
        if token is not None and token.kind == "ident":
            weight = FONT_WEIGHTS.get(token.text, 0)
            if not weight:
                raise cursor.fail(f"unknown font weight '{token.text}'", token)
            cursor.index += 1
            consumed = True
        elif token is not None and token.kind == "number":
            following = cursor.peek(1)
            if following is not None and following.kind == "number":
                weight = int(cursor.number())
                consumed = True
        if cursor.peek() is not None:
            size = cursor.number()
            consumed = True
        if not consumed:
            raise cursor.fail("'font' expects a family, weight or size")
        return Font(family, weight, size)

    def read_shadow(self, cursor: _ValueCursor) -> Shadow:
        cursor.take("lparen", "'('")
        dx = cursor.number()
        cursor.accept("comma")
        dy = cursor.number()
        cursor.accept("comma")
        blur = cursor.number()
        cursor.accept("comma")
        color = cursor.color()
        cursor.take("rparen", "')'")
        return Shadow(dx, dy, blur, color)

    def read_background(self, cursor: _ValueCursor) -> tuple[Color, float | None, Shadow | None]:
        fill = cursor.color()
        corner: float | None = None
        shadow: Shadow | None = None
        while cursor.remaining():
            key = cursor.word(("corner", "shadow"), "'corner=' or 'shadow='")
            cursor.take("equals", "'='")
            if key == "corner":
                corner = cursor.number()
            else:
                shadow = self.read_shadow(cursor)
        return fill, corner, shadow

    def read_layout(self, cursor: _ValueCursor) -> LayoutSpec:
        mode_token = cursor.peek()
        if mode_token is None or mode_token.kind != "ident" or mode_token.text not in LAYOUT_MODES:
            found = mode_token.text if mode_token is not None else "nothing"
            raise cursor.fail(f"unknown layout mode '{found}', expected one of: {', '.join(LAYOUT_MODES)}", mode_token)
        cursor.index += 1
        options: dict[str, float] = {}
        while cursor.remaining():
            key = cursor.word(("gap", "pad", "cols"), "'gap=', 'pad=' or 'cols='")
            cursor.take("equals", "'='")
            options[key] = cursor.number()
        cols = int(options.pop("cols", DEFAULT_GRID_COLS))
        if cols < 1:
            raise cursor.fail("'cols' must be at least 1")
        return LayoutSpec(mode_token.text, gap=options.get("gap", 0.0), pad=options.get("pad", 0.0), cols=cols)

    def parse_annotations(self) -> list[Annotation]:
        token = self.peek()
        if token.kind == "string":
            self.advance()
            return [Description(token.value)]
        self.open_braces.append(self.expect("lbrace", "'{' or a description after 'spec'"))
        annotations: list[Annotation] = []
        while True:
            self.collect_trivia()
            token = self.peek()
            if token.kind == "eof":
                raise self.unclosed()
            if token.kind == "rbrace":
                self.advance()
                break
            if token.kind == "string":
                self.advance()
                annotations.append(Description(token.value))
                continue
            if token.kind != "ident" or self.peek(1).kind != "colon":
                raise self.error_at(token, f"unexpected {_describe(token)} in spec block")
            key = self.advance().text
            self.advance()
            cursor = _ValueCursor(self, self.read_values(), key, token)
            if key in ("description", "desc"):
                annotations.append(Description(cursor.string()))
            elif key == "accept":
                annotations.append(Accept(cursor.string()))
            elif key == "status":
                annotations.append(self.checked(cursor, Status))
            elif key == "priority":
                annotations.append(self.checked(cursor, Priority))
            elif key == "tag":
                names = [cursor.take("ident", "a tag name").text]
                while cursor.remaining():
                    cursor.accept("comma")
                    names.append(cursor.take("ident", "a tag name").text)
                annotations.append(Tag(tuple(names)))
            else:
                raise self.error_at(token, f"unknown spec field '{key}'")
            cursor.done()
        self.open_braces.pop()
        return annotations

    def checked(self, cursor: _ValueCursor, factory: type) -> Annotation:
        token = cursor.take("ident", "a value")
        try:
            return factory(token.text)
        except ValueError as exc:
            raise cursor.fail(str(exc), token) from exc

    def parse_animation(self) -> Animation:
        keyword = self.advance()
        self.expect("colon", f"':' and a trigger after '{keyword.text}'")
        trigger = self.expect("ident", "trigger name").text
        self.open_braces.append(self.expect("lbrace", "'{'"))
        deltas: dict[str, object] = {}
        easing = Easing()
        while True:
            self.collect_trivia()
            token = self.peek()
            if token.kind == "eof":
                raise self.unclosed()
            if token.kind == "rbrace":
                self.advance()
                break
            if token.kind != "ident" or self.peek(1).kind != "colon":
                raise self.error_at(token, f"unexpected {_describe(token)} in animation block")
            key = self.advance().text
            self.advance()
            cursor = _ValueCursor(self, self.read_values(), key, token)
            if key == "fill":
                deltas["fill"] = cursor.color()
            elif key in ("opacity", "scale", "rotate"):
                deltas[key] = cursor.number()
            elif key == "ease":
                name = cursor.word(EASING_NAMES, "an easing name")
                duration = int(cursor.number()) if cursor.remaining() else easing.duration_ms
                easing = Easing(name, duration)
            elif key == "duration":
                easing = Easing(easing.name, int(cursor.number()))
            else:
                raise self.error_at(token, f"unknown animation property '{key}'")
            cursor.done()
        self.open_braces.pop()
        return Animation(trigger=trigger, easing=easing, **deltas)

    def parse_constraint_line(self) -> None:
        subject = self.advance()
        self.advance()
        kind_token = self.expect("ident", "constraint kind")
        self.expect("colon", f"':' after '{kind_token.text}'")
        cursor = _ValueCursor(self, self.read_values(), kind_token.text, kind_token)
        kind = kind_token.text
        if kind == "center_in":
            constraint: Constraint = CenterIn(cursor.target())
        elif kind == "offset":
            target = cursor.target()
            cursor.accept("comma")
            dx = cursor.number()
            cursor.accept("comma")
            constraint = Offset(target, dx, cursor.number())
        elif kind == "fill_parent":
            constraint = FillParent(cursor.number() if cursor.remaining() else 0.0)
        elif kind == "position":
            x = cursor.number()
            cursor.accept("comma")
            constraint = Absolute(x, cursor.number())
        else:
            raise self.error_at(kind_token, f"unknown constraint '{kind}'")
        cursor.done()
        self.constraint_lines.append(_ConstraintLine(subject, constraint, self.take_pending()))

    def resolve_references(self) -> None:
        graph = self.graph
        for entry in self.constraint_lines:
            name = entry.subject.value
            node_id = graph.interner.lookup(name)
            if node_id is None or node_id not in graph.nodes:
                self.report(
                    "unresolved-reference",
                    f"constraint on undeclared node '@{name}' was dropped",
                    line=entry.subject.line,
                )
                continue
            node = graph.nodes[node_id]
            node.constraint = entry.constraint
            node.constraint_trivia = entry.trivia
        for referrer, target in graph.dangling_references():
            if self.existing is not None and target in self.existing.nodes:
                continue
            self.report(
                "unresolved-reference",
                f"'@{graph.name(referrer)}' references undeclared '@{graph.name(target)}'",
                node=referrer,
                line=graph.nodes[referrer].line,
            )
        for node_id in graph.walk():
            shape = graph.nodes[node_id].shape
            if isinstance(shape, EdgeShape) and (shape.source is None or shape.target is None):
                self.report(
                    "unresolved-reference",
                    f"edge '@{graph.name(node_id)}' needs both 'from:' and 'to:'",
                    node=node_id,
                    line=graph.nodes[node_id].line,
                )


def parse_document(source: str) -> SceneGraph:
    return DocumentParser(source, SceneGraph()).parse()


def validate_document(source: str) -> ValidationResult:
    try:
        graph = parse_document(source)
    except ParseError as exc:
        return ValidationResult(ok=False, error=exc)
    return ValidationResult(ok=True, diagnostics=tuple(graph.diagnostics))


def parse_fragment(source: str, graph: SceneGraph) -> list[Subtree]:
    scratch = SceneGraph(interner=graph.interner)
    DocumentParser(source, scratch, existing=graph).parse()
    return [scratch.detach(child)[2] for child in scratch.children_of(scratch.root)]


def parse_property_value(name: str, source: str, graph: SceneGraph) -> object:
    return DocumentParser(source, graph, value_mode=True).parse_value(name)
