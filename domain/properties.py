from __future__ import annotations

import dataclasses
from dataclasses import replace
from typing import Any

from domain.ids import NodeId
from domain.models import (
    ARROW_KINDS,
    CURVE_KINDS,
    SHAPES_BY_KIND,
    Color,
    Font,
    LayoutSpec,
    Node,
    Shadow,
    Stroke,
)

STYLE_PROPERTIES = ("fill", "stroke", "corner", "opacity", "font", "shadow")

SHAPE_PROPERTIES = {
    "w": "width",
    "h": "height",
    "layout": "layout",
    "clip": "clip",
    "d": "data",
    "content": "content",
    "label": "label",
    "from": "source",
    "to": "target",
    "arrow": "arrow",
    "curve": "curve",
}

EDITABLE_PROPERTIES = (*STYLE_PROPERTIES, "use", *SHAPE_PROPERTIES)

PROPERTY_TYPES: dict[str, type | tuple[type, ...]] = {
    "fill": Color,
    "stroke": Stroke,
    "corner": (int, float),
    "opacity": (int, float),
    "font": Font,
    "shadow": Shadow,
    "use": (list, tuple),
    "w": (int, float),
    "h": (int, float),
    "layout": LayoutSpec,
    "clip": bool,
    "d": str,
    "content": str,
    "label": str,
    "from": NodeId,
    "to": NodeId,
    "arrow": str,
    "curve": str,
}

LITERAL_CHOICES = {"arrow": ARROW_KINDS, "curve": CURVE_KINDS}


def property_applies(kind: str, name: str) -> bool:
    if name in STYLE_PROPERTIES or name in ("use", "bg"):
        return True
    if name in ("x", "y"):
        return kind not in ("style", "edge")
    field_name = SHAPE_PROPERTIES.get(name)
    if field_name is None:
        return False
    return field_name in {item.name for item in dataclasses.fields(SHAPES_BY_KIND[kind])}


def get_property(node: Node, name: str) -> Any:
    if name in STYLE_PROPERTIES:
        return getattr(node.style, name)
    if name == "use":
        return tuple(node.use_styles)
    return getattr(node.shape, SHAPE_PROPERTIES[name])


def set_property(node: Node, name: str, value: Any) -> None:
    if name in STYLE_PROPERTIES:
        node.style = replace(node.style, **{name: value})
        return
    if name == "use":
        node.use_styles = list(value or ())
        return
    field_name = SHAPE_PROPERTIES[name]
    if value is None:
        defaults = {item.name: item.default for item in dataclasses.fields(node.shape)}
        value = defaults[field_name]
    node.shape = replace(node.shape, **{field_name: value})


def check_property_value(name: str, value: Any) -> None:
    if value is None:
        return
    expected = PROPERTY_TYPES[name]
    if isinstance(value, bool) and expected == (int, float):
        msg = f"'{name}' expects a number"
        raise TypeError(msg)
    if not isinstance(value, expected):
        msg = f"'{name}' does not accept {type(value).__name__} values"
        raise TypeError(msg)
    choices = LITERAL_CHOICES.get(name)
    if choices and value not in choices:
        msg = f"'{name}' expects one of: {', '.join(choices)}"
        raise TypeError(msg)
