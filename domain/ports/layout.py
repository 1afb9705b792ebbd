from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from domain.ids import NodeId
from domain.models import LayoutResult
from domain.scene_graph import SceneGraph


class LayoutEngine(Protocol):
    def resolve(
        self,
        graph: SceneGraph,
        scope: Iterable[NodeId] | None = None,
        previous: LayoutResult | None = None,
    ) -> LayoutResult:
        ...
