from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from domain.models import LayoutResult
from domain.scene_graph import SceneGraph


class DocumentRepository(Protocol):
    def load_text(self, path: Path) -> str: ...

    def load(self, path: Path) -> SceneGraph: ...

    def load_all_with_paths(self, directory: Path) -> Sequence[tuple[Path, SceneGraph]]: ...

    def save_text(self, text: str, path: Path) -> None: ...

    def save(self, graph: SceneGraph, path: Path) -> None: ...


class LayoutExporter(Protocol):
    def export(self, graph: SceneGraph, layout: LayoutResult, path: Path) -> None: ...
