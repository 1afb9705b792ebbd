from __future__ import annotations

from functools import cache, lru_cache
from pathlib import Path

from domain.scene_graph import SceneGraph
from domain.services.parse_document import parse_document


@lru_cache(maxsize=1)
def repo_root() -> Path:
    for parent in Path(__file__).resolve().parents:
        if (parent / "pyproject.toml").exists():
            return parent
    raise RuntimeError("Repository root not found")


def scene_path(name: str) -> Path:
    return repo_root() / "examples" / "scenes" / name


@cache
def load_scene_text(name: str) -> str:
    return scene_path(name).read_text(encoding="utf-8")


def load_scene(name: str) -> SceneGraph:
    # Graphs are mutable, so every caller gets a fresh parse.
    return parse_document(load_scene_text(name))
