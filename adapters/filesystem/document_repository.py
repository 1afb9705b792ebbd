from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from filelock import FileLock

from adapters.filesystem.json_utils import replace_file
from domain.ports.repositories import DocumentRepository
from domain.scene_graph import SceneGraph
from domain.services.emit_document import emit_document
from domain.services.parse_document import parse_document

logger = logging.getLogger(__name__)

DOCUMENT_SUFFIX = ".fd"


def lock_for(path: Path) -> FileLock:
    return FileLock(str(path.with_suffix(f"{path.suffix}.lock")))


class FileSystemDocumentRepository(DocumentRepository):
    def load_text(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    def load(self, path: Path) -> SceneGraph:
        return parse_document(self.load_text(path))

    def load_all_with_paths(self, directory: Path) -> List[tuple[Path, SceneGraph]]:
        documents: List[tuple[Path, SceneGraph]] = []
        for path in sorted(directory.glob(f"*{DOCUMENT_SUFFIX}")):
            documents.append((path, self.load(path)))
        return documents

    def save_text(self, text: str, path: Path) -> None:
        with lock_for(path):
            replace_file(path, text.encode("utf-8"))
        logger.debug("Saved %s (%d bytes)", path, len(text))

    def save(self, graph: SceneGraph, path: Path) -> None:
        self.save_text(emit_document(graph), path)
