from __future__ import annotations

from pathlib import Path

from adapters.filesystem.document_repository import FileSystemDocumentRepository
from domain.services.emit_document import emit_document
from tests.helpers.scene_fixtures import load_scene, load_scene_text, scene_path


def test_load_parses_documents() -> None:
    repository = FileSystemDocumentRepository()

    graph = repository.load(scene_path("dashboard.fd"))

    assert graph == load_scene("dashboard.fd")


def test_save_writes_canonical_text_atomically(tmp_path: Path) -> None:
    repository = FileSystemDocumentRepository()
    target = tmp_path / "nested" / "scene.fd"

    repository.save(load_scene("login.fd"), target)

    assert target.read_text(encoding="utf-8") == load_scene_text("login.fd")
    assert not list(target.parent.glob("*.tmp"))


def test_save_text_overwrites(tmp_path: Path) -> None:
    repository = FileSystemDocumentRepository()
    target = tmp_path / "scene.fd"
    target.write_text("rect @old\n", encoding="utf-8")

    repository.save_text("rect @new\n", target)

    assert repository.load_text(target) == "rect @new\n"


def test_load_all_with_paths_is_sorted(tmp_path: Path) -> None:
    repository = FileSystemDocumentRepository()
    (tmp_path / "b.fd").write_text("rect @b\n", encoding="utf-8")
    (tmp_path / "a.fd").write_text("rect @a\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    documents = repository.load_all_with_paths(tmp_path)

    assert [path.name for path, _ in documents] == ["a.fd", "b.fd"]
    assert emit_document(documents[1][1]) == "rect @b\n"
