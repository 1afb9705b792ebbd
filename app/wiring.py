from __future__ import annotations

from adapters.filesystem.document_repository import FileSystemDocumentRepository
from adapters.filesystem.layout_export import FileSystemLayoutExporter
from adapters.layout.constraint_solver import ConstraintLayoutEngine
from app.config import AppSettings
from domain.ports.layout import LayoutEngine
from domain.ports.repositories import DocumentRepository, LayoutExporter
from domain.services.editor_session import EditorSession
from domain.services.sync_coordinator import SyncCoordinator


def build_layout_engine(settings: AppSettings) -> LayoutEngine:
    return ConstraintLayoutEngine(settings.engine.to_layout_config())


def build_document_repository(settings: AppSettings) -> DocumentRepository:
    return FileSystemDocumentRepository()


def build_layout_exporter(settings: AppSettings) -> LayoutExporter:
    return FileSystemLayoutExporter()


def build_coordinator(settings: AppSettings, text: str | None = None) -> SyncCoordinator:
    engine = build_layout_engine(settings)
    if text is None:
        return SyncCoordinator(engine, undo_limit=settings.engine.undo_limit)
    return SyncCoordinator.from_text(text, engine, undo_limit=settings.engine.undo_limit)


def build_session(settings: AppSettings) -> EditorSession:
    return EditorSession(duplicate_offset=settings.engine.duplicate_offset)
