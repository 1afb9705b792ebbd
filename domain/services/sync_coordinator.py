from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Literal

from domain.commands import AppliedCommand, Command, RenameNode, SetAnnotations
from domain.errors import CommandError, ParseError, SyncStateError
from domain.models import Annotation, Diagnostic, LayoutResult
from domain.ports.layout import LayoutEngine
from domain.scene_graph import NodeRef, SceneGraph
from domain.services.apply_command import apply_command
from domain.services.command_history import DEFAULT_UNDO_LIMIT, CommandHistory
from domain.services.emit_document import emit_document
from domain.services.parse_document import parse_document

logger = logging.getLogger(__name__)

SyncState = Literal["idle", "applying_external_text", "applying_command"]


@dataclass(frozen=True)
class TextUpdate:
    ok: bool
    error: ParseError | None = None
    diagnostics: tuple[Diagnostic, ...] = ()


@dataclass(frozen=True)
class CommandResult:
    ok: bool
    applied: AppliedCommand | None = None
    error: CommandError | None = None


class SyncCoordinator:
    def __init__(
        self,
        layout_engine: LayoutEngine,
        graph: SceneGraph | None = None,
        undo_limit: int = DEFAULT_UNDO_LIMIT,
    ) -> None:
        self.layout_engine = layout_engine
        self.history = CommandHistory(undo_limit)
        self._graph = graph if graph is not None else SceneGraph()
        self._state: SyncState = "idle"
        self._text: str | None = None
        self._listeners: list[Callable[[SyncCoordinator], None]] = []
        self._layout = layout_engine.resolve(self._graph)

    @classmethod
    def from_text(
        cls, text: str, layout_engine: LayoutEngine, undo_limit: int = DEFAULT_UNDO_LIMIT
    ) -> SyncCoordinator:
        coordinator = cls(layout_engine, parse_document(text), undo_limit)
        coordinator._text = text
        return coordinator

    @property
    def graph(self) -> SceneGraph:
        return self._graph

    @property
    def layout(self) -> LayoutResult:
        return self._layout

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def dirty(self) -> bool:
        return self._text is None

    @property
    def text(self) -> str:
        if self._text is None:
            self._text = emit_document(self._graph)
            logger.debug("Emitted %d characters", len(self._text))
        return self._text

    def subscribe(self, listener: Callable[[SyncCoordinator], None]) -> None:
        self._listeners.append(listener)

    @contextmanager
    def _entering(self, state: SyncState) -> Iterator[None]:
        if self._state != "idle":
            msg = f"Cannot start {state} while {self._state}"
            raise SyncStateError(msg)
        self._state = state
        try:
            yield
        finally:
            self._state = "idle"

    def _notify(self) -> None:
        for listener in self._listeners:
            listener(self)

    def set_text(self, text: str) -> TextUpdate:
        with self._entering("applying_external_text"):
            try:
                graph = parse_document(text)
            except ParseError as exc:
                logger.info("Keeping previous document: %s", exc)
                return TextUpdate(ok=False, error=exc)
            self._graph = graph
            self._text = text
            self.history.clear()
            self._layout = self.layout_engine.resolve(graph)
            self._notify()
            return TextUpdate(ok=True, diagnostics=tuple(graph.diagnostics))

    def apply_command(self, command: Command) -> CommandResult:
        with self._entering("applying_command"):
            try:
                applied = apply_command(self._graph, command)
            except CommandError as exc:
                logger.warning("Declined %s: %s", type(command).__name__, exc)
                return CommandResult(ok=False, error=exc)
            self.history.push(applied)
            self._refresh(applied)
            return CommandResult(ok=True, applied=applied)

    def undo(self) -> CommandResult:
        return self._step("undo")

    def redo(self) -> CommandResult:
        return self._step("redo")

    def _step(self, direction: Literal["undo", "redo"]) -> CommandResult:
        with self._entering("applying_command"):
            try:
                if direction == "undo":
                    applied = self.history.undo(self._graph)
                else:
                    applied = self.history.redo(self._graph)
            except CommandError as exc:
                logger.warning("Declined %s: %s", direction, exc)
                return CommandResult(ok=False, error=exc)
            if applied is None:
                return CommandResult(ok=False, error=CommandError(f"Nothing to {direction}"))
            self._refresh(applied)
            return CommandResult(ok=True, applied=applied)

    def _refresh(self, applied: AppliedCommand) -> None:
        self._text = None
        if applied.structural:
            self._layout = self.layout_engine.resolve(self._graph)
        else:
            self._layout = self.layout_engine.resolve(
                self._graph, scope=applied.affected, previous=self._layout
            )
        self._notify()

    def resolve_layout(self) -> LayoutResult:
        self._layout = self.layout_engine.resolve(self._graph)
        return self._layout

    def get_annotations(self, target: NodeRef) -> tuple[Annotation, ...]:
        return tuple(self._graph.node(target).annotations)

    def set_annotations(self, target: NodeRef, annotations: Iterable[Annotation]) -> CommandResult:
        return self.apply_command(SetAnnotations(target, tuple(annotations)))

    def rename(self, old_name: str, new_name: str) -> CommandResult:
        return self.apply_command(RenameNode(old_name, new_name))
