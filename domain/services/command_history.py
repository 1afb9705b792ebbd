from __future__ import annotations

import logging

from domain.commands import AppliedCommand
from domain.scene_graph import SceneGraph
from domain.services.apply_command import apply_command

logger = logging.getLogger(__name__)

DEFAULT_UNDO_LIMIT = 100


class CommandHistory:
    def __init__(self, limit: int = DEFAULT_UNDO_LIMIT) -> None:
        if limit < 1:
            msg = "Undo limit must be at least 1"
            raise ValueError(msg)
        self.limit = limit
        self.entries: list[AppliedCommand] = []
        self.cursor = 0

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def can_undo(self) -> bool:
        return self.cursor > 0

    @property
    def can_redo(self) -> bool:
        return self.cursor < len(self.entries)

    def push(self, applied: AppliedCommand) -> None:
        del self.entries[self.cursor :]
        self.entries.append(applied)
        if len(self.entries) > self.limit:
            dropped = len(self.entries) - self.limit
            del self.entries[:dropped]
        self.cursor = len(self.entries)
        logger.debug("History push: %d entries", len(self.entries))

    def undo(self, graph: SceneGraph) -> AppliedCommand | None:
        if not self.can_undo:
            return None
        entry = self.entries[self.cursor - 1]
        undone = apply_command(graph, entry.inverse)
        # The inverse of the undo is the exact redo.
        self.entries[self.cursor - 1] = AppliedCommand(
            command=undone.inverse,
            inverse=entry.inverse,
            affected=entry.affected | undone.affected,
            structural=entry.structural,
        )
        self.cursor -= 1
        logger.debug("Undo: cursor at %d of %d", self.cursor, len(self.entries))
        return undone

    def redo(self, graph: SceneGraph) -> AppliedCommand | None:
        if not self.can_redo:
            return None
        entry = self.entries[self.cursor]
        redone = apply_command(graph, entry.command)
        self.entries[self.cursor] = redone
        self.cursor += 1
        logger.debug("Redo: cursor at %d of %d", self.cursor, len(self.entries))
        return redone

    def clear(self) -> None:
        self.entries.clear()
        self.cursor = 0
