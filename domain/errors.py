from __future__ import annotations


class SceneError(Exception):
    pass


class ParseError(SceneError):
    def __init__(self, line: int, col: int, message: str) -> None:
        super().__init__(f"{line}:{col}: {message}")
        self.line = line
        self.col = col
        self.message = message


class CommandError(SceneError):
    pass


class RenameConflict(CommandError):
    pass


class BoundsNotInitializedError(CommandError):
    pass


# Programmer misuse: these are raised, never converted into declined results.
class ForeignNodeIdError(SceneError):
    pass


class SyncStateError(SceneError):
    pass
