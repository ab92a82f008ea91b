# synnia/history.py
"""
Undo/redo as a stack of inverse command pairs.

While paused, recorded commands are buffered and recorded as a single
composite step on ``resume()``, so a burst of low-level edits (a drag,
a multi-node paste) undoes in one go.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100


@dataclass
class Command:
    """A reversible edit."""
    undo: Callable[[], None]
    redo: Callable[[], None]
    label: str = ""


@dataclass
class CompositeCommand:
    """Commands undone in reverse and redone in order."""
    commands: List[Command] = field(default_factory=list)
    label: str = ""

    def undo(self) -> None:
        for command in reversed(self.commands):
            command.undo()

    def redo(self) -> None:
        for command in self.commands:
            command.redo()


class UndoStack:
    """Bounded undo/redo history."""

    def __init__(self, limit: int = DEFAULT_LIMIT):
        self.limit = limit
        self._undo: List[Command | CompositeCommand] = []
        self._redo: List[Command | CompositeCommand] = []
        self._paused = 0
        self._buffer: List[Command] = []
        self._replaying = False

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def paused(self) -> bool:
        return self._paused > 0

    def __len__(self) -> int:
        return len(self._undo)

    def record(self, command: Command) -> None:
        """Push a command. Ignored while an undo or redo is replaying."""
        if self._replaying:
            return
        if self._paused:
            self._buffer.append(command)
            return
        self._push(command)

    def _push(self, command: Command | CompositeCommand) -> None:
        self._undo.append(command)
        if len(self._undo) > self.limit:
            del self._undo[0]
        self._redo.clear()

    def pause(self) -> None:
        self._paused += 1

    def resume(self, label: str = "") -> None:
        """End a pause; buffered commands become one step when the outermost pause ends."""
        if not self._paused:
            logger.warning("resume() called without pause()")
            return
        self._paused -= 1
        if self._paused or not self._buffer:
            return
        commands, self._buffer = self._buffer, []
        if len(commands) == 1 and not label:
            self._push(commands[0])
        else:
            self._push(CompositeCommand(commands, label or commands[0].label))

    def undo(self) -> Optional[str]:
        """Undo the latest step. Returns its label, or None if nothing to undo."""
        if not self._undo:
            return None
        command = self._undo.pop()
        self._replay(command.undo)
        self._redo.append(command)
        return command.label

    def redo(self) -> Optional[str]:
        if not self._redo:
            return None
        command = self._redo.pop()
        self._replay(command.redo)
        self._undo.append(command)
        return command.label

    def _replay(self, action: Callable[[], None]) -> None:
        self._replaying = True
        try:
            action()
        finally:
            self._replaying = False

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
        self._buffer.clear()
        self._paused = 0
