"""Bounded undo/redo stacks of whole-document snapshots."""

from __future__ import annotations

import logging
from collections import deque

__all__ = ["HistoryManager", "DEFAULT_MAX_HISTORY"]

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 50


class HistoryManager:
    """Undo/redo bookkeeping over full document strings.

    Only significant, reviewable mutations are snapshotted (accepted patches
    and image insertions); the caller decides when to call :meth:`push_undo`.
    Pushing always invalidates the redo stack. Once the undo stack holds
    ``max_history`` entries the oldest one is dropped silently.
    """

    def __init__(self, max_history: int = DEFAULT_MAX_HISTORY) -> None:
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self._undo: deque[str] = deque(maxlen=max_history)
        self._redo: list[str] = []

    @property
    def max_history(self) -> int:
        return self._undo.maxlen or 0

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    def can_undo(self) -> bool:
        return bool(self._undo)

    def can_redo(self) -> bool:
        return bool(self._redo)

    def push_undo(self, snapshot: str) -> None:
        """Record ``snapshot`` as the state to return to and clear redo."""

        if len(self._undo) == self._undo.maxlen:
            LOGGER.debug("History full (%d); dropping oldest snapshot", self._undo.maxlen)
        self._undo.append(snapshot)
        self._redo.clear()

    def undo(self, current: str) -> str | None:
        """Pop the latest snapshot, parking ``current`` on the redo stack.

        Returns ``None`` (and changes nothing) when there is nothing to undo.
        """

        if not self._undo:
            return None
        snapshot = self._undo.pop()
        self._redo.append(current)
        return snapshot

    def redo(self, current: str) -> str | None:
        """Inverse of :meth:`undo`; ``None`` when there is nothing to redo."""

        if not self._redo:
            return None
        snapshot = self._redo.pop()
        # Not push_undo(): redoing must keep the rest of the redo stack.
        self._undo.append(current)
        return snapshot

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    def undo_snapshots(self) -> tuple[str, ...]:
        """Undo stack contents, oldest first."""

        return tuple(self._undo)

    def redo_snapshots(self) -> tuple[str, ...]:
        """Redo stack contents, oldest first."""

        return tuple(self._redo)
