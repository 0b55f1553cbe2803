"""Bounded history of undoable uploads."""

from __future__ import annotations

from collections import deque
import threading

from paste_upload.core.types import UndoHistoryEntry


class UndoHistory:
    """Append-ordered entries; the oldest are evicted beyond `limit`.

    A lock guards the deque so a threaded host may record and undo
    concurrently.
    """

    def __init__(self, limit: int) -> None:
        if limit < 0:
            raise ValueError("undo limit must be >= 0")
        self._limit = limit
        self._entries: deque[UndoHistoryEntry] = deque()
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    def append(self, entry: UndoHistoryEntry) -> None:
        with self._lock:
            self._entries.append(entry)
            self._trim()

    def remove(self, entry: UndoHistoryEntry) -> bool:
        """Remove `entry` by identity; False if it is no longer recorded."""
        with self._lock:
            for index, recorded in enumerate(self._entries):
                if recorded is entry:
                    del self._entries[index]
                    return True
        return False

    def entries(self) -> list[UndoHistoryEntry]:
        """Snapshot, most recent first."""
        with self._lock:
            return list(reversed(self._entries))

    def clamp(self, limit: int) -> None:
        """Apply a new limit, evicting the oldest entries beyond it."""
        if limit < 0:
            raise ValueError("undo limit must be >= 0")
        with self._lock:
            self._limit = limit
            self._trim()

    def _trim(self) -> None:
        while len(self._entries) > self._limit:
            self._entries.popleft()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
