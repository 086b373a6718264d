"""Bounded command history with UI recall cursor."""

from __future__ import annotations

import threading
from collections import deque

__all__ = ["HistoryLog", "MAX_HISTORY"]

MAX_HISTORY = 50


class HistoryLog:
    """Ordered record of submitted commands, newest last.

    Empty commands and immediate repeats of the newest entry are rejected.
    Once ``capacity`` is exceeded the oldest entry is evicted.

    The browse cursor belongs to the UI (Up/Down recall); ``-1`` means the
    user is not browsing. Recording a command resets it.
    """

    def __init__(self, capacity: int = MAX_HISTORY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._entries: deque[str] = deque(maxlen=capacity)
        self._cursor = -1
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    @property
    def cursor(self) -> int:
        return self._cursor

    def record(self, command: str) -> bool:
        """Append a command.

        Returns:
            Whether the command was added
        """
        command = command.strip()
        if not command:
            return False
        with self._lock:
            if self._entries and self._entries[-1] == command:
                return False
            self._entries.append(command)
            self._cursor = -1
            return True

    def entries(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._cursor = -1

    def browse_older(self) -> str | None:
        """Step back one entry (Up arrow).

        Returns:
            The recalled command, or None when history is empty
        """
        with self._lock:
            if not self._entries:
                return None
            if self._cursor < len(self._entries) - 1:
                self._cursor += 1
            return self._entries[len(self._entries) - 1 - self._cursor]

    def browse_newer(self) -> str | None:
        """Step forward one entry (Down arrow).

        Returns:
            The recalled command, "" when leaving the history (input should
            be cleared), or None when not browsing
        """
        with self._lock:
            if self._cursor < 0 or not self._entries:
                return None
            if self._cursor == 0:
                self._cursor = -1
                return ""
            self._cursor -= 1
            return self._entries[len(self._entries) - 1 - self._cursor]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
