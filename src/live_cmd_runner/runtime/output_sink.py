"""Thread-safe output buffer shared by the stream worker and the UI."""

from __future__ import annotations

import threading

__all__ = ["OutputSink"]


class OutputSink:
    """Append-only text buffer plus a "scroll to bottom" request flag.

    The worker appends, the UI copies. Every access to the buffer and the
    flag happens under the same lock, so a snapshot is always a complete
    prefix of what has been appended.

    Example:
        sink = OutputSink()
        sink.append("hello\\n")
        text = sink.snapshot()
        if sink.consume_scroll_flag():
            scroll_to_end()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._chunks: list[str] = []
        self._length = 0
        self._scroll_requested = False

    def reset(self) -> None:
        """Drop all text and request a scroll."""
        with self._lock:
            self._chunks = []
            self._length = 0
            self._scroll_requested = True

    def clear(self) -> None:
        """Drop all text without touching the scroll flag."""
        with self._lock:
            self._chunks = []
            self._length = 0

    def append(self, text: str) -> None:
        if not text:
            return
        with self._lock:
            self._chunks.append(text)
            self._length += len(text)
            self._scroll_requested = True

    def request_scroll(self) -> None:
        with self._lock:
            self._scroll_requested = True

    def snapshot(self) -> str:
        """Return a full copy of the buffer."""
        with self._lock:
            if len(self._chunks) > 1:
                # Compact so repeated snapshots stay linear in buffer size
                self._chunks = ["".join(self._chunks)]
            return self._chunks[0] if self._chunks else ""

    def consume_scroll_flag(self) -> bool:
        """Read and clear the scroll request in one step."""
        with self._lock:
            requested = self._scroll_requested
            self._scroll_requested = False
            return requested

    def __len__(self) -> int:
        with self._lock:
            return self._length
