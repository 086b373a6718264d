"""Runtime exceptions.

live-cmd-runner runtime module v0.1.0
"""

from __future__ import annotations

from enum import Enum

__all__ = [
    "RunnerError",
    "SpawnError",
    "SpawnErrorKind",
]


class RunnerError(Exception):
    """Base exception for the command runner."""
    pass


class SpawnErrorKind(str, Enum):
    """Stage at which spawning a command failed."""

    CHANNEL_CREATION_FAILED = "channel"
    PROCESS_CREATION_FAILED = "process"
    STREAM_OPEN_FAILED = "stream"

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_MESSAGES: dict[SpawnErrorKind, str] = {
    SpawnErrorKind.CHANNEL_CREATION_FAILED: "Failed to create pipe",
    SpawnErrorKind.PROCESS_CREATION_FAILED: "Failed to fork process",
    SpawnErrorKind.STREAM_OPEN_FAILED: "Failed to open command pipe",
}


class SpawnError(RunnerError):
    """The child process could not be started.

    Raised by the spawner only. The stream worker catches it and turns it
    into an ``[ERROR]`` line in the output, so it never reaches the UI.

    Attributes:
        kind: Which step failed
        detail: OS error text, if any
    """

    def __init__(self, kind: SpawnErrorKind, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        message = kind.message
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

    def as_output_line(self) -> str:
        """Render the error the way it appears in the output buffer."""
        return f"[ERROR] {self}\n"
