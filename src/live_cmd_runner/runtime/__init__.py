"""Runtime module for shell command execution and output streaming.

This module provides isolated process execution, live output capture and
reliable termination for a single UI-driven command at a time.
"""

from __future__ import annotations

from .async_runner import AsyncCommandRunner
from .errors import RunnerError, SpawnError, SpawnErrorKind
from .history import MAX_HISTORY, HistoryLog
from .interactive import INTERACTIVE_WARNING, is_interactive_command
from .output_sink import OutputSink
from .process import ProcessHandle, spawn
from .runner import CommandRunner, RunState

__all__ = [
    "AsyncCommandRunner",
    "CommandRunner",
    "HistoryLog",
    "INTERACTIVE_WARNING",
    "MAX_HISTORY",
    "OutputSink",
    "ProcessHandle",
    "RunState",
    "RunnerError",
    "SpawnError",
    "SpawnErrorKind",
    "is_interactive_command",
    "spawn",
]
