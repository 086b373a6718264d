"""Single-command runner with live output streaming and cancellation.

live-cmd-runner runtime module v0.1.0

This module provides:
- CommandRunner: owns the output sink, the history and at most one
  (command, worker thread, process handle) triple at any instant
- Stream worker: drains the child's merged output without blocking and
  appends it to the sink
- Cooperative cancellation escalating to a forced kill

Key design points:
- start() stops and joins any previous run before spawning the next one
- stop() signals the worker through a cancellation token, waits about half
  a second for it to retire, then terminates the process itself and joins
- The worker is the only place a run is retired (status back to idle)
- close() / the context manager / interpreter exit always call stop(), so
  neither the worker thread nor the child outlives the runner
"""

from __future__ import annotations

import atexit
import codecs
import logging
import threading
import time
import weakref
from datetime import datetime
from enum import Enum
from typing import Callable

from .errors import SpawnError
from .history import HistoryLog
from .interactive import INTERACTIVE_WARNING, is_interactive_command
from .output_sink import OutputSink
from .process import DEFAULT_KILL_GRACE, READ_CHUNK_SIZE, ProcessHandle, spawn

__all__ = [
    "CommandRunner",
    "RunState",
    "format_timestamp",
    "STOPPED_MARKER",
]

logger = logging.getLogger(__name__)

DEFAULT_IDLE_SLEEP = 0.01  # seconds between reads while the child is quiet
DEFAULT_STOP_POLL_ATTEMPTS = 10
DEFAULT_STOP_POLL_INTERVAL = 0.05

STOPPED_MARKER = "\n[STOPPED BY USER]\n"
EXIT_MARKER = "\n[Process exited with code: {code}]\n"

Spawner = Callable[[str], ProcessHandle]


class RunState(str, Enum):
    """Lifecycle of the runner."""

    IDLE = "idle"
    RUNNING = "running"
    STOP_REQUESTED = "stop_requested"


def format_timestamp(now: datetime | None = None) -> str:
    """Wall-clock time as ``HH:MM:SS.mmm``."""
    now = now or datetime.now()
    return f"{now:%H:%M:%S}.{now.microsecond // 1000:03d}"


class CommandRunner:
    """Runs one shell command at a time and streams its output.

    All public methods are meant for the UI thread (or any host thread).
    ``start`` and ``stop`` are serialised; ``status``, ``current_output``
    and ``should_scroll_to_bottom`` never block on the child.

    Example:
        with CommandRunner() as runner:
            runner.start("ping -c 3 localhost", want_timestamp=True)
            while runner.status() is RunState.RUNNING:
                render(runner.current_output())
            runner.stop()

    Attributes:
        history: Commands submitted through start()
        sink: Output of the current (or last) run
    """

    # Live instances, stopped at interpreter exit
    _instances: "weakref.WeakSet[CommandRunner]" = weakref.WeakSet()
    _atexit_registered = False

    def __init__(
        self,
        history: HistoryLog | None = None,
        sink: OutputSink | None = None,
        *,
        chunk_size: int = READ_CHUNK_SIZE,
        idle_sleep: float = DEFAULT_IDLE_SLEEP,
        stop_poll_attempts: int = DEFAULT_STOP_POLL_ATTEMPTS,
        stop_poll_interval: float = DEFAULT_STOP_POLL_INTERVAL,
        kill_grace: float = DEFAULT_KILL_GRACE,
        spawner: Spawner | None = None,
    ) -> None:
        self.history = history if history is not None else HistoryLog()
        self.sink = sink if sink is not None else OutputSink()
        self.chunk_size = chunk_size
        self.idle_sleep = idle_sleep
        self.stop_poll_attempts = stop_poll_attempts
        self.stop_poll_interval = stop_poll_interval
        self.kill_grace = kill_grace
        self._spawner = spawner or spawn

        # idle is set while no run is active; stop_requested is the
        # cancellation token the worker waits on between reads
        self._idle = threading.Event()
        self._idle.set()
        self._stop_requested = threading.Event()

        self._control_lock = threading.Lock()
        self._worker: threading.Thread | None = None
        self._handle: ProcessHandle | None = None
        self._handle_lock = threading.Lock()
        self._command: str | None = None
        self._started_at: float | None = None

        self._register_atexit()
        CommandRunner._instances.add(self)

    @classmethod
    def _register_atexit(cls) -> None:
        if not cls._atexit_registered:
            atexit.register(cls._cleanup_all)
            cls._atexit_registered = True

    @classmethod
    def _cleanup_all(cls) -> None:
        for runner in list(cls._instances):
            try:
                runner.stop()
            except Exception as e:
                logger.debug(f"Cleanup error: {e}")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        if self._idle.is_set():
            return RunState.IDLE
        if self._stop_requested.is_set():
            return RunState.STOP_REQUESTED
        return RunState.RUNNING

    def status(self) -> RunState:
        """IDLE or RUNNING; a pending stop still counts as running."""
        return RunState.IDLE if self._idle.is_set() else RunState.RUNNING

    @property
    def is_running(self) -> bool:
        return not self._idle.is_set()

    @property
    def current_command(self) -> str | None:
        return None if self._idle.is_set() else self._command

    @property
    def elapsed(self) -> float | None:
        """Seconds since the active run started, None when idle."""
        started_at = self._started_at
        if self._idle.is_set() or started_at is None:
            return None
        return time.monotonic() - started_at

    def current_output(self) -> str:
        return self.sink.snapshot()

    def should_scroll_to_bottom(self) -> bool:
        return self.sink.consume_scroll_flag()

    def history_entries(self) -> list[str]:
        return self.history.entries()

    def clear_output(self) -> None:
        self.sink.clear()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self, command: str, want_timestamp: bool = False) -> None:
        """Run ``command`` in the background, replacing any active run.

        Args:
            command: Shell line; surrounding whitespace is stripped and an
                empty line is ignored
            want_timestamp: Prefix the echoed command with the start time
        """
        command = command.strip()
        if not command:
            logger.debug("Ignoring empty command")
            return

        with self._control_lock:
            # Never two workers: the previous run is fully joined first
            self._stop_locked()

            header = f"[{format_timestamp()}] " if want_timestamp else ""
            header += f"$ {command}\n"
            if is_interactive_command(command):
                logger.info(f"Command may need interactive input: {command!r}")
                header += INTERACTIVE_WARNING
            self.sink.reset()
            self.sink.append(header)

            self.history.record(command)

            self._command = command
            self._started_at = time.monotonic()
            self._stop_requested.clear()
            worker = threading.Thread(
                target=self._run_stream,
                args=(command,),
                daemon=True,
                name="command_stream",
            )
            self._worker = worker
            self._idle.clear()
            try:
                worker.start()
            except RuntimeError as e:
                # No worker means nobody would ever retire this run
                logger.error(f"Failed to start stream worker: {e}")
                self.sink.append(f"[ERROR] Failed to start worker thread: {e}\n")
                self._worker = None
                self._idle.set()
                raise
            logger.info(f"Started command: {command!r}")

    def stop(self) -> None:
        """Stop the active run, if any, and join its worker.

        Blocks for at most about ``stop_poll_attempts * stop_poll_interval``
        plus one kill grace period.
        """
        with self._control_lock:
            self._stop_locked()

    def _stop_locked(self) -> None:
        worker = self._worker
        if self._idle.is_set():
            # A worker that retired on its own still has to be joined
            if worker is not None:
                worker.join()
                self._worker = None
            return

        logger.info(f"Stopping command: {self._command!r}")
        self._stop_requested.set()

        budget = self.stop_poll_attempts * self.stop_poll_interval
        if not self._idle.wait(budget):
            logger.warning(
                f"Command did not stop within {budget:.2f}s, forcing termination"
            )
            with self._handle_lock:
                handle = self._handle
            if handle is not None:
                handle.terminate(self.kill_grace)

        if worker is not None:
            worker.join()
        self._worker = None
        self._stop_requested.clear()
        logger.debug("Command stopped and worker joined")

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait for the active run to finish on its own.

        Only the worker active at call time is joined; a run started while
        waiting is not waited for.

        Returns:
            Whether the runner is idle
        """
        worker = self._worker
        if not self._idle.wait(timeout):
            return False
        if worker is not None and worker is not threading.current_thread():
            worker.join()
        return True

    def close(self) -> None:
        """Stop whatever is running. Must be called before the host exits."""
        self.stop()

    def __enter__(self) -> "CommandRunner":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _run_stream(self, command: str) -> None:
        """Worker body: spawn, drain, finish, retire."""
        try:
            handle = self._spawner(command)
        except SpawnError as e:
            logger.warning(f"Failed to start command {command!r}: {e}")
            self.sink.append(e.as_output_line())
            self._retire()
            return
        except Exception as e:
            logger.exception(f"Spawner failed for command {command!r}")
            self.sink.append(f"[ERROR] {str(e) or type(e).__name__}\n")
            self._retire()
            return

        with self._handle_lock:
            self._handle = handle

        try:
            self._drain(handle)

            stopped = self._stop_requested.is_set()
            if stopped:
                handle.terminate(self.kill_grace)
            handle.close()
            exit_code = handle.wait()

            if stopped:
                logger.info(f"Command stopped by user pid={handle.pid}")
                self.sink.append(STOPPED_MARKER)
            else:
                logger.info(f"Command exited pid={handle.pid} returncode={exit_code}")
                self.sink.append(EXIT_MARKER.format(code=exit_code))
        except Exception as e:
            logger.exception(f"Stream worker failed pid={handle.pid}")
            self.sink.append(f"\n[ERROR] {e}\n")
            handle.terminate(self.kill_grace)
            handle.close()
            handle.wait()
        finally:
            with self._handle_lock:
                self._handle = None
            self._retire()

    def _drain(self, handle: ProcessHandle) -> None:
        """Copy output into the sink until EOF or a stop request."""
        # Chunk boundaries can split multi-byte characters
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        while not self._stop_requested.is_set():
            data = handle.read(self.chunk_size)
            if data is None:
                # Nothing yet; wakes early if a stop arrives
                self._stop_requested.wait(self.idle_sleep)
                continue
            if not data:
                break
            self.sink.append(decoder.decode(data))

        self.sink.append(decoder.decode(b"", final=True))

    def _retire(self) -> None:
        """Last act of every worker: clear the token, report idle."""
        self._stop_requested.clear()
        self._idle.set()
