"""Shell process spawning with process-group isolation.

live-cmd-runner runtime module v0.1.0

This module provides:
- ProcessHandle: one opaque object per child exposing read/terminate/wait
- spawn(): run a shell line with stderr merged into stdout
- Non-blocking reads of the merged output stream
- Group-wide termination with escalation (SIGTERM -> grace -> SIGKILL)

Key design points:
- The command always goes through the shell (pipes, redirections and globs
  work as typed); nothing is split or escaped
- POSIX: start_new_session=True makes the shell a process group leader, so
  signalling the group also reaches everything the command started
- Windows: CREATE_NEW_PROCESS_GROUP, and a pump thread stands in for
  non-blocking pipe reads
"""

from __future__ import annotations

import logging
import os
import queue
import signal
import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from typing import Any, BinaryIO

from .errors import SpawnError, SpawnErrorKind

__all__ = [
    "IS_WINDOWS",
    "DEFAULT_KILL_GRACE",
    "READ_CHUNK_SIZE",
    "ProcessHandle",
    "PosixProcessHandle",
    "WindowsProcessHandle",
    "build_shell_argv",
    "spawn",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

DEFAULT_KILL_GRACE = 0.1  # seconds between SIGTERM and SIGKILL
READ_CHUNK_SIZE = 1024


def build_shell_argv(command: str) -> list[str]:
    """Wrap a user-typed line in a shell invocation."""
    if IS_WINDOWS:
        return [os.environ.get("COMSPEC", "cmd.exe"), "/c", command]
    return ["/bin/sh", "-c", command]


class ProcessHandle(ABC):
    """A running shell child and its merged output stream.

    Owned by one stream worker at a time. ``terminate`` may additionally be
    called by the forced-stop path; a per-handle lock keeps two threads from
    signalling the process at once.
    """

    def __init__(self, process: subprocess.Popen) -> None:
        self._process = process
        self._signal_lock = threading.Lock()

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    def poll(self) -> int | None:
        """Reap the child if it has exited, without blocking."""
        return self._process.poll()

    def wait(self) -> int:
        """Block until the child exits.

        Returns:
            The exit code, or -1 when the child was killed by a signal
        """
        code = self._process.wait()
        return code if code >= 0 else -1

    @abstractmethod
    def read(self, size: int = READ_CHUNK_SIZE) -> bytes | None:
        """Read up to ``size`` bytes without blocking.

        Returns:
            Data, ``None`` when nothing is available yet, or ``b""`` at end
            of stream (read errors are reported as end of stream too)
        """

    @abstractmethod
    def close(self) -> None:
        """Close the output stream. Safe to call more than once."""

    def terminate(self, grace: float = DEFAULT_KILL_GRACE) -> None:
        """Terminate the whole process group, gracefully then forcefully.

        Termination strategy:
        1. Send SIGTERM to the group (CTRL_BREAK_EVENT on Windows)
        2. Wait up to ``grace`` seconds for the leader to exit
        3. If still running, send SIGKILL to the group (kill() on Windows)
        4. Reap without blocking; a child that is still around is collected
           by the caller's later wait()

        Best effort: a process that is already gone is not an error.
        """
        with self._signal_lock:
            pid = self.pid
            logger.debug(f"Terminating process group pid={pid}")
            self._send_terminate()

            try:
                self._process.wait(timeout=grace)
                logger.debug(
                    f"Process exited after terminate pid={pid} "
                    f"returncode={self._process.returncode}"
                )
            except subprocess.TimeoutExpired:
                logger.debug(f"Force killing process group pid={pid}")
                self._send_kill()
                self._process.poll()

    @abstractmethod
    def _send_terminate(self) -> None:
        """Deliver the graceful termination signal."""

    @abstractmethod
    def _send_kill(self) -> None:
        """Deliver the unconditional kill."""


class PosixProcessHandle(ProcessHandle):
    """Child in its own session, read through a non-blocking pipe fd."""

    def __init__(self, process: subprocess.Popen, read_fd: int) -> None:
        super().__init__(process)
        self._fd: int | None = read_fd

    def read(self, size: int = READ_CHUNK_SIZE) -> bytes | None:
        if self._fd is None:
            return b""
        try:
            return os.read(self._fd, size)
        except BlockingIOError:
            return None
        except OSError as e:
            logger.debug(f"Read failed pid={self.pid}, treating as end of stream: {e}")
            return b""

    def close(self) -> None:
        fd, self._fd = self._fd, None
        if fd is not None:
            os.close(fd)

    def _signal_group(self, sig: signal.Signals) -> None:
        try:
            # pgid == pid because of start_new_session
            os.killpg(self.pid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={self.pid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg({sig.name}) failed, signalling leader only: {e}")
            try:
                self._process.send_signal(sig)
            except OSError:
                pass

    def _send_terminate(self) -> None:
        self._signal_group(signal.SIGTERM)

    def _send_kill(self) -> None:
        self._signal_group(signal.SIGKILL)


class WindowsProcessHandle(ProcessHandle):
    """Child in a new process group; a daemon thread pumps its pipe."""

    def __init__(self, process: subprocess.Popen, stream: BinaryIO) -> None:
        super().__init__(process)
        self._stream: BinaryIO | None = stream
        self._chunks: queue.Queue[bytes] = queue.Queue()
        self._eof = False
        self._pump = threading.Thread(
            target=self._pump_loop, args=(stream,), daemon=True, name="pipe_pump"
        )
        self._pump.start()

    def _pump_loop(self, stream: BinaryIO) -> None:
        try:
            while True:
                data = stream.read(READ_CHUNK_SIZE)
                if not data:
                    break
                self._chunks.put(data)
        except (OSError, ValueError) as e:
            logger.debug(f"Pipe pump stopped pid={self.pid}: {e}")
        finally:
            self._chunks.put(b"")

    def read(self, size: int = READ_CHUNK_SIZE) -> bytes | None:
        if self._eof:
            return b""
        try:
            data = self._chunks.get_nowait()
        except queue.Empty:
            return None
        if not data:
            self._eof = True
        return data

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()

    def _send_terminate(self) -> None:
        try:
            # Works because of CREATE_NEW_PROCESS_GROUP
            os.kill(self.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={self.pid}")
        except OSError as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            try:
                self._process.terminate()
            except OSError:
                pass

    def _send_kill(self) -> None:
        try:
            self._process.kill()
            logger.debug(f"Called kill() on pid={self.pid}")
        except OSError:
            pass


def _build_popen_kwargs() -> dict[str, Any]:
    """Platform-specific isolation kwargs for Popen."""
    if IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def _open_handle(process: subprocess.Popen, read_fd: int) -> ProcessHandle:
    if IS_WINDOWS:
        return WindowsProcessHandle(process, os.fdopen(read_fd, "rb", buffering=0))
    os.set_blocking(read_fd, False)
    return PosixProcessHandle(process, read_fd)


def _discard(process: subprocess.Popen) -> None:
    """Kill and reap a child whose stream could not be set up."""
    try:
        if IS_WINDOWS:
            process.kill()
        else:
            os.killpg(process.pid, signal.SIGKILL)
    except OSError:
        pass
    process.wait()


def spawn(command: str) -> ProcessHandle:
    """Start ``command`` through the shell with stderr merged into stdout.

    Args:
        command: Shell line, run as typed

    Returns:
        Handle whose stream is already non-blocking

    Raises:
        SpawnError: If the pipe, the process or the stream could not be
            created. Nothing is left running in that case.
    """
    try:
        read_fd, write_fd = os.pipe()
    except OSError as e:
        raise SpawnError(SpawnErrorKind.CHANNEL_CREATION_FAILED, str(e)) from e

    argv = build_shell_argv(command)
    try:
        # stdin is DEVNULL: the child gets no terminal to prompt on, and an
        # inherited stdin would compete with the host for input
        process = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=write_fd,
            stderr=write_fd,
            **_build_popen_kwargs(),
        )
    except (OSError, ValueError) as e:
        os.close(read_fd)
        os.close(write_fd)
        raise SpawnError(SpawnErrorKind.PROCESS_CREATION_FAILED, str(e)) from e

    # Only the child may hold the write end, otherwise EOF never arrives
    os.close(write_fd)

    try:
        handle = _open_handle(process, read_fd)
    except OSError as e:
        _discard(process)
        os.close(read_fd)
        raise SpawnError(SpawnErrorKind.STREAM_OPEN_FAILED, str(e)) from e

    logger.debug(f"Started subprocess pid={process.pid} argv={argv[0]}")
    return handle
