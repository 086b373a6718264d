"""CommandRunner unit tests.

Test coverage:
- Output framing (echoed command, exit / stop markers, timestamps, warnings)
- Stop latency and escalation to a forced kill
- At most one live child and one worker at a time
- Spawn failures surfaced as output lines
- Incremental UTF-8 decoding across chunk boundaries
- Cleanup through close(), the context manager and interpreter exit
"""

from __future__ import annotations

import re
import threading
import time
from unittest import mock

import pytest

from live_cmd_runner.runtime import (
    CommandRunner,
    RunState,
    SpawnError,
    SpawnErrorKind,
)
from live_cmd_runner.runtime.process import IS_WINDOWS
from live_cmd_runner.runtime.runner import STOPPED_MARKER, format_timestamp


# =============================================================================
# Fakes
# =============================================================================


class FakeHandle:
    """Scripted stand-in for a ProcessHandle.

    ``chunks`` are returned one per read; once exhausted the handle either
    reports EOF or, with ``hold_open``, keeps returning None until
    terminated. With ``block_reads`` a read blocks until terminate() is
    called, which simulates a worker stuck in the OS.
    """

    _next_pid = 1000

    def __init__(
        self,
        chunks: list[bytes] | None = None,
        *,
        hold_open: bool = False,
        block_reads: bool = False,
        exit_code: int = 0,
    ) -> None:
        FakeHandle._next_pid += 1
        self.pid = FakeHandle._next_pid
        self._chunks = list(chunks or [])
        self._hold_open = hold_open
        self._block_reads = block_reads
        self._exit_code = exit_code
        self.terminated = threading.Event()
        self.reading = threading.Event()
        self.terminate_calls = 0
        self.closed = False
        self.waited = False

    def read(self, size: int = 1024) -> bytes | None:
        self.reading.set()
        if self._block_reads:
            self.terminated.wait()
            return b""
        if self._chunks:
            return self._chunks.pop(0)
        if self._hold_open and not self.terminated.is_set():
            return None
        return b""

    def terminate(self, grace: float = 0.1) -> None:
        self.terminate_calls += 1
        self.terminated.set()

    def close(self) -> None:
        self.closed = True

    def wait(self) -> int:
        self.waited = True
        return -1 if self.terminated.is_set() else self._exit_code


class TrackingSpawner:
    """Hands out held-open fake handles and records how many are alive."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.live = 0
        self.max_live = 0
        self.handles: list[FakeHandle] = []

    def __call__(self, command: str) -> FakeHandle:
        spawner = self

        class Tracked(FakeHandle):
            def wait(self) -> int:
                code = super().wait()
                with spawner.lock:
                    spawner.live -= 1
                return code

        handle = Tracked(hold_open=True)
        with self.lock:
            self.live += 1
            self.max_live = max(self.max_live, self.live)
            self.handles.append(handle)
        return handle


def command_stream_threads() -> list[threading.Thread]:
    return [t for t in threading.enumerate() if t.name == "command_stream"]


# =============================================================================
# Real shell commands
# =============================================================================


@pytest.mark.integration
@pytest.mark.skipif(IS_WINDOWS, reason="POSIX shell commands")
class TestRealCommands:
    """End-to-end runs through /bin/sh."""

    def test_echo_hello(self, runner: CommandRunner):
        runner.start("echo hello")
        assert runner.wait_idle(5)

        output = runner.current_output()
        assert output.startswith("$ echo hello\n")
        assert "hello\n" in output
        assert output.endswith("[Process exited with code: 0]\n")
        assert runner.status() is RunState.IDLE
        assert runner.history_entries() == ["echo hello"]

    def test_nonzero_exit_code(self, runner: CommandRunner):
        runner.start("exit 3")
        assert runner.wait_idle(5)
        assert runner.current_output().endswith("\n[Process exited with code: 3]\n")

    def test_stderr_is_merged(self, runner: CommandRunner):
        runner.start("echo oops 1>&2")
        assert runner.wait_idle(5)
        assert "oops\n" in runner.current_output()

    def test_stop_long_running_command(self, runner: CommandRunner):
        runner.start("sleep 5")
        time.sleep(0.1)
        assert runner.status() is RunState.RUNNING

        started = time.monotonic()
        runner.stop()
        took = time.monotonic() - started

        assert took < 0.6
        assert runner.status() is RunState.IDLE
        assert runner.current_output().endswith(STOPPED_MARKER)
        assert "[Process exited" not in runner.current_output()

    def test_stop_kills_background_children(self, runner: CommandRunner):
        runner.start("sleep 30 & sleep 30 & wait")
        time.sleep(0.2)
        started = time.monotonic()
        runner.stop()
        assert time.monotonic() - started < 1.5
        assert runner.current_output().endswith(STOPPED_MARKER)

    def test_interactive_warning_precedes_output(self, runner: CommandRunner):
        runner.start("echo ssh host")
        assert runner.wait_idle(5)

        output = runner.current_output()
        warning_at = output.index("[WARNING] This command may require interactive input")
        assert output.startswith("$ echo ssh host\n")
        assert warning_at < output.index("ssh host\n", len("$ echo ssh host\n"))

    def test_timestamp_header(self, runner: CommandRunner):
        runner.start("echo hi", want_timestamp=True)
        assert runner.wait_idle(5)
        assert re.match(
            r"^\[\d{2}:\d{2}:\d{2}\.\d{3}\] \$ echo hi\n", runner.current_output()
        )

    def test_snapshots_only_grow(self, runner: CommandRunner):
        runner.start("for i in 1 2 3 4 5; do echo line$i; sleep 0.02; done")
        snapshots = []
        while runner.is_running:
            snapshots.append(runner.current_output())
            time.sleep(0.005)
        runner.wait_idle(5)
        final = runner.current_output()

        for earlier, later in zip(snapshots, snapshots[1:] + [final]):
            assert later.startswith(earlier)
        assert "line1\nline2\nline3\nline4\nline5\n" in final

    def test_restart_replaces_output(self, runner: CommandRunner):
        runner.start("sleep 5")
        time.sleep(0.05)
        runner.start("echo second")
        assert runner.wait_idle(5)

        output = runner.current_output()
        assert output.startswith("$ echo second\n")
        assert "sleep" not in output
        assert runner.history_entries() == ["sleep 5", "echo second"]

    def test_pipe_creation_failure(self, runner: CommandRunner):
        with mock.patch("os.pipe", side_effect=OSError("too many open files")):
            runner.start("echo hi")
            assert runner.wait_idle(5)

        assert "[ERROR] Failed to create pipe" in runner.current_output()
        assert runner.status() is RunState.IDLE
        runner.stop()
        assert runner._worker is None
        assert command_stream_threads() == []


# =============================================================================
# Scripted handles
# =============================================================================


class TestScriptedRuns:
    """Runner behaviour driven by fake handles."""

    def test_utf8_split_across_chunks(self):
        handle = FakeHandle([b"caf\xc3", b"\xa9 ok\n"])
        with CommandRunner(spawner=lambda command: handle) as runner:
            runner.start("print")
            assert runner.wait_idle(2)
            output = runner.current_output()

        assert "café ok\n" in output
        assert "�" not in output
        assert output.endswith("[Process exited with code: 0]\n")
        assert handle.closed and handle.waited

    def test_invalid_utf8_is_replaced(self):
        handle = FakeHandle([b"bad \xff byte\n"])
        with CommandRunner(spawner=lambda command: handle) as runner:
            runner.start("print")
            runner.wait_idle(2)
            assert "bad � byte\n" in runner.current_output()

    def test_exit_code_reported(self):
        handle = FakeHandle([b"x\n"], exit_code=7)
        with CommandRunner(spawner=lambda command: handle) as runner:
            runner.start("fail")
            runner.wait_idle(2)
            assert runner.current_output().endswith("\n[Process exited with code: 7]\n")

    def test_cooperative_stop_terminates_handle(self):
        handle = FakeHandle(hold_open=True)
        with CommandRunner(spawner=lambda command: handle) as runner:
            runner.start("forever")
            assert handle.reading.wait(1)
            assert runner.state is RunState.RUNNING
            runner.stop()

            assert handle.terminate_calls == 1
            assert handle.closed and handle.waited
            assert runner.current_output().endswith(STOPPED_MARKER)
            assert runner.state is RunState.IDLE

    def test_forced_stop_when_worker_is_stuck(self):
        """A worker blocked in read is unblocked by terminating the handle."""
        handle = FakeHandle(block_reads=True)
        runner = CommandRunner(
            spawner=lambda command: handle,
            stop_poll_attempts=2,
            stop_poll_interval=0.01,
        )
        try:
            runner.start("stuck")
            assert handle.reading.wait(1)

            runner.stop()

            assert handle.terminate_calls >= 1
            assert runner.status() is RunState.IDLE
            assert runner.current_output().endswith(STOPPED_MARKER)
            assert command_stream_threads() == []
        finally:
            runner.close()

    def test_at_most_one_live_child(self):
        spawner = TrackingSpawner()
        with CommandRunner(spawner=spawner) as runner:
            runner.start("first")
            runner.start("second")
            runner.start("third")
            assert spawner.handles[-1].reading.wait(1)
            assert len(command_stream_threads()) == 1
            runner.stop()

        assert spawner.max_live == 1
        assert spawner.live == 0
        assert all(h.terminate_calls == 1 for h in spawner.handles)

    def test_spawn_error_becomes_output_line(self):
        def failing_spawner(command: str):
            raise SpawnError(SpawnErrorKind.PROCESS_CREATION_FAILED, "no shell")

        with CommandRunner(spawner=failing_spawner) as runner:
            runner.start("anything")
            assert runner.wait_idle(2)
            output = runner.current_output()

        assert output == "$ anything\n[ERROR] Failed to fork process: no shell\n"
        assert runner.status() is RunState.IDLE

    def test_unexpected_spawner_error_retires_run(self):
        def broken_spawner(command: str):
            raise RuntimeError("boom")

        with CommandRunner(spawner=broken_spawner) as runner:
            runner.start("echo hi")
            assert runner.wait_idle(1)
            assert runner.status() is RunState.IDLE

            started = time.monotonic()
            runner.stop()
            assert time.monotonic() - started < 0.2

            assert runner.current_output() == "$ echo hi\n[ERROR] boom\n"
            assert command_stream_threads() == []

    def test_spawner_error_without_message(self):
        def broken_spawner(command: str):
            raise RuntimeError

        with CommandRunner(spawner=broken_spawner) as runner:
            runner.start("echo hi")
            assert runner.wait_idle(1)
            assert runner.current_output().endswith("[ERROR] RuntimeError\n")

    def test_worker_thread_start_failure_leaves_runner_idle(self):
        spawner = mock.Mock()
        runner = CommandRunner(spawner=spawner)
        with mock.patch.object(
            threading.Thread, "start", side_effect=RuntimeError("can't start new thread")
        ):
            with pytest.raises(RuntimeError):
                runner.start("echo hi")

        assert runner.status() is RunState.IDLE
        assert runner._worker is None
        assert "[ERROR] Failed to start worker thread" in runner.current_output()
        runner.stop()
        spawner.assert_not_called()

    def test_wait_idle_ignores_run_started_afterwards(self):
        """A run started after the wait began is not joined."""
        handles = iter([FakeHandle([b"one\n"]), FakeHandle(hold_open=True)])
        runner = CommandRunner(spawner=lambda command: next(handles))
        real_wait = runner._idle.wait

        def wait_then_restart(timeout=None):
            idle = real_wait(timeout)
            runner._idle.wait = real_wait
            runner.start("second")
            return idle

        try:
            runner.start("first")
            runner._idle.wait = wait_then_restart
            results = []
            waiter = threading.Thread(target=lambda: results.append(runner.wait_idle(2)))
            waiter.start()
            waiter.join(2)

            assert not waiter.is_alive()
            assert results == [True]
            assert runner.current_command == "second"
        finally:
            runner.close()

    def test_unexpected_worker_error_is_reported(self):
        class Exploding(FakeHandle):
            def read(self, size: int = 1024) -> bytes | None:
                raise RuntimeError("boom")

        handle = Exploding()
        with CommandRunner(spawner=lambda command: handle) as runner:
            runner.start("explode")
            assert runner.wait_idle(2)
            assert "[ERROR] boom" in runner.current_output()
        assert handle.terminate_calls == 1
        assert handle.closed and handle.waited


# =============================================================================
# State and control
# =============================================================================


class TestControl:
    """start / stop bookkeeping."""

    def test_initial_state(self, runner: CommandRunner):
        assert runner.status() is RunState.IDLE
        assert runner.state is RunState.IDLE
        assert runner.current_output() == ""
        assert runner.current_command is None
        assert runner.elapsed is None
        assert runner.should_scroll_to_bottom() is False

    def test_empty_command_is_ignored(self):
        spawner = mock.Mock()
        with CommandRunner(spawner=spawner) as runner:
            runner.start("   ")
            assert runner.status() is RunState.IDLE
            assert runner.history_entries() == []
            assert runner.current_output() == ""
        spawner.assert_not_called()

    def test_stop_when_idle_is_noop(self, runner: CommandRunner):
        runner.stop()
        runner.stop()
        assert runner.status() is RunState.IDLE
        assert runner.current_output() == ""

    def test_start_requests_scroll(self):
        handle = FakeHandle()
        with CommandRunner(spawner=lambda command: handle) as runner:
            runner.start("x")
            runner.wait_idle(2)
            assert runner.should_scroll_to_bottom() is True
            assert runner.should_scroll_to_bottom() is False

    def test_running_metadata(self):
        handle = FakeHandle(hold_open=True)
        with CommandRunner(spawner=lambda command: handle) as runner:
            runner.start("  long job  ")
            assert handle.reading.wait(1)
            assert runner.current_command == "long job"
            assert runner.elapsed is not None and runner.elapsed >= 0
            assert runner.is_running
        assert runner.current_command is None

    def test_clear_output_keeps_running(self):
        handle = FakeHandle(hold_open=True)
        with CommandRunner(spawner=lambda command: handle) as runner:
            runner.start("job")
            assert handle.reading.wait(1)
            runner.clear_output()
            assert runner.current_output() == ""
            assert runner.is_running

    def test_context_manager_stops_command(self):
        handle = FakeHandle(hold_open=True)
        with CommandRunner(spawner=lambda command: handle) as runner:
            runner.start("job")
            assert handle.reading.wait(1)
        assert not runner.is_running
        assert handle.terminate_calls == 1

    def test_cleanup_all_stops_every_runner(self):
        handles = [FakeHandle(hold_open=True), FakeHandle(hold_open=True)]
        runners = [CommandRunner(spawner=lambda command, h=h: h) for h in handles]
        for runner, handle in zip(runners, handles):
            runner.start("job")
            assert handle.reading.wait(1)

        CommandRunner._cleanup_all()

        assert all(not r.is_running for r in runners)
        assert all(h.terminate_calls == 1 for h in handles)

    def test_concurrent_start_stop(self):
        spawner = TrackingSpawner()
        with CommandRunner(spawner=spawner) as runner:
            def hammer(i: int):
                for j in range(5):
                    if (i + j) % 2:
                        runner.start(f"cmd {i}-{j}")
                    else:
                        runner.stop()

            threads = [threading.Thread(target=hammer, args=(i,)) for i in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join(10)

        assert spawner.max_live == 1
        assert spawner.live == 0
        assert command_stream_threads() == []


def test_format_timestamp():
    from datetime import datetime

    assert format_timestamp(datetime(2024, 1, 2, 3, 4, 5, 678900)) == "03:04:05.678"
