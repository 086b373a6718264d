"""Async facade over CommandRunner for event-loop hosts.

start() and stop() may block for up to about half a second (a previous run
has to be stopped and joined). An event loop that drives a UI must not wait
that long, so the blocking calls are pushed to a worker thread with anyio.
"""

from __future__ import annotations

import logging

import anyio

from .runner import CommandRunner, RunState

__all__ = ["AsyncCommandRunner"]

logger = logging.getLogger(__name__)


class AsyncCommandRunner:
    """Awaitable wrapper that owns a CommandRunner for a scope.

    Example:
        async with AsyncCommandRunner() as runner:
            await runner.start("make test")
            await runner.wait_idle(timeout=60)
            print(runner.current_output())
        # the run is stopped here on every exit path
    """

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self.runner = runner if runner is not None else CommandRunner()

    async def start(self, command: str, want_timestamp: bool = False) -> None:
        await anyio.to_thread.run_sync(self.runner.start, command, want_timestamp)

    async def stop(self) -> None:
        await anyio.to_thread.run_sync(self.runner.stop)

    async def wait_idle(self, timeout: float | None = None) -> bool:
        return await anyio.to_thread.run_sync(self.runner.wait_idle, timeout)

    def status(self) -> RunState:
        return self.runner.status()

    def current_output(self) -> str:
        return self.runner.current_output()

    def should_scroll_to_bottom(self) -> bool:
        return self.runner.should_scroll_to_bottom()

    def history_entries(self) -> list[str]:
        return self.runner.history_entries()

    async def aclose(self) -> None:
        # Shielded: the stop must complete even if the host is being cancelled
        with anyio.CancelScope(shield=True):
            await self.stop()
        logger.debug("Async runner closed")

    async def __aenter__(self) -> "AsyncCommandRunner":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
