"""信号处理：把 Ctrl+C / SIGTERM 翻译成运行器操作。

SIGINT 的含义取决于 LCR_SIGINT_MODE 和当前是否有命令在运行：

    模式               运行中            空闲
    cancel            停止命令          退出
    exit              退出              退出
    cancel_then_exit  停止命令并待退出   退出

在 LCR_SIGINT_DOUBLE_TAP_WINDOW 秒内连按两次（且已有退出请求）则强制退出。
SIGTERM 总是停止命令并退出。

停止命令最多阻塞约半秒，信号回调只负责在事件循环上调度 stop 任务，
自己从不阻塞。
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import Callable, Optional

from .config import SigintMode, get_config
from .runtime import AsyncCommandRunner

__all__ = ["SignalManager", "SigintMode"]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


class SignalManager:
    """把进程信号接到一个 AsyncCommandRunner 上。

    Example:
        ```python
        async with AsyncCommandRunner() as runner:
            signals = SignalManager(runner)
            await signals.start()
            try:
                await signals.wait_for_shutdown()
            finally:
                await signals.stop()
        ```

    Attributes:
        runner: 被控制的运行器
        sigint_mode: SIGINT 处理模式
        double_tap_window: 连按强制退出的时间窗口（秒）
    """

    def __init__(
        self,
        runner: AsyncCommandRunner,
        sigint_mode: Optional[SigintMode] = None,
        double_tap_window: Optional[float] = None,
        on_shutdown: Optional[Callable[[], None]] = None,
    ) -> None:
        """
        Args:
            runner: 被控制的运行器
            sigint_mode: 默认取 LCR_SIGINT_MODE
            double_tap_window: 默认取 LCR_SIGINT_DOUBLE_TAP_WINDOW
            on_shutdown: 每次发出退出请求时调用
        """
        config = get_config()
        self.runner = runner
        self.sigint_mode = config.sigint_mode if sigint_mode is None else sigint_mode
        self.double_tap_window = (
            config.sigint_double_tap_window if double_tap_window is None else double_tap_window
        )
        self._on_shutdown = on_shutdown

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._installed = False
        self._previous_sigint = None  # 仅 Windows

        self._last_interrupt_at = float("-inf")
        self._exit_pending = False
        self._force_exit = False
        self._pending_stops: set[asyncio.Task] = set()

    @property
    def is_shutdown_requested(self) -> bool:
        return self._exit_pending

    @property
    def is_force_exit(self) -> bool:
        """连按 Ctrl+C 后为 True，调用方清理完毕应以 130 退出。"""
        return self._force_exit

    # ------------------------------------------------------------------
    # 安装 / 卸载
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """安装信号处理器。必须在事件循环中调用。"""
        if self._installed:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()

        if IS_WINDOWS:
            # signal.signal 的回调在主线程同步执行，转交给事件循环
            loop = self._loop
            self._previous_sigint = signal.signal(
                signal.SIGINT,
                lambda signum, frame: loop.call_soon_threadsafe(self._handle_sigint),
            )
        else:
            self._loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
            self._loop.add_signal_handler(signal.SIGTERM, self._handle_sigterm)

        self._installed = True
        logger.debug(
            f"Signal handlers installed (mode={self.sigint_mode.value}, "
            f"double_tap_window={self.double_tap_window}s)"
        )

    async def stop(self) -> None:
        """卸载处理器，并等待已调度的停止任务结束。"""
        if not self._installed:
            return
        self._installed = False

        try:
            if IS_WINDOWS:
                if self._previous_sigint is not None:
                    signal.signal(signal.SIGINT, self._previous_sigint)
            elif self._loop is not None:
                self._loop.remove_signal_handler(signal.SIGINT)
                self._loop.remove_signal_handler(signal.SIGTERM)
        except (ValueError, RuntimeError) as e:
            logger.debug(f"Error removing signal handlers: {e}")

        # 不留下仍在运行的子进程
        if self._pending_stops:
            await asyncio.gather(*self._pending_stops, return_exceptions=True)
        logger.debug("Signal handlers removed")

    async def wait_for_shutdown(self) -> None:
        if self._shutdown_event is not None:
            await self._shutdown_event.wait()

    # ------------------------------------------------------------------
    # 信号回调
    # ------------------------------------------------------------------

    def _handle_sigint(self) -> None:
        now = time.monotonic()
        repeated = now - self._last_interrupt_at < self.double_tap_window
        self._last_interrupt_at = now

        if repeated and self._exit_pending:
            logger.warning("Double SIGINT detected, forcing shutdown")
            self._force_shutdown()
            return

        if self.sigint_mode == SigintMode.EXIT:
            logger.info("SIGINT received (mode=exit), requesting shutdown")
            self._request_shutdown()
            return

        if not self._schedule_stop():
            logger.info(f"SIGINT received (mode={self.sigint_mode.value}), idle, requesting shutdown")
            self._request_shutdown()
            return

        if self.sigint_mode == SigintMode.CANCEL_THEN_EXIT:
            # 只记下退出意图；窗口内再按一次才真正退出
            self._exit_pending = True
            logger.info(
                f"SIGINT received, stopping command. "
                f"Press Ctrl+C again within {self.double_tap_window}s to exit."
            )
        else:
            logger.info("SIGINT received, stopping command")

    def _handle_sigterm(self) -> None:
        logger.info("SIGTERM received, stopping command and shutting down")
        self._schedule_stop()
        self._request_shutdown()

    def request_graceful_shutdown(self) -> None:
        """非信号来源的退出请求（例如窗口被关闭）。"""
        logger.info("Programmatic shutdown requested")
        self._schedule_stop()
        self._request_shutdown()

    # ------------------------------------------------------------------
    # 内部
    # ------------------------------------------------------------------

    def _schedule_stop(self) -> bool:
        """在事件循环上调度 runner.stop()。

        Returns:
            调度时是否有命令在运行
        """
        if not self.runner.runner.is_running:
            return False
        if self._loop is not None:
            task = self._loop.create_task(self.runner.stop())
            self._pending_stops.add(task)
            task.add_done_callback(self._pending_stops.discard)
        return True

    def _request_shutdown(self) -> None:
        self._exit_pending = True

        if self._on_shutdown is not None:
            try:
                self._on_shutdown()
            except Exception as e:
                logger.warning(f"Error in shutdown callback: {e}")

        if self._shutdown_event is not None and self._loop is not None:
            self._loop.call_soon_threadsafe(self._shutdown_event.set)

    def _force_shutdown(self) -> None:
        """标记强制退出。进程由 run_app() 在清理完成后退出。"""
        self._force_exit = True
        self._schedule_stop()
        self._request_shutdown()
