"""Live Command Runner 应用入口。

包含应用生命周期管理和主入口点。
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys

from .config import get_config
from .gui import RunnerServer, ServerConfig, generate_html
from .gui_manager import GUIConfig, GUIManager
from .runtime import AsyncCommandRunner, CommandRunner
from .signal_manager import SignalManager

__all__ = ["run_app", "main"]

logger = logging.getLogger(__name__)

TIMEOUT_CHECK_INTERVAL = 0.1


async def watch_command_timeout(
    runner: AsyncCommandRunner,
    timeout: float,
    interval: float = TIMEOUT_CHECK_INTERVAL,
) -> None:
    """超时看门狗：命令运行超过 timeout 秒后停止它。"""
    while True:
        await asyncio.sleep(interval)
        elapsed = runner.runner.elapsed
        if elapsed is not None and elapsed > timeout:
            logger.info(f"Command exceeded timeout ({timeout:g}s), stopping")
            runner.runner.sink.append(f"\n[TIMEOUT] Command exceeded {timeout:g}s\n")
            await runner.stop()


async def run_app() -> None:
    """运行应用。

    生命周期：
    - 运行器在 async with 作用域内获取，任何退出路径都会停止正在运行的命令
    - HTTP 页面服务器 + 可选的桌面窗口（子进程）
    - 信号管理器：Ctrl+C 停止命令，SIGTERM 退出
    - 超时看门狗（LCR_TIMEOUT > 0 时）
    """
    config = get_config()
    logger.info(f"Starting Live Command Runner: {config}")

    runner = CommandRunner(kill_grace=config.kill_grace)
    gui_manager: GUIManager | None = None
    watchdog: asyncio.Task | None = None

    async with AsyncCommandRunner(runner) as async_runner:
        loop = asyncio.get_running_loop()
        signal_manager = SignalManager(async_runner)
        server = RunnerServer(
            runner,
            generate_html(auto_scroll=config.auto_scroll, timestamps=config.timestamps),
            ServerConfig(host=config.host, port=config.port),
        )

        def on_window_closed():
            """窗口被关闭：回到事件循环请求退出。"""
            loop.call_soon_threadsafe(signal_manager.request_graceful_shutdown)

        try:
            await signal_manager.start()
            server.start()

            if config.gui_enabled:
                gui_manager = GUIManager(GUIConfig(on_closed=on_window_closed))
                if not gui_manager.start(server.url):
                    logger.warning("Failed to start GUI, continuing without it")
                    gui_manager = None
            if gui_manager is None:
                logger.info(f"Open {server.url} in a browser")

            if config.command_timeout > 0:
                watchdog = asyncio.create_task(
                    watch_command_timeout(async_runner, config.command_timeout),
                    name="command-timeout-watchdog",
                )

            await signal_manager.wait_for_shutdown()
            logger.info("Shutdown signal received")

        finally:
            logger.info("run_app: entering finally block")

            if watchdog and not watchdog.done():
                watchdog.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await watchdog

            await signal_manager.stop()

            if gui_manager:
                gui_manager.stop()

            server.stop()

    logger.info("run_app: cleanup completed")

    if signal_manager.is_force_exit:
        logger.warning("Force exit requested, terminating with exit code 130")
        sys.exit(130)  # 128 + SIGINT(2) = 130


def main() -> None:
    """主入口点。"""
    config = get_config()

    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # 默认模式：输出到 stderr
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    # 只对 live_cmd_runner 命名空间启用详细日志
    logging.getLogger("live_cmd_runner").setLevel(log_level)

    asyncio.run(run_app())


if __name__ == "__main__":
    main()
