"""桌面窗口进程管理。

pywebview 需要占用所在进程的主线程，而主进程的主线程要留给事件循环和信号
处理，所以窗口运行在一个 multiprocessing 子进程里：

- 子进程 daemon=True，主进程退出时随之结束
- 监视线程等待子进程结束；不是 stop() 关掉的，就是用户关了窗口，调用 on_closed
- atexit 时关闭所有仍打开的窗口
"""

from __future__ import annotations

import atexit
import logging
import multiprocessing as mp
import threading
import weakref
from dataclasses import asdict, dataclass
from typing import Any, Callable

from .gui.window import WindowConfig, open_window

__all__ = ["GUIManager", "GUIConfig"]

logger = logging.getLogger(__name__)


@dataclass
class GUIConfig:
    """窗口和监视配置。

    Attributes:
        title: 窗口标题
        width: 窗口宽度
        height: 窗口高度
        poll_interval: 监视线程检查子进程的间隔（秒）
        on_closed: 用户关闭窗口时调用（在监视线程中）
    """

    title: str = "Command Runner"
    width: int = 800
    height: int = 600
    poll_interval: float = 0.5
    on_closed: Callable[[], None] | None = None

    def window_config(self) -> WindowConfig:
        return WindowConfig(title=self.title, width=self.width, height=self.height)


def _window_process_entry(url: str, window: dict[str, Any]) -> None:
    """子进程入口：打开窗口，阻塞到窗口关闭。"""
    try:
        open_window(url, WindowConfig(**window))
    except ImportError as e:
        logger.error(f"Failed to open window: {e}")
        raise SystemExit(2) from e


class GUIManager:
    """在子进程中显示 RunnerServer 的页面。

    Example:
        manager = GUIManager(GUIConfig(on_closed=request_exit))
        if not manager.start(server.url):
            print(f"open {server.url} in a browser")
        ...
        manager.stop()
    """

    _live: "weakref.WeakSet[GUIManager]" = weakref.WeakSet()
    _atexit_registered = False

    def __init__(self, config: GUIConfig | None = None) -> None:
        self.config = config or GUIConfig()
        self._process: mp.Process | None = None
        self._closing = threading.Event()
        self._lock = threading.Lock()

        if not GUIManager._atexit_registered:
            atexit.register(GUIManager._close_all)
            GUIManager._atexit_registered = True
        GUIManager._live.add(self)

    @classmethod
    def _close_all(cls) -> None:
        for manager in list(cls._live):
            try:
                manager.stop()
            except Exception as e:
                logger.debug(f"Cleanup error: {e}")

    @property
    def is_running(self) -> bool:
        process = self._process
        return process is not None and process.is_alive()

    def start(self, url: str) -> bool:
        """打开指向 url 的窗口。已经打开时什么也不做。

        Returns:
            窗口进程是否在运行
        """
        with self._lock:
            if self._process is not None:
                return True

            try:
                process = mp.Process(
                    target=_window_process_entry,
                    args=(url, asdict(self.config.window_config())),
                    daemon=True,
                    name="gui_process",
                )
                process.start()
            except OSError as e:
                logger.error(f"Failed to spawn GUI process: {e}")
                return False

            self._process = process
            self._closing.clear()
            threading.Thread(
                target=self._watch, args=(process,), daemon=True, name="gui_monitor"
            ).start()

            logger.info(f"GUI process started (PID: {process.pid}, URL: {url})")
            return True

    def stop(self) -> None:
        """关闭窗口。不会触发 on_closed。"""
        with self._lock:
            process, self._process = self._process, None
            if process is None:
                return
            self._closing.set()
            self._close_process(process)
            logger.info("GUI window closed")

    def _watch(self, process: mp.Process) -> None:
        while process.is_alive():
            if self._closing.is_set():
                return
            process.join(self.config.poll_interval)

        if self._closing.is_set():
            return
        logger.info(f"GUI process exited (code: {process.exitcode})")
        if self.config.on_closed is not None:
            try:
                self.config.on_closed()
            except Exception as e:
                logger.warning(f"Error in on_closed callback: {e}")

    @staticmethod
    def _close_process(process: mp.Process) -> None:
        if not process.is_alive():
            return
        process.terminate()
        process.join(timeout=1)
        if process.is_alive():
            logger.debug("Force killing GUI process")
            process.kill()
            process.join(timeout=1)
