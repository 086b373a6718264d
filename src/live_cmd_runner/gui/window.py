"""pywebview 窗口。

把 RunnerServer 提供的页面显示在桌面窗口中。webview.start() 必须在进程
主线程运行并阻塞到窗口关闭，因此由 GUIManager 在独立子进程中调用。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

__all__ = [
    "WindowConfig",
    "open_window",
]


@dataclass
class WindowConfig:
    """窗口配置。

    Attributes:
        title: 窗口标题
        width: 窗口宽度
        height: 窗口高度
    """
    title: str = "Command Runner"
    width: int = 800
    height: int = 600


def open_window(url: str, config: WindowConfig | None = None) -> None:
    """打开窗口并阻塞直到用户关闭。

    Args:
        url: 页面地址
        config: 窗口配置

    Raises:
        ImportError: 未安装 pywebview
    """
    try:
        import webview
    except ImportError as e:
        raise ImportError(
            "pywebview is required for GUI. Install with: pip install pywebview"
        ) from e

    config = config or WindowConfig()
    webview.create_window(
        config.title,
        url=url,
        width=config.width,
        height=config.height,
        min_size=(600, 400),
    )
    logger.debug(f"Opening window for {url}")
    webview.start()
