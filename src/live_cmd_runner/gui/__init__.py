"""GUI 模块：HTTP 页面服务器、HTML 模板和 pywebview 窗口。"""

from __future__ import annotations

from .server import RunnerServer, ServerConfig
from .template import generate_html
from .window import WindowConfig, open_window

__all__ = [
    "RunnerServer",
    "ServerConfig",
    "WindowConfig",
    "generate_html",
    "open_window",
]
