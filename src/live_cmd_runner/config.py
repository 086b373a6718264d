"""LCR 环境变量配置管理。

环境变量:
    LCR_GUI: 是否打开桌面窗口
        - true/1/yes = 打开 pywebview 窗口 (默认)
        - false/0/no = 只启动 HTTP 页面，在日志中输出 URL

    LCR_HOST / LCR_PORT: HTTP 页面绑定地址
        - 默认 127.0.0.1 / 0（0 = 随机端口）

    LCR_TIMESTAMPS: "Show Timestamps" 选项的默认值 (默认 false)

    LCR_AUTO_SCROLL: "Auto-scroll" 选项的默认值 (默认 true)

    LCR_TIMEOUT: 单条命令的超时时间（秒）
        - 0 = 不限制 (默认)
        - 超时后自动停止命令

    LCR_KILL_GRACE: SIGTERM 与 SIGKILL 之间的等待时间（秒）
        - 默认 0.1 秒，限制在 0.01-5 秒范围

    LCR_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (DEBUG 日志输出到临时文件)
        - false/0/no = 关闭 (默认，INFO 日志输出到 stderr)

    LCR_SIGINT_MODE: SIGINT (Ctrl+C) 处理模式
        - cancel = 停止正在运行的命令（空闲时退出）(默认)
        - exit = 直接退出进程
        - cancel_then_exit = 先停止命令，第二次才退出

    LCR_SIGINT_DOUBLE_TAP_WINDOW: 双击退出窗口时间（秒）
        - 默认 1.0 秒
        - 在此时间窗口内第二次 Ctrl+C 将强制退出
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config", "SigintMode"]


class SigintMode(Enum):
    """SIGINT 处理模式。

    - CANCEL: 停止正在运行的命令（如果没有命令在运行则退出）
    - EXIT: 直接退出进程
    - CANCEL_THEN_EXIT: 先停止命令，第二次 SIGINT 才退出
    """

    CANCEL = "cancel"
    EXIT = "exit"
    CANCEL_THEN_EXIT = "cancel_then_exit"

    @classmethod
    def from_string(cls, value: str) -> "SigintMode":
        """从字符串解析模式，无效值返回 CANCEL。"""
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.CANCEL


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_float(
    value: str | None,
    default: float,
    minimum: float,
    maximum: float,
) -> float:
    """解析浮点数环境变量，并限制在 [minimum, maximum] 范围内。"""
    if not value:
        return default
    try:
        return max(minimum, min(float(value), maximum))
    except ValueError:
        return default


def _parse_port(value: str | None) -> int:
    """解析端口号，无效值返回 0（随机端口）。"""
    if not value:
        return 0
    try:
        port = int(value)
    except ValueError:
        return 0
    return port if 0 <= port <= 65535 else 0


@dataclass
class Config:
    """LCR 配置。

    Attributes:
        gui_enabled: 是否打开桌面窗口
        host: HTTP 绑定地址
        port: HTTP 端口（0 = 随机）
        timestamps: 默认是否显示时间戳
        auto_scroll: 默认是否自动滚动
        command_timeout: 命令超时（秒），0 表示不限制
        kill_grace: SIGTERM 到 SIGKILL 的等待时间（秒）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        sigint_mode: SIGINT 处理模式
        sigint_double_tap_window: 双击退出窗口时间（秒）
    """

    gui_enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 0
    timestamps: bool = False
    auto_scroll: bool = True
    command_timeout: float = 0.0
    kill_grace: float = 0.1
    log_debug: bool = False
    log_file: str | None = None
    sigint_mode: SigintMode = SigintMode.CANCEL
    sigint_double_tap_window: float = 1.0

    def __repr__(self) -> str:
        return (
            f"Config(gui_enabled={self.gui_enabled}, "
            f"host={self.host}, port={self.port}, "
            f"timestamps={self.timestamps}, "
            f"auto_scroll={self.auto_scroll}, "
            f"command_timeout={self.command_timeout}, "
            f"kill_grace={self.kill_grace}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"sigint_mode={self.sigint_mode.value}, "
            f"sigint_double_tap_window={self.sigint_double_tap_window})"
        )


def _generate_log_file_path() -> str:
    """生成临时目录下带时间戳的日志文件路径。"""
    log_dir = Path(tempfile.gettempdir()) / "live-cmd-runner"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"lcr_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("LCR_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None
    sigint_mode = os.environ.get("LCR_SIGINT_MODE")

    return Config(
        gui_enabled=_parse_bool(os.environ.get("LCR_GUI"), default=True),
        host=os.environ.get("LCR_HOST", "").strip() or "127.0.0.1",
        port=_parse_port(os.environ.get("LCR_PORT")),
        timestamps=_parse_bool(os.environ.get("LCR_TIMESTAMPS"), default=False),
        auto_scroll=_parse_bool(os.environ.get("LCR_AUTO_SCROLL"), default=True),
        command_timeout=_parse_float(
            os.environ.get("LCR_TIMEOUT"), 0.0, 0.0, 86400.0
        ),
        kill_grace=_parse_float(os.environ.get("LCR_KILL_GRACE"), 0.1, 0.01, 5.0),
        log_debug=log_debug,
        log_file=log_file,
        sigint_mode=SigintMode.from_string(sigint_mode) if sigint_mode else SigintMode.CANCEL,
        sigint_double_tap_window=_parse_float(
            os.environ.get("LCR_SIGINT_DOUBLE_TAP_WINDOW"), 1.0, 0.1, 10.0
        ),
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
