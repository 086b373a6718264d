"""Live Command Runner - 运行 shell 命令并实时查看输出。

环境变量:
    LCR_GUI: 是否打开桌面窗口 (默认 true)
    LCR_TIMEOUT: 单条命令超时秒数 (默认 0 = 不限制)
    LCR_SIGINT_MODE: Ctrl+C 处理模式 (默认 cancel)

用法:
    live-cmd-runner
    python -m live_cmd_runner
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
