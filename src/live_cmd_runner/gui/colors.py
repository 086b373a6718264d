"""GUI 颜色方案。

深色主题颜色配置，参考 VS Code 风格。
"""

from __future__ import annotations

__all__ = [
    "COLORS",
]

COLORS = {
    # 背景和边框
    "bg": "#1E1E1E",
    "bg_secondary": "#252526",
    "border": "#3C3C3C",
    "hover": "#2A2A2A",
    "selection": "#264F78",

    # 文本基础
    "fg": "#D4D4D4",
    "fg_dim": "#5A5A5A",
    "fg_muted": "#6A6A6A",

    # 状态
    "success": "#89D185",      # Idle
    "error": "#F44747",        # Stop 按钮
    "running": "#FF9900",      # Running
}
