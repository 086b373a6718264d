"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from live_cmd_runner.runtime import CommandRunner  # noqa: E402


@pytest.fixture
def runner():
    """CommandRunner，测试结束时保证停止。"""
    instance = CommandRunner()
    yield instance
    instance.close()
