"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from toolkit_exec.config import Config  # noqa: E402
from toolkit_exec.runtime.types import OutputChunk, TerminationReport  # noqa: E402

# 测试用假工具脚本
FAKE_TOOL_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_tool.py"


class Recorder:
    """记录一个进程的回调调用顺序。"""

    def __init__(self) -> None:
        self.chunks: list[OutputChunk] = []
        self.reports: list[TerminationReport] = []
        self.events: list[str] = []
        self.finished = asyncio.Event()

    def on_data(self, chunk: OutputChunk) -> None:
        self.chunks.append(chunk)
        self.events.append("data")

    def on_termination(self, report: TerminationReport) -> None:
        self.reports.append(report)
        self.events.append("termination")
        self.finished.set()

    async def wait(self, timeout: float = 15.0) -> TerminationReport:
        await asyncio.wait_for(self.finished.wait(), timeout=timeout)
        return self.reports[0]

    async def wait_for_text(self, text: str, timeout: float = 15.0) -> None:
        async def _poll() -> None:
            while text not in self.output:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_poll(), timeout=timeout)

    @property
    def output(self) -> str:
        return "".join(chunk.payload for chunk in self.chunks)

    @property
    def stdout(self) -> str:
        return "".join(c.payload for c in self.chunks if not c.is_stderr)

    @property
    def stderr(self) -> str:
        return "".join(c.payload for c in self.chunks if c.is_stderr)


@pytest.fixture
def project_root() -> Path:
    """项目根目录。"""
    return PROJECT_ROOT


@pytest.fixture
def fake_tool() -> list[str]:
    """运行假工具的命令前缀 [python, fake_tool.py]。"""
    return [sys.executable, str(FAKE_TOOL_PATH)]


@pytest.fixture
def test_config() -> Config:
    """缩短超时的测试配置。"""
    return Config(term_timeout=0.5, kill_timeout=0.5)


@pytest.fixture
def recorder() -> Recorder:
    """新的回调记录器。"""
    return Recorder()


@pytest.fixture
def recorder_factory():
    """创建多个回调记录器。"""
    return Recorder
