"""运行中进程的登记表。

提供进程级别的登记和查询，包括：
- ProcessTable: identifier -> LiveProcess 的共享表
- 所有修改通过同一把锁串行化

取消与退出的竞争由这把锁决定结果：登记表中查不到的 identifier
一律视为 "not found"。
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from .types import ProcessHandle, ProcessState

__all__ = ["ProcessTable", "LiveProcess"]

logger = logging.getLogger(__name__)


@dataclass
class LiveProcess:
    """登记表中一个运行中进程的信息。

    Attributes:
        handle: 进程句柄
        process: 关联的 asyncio 子进程
        supervisor: 负责输出和退出上报的 asyncio Task
        state: 当前状态
        cancel_requested_at: 最近一次发起取消的时间
    """

    handle: ProcessHandle
    process: asyncio.subprocess.Process
    supervisor: asyncio.Task | None = None
    state: ProcessState = ProcessState.RUNNING
    cancel_requested_at: datetime | None = None

    @property
    def identifier(self) -> str:
        return self.handle.identifier

    def __repr__(self) -> str:
        elapsed = (datetime.now() - self.handle.started_at).total_seconds()
        return (
            f"LiveProcess(id={self.identifier[:8]}..., "
            f"program={self.handle.program}, "
            f"pid={self.handle.pid}, "
            f"state={self.state.value}, "
            f"elapsed={elapsed:.1f}s)"
        )


class ProcessTable:
    """运行中进程的共享登记表。

    管理所有正在运行的进程，提供：
    - 登记和注销
    - 加锁查询（用于取消）
    - 活动状态查询

    线程安全：所有操作都在 threading.Lock 下进行，GUI 线程和事件循环
    线程可以同时调用。

    Example:
        ```python
        table = ProcessTable()

        identifier = table.generate_identifier()
        table.register(LiveProcess(handle, process))

        with table.locked(identifier) as entry:
            if entry is not None:
                ...  # 在锁内向进程发送信号

        table.unregister(identifier)
        ```
    """

    def __init__(self) -> None:
        """初始化登记表。"""
        self._entries: dict[str, LiveProcess] = {}
        self._lock = threading.Lock()

    @staticmethod
    def generate_identifier() -> str:
        """生成唯一的进程 identifier。

        Returns:
            UUID4 格式的字符串
        """
        return str(uuid.uuid4())

    def register(self, entry: LiveProcess) -> None:
        """登记新进程。

        Args:
            entry: 运行中进程信息

        Raises:
            ValueError: 如果 identifier 已存在
        """
        with self._lock:
            if entry.identifier in self._entries:
                raise ValueError(f"Process {entry.identifier} already registered")
            self._entries[entry.identifier] = entry
        logger.debug(f"Registered process: {entry}")

    def unregister(self, identifier: str) -> LiveProcess | None:
        """注销进程。

        Args:
            identifier: 进程 identifier

        Returns:
            被注销的进程信息，不存在则返回 None
        """
        with self._lock:
            entry = self._entries.pop(identifier, None)

        if entry is not None:
            logger.debug(f"Unregistered process: {entry}")
        return entry

    def get(self, identifier: str) -> LiveProcess | None:
        """获取进程信息。

        Args:
            identifier: 进程 identifier

        Returns:
            进程信息，如果不存在则返回 None
        """
        with self._lock:
            return self._entries.get(identifier)

    @contextmanager
    def locked(self, identifier: str) -> Iterator[LiveProcess | None]:
        """在持有锁的情况下查找进程。

        在 with 块内登记表不会被修改，因此可以安全地向进程发送信号，
        不会与注销发生竞争。

        Args:
            identifier: 进程 identifier

        Yields:
            进程信息，如果不存在则为 None
        """
        with self._lock:
            yield self._entries.get(identifier)

    def snapshot(self) -> list[LiveProcess]:
        """列出所有进程（按启动时间排序）。"""
        with self._lock:
            entries = list(self._entries.values())
        return sorted(entries, key=lambda x: x.handle.started_at)

    def identifiers(self) -> list[str]:
        """列出所有 identifier。"""
        return [entry.identifier for entry in self.snapshot()]

    def has_live_processes(self) -> bool:
        """检查是否有运行中的进程。"""
        with self._lock:
            return bool(self._entries)

    @property
    def live_count(self) -> int:
        """运行中的进程数量。"""
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        """返回登记表中的进程数量。"""
        return self.live_count

    def __contains__(self, identifier: str) -> bool:
        """检查 identifier 是否在登记表中。"""
        with self._lock:
            return identifier in self._entries
