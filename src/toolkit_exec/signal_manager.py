"""信号管理模块。

把终端信号转换为对 CommandRunner 的操作：
- SIGINT: 按 TKX_SIGINT_MODE 取消运行中的工具进程或请求退出
- SIGTERM: 请求退出（由调用方执行 runner.aclose()）
- 双击窗口内的第二次 SIGINT: 立即对所有进程组发送 SIGKILL

工具进程运行在独立的进程组中，终端的 Ctrl+C 不会直接送达它们，
由这里统一转换。
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import Optional

from .config import SigintMode, get_config
from .runtime.runner import CommandRunner

__all__ = ["SignalManager", "SigintMode"]

logger = logging.getLogger(__name__)


class SignalManager:
    """信号管理器。

    Attributes:
        runner: 命令执行器
        sigint_mode: SIGINT 处理模式
        double_tap_window: 双击退出窗口时间（秒）
    """

    def __init__(
        self,
        runner: CommandRunner,
        sigint_mode: Optional[SigintMode] = None,
        double_tap_window: Optional[float] = None,
    ) -> None:
        self.runner = runner

        config = get_config()
        self.sigint_mode = sigint_mode if sigint_mode is not None else config.sigint_mode
        self.double_tap_window = (
            double_tap_window if double_tap_window is not None else config.sigint_double_tap_window
        )

        self._last_sigint_time: float = 0.0
        self._armed: bool = False
        self._shutdown_requested: bool = False
        self._force_exit: bool = False
        self._shutdown_event: Optional[asyncio.Event] = None
        self._kill_task: Optional[asyncio.Task] = None
        self._original_sigint_handler = None
        self._running: bool = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_shutdown_requested(self) -> bool:
        """是否已请求关闭。"""
        return self._shutdown_requested

    @property
    def is_force_exit(self) -> bool:
        """是否请求强制退出（双击 SIGINT）。"""
        return self._force_exit

    async def start(self) -> None:
        """启动信号监听。必须在 asyncio 事件循环中调用。"""
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()
        self._running = True

        if sys.platform != "win32":
            self._loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
            self._loop.add_signal_handler(signal.SIGTERM, self._handle_sigterm)
        else:
            # Windows: loop.add_signal_handler 不可用
            self._original_sigint_handler = signal.signal(
                signal.SIGINT,
                lambda sig, frame: self._loop.call_soon_threadsafe(self._handle_sigint),
            )
        logger.debug(
            f"Signal handlers installed (mode={self.sigint_mode.value}, "
            f"double_tap_window={self.double_tap_window}s)"
        )

    async def stop(self) -> None:
        """停止信号监听，恢复原始信号处理器，等待强制终止完成。"""
        if not self._running:
            return

        self._running = False

        if sys.platform != "win32" and self._loop:
            try:
                self._loop.remove_signal_handler(signal.SIGINT)
                self._loop.remove_signal_handler(signal.SIGTERM)
            except (RuntimeError, ValueError) as e:
                logger.debug(f"Error removing signal handlers: {e}")
        elif sys.platform == "win32" and self._original_sigint_handler is not None:
            try:
                signal.signal(signal.SIGINT, self._original_sigint_handler)
            except (OSError, ValueError) as e:
                logger.debug(f"Error restoring SIGINT handler: {e}")

        if self._kill_task is not None:
            await self._kill_task

        logger.debug("Signal handlers removed")

    async def wait_for_shutdown(self) -> None:
        """等待关闭请求（SIGTERM 或满足退出条件的 SIGINT）。"""
        if self._shutdown_event:
            await self._shutdown_event.wait()

    def _handle_sigint(self) -> None:
        """处理 SIGINT。

        - 双击窗口内的第二次：强制终止
        - EXIT 模式，或没有运行中的进程：请求关闭
        - 否则取消所有运行中的进程；CANCEL_THEN_EXIT 模式下同时开始计算双击窗口
        """
        now = time.monotonic()
        within_window = now - self._last_sigint_time < self.double_tap_window
        self._last_sigint_time = now

        if self._armed and within_window:
            logger.warning("Double SIGINT detected, killing all processes")
            self._force_shutdown()
            return

        if self.sigint_mode == SigintMode.EXIT or not self.runner.table.has_live_processes():
            logger.info(f"SIGINT received (mode={self.sigint_mode.value}), requesting shutdown")
            self._request_shutdown()
            return

        count = self.runner.cancel_all()
        self._armed = self.sigint_mode == SigintMode.CANCEL_THEN_EXIT
        if self._armed:
            logger.info(
                f"SIGINT received, cancelled {count} process(es). "
                f"Press Ctrl+C again within {self.double_tap_window}s to kill them."
            )
        else:
            logger.info(f"SIGINT received, cancelled {count} process(es)")

    def _handle_sigterm(self) -> None:
        logger.info("SIGTERM received, requesting shutdown")
        self._request_shutdown()

    def _request_shutdown(self) -> None:
        self._shutdown_requested = True
        if self._shutdown_event is not None and self._loop is not None:
            self._loop.call_soon_threadsafe(self._shutdown_event.set)

    def _force_shutdown(self) -> None:
        """跳过 SIGTERM 宽限期，立即 SIGKILL 所有进程组，并请求关闭。"""
        self._force_exit = True
        if self._kill_task is None and self._loop is not None:
            self._kill_task = self._loop.create_task(
                self.runner.aclose(force=True), name="tkx-force-kill"
            )
        self._request_shutdown()
