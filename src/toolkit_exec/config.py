"""TKX 环境变量配置管理。

环境变量:
    TKX_READ_SIZE: 每次读取管道的字节数
        - 默认 4096，限制在 256 - 1048576 范围

    TKX_QUEUE_SIZE: 每个进程输出队列的最大长度（背压）
        - 默认 256，限制在 1 - 65536 范围
        - 队列满时读取方阻塞，不丢弃数据

    TKX_OUTPUT_LIMIT: 每个进程保留的输出字符数上限
        - 默认 4194304 (4M 字符)
        - 0 = 不限制
        - 超出时丢弃最旧的数据（流式回调不受影响）

    TKX_ENCODING: 输出解码使用的编码
        - 默认 utf-8，无效字节替换为 U+FFFD

    TKX_TERM_TIMEOUT: 关闭时 SIGTERM 后等待的秒数
        - 默认 2.0

    TKX_KILL_TIMEOUT: 关闭时 SIGKILL 后等待的秒数
        - 默认 1.0

    TKX_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)

    TKX_SIGINT_MODE: SIGINT (Ctrl+C) 处理模式
        - cancel = 取消运行中的进程（没有运行中的进程则退出）(默认)
        - exit = 直接退出
        - cancel_then_exit = 先取消进程，第二次才退出

    TKX_SIGINT_DOUBLE_TAP_WINDOW: 双击退出窗口时间（秒）
        - 默认 1.0 秒
        - 在此时间窗口内第二次 Ctrl+C 将强制退出
"""

from __future__ import annotations

import codecs
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config", "SigintMode"]

DEFAULT_READ_SIZE = 4096
DEFAULT_QUEUE_SIZE = 256
DEFAULT_OUTPUT_LIMIT = 4 * 1024 * 1024
DEFAULT_ENCODING = "utf-8"
DEFAULT_TERM_TIMEOUT = 2.0
DEFAULT_KILL_TIMEOUT = 1.0


class SigintMode(Enum):
    """SIGINT 处理模式。

    - CANCEL: 只取消运行中的进程，不退出（如果没有运行中的进程则退出）
    - EXIT: 直接退出（传统行为）
    - CANCEL_THEN_EXIT: 先取消进程，第二次 SIGINT 才退出
    """

    CANCEL = "cancel"
    EXIT = "exit"
    CANCEL_THEN_EXIT = "cancel_then_exit"

    @classmethod
    def from_string(cls, value: str) -> "SigintMode":
        """从字符串解析模式。

        Args:
            value: 模式字符串 (cancel/exit/cancel_then_exit)

        Returns:
            对应的 SigintMode 枚举值，无效值返回 CANCEL
        """
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


def _parse_int(value: str | None, default: int, low: int, high: int) -> int:
    """解析整数环境变量，并限制在 [low, high] 范围内。"""
    if not value:
        return default
    try:
        number = int(value.strip())
    except ValueError:
        return default
    return max(low, min(number, high))


def _parse_float(value: str | None, default: float, low: float, high: float) -> float:
    """解析浮点数环境变量，并限制在 [low, high] 范围内。"""
    if not value:
        return default
    try:
        number = float(value.strip())
    except ValueError:
        return default
    return max(low, min(number, high))


def _parse_output_limit(value: str | None) -> int:
    """解析输出上限。负数视为无效，0 表示不限制。"""
    if not value:
        return DEFAULT_OUTPUT_LIMIT
    try:
        limit = int(value.strip())
    except ValueError:
        return DEFAULT_OUTPUT_LIMIT
    return limit if limit >= 0 else DEFAULT_OUTPUT_LIMIT


def _parse_encoding(value: str | None) -> str:
    """解析编码名称。

    未知编码以及不能把 bytes 解码为 str 的编解码器（hex、base64、rot13 等）
    回退到 utf-8。
    """
    if not value or not value.strip():
        return DEFAULT_ENCODING
    try:
        info = codecs.lookup(value.strip())
        decoded = info.incrementaldecoder(errors="replace").decode(b"", True)
    except (LookupError, TypeError, ValueError):
        return DEFAULT_ENCODING
    if not isinstance(decoded, str):
        return DEFAULT_ENCODING
    return info.name


def _parse_sigint_mode(value: str | None) -> SigintMode:
    """解析 SIGINT 模式环境变量。"""
    if not value:
        return SigintMode.CANCEL
    return SigintMode.from_string(value)


@dataclass
class Config:
    """TKX 配置。

    Attributes:
        read_size: 每次读取管道的字节数
        queue_size: 输出队列最大长度
        output_limit: 每个进程保留的输出字符数上限（0 = 不限制）
        encoding: 输出解码编码
        term_timeout: SIGTERM 后等待秒数
        kill_timeout: SIGKILL 后等待秒数
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        sigint_mode: SIGINT 处理模式
        sigint_double_tap_window: 双击退出窗口时间（秒）
    """

    read_size: int = DEFAULT_READ_SIZE
    queue_size: int = DEFAULT_QUEUE_SIZE
    output_limit: int = DEFAULT_OUTPUT_LIMIT
    encoding: str = DEFAULT_ENCODING
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    log_debug: bool = False
    log_file: str | None = None
    sigint_mode: SigintMode = SigintMode.CANCEL
    sigint_double_tap_window: float = 1.0

    def __repr__(self) -> str:
        limit_str = str(self.output_limit) if self.output_limit else "unbounded"
        return (
            f"Config(read_size={self.read_size}, "
            f"queue_size={self.queue_size}, "
            f"output_limit={limit_str}, "
            f"encoding={self.encoding}, "
            f"term_timeout={self.term_timeout}, "
            f"kill_timeout={self.kill_timeout}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"sigint_mode={self.sigint_mode.value}, "
            f"sigint_double_tap_window={self.sigint_double_tap_window})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "toolkit-exec"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"tkx_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("TKX_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        read_size=_parse_int(
            os.environ.get("TKX_READ_SIZE"), DEFAULT_READ_SIZE, 256, 1024 * 1024
        ),
        queue_size=_parse_int(
            os.environ.get("TKX_QUEUE_SIZE"), DEFAULT_QUEUE_SIZE, 1, 65536
        ),
        output_limit=_parse_output_limit(os.environ.get("TKX_OUTPUT_LIMIT")),
        encoding=_parse_encoding(os.environ.get("TKX_ENCODING")),
        term_timeout=_parse_float(
            os.environ.get("TKX_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT, 0.0, 60.0
        ),
        kill_timeout=_parse_float(
            os.environ.get("TKX_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT, 0.0, 60.0
        ),
        log_debug=log_debug,
        log_file=log_file,
        sigint_mode=_parse_sigint_mode(os.environ.get("TKX_SIGINT_MODE")),
        sigint_double_tap_window=_parse_float(
            os.environ.get("TKX_SIGINT_DOUBLE_TAP_WINDOW"), 1.0, 0.1, 10.0
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
