"""toolkit-exec - 外部安全工具的进程执行与输出流核心。

环境变量:
    TKX_OUTPUT_LIMIT: 每个进程保留的输出字符数上限 (默认 4M, 0 = 不限制)
    TKX_SIGINT_MODE: SIGINT 处理模式 (默认 cancel)
    TKX_LOG_DEBUG: 日志输出到临时文件 (默认 false)

用法:
    from toolkit_exec import CommandRunner

    runner = CommandRunner()
    identifier = await runner.start("gobuster", args, on_data, on_termination)
"""

__version__ = "0.1.0"

from .runtime import (
    BlockingCommandRunner,
    CancellationNotFoundError,
    CommandRunner,
    OutputChunk,
    RuntimeTerminationError,
    SpawnError,
    StreamTag,
    TerminationReport,
    describe_termination,
    run_to_completion,
)

__all__ = [
    "__version__",
    "BlockingCommandRunner",
    "CancellationNotFoundError",
    "CommandRunner",
    "OutputChunk",
    "RuntimeTerminationError",
    "SpawnError",
    "StreamTag",
    "TerminationReport",
    "describe_termination",
    "run_to_completion",
]
