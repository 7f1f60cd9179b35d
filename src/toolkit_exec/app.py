"""toolkit-exec 命令行入口。

启动单个工具进程，把输出按流写到 stdout/stderr，结束时打印结果说明。

用法:
    python -m toolkit_exec [--cwd DIR] PROGRAM [ARGS...]
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from collections.abc import Sequence

from .config import Config, get_config
from .runtime.errors import SpawnError
from .runtime.reporter import describe_termination
from .runtime.runner import CommandRunner
from .runtime.types import OutputChunk, TerminationReport
from .signal_manager import SignalManager

__all__ = ["configure_logging", "exit_code_for", "run_tool", "main"]

logger = logging.getLogger(__name__)

# 进程无法启动时的退出码（与 shell 的 "command not found" 一致）
EXIT_SPAWN_FAILED = 127

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(config: Config) -> None:
    """配置日志输出。

    - TKX_LOG_DEBUG 开启：DEBUG 级别输出到临时文件
    - 默认：INFO 级别输出到 stderr
    """
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # root logger（第三方库）保持 WARNING，减少噪音
    logging.basicConfig(level=logging.WARNING, handlers=log_handlers)
    # 只对 toolkit_exec 命名空间启用详细日志
    logging.getLogger("toolkit_exec").setLevel(log_level)


def exit_code_for(report: TerminationReport) -> int:
    """把终止报告转换为本进程的退出码。"""
    if report.exit_code is not None:
        return report.exit_code
    if report.signal is not None:
        return 128 + report.signal
    return 1


def _write_chunk(chunk: OutputChunk) -> None:
    stream = sys.stderr if chunk.is_stderr else sys.stdout
    stream.write(chunk.payload)
    stream.flush()


async def run_tool(
    program: str,
    args: Sequence[str],
    *,
    cwd: str | None = None,
    config: Config | None = None,
) -> int:
    """运行一个工具直到结束。

    SIGINT 由 SignalManager 转换为取消请求；收到关闭请求时终止进程。

    Returns:
        退出码
    """
    config = config if config is not None else get_config()
    runner = CommandRunner(config)
    signal_manager = SignalManager(runner)

    finished: asyncio.Future[TerminationReport] = asyncio.get_running_loop().create_future()

    def on_termination(report: TerminationReport) -> None:
        sys.stderr.write(f"\n{describe_termination(report)}\n")
        sys.stderr.flush()
        if not finished.done():
            finished.set_result(report)

    await signal_manager.start()
    shutdown_watcher: asyncio.Task | None = None
    try:
        try:
            identifier = await runner.start(
                program, args, _write_chunk, on_termination, cwd=cwd
            )
        except SpawnError as e:
            logger.error(str(e))
            return EXIT_SPAWN_FAILED

        logger.debug(f"Running {program} as {identifier}")
        shutdown_watcher = asyncio.create_task(
            signal_manager.wait_for_shutdown(), name="shutdown-watcher"
        )
        await asyncio.wait(
            [finished, shutdown_watcher], return_when=asyncio.FIRST_COMPLETED
        )

        if not finished.done():
            logger.info("Shutdown requested, terminating running tool...")
            await runner.aclose(force=signal_manager.is_force_exit)

        report = await finished
        return exit_code_for(report)

    finally:
        if shutdown_watcher and not shutdown_watcher.done():
            shutdown_watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await shutdown_watcher
        await signal_manager.stop()
        await runner.aclose()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolkit-exec",
        description="Run an external tool and stream its output.",
    )
    parser.add_argument("--cwd", default=None, help="Working directory for the tool")
    parser.add_argument("program", help="Program name or path")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the program")
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """主入口点。"""
    options = _build_parser().parse_args(argv)
    config = get_config()
    configure_logging(config)

    code = asyncio.run(
        run_tool(options.program, options.args, cwd=options.cwd, config=config)
    )
    sys.exit(code)


if __name__ == "__main__":
    main()
