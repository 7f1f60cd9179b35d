"""Run a tool to completion and collect its output.

toolkit-exec runtime module v0.1.0
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

import anyio

from .errors import RuntimeTerminationError
from .runner import CommandRunner
from .streamer import Transcript
from .types import TerminationReport

__all__ = ["run_to_completion"]

logger = logging.getLogger(__name__)


async def run_to_completion(
    program: str,
    args: Iterable[str] = (),
    *,
    runner: CommandRunner | None = None,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    output_limit: int | None = None,
) -> str:
    """Run a process and return its full output.

    Only the calling task waits; other processes on the same runner keep
    streaming. If the calling task is cancelled the process is cancelled too.

    Args:
        program: Program name or path
        args: Argument vector
        runner: Runner to use (a new one is created if omitted)
        cwd: Working directory
        env: Environment variables
        output_limit: Characters of output to keep (default from config,
            0 = unbounded). Older output is dropped first.

    Returns:
        stdout and stderr, concatenated in arrival order

    Raises:
        SpawnError: The process never started
        RuntimeTerminationError: The process started but did not exit with
            code 0 (``error.report`` tells failure from cancellation)
    """
    if runner is None:
        runner = CommandRunner()
    limit = runner.config.output_limit if output_limit is None else output_limit

    transcript = Transcript(limit)
    finished: asyncio.Future[TerminationReport] = asyncio.get_running_loop().create_future()

    def on_termination(report: TerminationReport) -> None:
        if not finished.done():
            finished.set_result(report)

    identifier = await runner.start(
        program,
        args,
        transcript.append,
        on_termination,
        cwd=cwd,
        env=env,
    )

    try:
        report = await asyncio.shield(finished)
    except anyio.get_cancelled_exc_class():
        logger.debug(f"run_to_completion cancelled, cancelling process {identifier}")
        runner.cancel(identifier)
        raise

    if transcript.truncated:
        logger.debug(
            f"Output of {program} truncated, {transcript.dropped_chars} characters dropped"
        )

    output = transcript.text()
    if not report.succeeded:
        raise RuntimeTerminationError(report, output)
    return output
