"""Command runner: spawns external tools and supervises them.

toolkit-exec runtime module v0.1.0

This module provides:
- Non-blocking process start with a returned identifier
- A shared live-process table for identifier-based cancellation
- One supervisor task per process (streaming, then a single exit report)
- Shutdown that terminates every live process and still reports each one

Key design points:
- Arguments are passed as discrete tokens, never through a shell
- POSIX: start_new_session=True so the tool gets its own process group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- stdin is DEVNULL; tools never inherit the controlling terminal's input
- Registration happens right after a successful spawn with no suspension
  point in between; removal happens right before the report is delivered
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from ..config import Config, get_config
from .cancellation import IS_WINDOWS, CancellationController, terminate_process
from .errors import CancellationNotFoundError, SpawnError
from .registry import LiveProcess, ProcessTable
from .reporter import TerminationReporter
from .streamer import OutputStreamer
from .types import (
    DataCallback,
    ProcessHandle,
    TerminationCallback,
    TerminationReport,
)

__all__ = ["CommandRunner"]

logger = logging.getLogger(__name__)


class CommandRunner:
    """Launches external command-line tools and streams their output.

    Example:
        runner = CommandRunner()

        identifier = await runner.start(
            "gobuster",
            ["dir", "-u", url, "-w", wordlist],
            on_data=lambda chunk: console.append(chunk.payload),
            on_termination=lambda report: console.finish(report),
        )
        ...
        runner.cancel(identifier)  # user pressed "Stop"

    Attributes:
        table: Live-process table shared with the cancellation controller
        config: Runtime configuration
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        table: ProcessTable | None = None,
    ) -> None:
        self.config = config if config is not None else get_config()
        self.table = table if table is not None else ProcessTable()
        self._controller = CancellationController(self.table)
        self._supervisors: dict[str, asyncio.Task[TerminationReport]] = {}

    async def start(
        self,
        program: str,
        args: Iterable[str] = (),
        on_data: DataCallback | None = None,
        on_termination: TerminationCallback | None = None,
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str:
        """Start a process and return its identifier.

        Returns as soon as the OS process exists, before any output or exit.

        Args:
            program: Program name (looked up on PATH) or path
            args: Argument vector, one token per element
            on_data: Called once per OutputChunk, in sequence order
            on_termination: Called exactly once with the TerminationReport
            cwd: Working directory (None = inherit)
            env: Environment variables (None = inherit)

        Returns:
            Identifier of the new process

        Raises:
            SpawnError: The executable was not found or the OS refused to
                create the process. No callback will be invoked.
        """
        argv = tuple(str(arg) for arg in args)
        kwargs = self._build_subprocess_kwargs(cwd, env)

        try:
            process = await asyncio.create_subprocess_exec(
                program,
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **kwargs,
            )
        except (OSError, ValueError) as e:
            logger.debug(f"Spawn failed program={program}: {e}")
            raise SpawnError(program, str(e)) from e

        handle = ProcessHandle(
            identifier=self.table.generate_identifier(),
            program=program,
            args=argv,
            pid=process.pid,
        )
        entry = LiveProcess(handle=handle, process=process)
        self.table.register(entry)

        streamer = OutputStreamer(
            handle,
            process,
            on_data,
            read_size=self.config.read_size,
            queue_size=self.config.queue_size,
            encoding=self.config.encoding,
        )
        reporter = TerminationReporter(
            handle,
            process,
            streamer,
            on_termination,
            on_settled=lambda report: self._release(entry, report),
        )

        supervisor = asyncio.create_task(
            reporter.run(), name=f"tkx-supervisor-{handle.identifier[:8]}"
        )
        entry.supervisor = supervisor
        self._supervisors[handle.identifier] = supervisor
        supervisor.add_done_callback(
            lambda _task: self._supervisors.pop(handle.identifier, None)
        )

        logger.debug(f"Started {handle!r} argv={handle.argv}")
        return handle.identifier

    def cancel(self, identifier: str) -> CancellationNotFoundError | None:
        """Request graceful termination of a live process.

        Returns:
            None if delivered, CancellationNotFoundError if not live
        """
        return self._controller.cancel(identifier)

    def cancel_all(self) -> int:
        """Request graceful termination of every live process."""
        return self._controller.cancel_all()

    def live_identifiers(self) -> list[str]:
        """Identifiers of live processes, oldest first."""
        return self.table.identifiers()

    def is_live(self, identifier: str) -> bool:
        return identifier in self.table

    async def wait(self, identifier: str) -> TerminationReport | None:
        """Wait for a process's report.

        Returns:
            The report, or None if the identifier is unknown or its
            supervisor has already finished
        """
        supervisor = self._supervisors.get(identifier)
        if supervisor is None:
            return None
        return await asyncio.shield(supervisor)

    async def aclose(self, *, force: bool = False) -> None:
        """Terminate every live process and wait for its report.

        Args:
            force: Skip the SIGTERM grace period and SIGKILL right away
        """
        entries = self.table.snapshot()
        term_timeout = 0.0 if force else self.config.term_timeout
        if entries:
            logger.info(f"Shutting down {len(entries)} live process(es) force={force}")
            await asyncio.gather(
                *(
                    terminate_process(
                        entry.process,
                        term_timeout=term_timeout,
                        kill_timeout=self.config.kill_timeout,
                    )
                    for entry in entries
                ),
                return_exceptions=True,
            )

        supervisors = list(self._supervisors.values())
        if not supervisors:
            return

        done, pending = await asyncio.wait(
            supervisors,
            timeout=term_timeout + self.config.kill_timeout,
        )
        for task in pending:
            # Output pipe held open by a process that left the group.
            logger.warning(f"Supervisor did not finish, cancelling: {task.get_name()}")
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def __aenter__(self) -> "CommandRunner":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _release(self, entry: LiveProcess, report: TerminationReport) -> None:
        entry.state = report.outcome.state
        self.table.unregister(entry.identifier)

    def _build_subprocess_kwargs(
        self,
        cwd: str | Path | None,
        env: Mapping[str, str] | None,
    ) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs."""
        kwargs: dict[str, Any] = {}

        if cwd is not None:
            kwargs["cwd"] = str(cwd)
        if env is not None:
            kwargs["env"] = dict(env)

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        return kwargs
