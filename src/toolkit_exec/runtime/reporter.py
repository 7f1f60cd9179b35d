"""Process exit detection and the single terminal report.

toolkit-exec runtime module v0.1.0
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .streamer import OutputStreamer, call_safely
from .types import Outcome, ProcessHandle, TerminationCallback, TerminationReport

__all__ = [
    "TerminationReporter",
    "describe_termination",
]

logger = logging.getLogger(__name__)


def describe_termination(report: TerminationReport) -> str:
    """Operator-facing one-line summary of a termination report."""
    outcome = report.outcome
    if outcome is Outcome.COMPLETED:
        return "Process completed successfully."
    if outcome is Outcome.KILLED:
        return "Process was manually terminated."
    return (
        f"Process terminated with exit code: {report.exit_code} "
        f"and signal code: {report.signal}"
    )


class TerminationReporter:
    """Waits for a process to finish and reports it exactly once.

    Ordering: the streamer is run to completion first, so every chunk the
    process wrote is delivered before the termination callback fires.

    ``on_settled`` runs synchronously right before the termination callback,
    with no suspension point in between. The runner uses it to drop the
    process from the live table, so a cancel issued from inside the
    termination callback already sees the process as gone.
    """

    def __init__(
        self,
        handle: ProcessHandle,
        process: asyncio.subprocess.Process,
        streamer: OutputStreamer,
        on_termination: TerminationCallback | None = None,
        on_settled: Callable[[TerminationReport], None] | None = None,
    ) -> None:
        self.handle = handle
        self._process = process
        self._streamer = streamer
        self._on_termination = on_termination
        self._on_settled = on_settled
        self._report: TerminationReport | None = None

    @property
    def report(self) -> TerminationReport | None:
        """The report, once produced."""
        return self._report

    async def run(self) -> TerminationReport:
        """Stream output, wait for exit, then report.

        If the task running this is cancelled (forced shutdown with a pipe
        still held open by a grandchild), the handle is still reported with
        whatever return code is known, and the cancellation propagates.

        Returns:
            The termination report
        """
        try:
            try:
                await self._streamer.run()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Output streaming failed for {self.handle!r}: {e}")
            returncode = await self._process.wait()
        except asyncio.CancelledError:
            logger.debug(f"Reporter cancelled for {self.handle!r}")
            await self._deliver(TerminationReport.from_returncode(self._process.returncode))
            raise

        logger.debug(f"Process exited {self.handle!r} returncode={returncode}")
        return await self._deliver(TerminationReport.from_returncode(returncode))

    async def _deliver(self, report: TerminationReport) -> TerminationReport:
        if self._report is not None:
            return self._report
        self._report = report

        if self._on_settled is not None:
            try:
                self._on_settled(report)
            except Exception as e:
                logger.warning(f"Error releasing {self.handle!r}: {e}")

        logger.debug(
            f"Reporting {self.handle!r}: outcome={report.outcome.value} "
            f"exit_code={report.exit_code} signal={report.signal}"
        )
        await call_safely(self._on_termination, report, what="termination")
        return report
