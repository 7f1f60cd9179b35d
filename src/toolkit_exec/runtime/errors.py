"""Runtime exception classes.

toolkit-exec runtime module v0.1.0
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import TerminationReport

__all__ = [
    "ExecutionError",
    "SpawnError",
    "RuntimeTerminationError",
    "CancellationNotFoundError",
]


class ExecutionError(Exception):
    """Base class for runtime errors."""
    pass


class SpawnError(ExecutionError):
    """The process could not be created.

    Raised synchronously by ``CommandRunner.start``; the handle is never
    registered and no callback fires for it.

    Attributes:
        program: Program name or path that was requested
        reason: OS error text
    """

    def __init__(self, program: str, reason: str) -> None:
        self.program = program
        self.reason = reason
        super().__init__(f"Failed to start {program!r}: {reason}")


class RuntimeTerminationError(ExecutionError):
    """The process started but did not exit successfully.

    Only raised by ``run_to_completion``; streaming callers receive the same
    information through their termination callback.

    Attributes:
        report: Termination report of the process
        output: Captured output up to termination
    """

    def __init__(self, report: "TerminationReport", output: str = "") -> None:
        self.report = report
        self.output = output
        super().__init__(
            f"Process ended with {report.outcome.value} "
            f"(exit_code={report.exit_code}, signal={report.signal})"
        )


class CancellationNotFoundError(ExecutionError):
    """No live process has the given identifier.

    Returned, not raised, by ``cancel``.

    Attributes:
        identifier: Identifier passed to cancel
    """

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"No live process with identifier {identifier!r}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CancellationNotFoundError):
            return NotImplemented
        return self.identifier == other.identifier

    def __hash__(self) -> int:
        return hash((type(self), self.identifier))
