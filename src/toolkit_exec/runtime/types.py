"""Runtime data types for launched tool processes.

toolkit-exec runtime module v0.1.0

Defines the records that flow between the runner, the output streamer and
the termination reporter:
- ProcessHandle: one external command from spawn to terminal report
- OutputChunk: one sequence-numbered piece of decoded output
- TerminationReport: how the process ended
- CancellationRequest: a transient graceful-termination request
"""

from __future__ import annotations

import signal as _signal
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union

__all__ = [
    "GRACEFUL_SIGNAL",
    "StreamTag",
    "ProcessState",
    "Outcome",
    "SignalKind",
    "ProcessHandle",
    "OutputChunk",
    "TerminationReport",
    "CancellationRequest",
    "DataCallback",
    "TerminationCallback",
]

# Canonical graceful-termination value reported for a cancelled process.
# SIGTERM is 15 on every POSIX platform; Windows exposes the same constant.
GRACEFUL_SIGNAL: int = int(_signal.SIGTERM)


class StreamTag(str, Enum):
    """Which output stream a chunk was read from."""

    PRIMARY = "stdout"
    SECONDARY = "stderr"


class ProcessState(str, Enum):
    """Lifecycle state of a ProcessHandle.

    NOT_STARTED -> RUNNING -> {COMPLETED, KILLED, FAILED}
    """

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    KILLED = "killed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessState.COMPLETED, ProcessState.KILLED, ProcessState.FAILED)


class Outcome(str, Enum):
    """Classification of a TerminationReport."""

    COMPLETED = "completed"
    KILLED = "killed"
    FAILED = "failed"

    @property
    def state(self) -> ProcessState:
        return ProcessState(self.value)


class SignalKind(str, Enum):
    """Kind of termination signal a cancellation asks for."""

    GRACEFUL = "graceful"


@dataclass(frozen=True)
class ProcessHandle:
    """In-memory record of one launched command.

    Attributes:
        identifier: Unique among concurrently live handles
        program: Program name or path as given by the caller
        args: Argument vector, fixed once the process is started
        started_at: Wall-clock time the process was created
        pid: OS process id
    """

    identifier: str
    program: str
    args: tuple[str, ...]
    started_at: datetime = field(default_factory=datetime.now)
    pid: int | None = None

    @property
    def argv(self) -> list[str]:
        """Full command line, program first."""
        return [self.program, *self.args]

    def __repr__(self) -> str:
        return (
            f"ProcessHandle(id={self.identifier[:8]}..., "
            f"program={self.program}, pid={self.pid})"
        )


@dataclass(frozen=True)
class OutputChunk:
    """One unit of decoded output.

    Attributes:
        sequence: Position in the handle's delivery order, starting at 0
        payload: Decoded text, line breaks preserved
        stream: Source stream of the text
    """

    sequence: int
    payload: str
    stream: StreamTag = StreamTag.PRIMARY

    @property
    def is_stderr(self) -> bool:
        return self.stream is StreamTag.SECONDARY


@dataclass(frozen=True)
class TerminationReport:
    """How a process ended.

    Exactly one of ``exit_code`` and ``signal`` is normally present: a process
    that exits on its own has an exit code; one killed by a signal has the
    signal number and no exit code.
    """

    exit_code: int | None = None
    signal: int | None = None

    @classmethod
    def from_returncode(cls, returncode: int | None) -> "TerminationReport":
        """Build a report from an asyncio/subprocess return code.

        POSIX reports death-by-signal as a negative return code.
        """
        if returncode is None:
            return cls()
        if returncode < 0:
            return cls(exit_code=None, signal=-returncode)
        return cls(exit_code=returncode, signal=None)

    @property
    def outcome(self) -> Outcome:
        if self.exit_code == 0:
            return Outcome.COMPLETED
        if self.signal == GRACEFUL_SIGNAL:
            return Outcome.KILLED
        return Outcome.FAILED

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.COMPLETED

    @property
    def was_cancelled(self) -> bool:
        return self.outcome is Outcome.KILLED


@dataclass(frozen=True)
class CancellationRequest:
    """A request to gracefully terminate a live process."""

    identifier: str
    signal_kind: SignalKind = SignalKind.GRACEFUL


# Callbacks may be plain functions or coroutine functions.
DataCallback = Callable[[OutputChunk], Union[None, Awaitable[None]]]
TerminationCallback = Callable[[TerminationReport], Union[None, Awaitable[None]]]
