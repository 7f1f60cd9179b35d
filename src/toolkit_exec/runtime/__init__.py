"""Runtime module for launching external tools and streaming their output.

This module provides isolated process execution, incremental output
delivery, a single termination report per process, and identifier-based
cancellation.
"""

from __future__ import annotations

from .cancellation import CancellationController, terminate_process
from .completion import run_to_completion
from .errors import (
    CancellationNotFoundError,
    ExecutionError,
    RuntimeTerminationError,
    SpawnError,
)
from .portal import BlockingCommandRunner
from .registry import LiveProcess, ProcessTable
from .reporter import TerminationReporter, describe_termination
from .runner import CommandRunner
from .streamer import OutputStreamer, Transcript
from .types import (
    GRACEFUL_SIGNAL,
    CancellationRequest,
    OutputChunk,
    Outcome,
    ProcessHandle,
    ProcessState,
    StreamTag,
    TerminationReport,
)

__all__ = [
    "BlockingCommandRunner",
    "CancellationController",
    "CancellationNotFoundError",
    "CancellationRequest",
    "CommandRunner",
    "ExecutionError",
    "GRACEFUL_SIGNAL",
    "LiveProcess",
    "OutputChunk",
    "OutputStreamer",
    "Outcome",
    "ProcessHandle",
    "ProcessState",
    "ProcessTable",
    "RuntimeTerminationError",
    "SpawnError",
    "StreamTag",
    "TerminationReport",
    "TerminationReporter",
    "Transcript",
    "describe_termination",
    "run_to_completion",
    "terminate_process",
]
