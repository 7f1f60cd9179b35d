"""Graceful cancellation and forced termination of launched processes.

toolkit-exec runtime module v0.1.0

This module provides:
- CancellationController: identifier-based graceful termination requests
- terminate_process: SIGTERM -> timeout -> SIGKILL escalation for shutdown

Key design points:
- POSIX: processes run in their own session, so the process group id is the
  leader's pid. Signals go to the whole group, and keep reaching background
  children after the leader itself has exited and been reaped
- Windows: CTRL_BREAK_EVENT, which works because of CREATE_NEW_PROCESS_GROUP
- Lookup and signal delivery happen under the process table lock, so a
  cancel racing the exit report resolves to CancellationNotFoundError
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from datetime import datetime

from .errors import CancellationNotFoundError
from .registry import ProcessTable
from .types import CancellationRequest, ProcessState

__all__ = [
    "IS_WINDOWS",
    "CancellationController",
    "terminate_process",
]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

# Poll interval while waiting for the rest of a group after the leader exits.
_GROUP_POLL_INTERVAL = 0.05


def _send_graceful(process: asyncio.subprocess.Process) -> None:
    """Ask a process (group) to exit.

    Raises:
        ProcessLookupError: Nothing is left to signal
    """
    if IS_WINDOWS:
        if process.returncode is not None:
            # Windows reuses pids freely; an exited leader is never signalled.
            raise ProcessLookupError(process.pid)
        try:
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except OSError as e:
            if isinstance(e, ProcessLookupError):
                raise
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()
        return

    try:
        os.killpg(process.pid, signal.SIGTERM)
        logger.debug(f"Sent SIGTERM to process group pgid={process.pid}")
    except ProcessLookupError:
        raise
    except OSError as e:
        logger.debug(f"killpg failed, falling back to terminate: {e}")
        process.terminate()


def _send_kill(process: asyncio.subprocess.Process) -> None:
    """Force-kill a process (group)."""
    if IS_WINDOWS:
        if process.returncode is not None:
            raise ProcessLookupError(process.pid)
        process.kill()
        logger.debug(f"Called kill() on pid={process.pid}")
        return

    try:
        os.killpg(process.pid, signal.SIGKILL)
        logger.debug(f"Sent SIGKILL to process group pgid={process.pid}")
    except ProcessLookupError:
        raise
    except OSError as e:
        logger.debug(f"killpg failed, falling back to kill: {e}")
        process.kill()


def _group_alive(process: asyncio.subprocess.Process) -> bool:
    """Whether any member of the process's group still exists."""
    if IS_WINDOWS:
        return process.returncode is None
    try:
        os.killpg(process.pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


async def _wait_for_group(process: asyncio.subprocess.Process, timeout: float) -> bool:
    """Wait until the leader is reaped and its group is empty.

    Returns:
        True if everything exited within ``timeout``
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    try:
        await asyncio.wait_for(process.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        return False

    while _group_alive(process):
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(_GROUP_POLL_INTERVAL)
    return True


class CancellationController:
    """Sends graceful termination requests to live processes by identifier.

    Cancellation is a request: the process may ignore the signal, take a long
    time to exit, or exit with some other code. The eventual outcome arrives
    through the handle's termination callback.

    A handle stays live until its output pipes close, which can be after the
    launched program itself has exited (a background child still holds them).
    Such a handle is still cancellable: the signal reaches the child through
    the process group.

    Safe to call from any thread.
    """

    def __init__(self, table: ProcessTable) -> None:
        self.table = table

    def cancel(self, identifier: str) -> CancellationNotFoundError | None:
        """Request graceful termination of a live process.

        Args:
            identifier: Identifier returned by ``CommandRunner.start``

        Returns:
            None if the request was delivered, or a CancellationNotFoundError
            if no live process has this identifier
        """
        request = CancellationRequest(identifier=identifier)

        with self.table.locked(request.identifier) as entry:
            if entry is None or entry.state is not ProcessState.RUNNING:
                logger.debug(f"Cancel ignored, no live process {identifier}")
                return CancellationNotFoundError(identifier)

            try:
                _send_graceful(entry.process)
            except ProcessLookupError:
                logger.debug(f"Cancel raced process exit: {entry}")
                return CancellationNotFoundError(identifier)

            entry.cancel_requested_at = datetime.now()

        logger.info(f"Cancellation requested ({request.signal_kind.value}): {entry}")
        return None

    def cancel_all(self) -> int:
        """Request graceful termination of every live process.

        Returns:
            Number of processes the request was delivered to
        """
        cancelled = 0
        for identifier in self.table.identifiers():
            if self.cancel(identifier) is None:
                cancelled += 1

        if cancelled > 0:
            logger.info(f"Cancelled {cancelled} live process(es)")

        return cancelled


async def terminate_process(
    process: asyncio.subprocess.Process,
    *,
    term_timeout: float = DEFAULT_TERM_TIMEOUT,
    kill_timeout: float = DEFAULT_KILL_TIMEOUT,
) -> int | None:
    """Terminate a process group gracefully, then forcefully if needed.

    Termination strategy:
    1. Send SIGTERM (or CTRL_BREAK_EVENT on Windows) to the group
    2. Wait up to term_timeout for the leader and the rest of the group
    3. If anything is still running, send SIGKILL (or kill() on Windows)
    4. Wait up to kill_timeout for exit

    Args:
        process: The subprocess to terminate
        term_timeout: Seconds to wait after the graceful signal
        kill_timeout: Seconds to wait after the kill signal

    Returns:
        The leader's return code, or None if it never exited
    """
    pid = process.pid
    logger.debug(f"Terminating process group pid={pid}")
    try:
        _send_graceful(process)
        if await _wait_for_group(process, term_timeout):
            logger.debug(
                f"Process group terminated gracefully pid={pid} "
                f"returncode={process.returncode}"
            )
            return process.returncode

        logger.debug(f"Force killing process group pid={pid}")
        _send_kill(process)
        if await _wait_for_group(process, kill_timeout):
            logger.debug(f"Process group killed pid={pid} returncode={process.returncode}")
        else:
            logger.warning(f"Process group did not exit after kill pid={pid}")

    except ProcessLookupError:
        logger.debug(f"Process group already exited pid={pid}")
    except OSError as e:
        logger.warning(f"Error terminating process group pid={pid}: {e}")

    return process.returncode
