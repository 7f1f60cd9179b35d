"""Blocking facade for GUI threads.

toolkit-exec runtime module v0.1.0

GUI toolkits run their own main loop on their own thread. This module runs a
CommandRunner on a background event loop (an anyio blocking portal) and
exposes synchronous methods that GUI code can call directly.

Callbacks passed to ``start`` run on the portal's event loop thread; GUI
code has to marshal them onto its own thread as usual.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterable
from contextlib import AbstractContextManager
from typing import Any

import anyio.from_thread
from anyio.from_thread import BlockingPortal

from ..config import Config
from .completion import run_to_completion
from .errors import CancellationNotFoundError
from .runner import CommandRunner
from .types import DataCallback, TerminationCallback

__all__ = ["BlockingCommandRunner"]

logger = logging.getLogger(__name__)


class BlockingCommandRunner:
    """Thread-friendly wrapper around CommandRunner.

    Example:
        with BlockingCommandRunner() as runner:
            identifier = runner.start("traceroute", ["-I", host], on_data, on_done)
            ...
            runner.cancel(identifier)
    """

    def __init__(self, config: Config | None = None) -> None:
        self._config = config
        self._portal_cm: AbstractContextManager[BlockingPortal] | None = None
        self._portal: BlockingPortal | None = None
        self._runner: CommandRunner | None = None

    @property
    def is_open(self) -> bool:
        return self._portal is not None

    def open(self) -> "BlockingCommandRunner":
        """Start the background event loop."""
        if self._portal is not None:
            return self
        self._portal_cm = anyio.from_thread.start_blocking_portal()
        self._portal = self._portal_cm.__enter__()
        self._runner = self._portal.call(self._create_runner)
        logger.debug("Blocking portal started")
        return self

    def close(self) -> None:
        """Terminate live processes and stop the background event loop."""
        if self._portal is None or self._portal_cm is None:
            return
        portal_cm = self._portal_cm
        try:
            if self._runner is not None:
                self._portal.call(self._runner.aclose)
        finally:
            self._portal = None
            self._portal_cm = None
            self._runner = None
            portal_cm.__exit__(None, None, None)
            logger.debug("Blocking portal stopped")

    def start(
        self,
        program: str,
        args: Iterable[str] = (),
        on_data: DataCallback | None = None,
        on_termination: TerminationCallback | None = None,
        **kwargs: Any,
    ) -> str:
        """Start a process; see ``CommandRunner.start``."""
        portal, runner = self._require_open()
        return portal.call(
            functools.partial(
                runner.start, program, list(args), on_data, on_termination, **kwargs
            )
        )

    def cancel(self, identifier: str) -> CancellationNotFoundError | None:
        """Request graceful termination; see ``CommandRunner.cancel``."""
        portal, runner = self._require_open()
        return portal.call(runner.cancel, identifier)

    def cancel_all(self) -> int:
        portal, runner = self._require_open()
        return portal.call(runner.cancel_all)

    def live_identifiers(self) -> list[str]:
        portal, runner = self._require_open()
        return portal.call(runner.live_identifiers)

    def run_to_completion(self, program: str, args: Iterable[str] = (), **kwargs: Any) -> str:
        """Block the calling thread until the process finishes.

        Other processes keep streaming on the background loop meanwhile.
        """
        portal, runner = self._require_open()
        return portal.call(
            functools.partial(run_to_completion, program, list(args), runner=runner, **kwargs)
        )

    def __enter__(self) -> "BlockingCommandRunner":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    async def _create_runner(self) -> CommandRunner:
        return CommandRunner(self._config)

    def _require_open(self) -> tuple[BlockingPortal, CommandRunner]:
        if self._portal is None or self._runner is None:
            raise RuntimeError("BlockingCommandRunner is not open")
        return self._portal, self._runner
