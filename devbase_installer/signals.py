from __future__ import annotations

import logging
import signal
from enum import Enum
from types import FrameType
from typing import Any, Dict, Optional, Sequence

from .context import CancellationToken
from .reporting import Level, Reporter
from .summary import RunSummary
from .workspace import TempWorkspace

logger = logging.getLogger(__name__)

INTERRUPTED_EXIT_CODE = 130


class InterruptState(str, Enum):
    RUNNING = "running"
    INTERRUPTING = "interrupting"
    CLEANED_UP = "cleaned_up"


class SignalController:
    """Turn SIGINT/SIGTERM into one orderly shutdown.

    On the first signal: cancel the run, stop the reporter, print the
    warnings collected so far, remove the temp workspace, chain to any
    handler that was installed before us, then exit with 130. Signals
    arriving while that is in progress are ignored. Leaving the context
    restores the previous handlers and removes the workspace if the
    interrupt path did not. The workspace may be attached after entering,
    so that it is only created once the handlers are in place.
    """

    def __init__(
        self,
        *,
        workspace: Optional[TempWorkspace],
        summary: RunSummary,
        reporter: Reporter,
        cancel: CancellationToken,
        signals: Sequence[signal.Signals] = (signal.SIGINT, signal.SIGTERM),
        exit_code: int = INTERRUPTED_EXIT_CODE,
    ) -> None:
        self.workspace = workspace
        self.summary = summary
        self.reporter = reporter
        self.cancel = cancel
        self.signals = tuple(signals)
        self.exit_code = exit_code
        self.state = InterruptState.RUNNING
        self._previous: Dict[int, Any] = {}

    @property
    def interrupted(self) -> bool:
        return self.state != InterruptState.RUNNING

    def __enter__(self) -> "SignalController":
        for sig in self.signals:
            self._previous[int(sig)] = signal.signal(sig, self._handle)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        for signum, prev in self._previous.items():
            signal.signal(signum, prev if prev is not None else signal.SIG_DFL)
        self._previous.clear()
        self._remove_workspace()

    def _remove_workspace(self) -> None:
        if self.workspace is None:
            return
        try:
            self.workspace.cleanup()
        except OSError:
            logger.exception("Failed to remove temp workspace %s", self.workspace.root)

    def _handle(self, signum: int, frame: Optional[FrameType]) -> None:
        if self.state != InterruptState.RUNNING:
            logger.info("Ignoring signal %s during shutdown", signum)
            return
        self.state = InterruptState.INTERRUPTING
        logger.warning("Received signal %s; shutting down", signum)

        self.cancel.cancel(f"interrupted by signal {signum}")
        self.reporter.stop()
        self.reporter.report(Level.ERROR, "Installation interrupted")
        self.summary.emit_all(self.reporter)

        self._remove_workspace()
        self.state = InterruptState.CLEANED_UP

        prev = self._previous.get(signum)
        # SIG_DFL / SIG_IGN are not callable; default_int_handler would only raise KeyboardInterrupt.
        if callable(prev) and prev is not signal.default_int_handler:
            try:
                prev(signum, frame)
            except BaseException:
                # The exit code stays ours even if the chained handler exits or raises.
                logger.exception("Previous handler for signal %s failed", signum)

        raise SystemExit(self.exit_code)
