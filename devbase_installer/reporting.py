from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import Optional, Protocol, TextIO

from .lib.command import command_exists, run_cmd

logger = logging.getLogger(__name__)


class Level(str, Enum):
    STEP = "step"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    Level.STEP: logging.INFO,
    Level.INFO: logging.INFO,
    Level.SUCCESS: logging.INFO,
    Level.WARNING: logging.WARNING,
    Level.ERROR: logging.ERROR,
}


class Reporter(Protocol):
    """Operator-facing output sink. The core never formats terminal output itself."""

    def report(self, level: Level, message: str) -> None:
        ...

    def phase(self, name: str) -> None:
        ...

    def stop(self) -> None:
        """Tear down any active progress display (called on interrupt)."""
        ...


def _mirror(level: Level, message: str) -> None:
    logger.log(_LOG_LEVELS[level], "[%s] %s", level.value, message)


class ConsoleReporter:
    _symbols = {
        Level.STEP: "→ ",
        Level.INFO: "  ",
        Level.SUCCESS: "✓ ",
        Level.WARNING: "⚠ ",
        Level.ERROR: "✗ ",
    }

    def __init__(self, out: Optional[TextIO] = None, err: Optional[TextIO] = None) -> None:
        self.out = out or sys.stdout
        self.err = err or sys.stderr

    def report(self, level: Level, message: str) -> None:
        _mirror(level, message)
        stream = self.err if level == Level.ERROR else self.out
        stream.write(f"{self._symbols[level]}{message}\n")
        stream.flush()

    def phase(self, name: str) -> None:
        _mirror(Level.STEP, f"Phase: {name}")
        self.out.write(f"\n━━━ {name} ━━━\n\n")
        self.out.flush()

    def stop(self) -> None:
        self.out.flush()


class GumReporter:
    """Renders through the `gum` CLI (https://github.com/charmbracelet/gum)."""

    _gum_levels = {
        Level.STEP: "info",
        Level.INFO: "info",
        Level.SUCCESS: "info",
        Level.WARNING: "warn",
        Level.ERROR: "error",
    }

    def report(self, level: Level, message: str) -> None:
        _mirror(level, message)
        prefix = "✓ " if level == Level.SUCCESS else ""
        run_cmd(["gum", "log", "--level", self._gum_levels[level], prefix + message], check=False)

    def phase(self, name: str) -> None:
        _mirror(Level.STEP, f"Phase: {name}")
        run_cmd(["gum", "style", "--bold", "--border", "rounded", "--padding", "0 2", name], check=False)

    def stop(self) -> None:
        # gum log is one process per line; nothing stays on screen to tear down.
        return None


def select_reporter(mode: str) -> Reporter:
    """Pick the renderer once at startup: gum when requested and installed, else plain."""

    m = (mode or "plain").strip().lower()
    if m == "gum":
        if command_exists("gum"):
            return GumReporter()
        logger.info("gum not found on PATH; using plain console output")
    elif m not in {"plain", "none", "whiptail"}:
        raise ValueError(f"Invalid TUI mode {mode!r} (valid: gum, plain, none)")
    return ConsoleReporter()
