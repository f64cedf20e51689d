from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .reporting import Level, Reporter


@dataclass(frozen=True)
class RunWarning:
    step_name: str
    message: str


@dataclass(frozen=True)
class FatalError:
    step_name: str
    message: str
    phase: Optional[str] = None


@dataclass
class RunSummary:
    """Warnings and terminal status of one provisioning run."""

    warnings: List[RunWarning] = field(default_factory=list)
    fatal_error: Optional[FatalError] = None
    active_step: Optional[str] = field(default=None, init=False, repr=False)
    _flushed: int = field(default=0, init=False, repr=False)

    def add_warning(self, step_name: str, message: str) -> None:
        self.warnings.append(RunWarning(step_name=step_name, message=message))

    def warn_active(self, message: str, *, fallback: str = "setup") -> None:
        """Record a warning against the step that is currently running."""
        self.add_warning(self.active_step or fallback, message)

    def set_fatal(self, step_name: str, message: str, *, phase: Optional[str] = None) -> None:
        self.fatal_error = FatalError(step_name=step_name, message=message, phase=phase)

    @property
    def ok(self) -> bool:
        return self.fatal_error is None

    def pending(self) -> List[RunWarning]:
        return self.warnings[self._flushed :]

    def flush(self, reporter: Reporter, *, title: str) -> int:
        """Roll up warnings added since the last flush. Returns how many were emitted."""

        pending = self.pending()
        if pending:
            reporter.report(Level.WARNING, title)
            for w in pending:
                reporter.report(Level.WARNING, f"  - {w.step_name}: {w.message}")
        self._flushed = len(self.warnings)
        return len(pending)

    def emit_all(self, reporter: Reporter, *, title: str = "Warnings during setup:") -> None:
        if not self.warnings:
            return
        reporter.report(Level.WARNING, title)
        for w in self.warnings:
            reporter.report(Level.WARNING, f"  - {w.step_name}: {w.message}")

    def render(self) -> List[str]:
        lines: List[str] = []
        if self.fatal_error is not None:
            where = f" (phase {self.fatal_error.phase})" if self.fatal_error.phase else ""
            lines.append(f"FAILED at step {self.fatal_error.step_name}{where}: {self.fatal_error.message}")
        else:
            lines.append("Installation complete")
        if self.warnings:
            lines.append(f"{len(self.warnings)} warning(s):")
            lines.extend(f"  - {w.step_name}: {w.message}" for w in self.warnings)
        else:
            lines.append("No warnings")
        return lines
