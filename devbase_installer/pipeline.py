from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from .context import CancellationToken
from .errors import RunCancelled
from .reporting import Level, Reporter
from .summary import RunSummary

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    FATAL = "fatal"
    SOFT = "soft"


class PhaseName(str, Enum):
    PREFLIGHT = "preflight"
    CONFIGURATION = "configuration"
    INSTALLATION = "installation"
    FINALIZE = "finalize"

    @property
    def title(self) -> str:
        return self.value.capitalize()


PHASE_ORDER: tuple[PhaseName, ...] = (
    PhaseName.PREFLIGHT,
    PhaseName.CONFIGURATION,
    PhaseName.INSTALLATION,
    PhaseName.FINALIZE,
)


@dataclass(frozen=True)
class Step:
    """A named unit of work. Severity belongs to the call site that builds the phase."""

    name: str
    severity: Severity
    action: Callable[[], None]
    side_effects: str = ""


@dataclass(frozen=True)
class StepResult:
    ok: bool
    message: str = ""
    error: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class Phase:
    name: PhaseName
    steps: List[Step] = field(default_factory=list)


@dataclass(frozen=True)
class RunResult:
    ok: bool
    failed_phase: Optional[PhaseName] = None
    failed_step: Optional[str] = None
    message: str = ""
    completed_phases: List[PhaseName] = field(default_factory=list)


def _describe(e: Exception) -> str:
    text = str(e).strip()
    return text.splitlines()[0] if text else type(e).__name__


class StepRunner:
    def __init__(self, *, reporter: Reporter, summary: RunSummary) -> None:
        self.reporter = reporter
        self.summary = summary

    def execute(self, step: Step, *, phase: Optional[PhaseName] = None) -> StepResult:
        """Run one step; Fatal failures return ok=False, Soft failures are recorded and return ok=True."""

        logger.info("Running step %s (%s)", step.name, step.severity.value)
        self.reporter.report(Level.STEP, step.name)
        self.summary.active_step = step.name
        try:
            step.action()
        except RunCancelled:
            raise
        except Exception as e:
            msg = _describe(e)
            if step.severity == Severity.FATAL:
                logger.error("Fatal step %s failed", step.name, exc_info=True)
                self.summary.set_fatal(step.name, msg, phase=phase.value if phase else None)
                self.reporter.report(Level.ERROR, f"{step.name} failed: {msg}")
                return StepResult(ok=False, message=msg, error=e)

            logger.warning("Soft step %s failed", step.name, exc_info=True)
            self.summary.add_warning(step.name, msg)
            self.reporter.report(Level.WARNING, f"{step.name} failed (continuing): {msg}")
            return StepResult(ok=True, message=msg, error=e)
        finally:
            self.summary.active_step = None

        self.reporter.report(Level.SUCCESS, step.name)
        return StepResult(ok=True)


def validate_phase_order(phases: Sequence[Phase], *, non_interactive: bool) -> None:
    names = [p.name for p in phases]
    expected = [n for n in PHASE_ORDER if n in names]
    if names != expected:
        raise ValueError(f"Phases out of order: {[n.value for n in names]}")

    for required in PHASE_ORDER:
        if required in names:
            continue
        if required == PhaseName.CONFIGURATION and non_interactive:
            continue
        raise ValueError(f"Phase {required.value} may not be skipped")


class PhaseOrchestrator:
    """Run phases strictly in order; a failed Fatal step stops the run."""

    def __init__(
        self,
        *,
        reporter: Reporter,
        summary: RunSummary,
        runner: Optional[StepRunner] = None,
        cancel: Optional[CancellationToken] = None,
        non_interactive: bool = False,
    ) -> None:
        self.reporter = reporter
        self.summary = summary
        self.runner = runner or StepRunner(reporter=reporter, summary=summary)
        self.cancel = cancel or CancellationToken()
        self.non_interactive = non_interactive

    def run(self, phases: Sequence[Phase]) -> RunResult:
        validate_phase_order(phases, non_interactive=self.non_interactive)

        completed: List[PhaseName] = []
        for phase in phases:
            logger.info("=== Phase: %s ===", phase.name.value)
            self.reporter.phase(phase.name.title)

            for step in phase.steps:
                self.cancel.raise_if_cancelled()
                result = self.runner.execute(step, phase=phase.name)
                if not result.ok:
                    self.summary.flush(self.reporter, title=f"Warnings during {phase.name.title}:")
                    logger.error("Aborting run: %s/%s", phase.name.value, step.name)
                    return RunResult(
                        ok=False,
                        failed_phase=phase.name,
                        failed_step=step.name,
                        message=result.message,
                        completed_phases=completed,
                    )

            self.summary.flush(self.reporter, title=f"Warnings during {phase.name.title}:")
            completed.append(phase.name)

        return RunResult(ok=True, completed_phases=completed)

    @staticmethod
    def plan(phases: Sequence[Phase]) -> List[str]:
        lines: List[str] = []
        for phase in phases:
            lines.append(f"{phase.name.title}:")
            for step in phase.steps:
                lines.append(f"  - {step.name} [{step.severity.value}]")
        return lines
