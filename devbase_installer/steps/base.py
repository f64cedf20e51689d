from __future__ import annotations

from functools import partial
from typing import Protocol

from ..context import RunContext
from ..pipeline import Severity, Step


class StepImpl(Protocol):
    step_id: str
    name: str

    def run(self, ctx: RunContext) -> None:
        ...


def bind(impl: StepImpl, ctx: RunContext, severity: Severity, *, side_effects: str = "") -> Step:
    """Close a step implementation over the run context. Severity is decided here, by the caller."""

    return Step(
        name=impl.name,
        severity=severity,
        action=partial(impl.run, ctx),
        side_effects=side_effects,
    )
