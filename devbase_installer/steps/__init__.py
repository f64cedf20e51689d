from typing import List

from ..context import RunContext
from ..pipeline import Phase
from .configuration import build_configuration_phase
from .finalize import build_finalize_phase
from .installation import build_installation_phase
from .preflight import build_preflight_phase


def build_phases(ctx: RunContext) -> List[Phase]:
    return [
        build_preflight_phase(ctx),
        build_configuration_phase(ctx),
        build_installation_phase(ctx),
        build_finalize_phase(ctx),
    ]


__all__ = [
    "build_phases",
    "build_preflight_phase",
    "build_configuration_phase",
    "build_installation_phase",
    "build_finalize_phase",
]
