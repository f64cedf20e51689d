from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from .errors import EnvironmentPreconditionError, RunCancelled
from .install_config import InstallConfig
from .lib.download import Downloader
from .lib.pkg import PackageManager
from .reporting import Reporter
from .summary import RunSummary
from .workspace import TempWorkspace

logger = logging.getLogger(__name__)

# Resolved by the launcher before the core starts.
REQUIRED_PATH_VARS = (
    "DEVBASE_ROOT",
    "DEVBASE_LIBS",
    "XDG_CACHE_HOME",
    "XDG_CONFIG_HOME",
    "XDG_DATA_HOME",
    "XDG_BIN_HOME",
)


@dataclass(frozen=True)
class EnvPaths:
    install_root: Path
    lib_root: Path
    cache_home: Path
    config_home: Path
    data_home: Path
    bin_home: Path

    @property
    def cache_dir(self) -> Path:
        return self.cache_home / "devbase"

    @property
    def config_dir(self) -> Path:
        return self.config_home / "devbase"

    @property
    def data_dir(self) -> Path:
        return self.data_home / "devbase"


def require_environment(environ: Mapping[str, str]) -> EnvPaths:
    """Check the environment contract once, at entry. Raises EnvironmentPreconditionError."""

    missing = [v for v in REQUIRED_PATH_VARS if not environ.get(v)]
    invalid: list[str] = []
    for v in REQUIRED_PATH_VARS:
        val = environ.get(v)
        if val and not Path(val).is_absolute():
            invalid.append(f"{v}={val} (must be absolute)")
    for v in ("DEVBASE_ROOT", "DEVBASE_LIBS"):
        val = environ.get(v)
        if val and Path(val).is_absolute() and not Path(val).is_dir():
            invalid.append(f"{v}={val} (not a directory)")

    if missing or invalid:
        raise EnvironmentPreconditionError(missing, invalid)

    return EnvPaths(
        install_root=Path(environ["DEVBASE_ROOT"]),
        lib_root=Path(environ["DEVBASE_LIBS"]),
        cache_home=Path(environ["XDG_CACHE_HOME"]),
        config_home=Path(environ["XDG_CONFIG_HOME"]),
        data_home=Path(environ["XDG_DATA_HOME"]),
        bin_home=Path(environ["XDG_BIN_HOME"]),
    )


class CancellationToken:
    """Cooperative cancellation flag checked by the orchestrator between steps."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled(self.reason or "cancelled")


@dataclass
class RunContext:
    """Everything a step needs, threaded explicitly instead of process globals."""

    env: EnvPaths
    config: InstallConfig
    reporter: Reporter
    summary: RunSummary
    workspace: TempWorkspace
    downloader: Downloader
    package_manager: PackageManager
    cancel: CancellationToken = field(default_factory=CancellationToken)
    non_interactive: bool = False
    environ: Mapping[str, str] = field(default_factory=dict)
    prompt: Callable[[str], str] = input
    preferences: Dict[str, Any] = field(default_factory=dict)
