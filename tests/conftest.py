"""Shared test fixtures.

Provides a recording reporter, fake HTTP clients serving bytes from a dict,
a fake package manager, a recorded sleep and a path environment rooted in
tmp_path. Nothing here touches the network or the real package manager.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from devbase_installer.context import CancellationToken, RunContext, require_environment
from devbase_installer.install_config import InstallConfig
from devbase_installer.lib.artifact_cache import ArtifactCache
from devbase_installer.lib.checksum import ChecksumVerifier
from devbase_installer.lib.download import Downloader
from devbase_installer.reporting import Level
from devbase_installer.summary import RunSummary
from devbase_installer.workspace import TempWorkspace


class RecordingReporter:
    def __init__(self) -> None:
        self.lines: List[Tuple[Level, str]] = []
        self.phases: List[str] = []
        self.stopped = 0

    def report(self, level: Level, message: str) -> None:
        self.lines.append((level, message))

    def phase(self, name: str) -> None:
        self.phases.append(name)

    def stop(self) -> None:
        self.stopped += 1

    def messages(self, level: Optional[Level] = None) -> List[str]:
        return [m for lv, m in self.lines if level is None or lv == level]


class FakeFetcher:
    """Serves bytes for known URLs. The first `fail_first` calls fail after writing junk."""

    def __init__(
        self,
        responses: Optional[Dict[str, bytes]] = None,
        *,
        name: str = "fake",
        available: bool = True,
        fail_first: int = 0,
    ) -> None:
        self.name = name
        self.responses = dict(responses or {})
        self._available = available
        self.fail_first = fail_first
        self.calls: List[str] = []

    def available(self) -> bool:
        return self._available

    def fetch(self, url: str, dest: Path, *, timeout: int) -> bool:
        self.calls.append(url)
        if self.fail_first > 0:
            self.fail_first -= 1
            Path(dest).write_bytes(b"partial")
            return False
        if url not in self.responses:
            return False
        Path(dest).write_bytes(self.responses[url])
        return True

    def count(self, url: str) -> int:
        return self.calls.count(url)


class FakePackageManager:
    name = "fake"
    binary = "fakepkg"

    def __init__(self, *, fail_update: bool = False, fail_install: bool = False) -> None:
        self.fail_update = fail_update
        self.fail_install = fail_install
        self.calls: List[Tuple[str, Sequence[str]]] = []

    def update(self) -> None:
        self.calls.append(("update", ()))
        if self.fail_update:
            raise RuntimeError("Command failed (100): fakepkg update")

    def install(self, names: Sequence[str]) -> None:
        self.calls.append(("install", tuple(names)))
        if self.fail_install:
            raise RuntimeError("Command failed (100): fakepkg install")

    def cleanup(self) -> None:
        self.calls.append(("cleanup", ()))


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def package_manager() -> FakePackageManager:
    return FakePackageManager()


@pytest.fixture
def env_vars(tmp_path: Path) -> Dict[str, str]:
    """Complete path contract rooted in tmp_path."""
    root = tmp_path / "devbase"
    libs = root / "libs"
    libs.mkdir(parents=True)
    tmp = tmp_path / "tmp"
    tmp.mkdir()
    home = tmp_path / "home"
    return {
        "HOME": str(home),
        "USER": "tester",
        "TMPDIR": str(tmp),
        "DEVBASE_ROOT": str(root),
        "DEVBASE_LIBS": str(libs),
        "XDG_CACHE_HOME": str(home / ".cache"),
        "XDG_CONFIG_HOME": str(home / ".config"),
        "XDG_DATA_HOME": str(home / ".local" / "share"),
        "XDG_BIN_HOME": str(home / ".local" / "bin"),
    }


@pytest.fixture
def make_ctx(env_vars, reporter, package_manager, sleeps):
    """Build a RunContext; tests pass the config and fetchers they need."""

    created: List[TempWorkspace] = []

    def _make(
        raw_config: Optional[dict] = None,
        *,
        fetchers: Optional[Sequence[FakeFetcher]] = None,
        non_interactive: bool = True,
        environ: Optional[Dict[str, str]] = None,
        answers: Optional[List[str]] = None,
    ) -> RunContext:
        env_map = dict(env_vars, **(environ or {}))
        env = require_environment(env_map)
        summary = RunSummary()
        pending = list(answers or [])
        workspace = TempWorkspace.create(temp_root=Path(env_vars["TMPDIR"]))
        created.append(workspace)
        clients = list(fetchers or [FakeFetcher()])
        downloader = Downloader(
            cache=ArtifactCache(env.cache_dir),
            verifier=ChecksumVerifier(fetchers=clients, work_dir=workspace.root / "manifests"),
            fetchers=clients,
            sleep=sleeps,
            warn=summary.warn_active,
        )
        return RunContext(
            env=env,
            config=InstallConfig(raw=raw_config or {}),
            reporter=reporter,
            summary=summary,
            workspace=workspace,
            downloader=downloader,
            package_manager=package_manager,
            cancel=CancellationToken(),
            non_interactive=non_interactive,
            environ=env_map,
            prompt=lambda _q: pending.pop(0) if pending else "",
        )

    yield _make

    for ws in created:
        ws.cleanup()
