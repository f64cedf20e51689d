"""Tests for main.py: CLI entry point and end-to-end runs with fakes."""

from __future__ import annotations

import hashlib
import signal

import pytest
import yaml

from conftest import FakeFetcher, FakePackageManager
from devbase_installer import __version__
from devbase_installer import main as main_mod
from devbase_installer.reporting import Level
from devbase_installer.steps import preflight
from devbase_installer.signals import SignalController
from devbase_installer.steps.finalize import SUMMARY_NAME
from devbase_installer.workspace import TempWorkspace

TOOL_URL = "https://example.com/tool-1.0"
TOOL = b"tool binary"
GIT_ENV = {"GIT_NAME": "Ada", "GIT_EMAIL": "ada@example.com"}


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(main_mod, "configure_logging", lambda *a, **kw: "")


@pytest.fixture(autouse=True)
def tools_present(monkeypatch):
    monkeypatch.setattr(preflight, "command_exists", lambda name: True)


def _write_config(env_vars, raw):
    path = f"{env_vars['DEVBASE_ROOT']}/devbase.yaml"
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(raw, f)
    return path


def _run(env_vars, reporter, pm, *, fetchers=None, **kw):
    kw.setdefault("non_interactive", True)
    return main_mod.run(
        environ=env_vars,
        reporter=reporter,
        package_manager=pm,
        fetchers=fetchers or [FakeFetcher({"https://github.com": b"ok"})],
        sleep=lambda s: None,
        **kw,
    )


class TestArgs:
    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main_mod.main(["--version"])
        assert exc_info.value.code == 0
        assert f"devbase-installer {__version__}" in capsys.readouterr().out

    def test_invalid_tui(self):
        with pytest.raises(SystemExit) as exc_info:
            main_mod.main(["--tui", "fancy"])
        assert exc_info.value.code == 2


class TestRun:
    def test_missing_environment_exits_1(self, env_vars, reporter):
        del env_vars["XDG_DATA_HOME"]
        assert _run(env_vars, reporter, FakePackageManager()) == 1
        assert any("XDG_DATA_HOME" in m for m in reporter.messages(Level.ERROR))

    def test_malformed_config_exits_1(self, env_vars, reporter):
        with open(f"{env_vars['DEVBASE_ROOT']}/devbase.yaml", "w") as f:
            f.write("packages: [oops\n")
        assert _run(env_vars, reporter, FakePackageManager()) == 1

    def test_dry_run_changes_nothing(self, env_vars, reporter):
        pm = FakePackageManager()
        assert _run(dict(env_vars, **GIT_ENV), reporter, pm, dry_run=True) == 0
        assert pm.calls == []
        info = reporter.messages(Level.INFO)
        assert "Preflight:" in info
        assert "  - Update package index [fatal]" in info
        assert reporter.phases == []

    def test_full_run(self, env_vars, reporter):
        _write_config(
            env_vars,
            {
                "packages": ["git"],
                "artifacts": [
                    {
                        "name": "tool",
                        "url": TOOL_URL,
                        "version": "1.0",
                        "sha256": hashlib.sha256(TOOL).hexdigest(),
                        "install": "bin",
                        "severity": "fatal",
                    }
                ],
            },
        )
        pm = FakePackageManager()
        fetcher = FakeFetcher({"https://github.com": b"ok", TOOL_URL: TOOL})

        code = _run(dict(env_vars, **GIT_ENV), reporter, pm, fetchers=[fetcher])

        assert code == 0
        assert [op for op, _ in pm.calls] == ["update", "install", "cleanup"]
        assert reporter.phases == ["Preflight", "Configuration", "Installation", "Finalize"]
        home = env_vars["HOME"]
        with open(f"{home}/.local/bin/tool", "rb") as f:
            assert f.read() == TOOL
        with open(f"{home}/.config/devbase/{SUMMARY_NAME}", encoding="utf-8") as f:
            assert "Git author: Ada" in f.read()
        assert "Installation complete" in reporter.messages(Level.INFO)

    def test_fatal_failure_stops_run(self, env_vars, reporter):
        pm = FakePackageManager(fail_update=True)

        code = _run(dict(env_vars, **GIT_ENV), reporter, pm)

        assert code == 1
        assert pm.calls == [("update", ())]
        assert "Finalize" not in reporter.phases
        errors = reporter.messages(Level.ERROR)
        assert any("Installation failed in Installation at step 'Update package index'" in m for m in errors)

    def test_missing_git_identity_is_fatal(self, env_vars, reporter):
        pm = FakePackageManager()
        assert _run(env_vars, reporter, pm) == 1
        assert pm.calls == []

    def test_soft_failures_still_succeed(self, env_vars, reporter):
        _write_config(env_vars, {"preflight": {"min_disk_gb": 10**9}})
        code = _run(dict(env_vars, **GIT_ENV), reporter, FakePackageManager(), fetchers=[FakeFetcher({})])

        assert code == 0
        warnings = reporter.messages(Level.WARNING)
        assert any(m.startswith("  - Check free disk space") for m in warnings)
        assert any(m.startswith("  - Check network connectivity") for m in warnings)

    def test_workspace_removed(self, env_vars, reporter, tmp_path):
        _run(dict(env_vars, **GIT_ENV), reporter, FakePackageManager())
        assert not [p for p in (tmp_path / "tmp").iterdir() if p.name.startswith("devbase.")]

    def test_workspace_created_after_handlers_installed(self, env_vars, reporter, monkeypatch):
        handlers = []
        real_create = TempWorkspace.create

        def create(**kwargs):
            handlers.append(signal.getsignal(signal.SIGINT))
            return real_create(**kwargs)

        monkeypatch.setattr(main_mod.TempWorkspace, "create", create)

        assert _run(dict(env_vars, **GIT_ENV), reporter, FakePackageManager(), dry_run=True) == 0
        (handler,) = handlers
        assert isinstance(getattr(handler, "__self__", None), SignalController)

    def test_download_warnings_name_the_artifact_step(self, env_vars, reporter):
        manifest = "https://example.com/SHA256SUMS"
        _write_config(
            env_vars,
            {"artifacts": [{"name": "tool", "url": TOOL_URL, "checksum_url": manifest, "install": "bin"}]},
        )
        fetcher = FakeFetcher({"https://github.com": b"ok", TOOL_URL: TOOL, manifest: b""})

        assert _run(dict(env_vars, **GIT_ENV), reporter, FakePackageManager(), fetchers=[fetcher]) == 0
        assert any(
            m.startswith("  - Install tool: Could not verify checksum") for m in reporter.messages(Level.WARNING)
        )
