from __future__ import annotations

import getpass
import logging
import os
import platform
from datetime import datetime
from pathlib import Path
from typing import List

from .. import __version__
from ..context import RunContext
from ..pipeline import Phase, PhaseName, Severity
from ..reporting import Level
from .base import bind

logger = logging.getLogger(__name__)

SUMMARY_NAME = "install-summary.txt"


def render_install_summary(ctx: RunContext, *, now: datetime | None = None) -> str:
    prefs = ctx.preferences
    when = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")

    lines: List[str] = [
        "DEVBASE INSTALLATION SUMMARY",
        "============================",
        f"Installation Date: {when}",
        f"DevBase Version: {__version__}",
        f"OS: {platform.platform()}",
        f"Package manager: {ctx.package_manager.name}",
        "",
        "SYSTEM CONFIGURATION",
        "====================",
        f"User: {ctx.environ.get('USER') or getpass.getuser()}",
        f"XDG_CONFIG_HOME: {ctx.env.config_home}",
        f"XDG_DATA_HOME: {ctx.env.data_home}",
        f"XDG_BIN_HOME: {ctx.env.bin_home}",
        "",
        "PREFERENCES",
        "===========",
        f"Git author: {prefs.get('git_author') or '-'}",
        f"Git email: {prefs.get('git_email') or '-'}",
        f"Theme: {prefs.get('theme') or '-'}",
        f"Font: {prefs.get('font') or '-'}",
        f"Editor: {prefs.get('editor') or '-'}",
        f"Packs: {' '.join(prefs.get('packs') or []) or '-'}",
        "",
        "WARNINGS",
        "========",
    ]
    if ctx.summary.warnings:
        lines.extend(f"  - {w.step_name}: {w.message}" for w in ctx.summary.warnings)
    else:
        lines.append("  none")
    return "\n".join(lines) + "\n"


class CleanupPackagesStep:
    step_id = "10_cleanup_packages"
    name = "Clean up package cache"

    def run(self, ctx: RunContext) -> None:
        ctx.package_manager.cleanup()


class WriteInstallSummaryStep:
    step_id = "20_write_summary"
    name = "Write installation summary"

    def run(self, ctx: RunContext) -> None:
        path: Path = ctx.env.config_dir / SUMMARY_NAME
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_install_summary(ctx), encoding="utf-8")
        os.chmod(path, 0o644)
        logger.info("Wrote installation summary to %s", path)


class ReportCompletionStep:
    step_id = "30_report_completion"
    name = "Report completion"

    def run(self, ctx: RunContext) -> None:
        for line in ctx.summary.render():
            ctx.reporter.report(Level.INFO, line)
        ctx.reporter.report(Level.INFO, f"Summary: {ctx.env.config_dir / SUMMARY_NAME}")


def build_finalize_phase(ctx: RunContext) -> Phase:
    return Phase(
        name=PhaseName.FINALIZE,
        steps=[
            bind(CleanupPackagesStep(), ctx, Severity.SOFT),
            bind(WriteInstallSummaryStep(), ctx, Severity.SOFT, side_effects="writes install-summary.txt"),
            bind(ReportCompletionStep(), ctx, Severity.SOFT),
        ],
    )
