from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from ..context import RunContext
from ..lib.command import command_exists
from ..lib.net import DEFAULT_SITES, is_online
from ..lib.transport import any_available
from ..pipeline import Phase, PhaseName, Severity
from .base import bind

logger = logging.getLogger(__name__)


class CheckRequiredToolsStep:
    step_id = "10_required_tools"
    name = "Check required tools"

    def run(self, ctx: RunContext) -> None:
        missing = []
        if not command_exists("git"):
            missing.append("git")
        if not any_available(ctx.downloader.fetchers):
            missing.append("curl or wget")
        if not command_exists(ctx.package_manager.binary):
            missing.append(ctx.package_manager.binary)
        if os.geteuid() != 0 and not command_exists("sudo"):
            missing.append("sudo")

        if missing:
            raise RuntimeError(f"Required tools not found: {', '.join(missing)}")
        logger.info("Required tools present")


class CheckPathsWritableStep:
    step_id = "20_paths_writable"
    name = "Check XDG directories"

    def run(self, ctx: RunContext) -> None:
        for d in (ctx.env.cache_home, ctx.env.config_home, ctx.env.data_home, ctx.env.bin_home):
            d.mkdir(parents=True, exist_ok=True)
            if not os.access(d, os.W_OK):
                raise RuntimeError(f"Directory not writable: {d}")


def _existing_parent(p: Path) -> Path:
    while not p.exists() and p != p.parent:
        p = p.parent
    return p


class CheckDiskSpaceStep:
    step_id = "30_disk_space"
    name = "Check free disk space"

    def run(self, ctx: RunContext) -> None:
        usage = shutil.disk_usage(_existing_parent(ctx.env.data_home))
        free_gb = usage.free / (1024**3)
        need = ctx.config.min_disk_gb
        logger.info("Free disk space: %.1f GB (minimum %.1f GB)", free_gb, need)
        if free_gb < need:
            raise RuntimeError(f"Low disk space: {free_gb:.1f} GB free, {need:.1f} GB recommended")


class CheckNetworkStep:
    step_id = "40_network"
    name = "Check network connectivity"

    def run(self, ctx: RunContext) -> None:
        sites = ctx.config.connectivity_sites or DEFAULT_SITES
        if not is_online(ctx.downloader.fetchers, sites=sites, timeout=ctx.config.connectivity_timeout_seconds):
            raise RuntimeError("No network connectivity; downloads will likely fail")


def build_preflight_phase(ctx: RunContext) -> Phase:
    return Phase(
        name=PhaseName.PREFLIGHT,
        steps=[
            bind(CheckRequiredToolsStep(), ctx, Severity.FATAL),
            bind(CheckPathsWritableStep(), ctx, Severity.FATAL, side_effects="creates XDG directories"),
            bind(CheckDiskSpaceStep(), ctx, Severity.SOFT),
            bind(CheckNetworkStep(), ctx, Severity.SOFT),
        ],
    )
