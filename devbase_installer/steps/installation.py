from __future__ import annotations

import logging
import os
import shutil
import stat
from pathlib import Path
from typing import List

from ..context import RunContext
from ..install_config import ArtifactSpec
from ..lib.download import DownloadRequest
from ..pipeline import Phase, PhaseName, Severity
from .base import bind
from .hooks import RunHookStep, find_hook

logger = logging.getLogger(__name__)

POST_INSTALL_HOOK = "post-install"


def selected_packages(ctx: RunContext) -> List[str]:
    """Base package list plus the packages of every selected pack, de-duplicated in order."""

    names: List[str] = list(ctx.config.packages)
    packs = ctx.config.packs
    for pack in ctx.preferences.get("packs") or []:
        if pack not in packs:
            logger.info("Pack %s has no system packages configured", pack)
            continue
        names.extend(packs[pack])

    seen = set()
    out: List[str] = []
    for n in names:
        if n not in seen:
            seen.add(n)
            out.append(n)
    return out


class UpdatePackageIndexStep:
    step_id = "10_update_index"
    name = "Update package index"

    def run(self, ctx: RunContext) -> None:
        ctx.package_manager.update()


class InstallSystemPackagesStep:
    step_id = "20_system_packages"
    name = "Install system packages"

    def run(self, ctx: RunContext) -> None:
        names = selected_packages(ctx)
        if not names:
            logger.info("No system packages configured")
            return
        ctx.package_manager.install(names)


class InstallArtifactStep:
    def __init__(self, artifact: ArtifactSpec) -> None:
        self.artifact = artifact
        self.step_id = f"30_artifact_{artifact.name}"
        self.name = f"Install {artifact.name}"

    def target_for(self, ctx: RunContext) -> Path:
        if self.artifact.install == "stage":
            return ctx.env.data_dir / "artifacts" / self.artifact.basename
        return ctx.workspace.path_for(Path("downloads") / self.artifact.basename)

    def run(self, ctx: RunContext) -> None:
        a = self.artifact
        cfg = ctx.config
        req = DownloadRequest(
            url=a.url,
            target_path=self.target_for(ctx),
            checksum_value=a.sha256,
            checksum_manifest_url=a.checksum_url,
            version_tag=a.version,
            timeout_seconds=cfg.timeout_seconds,
            max_retries=cfg.max_retries,
            retry_delay_seconds=cfg.retry_delay_seconds,
        )
        path = ctx.downloader.fetch(req)

        if a.install == "bin":
            dest = ctx.env.bin_home / a.name
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, dest)
            mode = os.stat(dest).st_mode
            os.chmod(dest, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            logger.info("Installed %s to %s", a.name, dest)
        elif a.install == "package":
            ctx.package_manager.install([str(path)])
        else:
            logger.info("Staged %s at %s", a.name, path)


def build_installation_phase(ctx: RunContext) -> Phase:
    steps = [
        bind(UpdatePackageIndexStep(), ctx, Severity.FATAL),
        bind(InstallSystemPackagesStep(), ctx, Severity.FATAL, side_effects="installs system packages"),
    ]

    for artifact in ctx.config.artifacts:
        severity = Severity.FATAL if artifact.severity == "fatal" else Severity.SOFT
        steps.append(bind(InstallArtifactStep(artifact), ctx, severity, side_effects=f"downloads {artifact.url}"))

    hook = find_hook(ctx, POST_INSTALL_HOOK)
    if hook is not None:
        steps.append(bind(RunHookStep(POST_INSTALL_HOOK, hook), ctx, Severity.SOFT))

    return Phase(name=PhaseName.INSTALLATION, steps=steps)
