from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from ..context import RunContext
from ..lib.command import run_cmd

logger = logging.getLogger(__name__)

_ALLOWED_INTERPRETERS = {"bash", "sh"}


def find_hook(ctx: RunContext, hook_name: str) -> Optional[Path]:
    hooks_dir = ctx.config.hooks_dir
    if not hooks_dir:
        return None
    p = Path(hooks_dir)
    if not p.is_absolute():
        p = ctx.env.install_root / p
    hook = p / hook_name
    return hook if hook.exists() else None


def check_hook(path: Path) -> None:
    """A hook must be an executable file whose shebang names bash or sh."""

    if not path.is_file():
        raise RuntimeError(f"Hook is not a regular file: {path}")
    if not os.access(path, os.X_OK):
        raise RuntimeError(f"Hook is not executable, skipped: {path}")

    with path.open("rb") as f:
        first = f.readline(256).decode("utf-8", errors="replace").strip()
    if not first.startswith("#!"):
        raise RuntimeError(f"Hook has no shebang, skipped: {path}")

    parts = first[2:].split()
    interp = os.path.basename(parts[0]) if parts else ""
    if interp == "env" and len(parts) > 1:
        interp = os.path.basename(parts[1])
    if interp not in _ALLOWED_INTERPRETERS:
        raise RuntimeError(f"Hook interpreter {interp or '?'} not allowed (bash or sh), skipped: {path}")


class RunHookStep:
    def __init__(self, hook_name: str, path: Path) -> None:
        self.hook_name = hook_name
        self.path = path
        self.step_id = f"hook_{hook_name}"
        self.name = f"Run {hook_name} hook"

    def run(self, ctx: RunContext) -> None:
        check_hook(self.path)
        env = {"DEVBASE_ROOT": str(ctx.env.install_root), "DEVBASE_TMP": str(ctx.workspace.root)}
        logger.info("Running %s hook %s", self.hook_name, self.path)
        run_cmd([str(self.path)], env=env, cwd=str(ctx.workspace.root))
