from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "devbase."


class WorkspaceViolation(ValueError):
    pass


def get_temp_root(environ: Optional[Mapping[str, str]] = None) -> Path:
    """First writable of $TMPDIR, $XDG_RUNTIME_DIR, /tmp."""

    env = os.environ if environ is None else environ
    for candidate in (env.get("TMPDIR"), env.get("XDG_RUNTIME_DIR"), "/tmp"):
        if not candidate:
            continue
        p = Path(candidate)
        if p.is_dir() and os.access(p, os.W_OK):
            return p
    return Path("/tmp")


@dataclass
class TempWorkspace:
    """Process-scoped staging directory, owned exclusively by one run."""

    root: Path
    temp_root: Path
    _removed: bool = field(default=False, init=False, repr=False)

    @classmethod
    def create(cls, *, temp_root: Optional[Path] = None) -> "TempWorkspace":
        base = Path(temp_root) if temp_root is not None else get_temp_root()
        root = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=str(base)))
        logger.info("Created temp workspace %s", root)
        return cls(root=root, temp_root=base)

    @property
    def removed(self) -> bool:
        return self._removed

    def resolve_rel(self, rel: str | Path) -> Path:
        """Resolve a relative name inside the workspace."""
        rp = Path(rel)
        if rp.is_absolute():
            raise WorkspaceViolation(f"Absolute paths are not allowed: {rel}")

        candidate = (self.root / rp).resolve()
        try:
            candidate.relative_to(self.root.resolve())
        except ValueError as e:
            raise WorkspaceViolation(f"Path escapes workspace: {rel}") from e
        return candidate

    def path_for(self, rel: str | Path) -> Path:
        p = self.resolve_rel(rel)
        p.parent.mkdir(parents=True, exist_ok=True)
        return p

    def cleanup(self) -> bool:
        """Remove the workspace. Safe to call any number of times; only the first success removes.

        An OSError from the removal propagates and leaves the workspace
        marked as present, so a later call retries.
        """

        if self._removed:
            return False

        real = Path(os.path.realpath(self.root))
        temp_root = Path(os.path.realpath(self.temp_root))
        if real.parent != temp_root or not real.name.startswith(WORKSPACE_PREFIX):
            self._removed = True
            logger.error("Refusing to remove unexpected workspace path %s", real)
            return False
        if not real.exists():
            self._removed = True
            return False

        shutil.rmtree(real)
        self._removed = True
        logger.info("Removed temp workspace %s", real)
        return True
