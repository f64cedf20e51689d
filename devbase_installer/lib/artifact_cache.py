from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

UNVERSIONED_DIR = ".unversioned"


def _check_component(value: str, what: str) -> None:
    if not value or value in {".", ".."} or "/" in value or "\\" in value or "\0" in value:
        raise ValueError(f"Invalid cache {what}: {value!r}")


@dataclass(frozen=True)
class CacheKey:
    """(artifact basename, version tag). version=None means unversioned."""

    basename: str
    version: Optional[str] = None

    def __post_init__(self) -> None:
        _check_component(self.basename, "basename")
        if self.version is not None:
            _check_component(self.version, "version")
            if self.version.startswith("."):
                raise ValueError(f"Invalid cache version: {self.version!r}")

    @classmethod
    def for_target(cls, target: str | os.PathLike[str], version: Optional[str] = None) -> "CacheKey":
        return cls(basename=Path(target).name, version=version or None)

    @property
    def versioned(self) -> bool:
        return self.version is not None


class ArtifactCache:
    """On-disk cache shared across runs.

    Layout:
      <cache_root>/downloads/<version>/<basename>
      <cache_root>/downloads/.<basename>.version   (currently pinned version)

    Entries are written to a temp name in the destination directory and moved
    into place, so a concurrent run never observes a half-written file.
    """

    def __init__(self, cache_root: str | os.PathLike[str]) -> None:
        self.root = Path(cache_root) / "downloads"

    def path_for(self, key: CacheKey) -> Path:
        return self.root / (key.version if key.versioned else UNVERSIONED_DIR) / key.basename

    def marker_for(self, basename: str) -> Path:
        return self.root / f".{basename}.version"

    def lookup(self, key: CacheKey) -> Optional[Path]:
        p = self.path_for(key)
        if p.is_file():
            logger.debug("Cache hit %s", p)
            return p
        return None

    def pinned_version(self, basename: str) -> Optional[str]:
        m = self.marker_for(basename)
        if not m.is_file():
            return None
        return m.read_text(encoding="utf-8").strip() or None

    def store(self, key: CacheKey, src: str | os.PathLike[str]) -> Path:
        """Copy src into the cache. Only call after verification succeeded."""

        dest = self.path_for(key)
        _atomic_copy(Path(src), dest)
        logger.info("Cached %s", dest)

        if key.versioned:
            previous = self.pinned_version(key.basename)
            _atomic_write_text(self.marker_for(key.basename), f"{key.version}\n")
            if previous and previous != key.version:
                self._drop_stale(CacheKey(basename=key.basename, version=previous))
        return dest

    def copy_to(self, key: CacheKey, target: str | os.PathLike[str]) -> Optional[Path]:
        cached = self.lookup(key)
        if cached is None:
            return None
        t = Path(target)
        t.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(cached, t)
        return t

    def evict(self, key: CacheKey) -> None:
        p = self.path_for(key)
        if p.exists():
            p.unlink()
            logger.info("Evicted cache entry %s", p)

    def _drop_stale(self, key: CacheKey) -> None:
        self.evict(key)
        parent = self.path_for(key).parent
        # Other artifacts may still share this version directory.
        if parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()


def _atomic_copy(src: Path, dest: Path) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".partial", dir=str(dest.parent))
    os.close(fd)
    try:
        shutil.copyfile(src, tmp)
        os.replace(tmp, dest)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def _atomic_write_text(dest: Path, content: str) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".partial", dir=str(dest.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, dest)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
