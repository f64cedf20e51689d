from __future__ import annotations

import hashlib
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Union

from .transport import Fetcher, default_fetchers, transfer

logger = logging.getLogger(__name__)

_HEX64 = re.compile(r"^[0-9a-f]{64}$")
_CHUNK = 1024 * 1024


class VerifyOutcome(str, Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class ExpectedDigest:
    """A SHA-256 supplied directly by the caller."""

    value: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", normalize_digest(self.value))


@dataclass(frozen=True)
class ChecksumManifest:
    """A remote manifest listing `<digest>  <filename>` lines."""

    url: str


ChecksumSource = Union[ExpectedDigest, ChecksumManifest]


@dataclass(frozen=True)
class Verification:
    outcome: VerifyOutcome
    expected: Optional[str] = None
    actual: Optional[str] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome == VerifyOutcome.MATCH


def normalize_digest(value: str) -> str:
    v = value.strip().lower()
    if not _HEX64.match(v):
        raise ValueError(f"Not a SHA-256 hex digest: {value!r}")
    return v


def sha256_file(path: str | os.PathLike[str]) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def find_manifest_digest(manifest_text: str, filename: str) -> Optional[str]:
    """Return the digest listed for filename, or None.

    Accepts sha256sum output (`<digest>  <name>` and binary-mode `<digest> *<name>`).
    Names carrying a directory prefix match on their basename.
    """

    for raw in manifest_text.splitlines():
        fields = raw.split()
        if len(fields) < 2:
            continue
        digest = fields[0].lower()
        if not _HEX64.match(digest):
            continue
        name = fields[-1].lstrip("*")
        if name == filename or os.path.basename(name) == filename:
            return digest
    return None


class ChecksumVerifier:
    def __init__(
        self,
        *,
        fetchers: Sequence[Fetcher] | None = None,
        manifest_timeout: int = 10,
        work_dir: Optional[Path] = None,
    ) -> None:
        self.fetchers = list(fetchers) if fetchers is not None else default_fetchers()
        self.manifest_timeout = manifest_timeout
        # Manifests are staged here; None means the system temp dir.
        self.work_dir = work_dir

    def verify(self, path: str | os.PathLike[str], expected: ChecksumSource) -> Verification:
        p = Path(path)
        if isinstance(expected, ExpectedDigest):
            return self._compare(p, expected.value)

        digest = self._digest_from_manifest(expected.url, p.name)
        if digest is None:
            return Verification(
                outcome=VerifyOutcome.UNAVAILABLE,
                reason=f"no checksum for {p.name} in {expected.url}",
            )
        return self._compare(p, digest)

    def _compare(self, path: Path, expected: str) -> Verification:
        actual = sha256_file(path)
        if actual == expected:
            logger.debug("Checksum OK for %s", path.name)
            return Verification(outcome=VerifyOutcome.MATCH, expected=expected, actual=actual)
        logger.warning("Checksum mismatch for %s (expected=%s actual=%s)", path.name, expected, actual)
        return Verification(
            outcome=VerifyOutcome.MISMATCH,
            expected=expected,
            actual=actual,
            reason="digest differs",
        )

    def _digest_from_manifest(self, url: str, filename: str) -> Optional[str]:
        # Single attempt with a short timeout; failure means Unavailable, not Mismatch.
        dir_ = None
        if self.work_dir is not None:
            Path(self.work_dir).mkdir(parents=True, exist_ok=True)
            dir_ = str(self.work_dir)
        fd, tmp = tempfile.mkstemp(prefix=".devbase-manifest.", suffix=".txt", dir=dir_)
        os.close(fd)
        tmp_path = Path(tmp)
        try:
            if not transfer(self.fetchers, url, tmp_path, timeout=self.manifest_timeout):
                logger.warning("Checksum manifest unavailable: %s", url)
                return None
            text = tmp_path.read_text(encoding="utf-8", errors="replace")
        finally:
            tmp_path.unlink(missing_ok=True)

        digest = find_manifest_digest(text, filename)
        if digest is None:
            logger.warning("No entry for %s in checksum manifest %s", filename, url)
        return digest
