from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from ..errors import ChecksumMismatch, DownloadFailed
from .artifact_cache import ArtifactCache, CacheKey
from .checksum import (
    ChecksumManifest,
    ChecksumSource,
    ChecksumVerifier,
    ExpectedDigest,
    Verification,
    VerifyOutcome,
)
from .transport import Fetcher, any_available, default_fetchers, transfer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadRequest:
    url: str
    target_path: Path
    checksum_value: Optional[str] = None
    checksum_manifest_url: Optional[str] = None
    version_tag: Optional[str] = None
    timeout_seconds: int = 30
    max_retries: int = 3
    retry_delay_seconds: int = 5

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("Download URL is required")
        object.__setattr__(self, "target_path", Path(self.target_path))
        if not self.target_path.name:
            raise ValueError("Download target must name a file")
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if self.timeout_seconds < 1:
            raise ValueError("timeout_seconds must be >= 1")
        if self.retry_delay_seconds < 0:
            raise ValueError("retry_delay_seconds must be >= 0")

    @property
    def checksum_source(self) -> Optional[ChecksumSource]:
        if self.checksum_value:
            if self.checksum_manifest_url:
                logger.debug("Both checksum sources given for %s; using the direct value", self.url)
            return ExpectedDigest(self.checksum_value)
        if self.checksum_manifest_url:
            return ChecksumManifest(self.checksum_manifest_url)
        return None

    @property
    def cache_key(self) -> CacheKey:
        return CacheKey.for_target(self.target_path, self.version_tag)


class Downloader:
    """Fetch URLs into place with cache reuse, bounded retries and SHA-256 verification."""

    def __init__(
        self,
        *,
        cache: ArtifactCache,
        verifier: ChecksumVerifier | None = None,
        fetchers: Sequence[Fetcher] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        warn: Callable[[str], None] | None = None,
        strict_checksums: bool = False,
    ) -> None:
        self.cache = cache
        self.fetchers = list(fetchers) if fetchers is not None else default_fetchers()
        self.verifier = verifier or ChecksumVerifier(fetchers=self.fetchers)
        self.sleep = sleep
        self._warn_cb = warn
        self.strict_checksums = strict_checksums

    def fetch(self, req: DownloadRequest) -> Path:
        target = req.target_path
        target.parent.mkdir(parents=True, exist_ok=True)
        source = req.checksum_source
        key = req.cache_key

        if source is None and self.strict_checksums:
            raise DownloadFailed(f"Checksum required for download: {req.url}", url=req.url)

        # Resume: a file left by an earlier run is re-verified instead of re-downloaded.
        if source is not None and target.is_file():
            v = self.verifier.verify(target, source)
            if v.outcome == VerifyOutcome.MATCH:
                logger.info("Reusing verified %s", target)
                self._remember(key, target)
                return target
            if v.outcome == VerifyOutcome.UNAVAILABLE:
                self._accept_unverified(req, v)
                return target
            logger.warning("Discarding stale %s (checksum mismatch)", target)
            target.unlink()

        if key.versioned or source is None:
            hit = self._from_cache(req, key, source)
            if hit is not None:
                return hit

        self._transfer_with_retries(req)

        if source is None:
            logger.warning("No checksum configured for %s; accepted it unverified", target.name)
        else:
            v = self.verifier.verify(target, source)
            if v.outcome == VerifyOutcome.MISMATCH:
                target.unlink(missing_ok=True)
                raise ChecksumMismatch(
                    filename=target.name,
                    expected=v.expected or "",
                    actual=v.actual or "",
                    url=req.url,
                )
            if v.outcome == VerifyOutcome.UNAVAILABLE:
                self._accept_unverified(req, v)
                return target

        self._remember(key, target)
        return target

    def _from_cache(
        self,
        req: DownloadRequest,
        key: CacheKey,
        source: Optional[ChecksumSource],
    ) -> Optional[Path]:
        target = req.target_path
        if self.cache.copy_to(key, target) is None:
            return None

        if source is None:
            logger.warning("Using cached %s; no checksum configured", key.basename)
            return target

        v = self.verifier.verify(target, source)
        if v.outcome == VerifyOutcome.MATCH:
            logger.info("Using cached %s (verified)", key.basename)
            return target
        if v.outcome == VerifyOutcome.UNAVAILABLE:
            self._accept_unverified(req, v)
            return target

        logger.warning("Cached %s failed checksum verification; re-downloading", key.basename)
        self.cache.evict(key)
        target.unlink(missing_ok=True)
        return None

    def _transfer_with_retries(self, req: DownloadRequest) -> None:
        target = req.target_path
        if not any_available(self.fetchers):
            raise DownloadFailed("No download client available (need curl or wget)", url=req.url)

        for attempt in range(1, req.max_retries + 1):
            if transfer(self.fetchers, req.url, target, timeout=req.timeout_seconds):
                logger.info("Downloaded %s (attempt %d/%d)", target.name, attempt, req.max_retries)
                return
            target.unlink(missing_ok=True)
            logger.warning("Attempt %d/%d failed for %s", attempt, req.max_retries, req.url)
            if attempt < req.max_retries:
                self.sleep(req.retry_delay_seconds)

        raise DownloadFailed(
            f"Failed to download {target.name} after {req.max_retries} attempts: {req.url}",
            url=req.url,
        )

    def _accept_unverified(self, req: DownloadRequest, v: Verification) -> None:
        if self.strict_checksums:
            req.target_path.unlink(missing_ok=True)
            raise DownloadFailed(
                f"Checksum required but unavailable for {req.target_path.name} ({v.reason})",
                url=req.url,
            )
        self._warn(f"Could not verify checksum for {req.target_path.name} ({v.reason})")

    def _remember(self, key: CacheKey, target: Path) -> None:
        if key.versioned:
            self.cache.store(key, target)

    def _warn(self, message: str) -> None:
        logger.warning(message)
        if self._warn_cb is not None:
            self._warn_cb(message)
