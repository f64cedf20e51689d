"""Tests for lib/download.py: cache reuse, retries and SHA-256 verification."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from conftest import FakeFetcher
from devbase_installer.errors import ChecksumMismatch, DownloadFailed
from devbase_installer.lib.artifact_cache import ArtifactCache, CacheKey
from devbase_installer.lib.download import Downloader, DownloadRequest

URL = "https://example.com/releases/tool-1.2.3.tar.gz"
MANIFEST = "https://example.com/releases/SHA256SUMS"
GOOD = b"genuine artifact bytes"
EVIL = b"tampered artifact bytes"


def _sha(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@pytest.fixture
def cache(tmp_path: Path) -> ArtifactCache:
    return ArtifactCache(tmp_path / "cache")


@pytest.fixture
def warnings() -> list:
    return []


def _downloader(cache, fetcher, sleeps, warnings, **kw) -> Downloader:
    return Downloader(cache=cache, fetchers=[fetcher], sleep=sleeps, warn=warnings.append, **kw)


def _request(tmp_path: Path, **kw) -> DownloadRequest:
    kw.setdefault("url", URL)
    kw.setdefault("target_path", tmp_path / "work" / "tool-1.2.3.tar.gz")
    return DownloadRequest(**kw)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

class TestDownloadRequest:
    def test_direct_value_wins_over_manifest(self, tmp_path):
        req = _request(tmp_path, checksum_value=_sha(GOOD).upper(), checksum_manifest_url=MANIFEST)
        assert req.checksum_source.value == _sha(GOOD)

    def test_no_checksum_source(self, tmp_path):
        assert _request(tmp_path).checksum_source is None

    def test_rejects_zero_retries(self, tmp_path):
        with pytest.raises(ValueError):
            _request(tmp_path, max_retries=0)

    def test_rejects_malformed_digest(self, tmp_path):
        with pytest.raises(ValueError):
            _request(tmp_path, checksum_value="abc").checksum_source


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

class TestChecksumVerification:
    def test_match_returns_target(self, tmp_path, cache, sleeps, warnings):
        fetcher = FakeFetcher({URL: GOOD})
        d = _downloader(cache, fetcher, sleeps, warnings)

        path = d.fetch(_request(tmp_path, checksum_value=_sha(GOOD)))

        assert path.read_bytes() == GOOD
        assert warnings == []

    def test_mismatch_deletes_file_and_raises(self, tmp_path, cache, sleeps, warnings):
        fetcher = FakeFetcher({URL: EVIL})
        d = _downloader(cache, fetcher, sleeps, warnings)
        req = _request(tmp_path, checksum_value=_sha(GOOD), version_tag="1.2.3")

        with pytest.raises(ChecksumMismatch) as exc_info:
            d.fetch(req)

        assert not req.target_path.exists()
        assert exc_info.value.expected == _sha(GOOD)
        assert exc_info.value.actual == _sha(EVIL)
        assert exc_info.value.url == URL
        assert "man-in-the-middle" in str(exc_info.value)
        # A mismatch is not retried and never cached.
        assert fetcher.count(URL) == 1
        assert cache.lookup(req.cache_key) is None

    def test_mismatch_is_not_download_failed(self):
        assert not issubclass(ChecksumMismatch, DownloadFailed)

    def test_manifest_match(self, tmp_path, cache, sleeps, warnings):
        manifest = f"{_sha(b'other')}  other.tar.gz\n{_sha(GOOD)} *tool-1.2.3.tar.gz\n".encode()
        fetcher = FakeFetcher({URL: GOOD, MANIFEST: manifest})
        d = _downloader(cache, fetcher, sleeps, warnings)

        path = d.fetch(_request(tmp_path, checksum_manifest_url=MANIFEST))

        assert path.read_bytes() == GOOD
        assert warnings == []

    def test_manifest_without_entry_is_accepted_with_warning(self, tmp_path, cache, sleeps, warnings):
        manifest = f"{_sha(b'other')}  other.tar.gz\n".encode()
        fetcher = FakeFetcher({URL: GOOD, MANIFEST: manifest})
        d = _downloader(cache, fetcher, sleeps, warnings)

        path = d.fetch(_request(tmp_path, checksum_manifest_url=MANIFEST))

        assert path.exists()
        assert len(warnings) == 1
        assert "Could not verify checksum" in warnings[0]

    def test_unreachable_manifest_fails_in_strict_mode(self, tmp_path, cache, sleeps, warnings):
        fetcher = FakeFetcher({URL: GOOD})
        d = _downloader(cache, fetcher, sleeps, warnings, strict_checksums=True)
        req = _request(tmp_path, checksum_manifest_url=MANIFEST)

        with pytest.raises(DownloadFailed):
            d.fetch(req)
        assert not req.target_path.exists()

    def test_no_checksum_is_logged_after_transfer(self, tmp_path, cache, sleeps, warnings, caplog):
        fetcher = FakeFetcher({URL: GOOD})
        d = _downloader(cache, fetcher, sleeps, warnings)

        d.fetch(_request(tmp_path))

        assert warnings == []
        assert "No checksum configured for tool-1.2.3.tar.gz" in caplog.text

    def test_failed_unverified_download_has_no_trust_notice(self, tmp_path, cache, sleeps, warnings, caplog):
        fetcher = FakeFetcher({})
        d = _downloader(cache, fetcher, sleeps, warnings)

        with pytest.raises(DownloadFailed):
            d.fetch(_request(tmp_path))

        assert warnings == []
        assert "No checksum configured" not in caplog.text

    def test_no_checksum_in_strict_mode_never_downloads(self, tmp_path, cache, sleeps, warnings):
        fetcher = FakeFetcher({URL: GOOD})
        d = _downloader(cache, fetcher, sleeps, warnings, strict_checksums=True)

        with pytest.raises(DownloadFailed):
            d.fetch(_request(tmp_path))
        assert fetcher.calls == []


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------

class TestRetries:
    def test_two_failures_then_success_sleeps_twice(self, tmp_path, cache, sleeps, warnings):
        fetcher = FakeFetcher({URL: GOOD}, fail_first=2)
        d = _downloader(cache, fetcher, sleeps, warnings)

        path = d.fetch(_request(tmp_path, checksum_value=_sha(GOOD), max_retries=3, retry_delay_seconds=5))

        assert path.read_bytes() == GOOD
        assert fetcher.count(URL) == 3
        assert sleeps.calls == [5, 5]

    def test_exhausted_retries(self, tmp_path, cache, sleeps, warnings):
        fetcher = FakeFetcher({URL: GOOD}, fail_first=10)
        d = _downloader(cache, fetcher, sleeps, warnings)
        req = _request(tmp_path, checksum_value=_sha(GOOD), max_retries=3, retry_delay_seconds=2)

        with pytest.raises(DownloadFailed) as exc_info:
            d.fetch(req)

        assert fetcher.count(URL) == 3
        assert sleeps.calls == [2, 2]
        assert not req.target_path.exists()
        assert exc_info.value.url == URL

    def test_no_client_available(self, tmp_path, cache, sleeps, warnings):
        fetcher = FakeFetcher({URL: GOOD}, available=False)
        d = _downloader(cache, fetcher, sleeps, warnings)

        with pytest.raises(DownloadFailed, match="No download client"):
            d.fetch(_request(tmp_path, checksum_value=_sha(GOOD)))
        assert fetcher.calls == []

    def test_falls_back_to_second_client(self, tmp_path, cache, sleeps, warnings):
        curl = FakeFetcher({}, name="curl")
        wget = FakeFetcher({URL: GOOD}, name="wget")
        d = Downloader(cache=cache, fetchers=[curl, wget], sleep=sleeps, warn=warnings.append)

        d.fetch(_request(tmp_path, checksum_value=_sha(GOOD)))

        assert curl.count(URL) == 1
        assert wget.count(URL) == 1
        assert sleeps.calls == []


# ---------------------------------------------------------------------------
# Cache and resume
# ---------------------------------------------------------------------------

class TestCacheReuse:
    def test_second_fetch_uses_cache(self, tmp_path, cache, sleeps, warnings):
        fetcher = FakeFetcher({URL: GOOD})
        d = _downloader(cache, fetcher, sleeps, warnings)

        first = d.fetch(_request(tmp_path, checksum_value=_sha(GOOD), version_tag="1.2.3"))
        second = d.fetch(
            _request(
                tmp_path,
                target_path=tmp_path / "run2" / "tool-1.2.3.tar.gz",
                checksum_value=_sha(GOOD),
                version_tag="1.2.3",
            )
        )

        assert fetcher.count(URL) == 1
        assert first.read_bytes() == second.read_bytes() == GOOD
        assert cache.path_for(CacheKey("tool-1.2.3.tar.gz", "1.2.3")).is_file()

    def test_corrupted_cache_entry_is_evicted_and_refetched(self, tmp_path, cache, sleeps, warnings, caplog):
        key = CacheKey("tool-1.2.3.tar.gz", "1.2.3")
        poisoned = tmp_path / "poisoned"
        poisoned.write_bytes(EVIL)
        cache.store(key, poisoned)

        fetcher = FakeFetcher({URL: GOOD})
        d = _downloader(cache, fetcher, sleeps, warnings)
        path = d.fetch(_request(tmp_path, checksum_value=_sha(GOOD), version_tag="1.2.3"))

        assert path.read_bytes() == GOOD
        assert fetcher.count(URL) == 1
        assert cache.lookup(key).read_bytes() == GOOD
        assert warnings == []
        assert "re-downloading" in caplog.text

    def test_unversioned_download_is_not_cached(self, tmp_path, cache, sleeps, warnings):
        fetcher = FakeFetcher({URL: GOOD})
        d = _downloader(cache, fetcher, sleeps, warnings)

        d.fetch(_request(tmp_path, checksum_value=_sha(GOOD)))
        d.fetch(_request(tmp_path, target_path=tmp_path / "run2" / "tool-1.2.3.tar.gz", checksum_value=_sha(GOOD)))

        assert fetcher.count(URL) == 2
        assert not cache.root.exists() or not any(cache.root.rglob("tool-1.2.3.tar.gz"))

    def test_verified_leftover_is_reused(self, tmp_path, cache, sleeps, warnings):
        req = _request(tmp_path, checksum_value=_sha(GOOD))
        req.target_path.parent.mkdir(parents=True)
        req.target_path.write_bytes(GOOD)
        fetcher = FakeFetcher({URL: GOOD})

        _downloader(cache, fetcher, sleeps, warnings).fetch(req)

        assert fetcher.calls == []

    def test_stale_leftover_is_replaced(self, tmp_path, cache, sleeps, warnings):
        req = _request(tmp_path, checksum_value=_sha(GOOD))
        req.target_path.parent.mkdir(parents=True)
        req.target_path.write_bytes(b"half written")
        fetcher = FakeFetcher({URL: GOOD})

        path = _downloader(cache, fetcher, sleeps, warnings).fetch(req)

        assert path.read_bytes() == GOOD
        assert fetcher.count(URL) == 1
