from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, Sequence

from .command import command_exists, run_cmd

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    """A single HTTP client able to write one URL to one file."""

    name: str

    def available(self) -> bool:
        ...

    def fetch(self, url: str, dest: Path, *, timeout: int) -> bool:
        ...


class CurlFetcher:
    name = "curl"

    def available(self) -> bool:
        return command_exists("curl")

    def fetch(self, url: str, dest: Path, *, timeout: int) -> bool:
        r = run_cmd(
            ["curl", "-fsSL", "--connect-timeout", str(timeout), "-o", str(dest), url],
            check=False,
        )
        if not r.ok:
            logger.debug("curl failed for %s (exit=%s)", url, r.returncode)
        return r.ok


class WgetFetcher:
    name = "wget"

    def available(self) -> bool:
        return command_exists("wget")

    def fetch(self, url: str, dest: Path, *, timeout: int) -> bool:
        r = run_cmd(
            ["wget", "-q", f"--timeout={timeout}", "--tries=1", "-O", str(dest), url],
            check=False,
        )
        if not r.ok:
            logger.debug("wget failed for %s (exit=%s)", url, r.returncode)
        return r.ok


def default_fetchers() -> list[Fetcher]:
    # curl first, wget as fallback.
    return [CurlFetcher(), WgetFetcher()]


def any_available(fetchers: Sequence[Fetcher]) -> bool:
    return any(f.available() for f in fetchers)


def transfer(fetchers: Sequence[Fetcher], url: str, dest: Path, *, timeout: int) -> bool:
    """Single attempt: try each available client in order, stop at the first success.

    A failed attempt may leave a partial file at dest; callers decide whether to remove it.
    """

    tried: list[str] = []
    for f in fetchers:
        if not f.available():
            continue
        tried.append(f.name)
        if f.fetch(url, dest, timeout=timeout):
            logger.debug("Fetched %s via %s", url, f.name)
            return True

    if not tried:
        logger.warning("No download client available (tried: %s)", ", ".join(f.name for f in fetchers))
    else:
        logger.info("Transfer failed for %s (clients: %s)", url, ", ".join(tried))
    return False
