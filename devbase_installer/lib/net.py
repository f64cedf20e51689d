from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Sequence

from .transport import Fetcher, transfer

logger = logging.getLogger(__name__)

DEFAULT_SITES = ("https://github.com", "https://google.com", "https://cloudflare.com")


def is_online(
    fetchers: Sequence[Fetcher],
    *,
    sites: Sequence[str] = DEFAULT_SITES,
    timeout: int = 3,
) -> bool:
    """Best-effort online check: any site reachable counts."""

    for site in sites:
        if transfer(fetchers, site, Path(os.devnull), timeout=timeout):
            logger.info("Network reachable via %s", site)
            return True
    logger.warning("None of %s reachable", ", ".join(sites))
    return False
