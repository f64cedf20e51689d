from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

LOG_NAME = "install.log"


def default_log_path(cache_home: Optional[str]) -> str:
    base = cache_home or os.path.join(os.path.expanduser("~"), ".cache")
    return os.path.join(base, "devbase", LOG_NAME)


def configure_logging(
    log_path: str,
    level: int = logging.INFO,
    also_console: bool = False,
) -> str:
    """Configure logging.

    Every reported line and every external command ends up in the log file.
    If the requested path cannot be opened (read-only home, missing
    permissions), fall back to a file in the current working directory.
    Console output stays off unless asked for: the reporter owns the terminal.

    Returns the actual file path being used.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_devbase_configured", False):
        return getattr(logger, "_devbase_log_path", log_path)

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    handlers: list[logging.Handler] = []
    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        file_handler: logging.Handler = logging.FileHandler(log_path)
        chosen_path = log_path
    except OSError:
        chosen_path = str(Path.cwd() / f"devbase-{LOG_NAME}")
        file_handler = logging.FileHandler(chosen_path)
    file_handler.setFormatter(fmt)
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_devbase_configured", True)
    setattr(logger, "_devbase_log_path", chosen_path)

    logging.getLogger(__name__).info(
        "Logging initialized (requested=%s, actual=%s)", log_path, chosen_path
    )
    return chosen_path
