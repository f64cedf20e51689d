from __future__ import annotations

import os
from pathlib import Path
from typing import MutableMapping

from devbase_installer.main import main as core_main


def resolve_launcher_env(environ: MutableMapping[str, str]) -> MutableMapping[str, str]:
    """Fill the path contract the core expects, without overriding what the caller set."""

    home = environ.get("HOME") or str(Path.home())
    root = Path(__file__).resolve().parent.parent

    environ.setdefault("DEVBASE_ROOT", str(root))
    environ.setdefault("DEVBASE_LIBS", str(root / "devbase_installer"))
    environ.setdefault("XDG_CACHE_HOME", os.path.join(home, ".cache"))
    environ.setdefault("XDG_CONFIG_HOME", os.path.join(home, ".config"))
    environ.setdefault("XDG_DATA_HOME", os.path.join(home, ".local", "share"))
    environ.setdefault("XDG_BIN_HOME", os.path.join(home, ".local", "bin"))
    return environ


def main(argv: list[str] | None = None) -> int:
    # The core never guesses paths; the launcher resolves them once.
    resolve_launcher_env(os.environ)
    return core_main(argv)


if __name__ == "__main__":
    raise SystemExit(main())
