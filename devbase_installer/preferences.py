from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

PREFERENCES_NAME = "preferences.yaml"

# Fallback table used when neither the environment nor a saved file decides.
DEFAULT_PREFERENCES: Dict[str, Any] = {
    "theme": "everforest-dark",
    "font": "monaspace",
    "editor": "nvim",
    "packs": ["java", "node", "python", "go", "ruby"],
    "ssh_key_name": "id_ed25519_devbase",
    "vscode_install": False,
    "install_lazyvim": True,
    "zellij_autostart": False,
    "git_hooks": True,
    "git_author": None,
    "git_email": None,
}

# Flat preference key -> location in the saved YAML document.
_FILE_LAYOUT: Dict[str, Tuple[str, ...]] = {
    "theme": ("theme",),
    "font": ("font",),
    "git_author": ("git", "author"),
    "git_email": ("git", "email"),
    "ssh_key_name": ("ssh", "key_name"),
    "editor": ("editor", "default"),
    "vscode_install": ("vscode", "install"),
    "install_lazyvim": ("ide", "lazyvim"),
    "zellij_autostart": ("tools", "zellij_autostart"),
    "git_hooks": ("tools", "git_hooks"),
    "packs": ("packs",),
}

# Environment variable -> preference key (non-interactive resolution).
ENV_PREFERENCES: Dict[str, str] = {
    "GIT_NAME": "git_author",
    "GIT_EMAIL": "git_email",
    "DEVBASE_THEME": "theme",
    "DEVBASE_FONT": "font",
    "EDITOR": "editor",
    "DEVBASE_SELECTED_PACKS": "packs",
}


def _split_packs(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [p for p in value.replace(",", " ").split() if p]
    return [str(p) for p in value]


def _dig(doc: Mapping[str, Any], path: Tuple[str, ...]) -> Any:
    cur: Any = doc
    for part in path:
        if not isinstance(cur, Mapping) or part not in cur:
            return None
        cur = cur[part]
    return cur


def load_preferences(path: str | os.PathLike[str]) -> Dict[str, Any]:
    """Read saved preferences into a flat dict. A missing file yields {}."""

    p = Path(path)
    if not p.exists():
        return {}

    try:
        doc = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed preferences file {p}: {e}") from e

    if not isinstance(doc, dict):
        raise ConfigurationError(f"Preferences file must be a mapping, got {type(doc).__name__}")

    prefs: Dict[str, Any] = {}
    for key, where in _FILE_LAYOUT.items():
        v = _dig(doc, where)
        if v is None or v == "":
            continue
        prefs[key] = _split_packs(v) if key == "packs" else v
    return prefs


def save_preferences(path: str | os.PathLike[str], prefs: Mapping[str, Any]) -> Path:
    """Write preferences atomically (temp file in the same directory, then rename)."""

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    doc: Dict[str, Any] = {}
    for key, where in _FILE_LAYOUT.items():
        if key not in prefs or prefs[key] is None:
            continue
        node = doc
        for part in where[:-1]:
            node = node.setdefault(part, {})
        node[where[-1]] = prefs[key]

    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(doc, f, sort_keys=False)
        os.replace(tmp, p)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise

    logger.info("Saved preferences to %s", p)
    return p


def apply_defaults(prefs: Dict[str, Any]) -> Dict[str, Any]:
    """Fill missing keys from the fallback table (without overriding user values)."""

    for key, value in DEFAULT_PREFERENCES.items():
        if prefs.get(key) in (None, ""):
            prefs[key] = list(value) if isinstance(value, list) else value
    return prefs


def resolve_non_interactive(saved: Mapping[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    """Environment first, then saved preferences, then the fallback table.

    Git author and email have no fallback; missing either raises ConfigurationError.
    """

    prefs: Dict[str, Any] = dict(saved)
    for var, key in ENV_PREFERENCES.items():
        val = environ.get(var)
        if val:
            prefs[key] = _split_packs(val) if key == "packs" else val

    apply_defaults(prefs)

    missing = [var for var, key in (("GIT_NAME", "git_author"), ("GIT_EMAIL", "git_email")) if not prefs.get(key)]
    if missing:
        raise ConfigurationError(
            f"Non-interactive mode requires {', '.join(missing)} (environment or saved preferences)"
        )
    return prefs
