from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Protocol, Sequence

from .command import run_cmd

logger = logging.getLogger(__name__)


class PackageManager(Protocol):
    """Distro package manager adapter. Failures raise; callers decide severity."""

    name: str
    binary: str

    def update(self) -> None:
        ...

    def install(self, names: Sequence[str]) -> None:
        ...

    def cleanup(self) -> None:
        ...


def _sudo_prefix() -> list[str]:
    return [] if os.geteuid() == 0 else ["sudo"]


class AptPackageManager:
    name = "apt"
    binary = "apt-get"

    _env = {"DEBIAN_FRONTEND": "noninteractive"}

    def update(self) -> None:
        run_cmd([*_sudo_prefix(), "apt-get", "update", "-q"], env=self._env)

    def install(self, names: Sequence[str]) -> None:
        if not names:
            return
        run_cmd(
            [*_sudo_prefix(), "apt-get", "install", "-y", "-q", "--no-install-recommends", *names],
            env=self._env,
        )

    def cleanup(self) -> None:
        run_cmd([*_sudo_prefix(), "apt-get", "autoremove", "-y", "-q"], env=self._env)
        run_cmd([*_sudo_prefix(), "apt-get", "clean"], env=self._env)


class DnfPackageManager:
    name = "dnf"
    binary = "dnf"

    def update(self) -> None:
        run_cmd([*_sudo_prefix(), "dnf", "makecache", "-q"])

    def install(self, names: Sequence[str]) -> None:
        if not names:
            return
        run_cmd([*_sudo_prefix(), "dnf", "install", "-y", "-q", *names])

    def cleanup(self) -> None:
        run_cmd([*_sudo_prefix(), "dnf", "autoremove", "-y", "-q"])
        run_cmd([*_sudo_prefix(), "dnf", "clean", "all"])


def read_os_release(path: str = "/etc/os-release") -> Dict[str, str]:
    p = Path(path)
    if not p.exists():
        return {}
    out: Dict[str, str] = {}
    for line in p.read_text(encoding="utf-8").splitlines():
        if "=" not in line or line.startswith("#"):
            continue
        k, v = line.split("=", 1)
        out[k.strip()] = v.strip().strip('"')
    return out


def detect_package_manager(os_release_path: str = "/etc/os-release") -> PackageManager:
    info = read_os_release(os_release_path)
    ids = {info.get("ID", "").lower(), *info.get("ID_LIKE", "").lower().split()}
    if ids & {"fedora", "rhel", "centos"}:
        logger.info("Detected dnf-based distro (%s)", info.get("ID"))
        return DnfPackageManager()
    logger.info("Using apt (distro id=%s)", info.get("ID") or "unknown")
    return AptPackageManager()
