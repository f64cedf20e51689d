from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .errors import ConfigurationError
from .lib.checksum import normalize_digest

DEFAULT_CONFIG_NAME = "devbase.yaml"

INSTALL_MODES = ("bin", "package", "stage")


def _truthy(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ArtifactSpec:
    name: str
    url: str
    version: Optional[str] = None
    sha256: Optional[str] = None
    checksum_url: Optional[str] = None
    install: str = "stage"
    severity: str = "soft"

    @property
    def basename(self) -> str:
        return self.url.rstrip("/").rsplit("/", 1)[-1]

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "ArtifactSpec":
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"artifact entry must be a mapping, got {type(raw).__name__}")

        name = str(raw.get("name") or "").strip()
        url = str(raw.get("url") or "").strip()
        if not name or not url:
            raise ConfigurationError(f"artifact entry needs both name and url: {dict(raw)}")

        install = str(raw.get("install") or "stage").strip().lower()
        if install not in INSTALL_MODES:
            raise ConfigurationError(f"artifact {name}: install must be one of {', '.join(INSTALL_MODES)}")

        severity = str(raw.get("severity") or "soft").strip().lower()
        if severity not in {"fatal", "soft"}:
            raise ConfigurationError(f"artifact {name}: severity must be fatal or soft")

        sha256 = raw.get("sha256") or None
        if sha256 is not None:
            try:
                sha256 = normalize_digest(str(sha256))
            except ValueError as e:
                raise ConfigurationError(f"artifact {name}: {e}") from e

        version = raw.get("version")
        return cls(
            name=name,
            url=url,
            version=str(version) if version is not None else None,
            sha256=sha256,
            checksum_url=raw.get("checksum_url") or None,
            install=install,
            severity=severity,
        )


@dataclass(frozen=True)
class InstallConfig:
    raw: Dict[str, Any]

    def _section(self, name: str) -> Dict[str, Any]:
        return self.raw.get(name) or {}

    @property
    def timeout_seconds(self) -> int:
        return int(self._section("download").get("timeout_seconds") or 30)

    @property
    def max_retries(self) -> int:
        return int(self._section("download").get("max_retries") or 3)

    @property
    def retry_delay_seconds(self) -> int:
        v = self._section("download").get("retry_delay_seconds")
        return int(5 if v is None else v)

    @property
    def manifest_timeout_seconds(self) -> int:
        return int(self._section("download").get("manifest_timeout_seconds") or 10)

    @property
    def strict_checksums(self) -> bool:
        return _truthy(self._section("download").get("strict_checksums", False))

    @property
    def packages(self) -> List[str]:
        return [str(p) for p in (self.raw.get("packages") or [])]

    @property
    def packs(self) -> Dict[str, List[str]]:
        return {str(k): [str(p) for p in (v or [])] for k, v in (self.raw.get("packs") or {}).items()}

    @property
    def artifacts(self) -> List[ArtifactSpec]:
        return [ArtifactSpec.from_raw(a) for a in (self.raw.get("artifacts") or [])]

    @property
    def min_disk_gb(self) -> float:
        v = self._section("preflight").get("min_disk_gb")
        return float(5 if v is None else v)

    @property
    def connectivity_sites(self) -> Optional[List[str]]:
        sites = self._section("preflight").get("connectivity_sites")
        return [str(s) for s in sites] if sites else None

    @property
    def connectivity_timeout_seconds(self) -> int:
        return int(self._section("preflight").get("connectivity_timeout_seconds") or 3)

    @property
    def hooks_dir(self) -> Optional[str]:
        v = self.raw.get("hooks_dir")
        return str(v) if v else None


def with_env_overrides(cfg: InstallConfig, environ: Mapping[str, str]) -> InstallConfig:
    """Environment wins over the file for the few keys it can set."""

    strict = environ.get("DEVBASE_STRICT_CHECKSUMS")
    if strict is None or strict == "":
        return cfg

    raw = dict(cfg.raw)
    download = dict(raw.get("download") or {})
    download["strict_checksums"] = _truthy(strict)
    raw["download"] = download
    return InstallConfig(raw=raw)


def load_install_config(path: Optional[str], *, required: bool = False) -> InstallConfig:
    """Read the YAML install config. A missing optional file yields the defaults."""

    if not path:
        return InstallConfig(raw={})

    p = Path(path)
    if not p.exists():
        if required:
            raise ConfigurationError(f"Install config not found: {path}")
        return InstallConfig(raw={})

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigurationError(f"Install config must be YAML: {path}")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed install config {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path} must contain a mapping/object")

    cfg = InstallConfig(raw=raw)
    # Surface bad artifact entries at load time, not mid-run.
    cfg.artifacts
    return cfg
