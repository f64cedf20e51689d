from __future__ import annotations

from typing import Optional


class ProvisioningError(RuntimeError):
    """Base class for failures the installer raises on purpose."""


class EnvironmentPreconditionError(ProvisioningError):
    """Required path variables are missing or unusable."""

    def __init__(self, missing: list[str], invalid: Optional[list[str]] = None) -> None:
        self.missing = list(missing)
        self.invalid = list(invalid or [])
        parts: list[str] = []
        if self.missing:
            parts.append("missing: " + ", ".join(self.missing))
        if self.invalid:
            parts.append("invalid: " + ", ".join(self.invalid))
        super().__init__("Environment precondition failed (" + "; ".join(parts) + ")")


class ConfigurationError(ProvisioningError):
    pass


class RunCancelled(ProvisioningError):
    pass


class DownloadError(ProvisioningError):
    """Base class for artifact acquisition failures."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class DownloadFailed(DownloadError):
    pass


class ChecksumMismatch(DownloadError):
    """Downloaded bytes do not match the expected SHA-256.

    Distinct from DownloadFailed: the source may be compromised, so callers
    must not retry against the same URL without operator intervention.
    """

    def __init__(self, *, filename: str, expected: str, actual: str, url: str | None = None) -> None:
        self.filename = filename
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {filename}: expected {expected}, got {actual}. "
            "The artifact was deleted. This may indicate a man-in-the-middle attack "
            "or a corrupted mirror; do not retry from the same source without investigating.",
            url=url,
        )
