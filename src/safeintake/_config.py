"""Process-wide configuration for the intake pipeline.

Each default is read from a ``SAFEINTAKE_*`` environment variable once,
when ``IntakeConfig.from_env()`` is called, falling back to a built-in
value on absence or parse failure.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = ("IntakeConfig",)

import os
from dataclasses import dataclass

DEFAULT_MAX_PACKAGE_SIZE = 512 * 1024**2
DEFAULT_MAX_WORKERS = 8


# ---- environment-variable configuration helpers ----------------------------


def _env_int(name: str, fallback: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return fallback
    try:
        return int(raw)
    except ValueError:
        return fallback


def _env_float(name: str, fallback: float | None) -> float | None:
    raw = os.environ.get(name)
    if raw is None:
        return fallback
    try:
        value = float(raw)
    except ValueError:
        return fallback
    # Zero disables the timeout.
    return value if value > 0 else None


def _env_str(name: str, fallback: str | None) -> str | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return fallback
    return raw


@dataclass(frozen=True, slots=True)
class IntakeConfig:
    """Settings shared by every intake in the process.

    :param max_package_size: Maximum total uncompressed size (bytes) of an
        accepted package, resource-pool files included.
    :param max_workers: Size of the worker pool backing ``defer``.
    :param staging_dir: Parent directory for intake sandboxes.  ``None``
        uses the system temporary directory.
    :param unzip_bin: Executable used to list and extract uploads.
    :param zip_bin: Executable used to create zip archives.
    :param tar_bin: Executable used to create tarballs.
    :param tool_timeout: Seconds an archive tool may run before it is
        killed.  ``None`` waits indefinitely.
    """

    max_package_size: int = DEFAULT_MAX_PACKAGE_SIZE
    max_workers: int = DEFAULT_MAX_WORKERS
    staging_dir: str | None = None
    unzip_bin: str = "unzip"
    zip_bin: str = "zip"
    tar_bin: str = "tar"
    tool_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.max_package_size < 0:
            raise ValueError(
                f"max_package_size must be non-negative, got {self.max_package_size}"
            )
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")

    @classmethod
    def from_env(cls) -> IntakeConfig:
        return cls(
            max_package_size=_env_int(
                "SAFEINTAKE_MAX_PACKAGE_SIZE", DEFAULT_MAX_PACKAGE_SIZE
            ),
            max_workers=_env_int("SAFEINTAKE_MAX_WORKERS", DEFAULT_MAX_WORKERS),
            staging_dir=_env_str("SAFEINTAKE_STAGING_DIR", None),
            unzip_bin=_env_str("SAFEINTAKE_UNZIP", "unzip") or "unzip",
            zip_bin=_env_str("SAFEINTAKE_ZIP", "zip") or "zip",
            tar_bin=_env_str("SAFEINTAKE_TAR", "tar") or "tar",
            tool_timeout=_env_float("SAFEINTAKE_TOOL_TIMEOUT", None),
        )
