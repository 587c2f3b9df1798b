"""Value types shared across the intake pipeline."""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "ArchiveEntry",
    "ArchiveFormat",
    "IntakeResult",
    "ResourceDescriptor",
    "SecurityEvent",
)

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ArchiveFormat(Enum):
    """Output format for a repacked application.

    ``ZIP``
        A zip archive named ``app.zip``.  *(default)*
    ``TAR``
        A gzip-compressed tarball named ``app.tar.gz``.
    """

    ZIP = "zip"
    TAR = "tar"

    @property
    def filename(self) -> str:
        return "app.zip" if self is ArchiveFormat.ZIP else "app.tar.gz"


@dataclass(frozen=True, slots=True)
class ResourceDescriptor:
    """A file the client expects the resource pool to supply.

    ``path`` is untrusted client input and must go through the path
    guard before it touches the filesystem.
    """

    sha1: str
    """Content hash of the pool entry."""

    path: str
    """Destination, relative to the application root."""

    @classmethod
    def from_mapping(cls, data: Mapping[str, str]) -> ResourceDescriptor:
        """Build a descriptor from the ``{"sha1": ..., "fn": ...}`` wire form."""
        try:
            return cls(sha1=str(data["sha1"]), path=str(data["fn"]))
        except KeyError as exc:
            raise ValueError(f"Resource descriptor is missing {exc.args[0]!r}") from exc


@dataclass(frozen=True, slots=True)
class ArchiveEntry:
    """One member of an uploaded archive, as reported by the listing tool."""

    name: str
    size: int
    is_symlink: bool = False


@dataclass(frozen=True, slots=True)
class IntakeResult:
    """An assembled, validated application directory."""

    path: Path
    uncompressed_size: int
    """Uncompressed size of the uploaded archive's content."""

    resource_size: int
    """Combined size of the files materialised from the resource pool."""

    @property
    def total_size(self) -> int:
        return self.uncompressed_size + self.resource_size


@dataclass(frozen=True, slots=True)
class SecurityEvent:
    """Immutable record of a rejected intake.

    Deliberately excludes filenames, paths, and member names so that
    forwarding an event to a third-party service does not leak
    confidential filesystem information.
    """

    event_type: str
    """Type identifier, e.g. ``"sandbox_escape"``, ``"quota_exceeded"``."""

    archive_hash: str
    """First 16 hex characters of the SHA-256 of the upload."""

    timestamp: float
    """``time.time()`` at the moment of detection."""
