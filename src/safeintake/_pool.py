"""Content-addressable resource pool.

The pool indexes file blobs by SHA-1 so clients can skip re-uploading
files the platform already holds.  ``ResourcePool`` is the interface the
intake pipeline depends on; ``FilesystemPool`` is a reference
implementation that shards blobs into ``<dir>/<aa>/<bb>/<sha1>``.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "FilesystemPool",
    "ResourcePool",
    "sha1_file",
)

import contextlib
import hashlib
import os
import random
import re
import shutil
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from safeintake._exceptions import NotFoundError
from safeintake._types import ResourceDescriptor

# Chunk size for hashing.
_CHUNK_SIZE = 65536

_SHA1_RE = re.compile(r"^[0-9a-f]{40}$")


class ResourcePool(Protocol):
    """What the intake pipeline needs from a resource pool.

    Implementations must tolerate concurrent readers.
    """

    def size_of(self, sha1: str) -> int:
        """Return the size in bytes of the blob, or raise ``NotFoundError``."""
        ...

    def materialize(self, sha1: str, destination: str | os.PathLike[str]) -> None:
        """Copy the blob to *destination*, or raise ``NotFoundError``.

        *destination* must already have been validated by the path guard.
        """
        ...


def sha1_file(path: str | os.PathLike[str]) -> str:
    """Return the hex SHA-1 digest of the file at *path*."""
    h = hashlib.sha1()
    with open(path, "rb") as fh:
        while True:
            chunk = fh.read(_CHUNK_SIZE)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


class FilesystemPool:
    """Resource pool backed by a local directory.

    :param directory: Root directory of the pool.  Created if missing.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, sha1: str) -> Path:
        """Return where the blob for *sha1* lives.

        The hash is used as a path component, so anything other than
        40 lowercase hex characters is refused outright.
        """
        if not isinstance(sha1, str) or not _SHA1_RE.match(sha1):
            raise NotFoundError(str(sha1)[:64], "is not a valid SHA-1 digest")
        return self._directory / sha1[0:2] / sha1[2:4] / sha1

    def contains(self, sha1: str) -> bool:
        try:
            return self.path_for(sha1).is_file()
        except NotFoundError:
            return False

    def size_of(self, sha1: str) -> int:
        try:
            return self.path_for(sha1).stat().st_size
        except FileNotFoundError as exc:
            raise NotFoundError(sha1) from exc

    def materialize(self, sha1: str, destination: str | os.PathLike[str]) -> None:
        try:
            shutil.copyfile(self.path_for(sha1), destination)
        except FileNotFoundError as exc:
            if not self.contains(sha1):
                raise NotFoundError(sha1) from exc
            raise

    def add_path(self, path: str | os.PathLike[str]) -> str:
        """Add the file at *path* to the pool and return its SHA-1.

        The blob is written to a temporary name and renamed into place,
        so concurrent readers never observe a partial file.
        """
        sha1 = sha1_file(path)
        target = self.path_for(sha1)
        if target.is_file():
            return sha1

        target.parent.mkdir(parents=True, exist_ok=True)
        suffix = f".safeintake_tmp_{os.getpid()}_{random.randint(0, 999999):06d}"
        temp_path = target.with_name(target.name + suffix)
        try:
            shutil.copyfile(path, temp_path)
            os.replace(temp_path, target)
        except Exception:
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)
            raise
        return sha1

    def match_resources(
        self, descriptors: Iterable[ResourceDescriptor]
    ) -> list[ResourceDescriptor]:
        """Return the subset of *descriptors* whose content the pool holds."""
        return [d for d in descriptors if self.contains(d.sha1)]
