"""The Extractor: listing and unpacking uploads with the external ``unzip``.

The external tool is faster and more complete than the standard library
``zipfile`` module, but its own path sanitisation is not something a
sandbox can rely on.  Every member name is therefore run through the
Guard before extraction, and the extracted tree is checked afterwards for
symlinks that resolve outside the sandbox root.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "ArchiveExtractor",
    "parse_listing",
    "run_tool",
)

import itertools
import logging
import os
import re
import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path, PurePosixPath

from safeintake._config import IntakeConfig
from safeintake._deferred import WorkerPool, defer
from safeintake._exceptions import EscapeError, ExtractionError
from safeintake._guard import resolve_path
from safeintake._types import ArchiveEntry

log = logging.getLogger("safeintake.security")

# One member line of ``unzip -Z -s`` (zipinfo short format):
# mode, version, host OS, size, text/extra flags, method, date, time, name.
_LISTING_RE = re.compile(
    r"^(?P<mode>\S+)\s+\d+\.\d+\s+\S+\s+(?P<size>\d+)"
    r"\s+\S+\s+\S+\s+\S+\s+\S+\s(?P<name>.+)$"
)


def run_tool(
    argv: Sequence[str],
    *,
    cwd: str | os.PathLike[str] | None = None,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run an external archive tool and capture its output.

    ``argv[0]`` is looked up on ``PATH``.  Raises ``FileNotFoundError``
    if it cannot be found, and lets ``OSError`` and
    ``subprocess.TimeoutExpired`` propagate.  A non-zero exit status is
    reported through the returned ``returncode``, not raised.
    """
    executable = shutil.which(argv[0])
    if executable is None:
        raise FileNotFoundError(f"External {argv[0]!r} executable not found")
    return subprocess.run(
        [executable, *argv[1:]],
        cwd=cwd,
        stdin=subprocess.DEVNULL,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )


def parse_listing(output: str) -> list[ArchiveEntry]:
    """Parse zipinfo short-format output into ``ArchiveEntry`` records.

    Header and totals lines do not match the member pattern and are
    skipped.
    """
    entries: list[ArchiveEntry] = []
    for line in output.splitlines():
        match = _LISTING_RE.match(line)
        if match is None:
            continue
        entries.append(
            ArchiveEntry(
                name=match["name"],
                size=int(match["size"]),
                is_symlink=match["mode"].startswith("l"),
            )
        )
    return entries


class ArchiveExtractor:
    """Lists and unpacks uploaded zip archives.

    All tool invocations and tree walks run through ``defer``, so the
    public methods are coroutines.

    :param unzip_bin: Name or path of the ``unzip`` executable.
    :param timeout: Seconds a single tool invocation may run.
    :param pool: Worker pool to defer to.  Defaults to the process-wide
        pool.
    """

    def __init__(
        self,
        *,
        unzip_bin: str = "unzip",
        timeout: float | None = None,
        pool: WorkerPool | None = None,
    ) -> None:
        self._unzip_bin = unzip_bin
        self._timeout = timeout
        self._defer = pool.defer if pool is not None else defer

    @classmethod
    def from_config(
        cls, config: IntakeConfig, pool: WorkerPool | None = None
    ) -> ArchiveExtractor:
        return cls(unzip_bin=config.unzip_bin, timeout=config.tool_timeout, pool=pool)

    # ---- public API --------------------------------------------------------

    async def list_entries(self, archive: str | os.PathLike[str]) -> list[ArchiveEntry]:
        """Return the members of *archive* without extracting anything.

        Raises ``ExtractionError`` ("Failed listing ...") if the archive
        is missing, empty, corrupt or the tool cannot be run.
        """
        return await self._defer(self._list_entries_sync, Path(archive))

    async def compute_uncompressed_size(self, archive: str | os.PathLike[str]) -> int:
        """Return the sum of the declared uncompressed sizes of all members."""
        entries = await self.list_entries(archive)
        return sum(entry.size for entry in entries)

    async def unpack(
        self,
        sandbox_root: str | os.PathLike[str],
        archive: str | os.PathLike[str],
        entries: list[ArchiveEntry] | None = None,
    ) -> list[ArchiveEntry]:
        """Extract *archive* into *sandbox_root* and return its members.

        *entries* is the listing of *archive* when the caller already has
        one; otherwise the archive is listed first.

        Raises ``ExtractionError`` if the tool fails and ``EscapeError``
        if any member would land, or after extraction resolves, outside
        the sandbox root.
        """
        if entries is None:
            entries = await self.list_entries(archive)
        await self._defer(self.unpack_sync, sandbox_root, archive, entries)
        return entries

    def unpack_sync(
        self,
        sandbox_root: str | os.PathLike[str],
        archive: str | os.PathLike[str],
        entries: list[ArchiveEntry],
    ) -> None:
        """Blocking body of ``unpack``, for callers already on a worker."""
        root = Path(sandbox_root).resolve()
        archive_path = Path(archive)
        self._check_entries(root, entries)
        try:
            proc = run_tool(
                [self._unzip_bin, "-q", "-o", str(archive_path), "-d", str(root)],
                timeout=self._timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ExtractionError(f"Failed extracting {archive_path.name}: {exc}") from exc
        if proc.returncode != 0:
            raise ExtractionError(
                f"Failed extracting {archive_path.name} (exit status {proc.returncode})",
                proc.stderr or proc.stdout,
            )
        self._verify_tree(root)

    @staticmethod
    def _check_entries(root: Path, entries: list[ArchiveEntry]) -> None:
        """Reject traversal names and members stored beneath a symlink member.

        A member below a symlink member would be written through the link
        once it exists, wherever the link points.
        """
        links = {entry.name.rstrip("/") for entry in entries if entry.is_symlink}
        for entry in entries:
            resolve_path(root, entry.name)
            if links and any(
                str(parent) in links for parent in PurePosixPath(entry.name).parents
            ):
                log.warning("Rejected archive member stored beneath a symlink member")
                raise EscapeError(
                    f"Archive member is stored beneath a symlink: {entry.name!r}"
                )

    @staticmethod
    def _verify_tree(root: Path) -> None:
        """Raise ``EscapeError`` if any symlink under *root* leaves it."""
        for dirpath, dirnames, filenames in os.walk(root):
            for name in itertools.chain(dirnames, filenames):
                path = Path(dirpath) / name
                if path.is_symlink():
                    resolve_path(root, path.relative_to(root))
