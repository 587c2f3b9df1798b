"""The Repackager: turn a finished application directory into an archive."""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "Repackager",
    "repack_app",
)

import logging
import os
import subprocess
from pathlib import Path

from safeintake._archive import run_tool
from safeintake._config import IntakeConfig
from safeintake._deferred import WorkerPool, defer
from safeintake._exceptions import PackagingError
from safeintake._guard import is_within
from safeintake._types import ArchiveFormat

log = logging.getLogger("safeintake")


class Repackager:
    """Creates ``app.zip`` / ``app.tar.gz`` from an application directory.

    The tools are always pointed at ``.`` rather than a shell glob, so
    dot-files and dot-directories (``.git``, ``.htaccess``) are included.
    """

    def __init__(
        self,
        *,
        zip_bin: str = "zip",
        tar_bin: str = "tar",
        timeout: float | None = None,
        pool: WorkerPool | None = None,
    ) -> None:
        self._zip_bin = zip_bin
        self._tar_bin = tar_bin
        self._timeout = timeout
        self._defer = pool.defer if pool is not None else defer

    @classmethod
    def from_config(
        cls, config: IntakeConfig, pool: WorkerPool | None = None
    ) -> Repackager:
        return cls(
            zip_bin=config.zip_bin,
            tar_bin=config.tar_bin,
            timeout=config.tool_timeout,
            pool=pool,
        )

    async def repack(
        self,
        app_dir: str | os.PathLike[str],
        output_dir: str | os.PathLike[str],
        fmt: ArchiveFormat = ArchiveFormat.ZIP,
    ) -> Path:
        """Archive everything in *app_dir* into *output_dir*.

        Returns the path of the created archive.  Raises
        ``PackagingError`` if *app_dir* is missing or the tool fails.
        """
        return await self._defer(
            self._repack_sync, Path(app_dir), Path(output_dir), ArchiveFormat(fmt)
        )

    def _repack_sync(self, app_dir: Path, output_dir: Path, fmt: ArchiveFormat) -> Path:
        if not app_dir.is_dir():
            raise PackagingError(f"Application directory does not exist: {str(app_dir)!r}")

        output = output_dir.resolve() / fmt.filename
        if is_within(output, app_dir.resolve()):
            raise PackagingError(
                f"Output directory {str(output_dir)!r} is inside the application"
                f" directory {str(app_dir)!r}"
            )
        try:
            # zip(1) would otherwise update a stale archive in place.
            output.unlink(missing_ok=True)
        except OSError as exc:
            raise PackagingError(f"Cannot replace {str(output)!r}: {exc}") from exc

        match fmt:
            case ArchiveFormat.ZIP:
                argv = [self._zip_bin, "-q", "-y", "-r", str(output), "."]
            case ArchiveFormat.TAR:
                argv = [self._tar_bin, "-czf", str(output), "-C", str(app_dir), "."]

        try:
            proc = run_tool(argv, cwd=app_dir, timeout=self._timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise PackagingError(f"Failed packaging {str(app_dir)!r}: {exc}") from exc
        if proc.returncode != 0:
            raise PackagingError(
                f"Failed packaging {str(app_dir)!r} (exit status {proc.returncode})",
                proc.stderr or proc.stdout,
            )

        log.debug("Repacked application into %s", output)
        return output


async def repack_app(
    app_dir: str | os.PathLike[str],
    output_dir: str | os.PathLike[str],
    fmt: ArchiveFormat = ArchiveFormat.ZIP,
) -> Path:
    """Repack *app_dir* with a ``Repackager`` built from the environment."""
    return await Repackager.from_config(IntakeConfig.from_env()).repack(
        app_dir, output_dir, fmt
    )
