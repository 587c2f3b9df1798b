"""PackageIntake: compose the Guard, Extractor, quota and resource pool.

One ``PackageIntake`` handles one upload: it sizes the archive, enforces
the quota, unpacks into a fresh sandbox, materialises resource-pool files
and hands the assembled directory to the caller.  Nothing partial is ever
returned; on failure the sandbox is removed and the error re-raised.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "PackageIntake",
    "intake_package",
)

import asyncio
import concurrent.futures
import hashlib
import logging
import os
import shutil
import tempfile
import time
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path

from safeintake._archive import ArchiveExtractor
from safeintake._config import IntakeConfig
from safeintake._deferred import WorkerPool, get_default_pool
from safeintake._exceptions import EscapeError, PathConflictError, QuotaExceededError
from safeintake._guard import create_skeleton
from safeintake._pool import ResourcePool
from safeintake._quota import check_size
from safeintake._repack import Repackager
from safeintake._types import (
    ArchiveEntry,
    ArchiveFormat,
    IntakeResult,
    ResourceDescriptor,
    SecurityEvent,
)

log = logging.getLogger("safeintake.security")
progress_log = logging.getLogger("safeintake")

_EVENT_TYPES: dict[type[Exception], str] = {
    EscapeError: "sandbox_escape",
    QuotaExceededError: "quota_exceeded",
}


def compute_archive_hash(path: Path) -> str:
    """Return the first 16 hex chars of the SHA-256 of the file at *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        while True:
            chunk = fh.read(65536)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()[:16]


def _discard_abandoned_sandbox(job: concurrent.futures.Future[Path]) -> None:
    """Remove the sandbox of an assembly job whose caller stopped waiting."""
    if job.cancelled() or job.exception() is not None:
        return
    shutil.rmtree(job.result(), ignore_errors=True)
    progress_log.debug("Removed abandoned intake sandbox %s", job.result())


def _as_descriptor(resource: ResourceDescriptor | Mapping[str, str]) -> ResourceDescriptor:
    if isinstance(resource, ResourceDescriptor):
        return resource
    return ResourceDescriptor.from_mapping(resource)


class PackageIntake:
    """Turns one upload into a validated application directory.

    :param archive: Path to the uploaded zip file, or ``None`` when every
        file of the application comes from the resource pool.
    :param resources: Resource descriptors (or ``{"sha1", "fn"}`` mappings)
        naming pool content to place in the application.
    :param pool: The resource pool to size and copy resources from.
    :param config: Intake settings.  Defaults to ``IntakeConfig.from_env()``.
    :param worker_pool: Worker pool for blocking work.  Defaults to the
        process-wide pool.
    :param on_security_event: Optional callback invoked when the intake is
        rejected for a sandbox escape or an oversized package.
    """

    def __init__(
        self,
        archive: str | os.PathLike[str] | None,
        resources: Iterable[ResourceDescriptor | Mapping[str, str]] = (),
        *,
        pool: ResourcePool,
        config: IntakeConfig | None = None,
        worker_pool: WorkerPool | None = None,
        on_security_event: Callable[[SecurityEvent], None] | None = None,
    ) -> None:
        self._archive = Path(archive) if archive is not None else None
        self._resources = [_as_descriptor(r) for r in resources]
        self._pool = pool
        self._config = config if config is not None else IntakeConfig.from_env()
        self._worker_pool = worker_pool if worker_pool is not None else get_default_pool()
        self._on_security_event = on_security_event
        self._extractor = ArchiveExtractor.from_config(self._config, self._worker_pool)
        self._repackager = Repackager.from_config(self._config, self._worker_pool)

    @property
    def resources(self) -> list[ResourceDescriptor]:
        return list(self._resources)

    # ---- pipeline steps ----------------------------------------------------

    async def unpacked_size(self) -> int:
        """Return the uncompressed size of the upload (0 without one)."""
        return sum(entry.size for entry in await self._list_upload())

    async def check_size(self) -> int:
        """Size the upload and its resources and enforce the package budget.

        Returns the total size.  Raises ``ExtractionError`` for an
        unlistable upload, ``NotFoundError`` for an unknown resource and
        ``QuotaExceededError`` when the package is too large.
        """
        return await self._enforce_quota(await self.unpacked_size())

    async def run(self) -> IntakeResult:
        """Run the whole intake and return the assembled directory."""
        try:
            return await self._run()
        except (EscapeError, QuotaExceededError) as exc:
            await self._fire_event(exc)
            raise

    async def to_archive(
        self,
        output_dir: str | os.PathLike[str],
        fmt: ArchiveFormat = ArchiveFormat.ZIP,
    ) -> Path:
        """Run the intake, repack the result into *output_dir*, and clean up.

        Returns the path of the staged archive.
        """
        result = await self.run()
        try:
            return await self._repackager.repack(result.path, output_dir, fmt)
        finally:
            await self._worker_pool.defer(shutil.rmtree, result.path, ignore_errors=True)

    # ---- internal ----------------------------------------------------------

    async def _enforce_quota(self, upload_size: int) -> int:
        return await self._worker_pool.defer(
            check_size,
            upload_size,
            self._resources,
            self._pool,
            self._config.max_package_size,
        )

    async def _run(self) -> IntakeResult:
        # Cheap rejection first: nothing touches the disk until the
        # package is known to fit.
        entries = await self._list_upload()
        upload_size = sum(entry.size for entry in entries)
        total = await self._enforce_quota(upload_size)

        job = self._worker_pool.submit(self._assemble_sync, entries)
        try:
            sandbox = await asyncio.wrap_future(job)
        except asyncio.CancelledError:
            # The job may still be running; it owns the sandbox until done.
            job.add_done_callback(_discard_abandoned_sandbox)
            raise

        progress_log.debug(
            "Intake complete: %d resources, %d bytes", len(self._resources), total
        )
        return IntakeResult(
            path=sandbox,
            uncompressed_size=upload_size,
            resource_size=total - upload_size,
        )

    async def _list_upload(self) -> list[ArchiveEntry]:
        if self._archive is None:
            return []
        return await self._extractor.list_entries(self._archive)

    def _assemble_sync(self, entries: list[ArchiveEntry]) -> Path:
        """Create the sandbox, unpack into it and add the pool files.

        Runs as one worker job.  The sandbox is removed before any error
        propagates.
        """
        sandbox = Path(tempfile.mkdtemp(prefix="safeintake-", dir=self._config.staging_dir))
        progress_log.debug("Intake sandbox created at %s", sandbox)
        try:
            if self._archive is not None:
                self._extractor.unpack_sync(sandbox, self._archive, entries)
            self._materialize_resources(sandbox)
        except Exception:
            shutil.rmtree(sandbox, ignore_errors=True)
            raise
        return sandbox

    def _materialize_resources(self, sandbox: Path) -> None:
        for resource in self._resources:
            destination = create_skeleton(sandbox, resource.path)
            if destination.is_dir():
                raise PathConflictError(
                    f"Resource destination is a directory: {resource.path!r}"
                )
            self._pool.materialize(resource.sha1, destination)

    async def _fire_event(self, exc: Exception) -> None:
        """Invoke the on_security_event callback if configured."""
        if self._on_security_event is None:
            return

        archive_hash = ""
        if self._archive is not None:
            try:
                archive_hash = await self._worker_pool.defer(
                    compute_archive_hash, self._archive
                )
            except OSError:
                log.warning("Could not hash upload for security event")

        event = SecurityEvent(
            event_type=_EVENT_TYPES.get(type(exc), "security_violation"),
            archive_hash=archive_hash,
            timestamp=time.time(),
        )
        try:
            self._on_security_event(event)
        except Exception:
            log.exception("on_security_event callback raised an exception")


async def intake_package(
    archive: str | os.PathLike[str] | None,
    resources: Iterable[ResourceDescriptor | Mapping[str, str]] = (),
    *,
    pool: ResourcePool,
    **kwargs: object,
) -> IntakeResult:
    """Run a ``PackageIntake`` with the given arguments.

    All keyword arguments are forwarded to the ``PackageIntake`` constructor.
    """
    return await PackageIntake(archive, resources, pool=pool, **kwargs).run()  # type: ignore[arg-type]
