"""safeintake: sandboxed application package intake for Python.

Unpacks uploads without letting them escape the sandbox, enforces a size
budget, and fills in content from a content-addressable resource pool.
Zero runtime dependencies.  Python 3.10+.
"""

from __future__ import annotations

__title__ = "safeintake"
__version__ = "0.1"
__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"

from safeintake._archive import ArchiveExtractor
from safeintake._config import IntakeConfig
from safeintake._core import PackageIntake, intake_package
from safeintake._deferred import (
    WorkerPool,
    configure_default_pool,
    defer,
    get_default_pool,
    shutdown_default_pool,
)
from safeintake._exceptions import (
    EscapeError,
    ExtractionError,
    IntakeError,
    NotFoundError,
    PackagingError,
    PathConflictError,
    QuotaExceededError,
)
from safeintake._guard import create_skeleton, resolve_path
from safeintake._pool import FilesystemPool, ResourcePool
from safeintake._quota import check_size
from safeintake._repack import Repackager, repack_app
from safeintake._types import (
    ArchiveEntry,
    ArchiveFormat,
    IntakeResult,
    ResourceDescriptor,
    SecurityEvent,
)

__all__ = [
    # Core
    "PackageIntake",
    "intake_package",
    "IntakeConfig",
    # Components
    "resolve_path",
    "create_skeleton",
    "ArchiveExtractor",
    "check_size",
    "Repackager",
    "repack_app",
    # Deferred execution
    "defer",
    "WorkerPool",
    "get_default_pool",
    "configure_default_pool",
    "shutdown_default_pool",
    # Resource pool
    "ResourcePool",
    "FilesystemPool",
    # Exceptions
    "IntakeError",
    "EscapeError",
    "PathConflictError",
    "ExtractionError",
    "QuotaExceededError",
    "PackagingError",
    "NotFoundError",
    # Types & events
    "ArchiveEntry",
    "ArchiveFormat",
    "IntakeResult",
    "ResourceDescriptor",
    "SecurityEvent",
]
