"""Exception hierarchy for safeintake.

All exceptions inherit from ``IntakeError`` so callers can catch the
package's entire error surface with a single ``except`` clause, or branch
on the ``kind`` attribute of a caught instance.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"

# Maximum length of captured tool stderr kept on an exception.
MAX_STDERR = 1024 * 5
TRUNC_PREFIX = "[TRUNC]"


def _truncate(stderr: str | None) -> str | None:
    if stderr is None:
        return None
    stderr = stderr.strip()
    if len(stderr) > MAX_STDERR:
        return TRUNC_PREFIX + stderr[-MAX_STDERR:]
    return stderr


class IntakeError(Exception):
    """Base exception for all safeintake failures."""

    kind: str = "intake"
    """Stable identifier of the failure class."""

    public_message: str = "invalid package"
    """Message safe to show to the uploader."""


class EscapeError(IntakeError):
    """A path resolves outside the sandbox root.

    Raised for ``..`` traversal, absolute paths, null bytes and symlinks
    (on disk or inside an archive) whose target leaves the root.
    """

    kind = "escape"


class PathConflictError(IntakeError):
    """A plain file occupies a path segment where a directory is needed,
    or a directory occupies a resource destination.
    """

    kind = "conflict"


class ExtractionError(IntakeError):
    """The uploaded archive is missing, corrupt or unlistable."""

    kind = "extraction"

    def __init__(self, message: str, stderr: str | None = None) -> None:
        self.stderr = _truncate(stderr)
        super().__init__(f"{message}: {self.stderr!r}" if self.stderr else message)


class QuotaExceededError(IntakeError):
    """The package's total uncompressed size exceeds the budget."""

    kind = "quota"
    public_message = "package size exceeds the limit"

    def __init__(self, total: int, limit: int) -> None:
        self.total = total
        self.limit = limit
        super().__init__(
            f"Package size ({total} bytes) exceeds the maximum of {limit} bytes"
        )


class PackagingError(IntakeError):
    """The archiving tool failed while repacking an application."""

    kind = "packaging"
    public_message = "internal error"

    def __init__(self, message: str, stderr: str | None = None) -> None:
        self.stderr = _truncate(stderr)
        super().__init__(f"{message}: {self.stderr!r}" if self.stderr else message)


class NotFoundError(IntakeError):
    """A content hash is unknown to the resource pool."""

    kind = "not_found"
    public_message = "referenced file not found"

    def __init__(self, sha1: str, reason: str = "not found in resource pool") -> None:
        self.sha1 = sha1
        super().__init__(f"Resource {sha1!r} {reason}")
