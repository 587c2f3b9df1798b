"""The Guard: sandboxed path resolution and directory-skeleton creation.

Every path derived from untrusted input (archive member names, resource
destinations) is canonicalised against the sandbox root before a single
byte or directory reaches the filesystem.  Canonicalisation follows
symlinks anywhere along the path, so an intermediate link cannot redirect
the remainder of the path outside the root.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "create_skeleton",
    "is_within",
    "resolve_path",
)

import logging
import os
import unicodedata
from pathlib import Path

from safeintake._exceptions import EscapeError, PathConflictError

log = logging.getLogger("safeintake.security")

# Maximum path length we accept (conservative cross-platform limit).
MAX_PATH = 4096


def is_within(path: Path, base: Path) -> bool:
    """Return True if canonical *path* equals or descends from canonical *base*."""
    return path == base or str(path).startswith(os.path.join(str(base), ""))


def resolve_path(
    sandbox_root: str | os.PathLike[str],
    relative_path: str | os.PathLike[str],
) -> Path:
    """Resolve *relative_path* against *sandbox_root* and return a safe ``Path``.

    Pipeline (in order):

    1.  Unicode NFC normalisation.
    2.  Reject null bytes and over-length names.
    3.  Reject absolute paths (``/``, ``\\``, drive letter).
    4.  Canonicalise, following every symlink that exists along the path.
        Components that do not exist yet are normalised lexically on top
        of the deepest existing ancestor.
    5.  Reject the result unless it is the root or a descendant of it.

    An empty path (or ``.``) resolves to the root itself.

    Raises ``EscapeError`` for any violation.
    """
    base = Path(sandbox_root).resolve()

    # 1. NFC normalise.
    normalized = unicodedata.normalize("NFC", os.fspath(relative_path))

    # 2. Null bytes and length.
    if "\x00" in normalized:
        raise EscapeError(f"Null byte in path: {normalized[:256]!r}")

    if len(normalized) > MAX_PATH:
        raise EscapeError(f"Path length ({len(normalized)}) exceeds MAX_PATH ({MAX_PATH})")

    # 3. Absolute paths never join onto the root.
    _norm = normalized.replace("\\", "/")

    if _norm.startswith("/"):
        raise EscapeError(f"Absolute path points outside the sandbox: {normalized!r}")

    if len(_norm) >= 3 and _norm[1] == ":" and _norm[2] == "/" and _norm[0].isalpha():
        raise EscapeError(
            f"Absolute Windows path points outside the sandbox: {normalized!r}"
        )

    # 4. Canonicalise.
    try:
        real = (base / normalized).resolve()
    except (OSError, RuntimeError) as exc:
        # Symlink loops surface as RuntimeError before 3.13, OSError after.
        raise EscapeError(f"Cannot resolve path {normalized!r}: {exc}") from exc

    # A canonical path holds no symlinks; one left in place is a loop.
    if any(p.is_symlink() for p in (real, *real.parents)):
        raise EscapeError(f"Cannot resolve path {normalized!r}: symlink loop")

    # 5. Containment.
    if not is_within(real, base):
        log.warning("Rejected path that points outside the sandbox root")
        raise EscapeError(f"Path points outside the sandbox root: {normalized!r}")

    return real


def create_skeleton(
    sandbox_root: str | os.PathLike[str],
    relative_path: str | os.PathLike[str],
) -> Path:
    """Create every missing ancestor directory of *relative_path*.

    The final path component itself is never created; that is left to
    whoever writes the file.  Returns the resolved destination path.

    The whole path is validated before any directory is made, so an
    escaping path raises ``EscapeError`` with nothing created.  A regular
    file occupying one of the ancestor segments raises
    ``PathConflictError`` and is left untouched.  Calling this twice with
    the same arguments is harmless.
    """
    base = Path(sandbox_root).resolve()
    dest = resolve_path(base, relative_path)

    if dest == base:
        return dest

    if not base.is_dir():
        raise PathConflictError(f"Sandbox root is not a directory: {str(base)!r}")

    # Walk down from the root one segment at a time; ``mkdir`` raises
    # FileExistsError when a non-directory already sits on a segment.
    current = base
    for part in dest.parent.relative_to(base).parts:
        current = current / part
        try:
            current.mkdir(exist_ok=True)
        except (FileExistsError, NotADirectoryError) as exc:
            raise PathConflictError(
                f"Cannot create directory over an existing file: {os.fspath(relative_path)!r}"
            ) from exc

    return dest
