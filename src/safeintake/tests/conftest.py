"""Archive, pool and configuration fixtures for safeintake tests.

Every archive fixture is a real, crafted zip file generated
programmatically with Python's ``zipfile`` module.  No mocks, no stubs.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"

import shutil
import stat
import zipfile

import pytest

from safeintake import FilesystemPool, IntakeConfig, WorkerPool

# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _add_regular(zf: zipfile.ZipFile, name: str, content: bytes) -> None:
    info = zipfile.ZipInfo(name, date_time=(2024, 1, 1, 0, 0, 0))
    info.external_attr = (stat.S_IFREG | 0o644) << 16
    zf.writestr(info, content)


def _add_symlink(zf: zipfile.ZipFile, name: str, target: str) -> None:
    info = zipfile.ZipInfo(name, date_time=(2024, 1, 1, 0, 0, 0))
    info.create_system = 3  # Unix, so unzip restores the link
    info.external_attr = (stat.S_IFLNK | 0o777) << 16
    zf.writestr(info, target)


def write_zip(path, members: dict[str, bytes], symlinks: dict[str, str] | None = None):
    """Write a zip at *path* with regular *members* and *symlinks*."""
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in members.items():
            _add_regular(zf, name, content)
        for name, target in (symlinks or {}).items():
            _add_symlink(zf, name, target)
    return path


# ---------------------------------------------------------------------------
# factories
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_zip(tmp_path):
    """Factory: ``make_zip(file_count, file_size=1024)`` -> (path, unzipped size)."""
    counter = iter(range(1_000_000))

    def build(file_count: int, file_size: int = 1024):
        path = tmp_path / f"upload_{next(counter)}.zip"
        members = {f"ziptest_{ii}": b"A" * file_size for ii in range(file_count)}
        write_zip(path, members)
        return path, file_count * file_size

    return build


@pytest.fixture()
def pool(tmp_path):
    """An empty filesystem resource pool."""
    return FilesystemPool(tmp_path / "pool")


@pytest.fixture()
def pool_blob(pool, tmp_path):
    """Factory: add a file of ``size`` bytes of *fill* to the pool, return its SHA-1."""
    counter = iter(range(1_000_000))

    def add(size: int = 1024, fill: bytes = b"A") -> str:
        src = tmp_path / f"blob_{next(counter)}"
        src.write_bytes(fill * size)
        return pool.add_path(src)

    return add


@pytest.fixture()
def worker_pool():
    pool = WorkerPool(4)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture()
def staging_dir(tmp_path):
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture()
def config(staging_dir):
    return IntakeConfig(max_package_size=1024**2, staging_dir=str(staging_dir))


@pytest.fixture()
def tool_wrapper(tmp_path):
    """Factory: write an executable shell script with *body*, return its path.

    Stands in for an archive tool, e.g. one that hangs or logs its calls.
    """
    if shutil.which("sh") is None:
        pytest.skip("sh not available")
    counter = iter(range(1_000_000))

    def build(body: str) -> str:
        path = tmp_path / f"tool_{next(counter)}.sh"
        path.write_text(f"#!/bin/sh\n{body}\n")
        path.chmod(0o755)
        return str(path)

    return build


@pytest.fixture()
def sandbox(tmp_path):
    path = tmp_path / "sandbox"
    path.mkdir()
    return path


# ---------------------------------------------------------------------------
# crafted archives
# ---------------------------------------------------------------------------


@pytest.fixture()
def legitimate_zip(tmp_path):
    """A well-formed application with nested directories and a dot-file."""
    return write_zip(
        tmp_path / "legit.zip",
        {
            "index.php": b"<?php echo 'hi';\n",
            ".htaccess": b"Options -Indexes\n",
            "lib/util.php": b"<?php\n",
            "lib/vendor/pkg.php": b"<?php\n",
        },
    )


@pytest.fixture()
def corrupt_zip(tmp_path):
    """Bytes that are not a zip archive at all."""
    path = tmp_path / "corrupt.zip"
    path.write_bytes(b"this is not a zip archive\n" * 8)
    return path


@pytest.fixture()
def empty_upload(tmp_path):
    """A zero-byte upload."""
    path = tmp_path / "empty.zip"
    path.write_bytes(b"")
    return path


@pytest.fixture()
def traversal_zip(tmp_path):
    """Archive with a relative path traversal entry ``../evil.txt``."""
    return write_zip(
        tmp_path / "traversal.zip",
        {"ok.txt": b"fine\n", "../evil.txt": b"escaped\n"},
    )


@pytest.fixture()
def absolute_zip(tmp_path):
    """Archive with an absolute member name."""
    return write_zip(tmp_path / "absolute.zip", {"/tmp/evil.txt": b"escaped\n"})


@pytest.fixture()
def symlink_escape_zip(tmp_path):
    """Archive with a symlink member pointing outside the extraction root."""
    outside = tmp_path / "outside"
    outside.mkdir(exist_ok=True)
    return write_zip(
        tmp_path / "symlink_escape.zip",
        {"readme.txt": b"safe content\n"},
        symlinks={"evil": str(outside)},
    )


@pytest.fixture()
def symlink_nested_zip(tmp_path):
    """Archive writing a file through its own escaping symlink member."""
    outside = tmp_path / "outside"
    outside.mkdir(exist_ok=True)
    return write_zip(
        tmp_path / "symlink_nested.zip",
        {"link/pwned.txt": b"escaped\n"},
        symlinks={"link": str(outside)},
    )


@pytest.fixture()
def symlink_internal_zip(tmp_path):
    """Archive with a symlink member that stays inside the root."""
    return write_zip(
        tmp_path / "symlink_internal.zip",
        {"target.txt": b"target\n"},
        symlinks={"alias.txt": "target.txt"},
    )
