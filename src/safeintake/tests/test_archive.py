"""Tests for the Extractor (listing, sizing and unpacking uploads)."""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"

import shutil

import pytest

from safeintake import ArchiveEntry, ArchiveExtractor, EscapeError, ExtractionError
from safeintake._archive import parse_listing

requires_unzip = pytest.mark.skipif(
    shutil.which("unzip") is None, reason="unzip executable not available"
)

ZIPINFO_OUTPUT = """\
Archive:  /tmp/test.zip
Zip file size: 2468 bytes, number of entries: 4
-rw-r--r--  3.0 unx     1024 tx defN 24-Jan-01 00:00 tmp/ziptest_0
drwxr-xr-x  3.0 unx        0 bx stor 24-Jan-01 00:00 lib/
lrwxrwxrwx  3.0 unx        4 bx stor 24-Jan-01 00:00 alias.txt
-rw-r--r--  3.0 unx      512 tx defN 24-Jan-01 00:00 name with spaces.txt
4 files, 1540 bytes uncompressed, 900 bytes compressed:  41.6%
"""


class TestParseListing:
    """zipinfo output parsing."""

    def test_members_parsed(self):
        entries = parse_listing(ZIPINFO_OUTPUT)
        assert entries == [
            ArchiveEntry("tmp/ziptest_0", 1024),
            ArchiveEntry("lib/", 0),
            ArchiveEntry("alias.txt", 4, is_symlink=True),
            ArchiveEntry("name with spaces.txt", 512),
        ]

    def test_header_and_totals_skipped(self):
        assert parse_listing("Archive:  x.zip\n0 files, 0 bytes uncompressed\n") == []


@requires_unzip
class TestComputeUncompressedSize:
    """Sizing an upload without extracting it."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("file_count", [1, 5])
    async def test_total_size(self, make_zip, worker_pool, file_count):
        path, unzipped_size = make_zip(file_count)
        extractor = ArchiveExtractor(pool=worker_pool)
        assert await extractor.compute_uncompressed_size(path) == unzipped_size

    @pytest.mark.asyncio
    async def test_lists_entries(self, legitimate_zip, worker_pool):
        entries = await ArchiveExtractor(pool=worker_pool).list_entries(legitimate_zip)
        names = {entry.name for entry in entries}
        assert {"index.php", ".htaccess", "lib/util.php", "lib/vendor/pkg.php"} <= names

    @pytest.mark.asyncio
    async def test_corrupt_archive(self, corrupt_zip, worker_pool):
        with pytest.raises(ExtractionError, match="Failed listing"):
            await ArchiveExtractor(pool=worker_pool).compute_uncompressed_size(corrupt_zip)

    @pytest.mark.asyncio
    async def test_empty_upload(self, empty_upload, worker_pool):
        with pytest.raises(ExtractionError, match="Failed listing"):
            await ArchiveExtractor(pool=worker_pool).compute_uncompressed_size(empty_upload)

    @pytest.mark.asyncio
    async def test_missing_upload(self, tmp_path, worker_pool):
        with pytest.raises(ExtractionError, match="Failed listing"):
            await ArchiveExtractor(pool=worker_pool).compute_uncompressed_size(
                tmp_path / "nope.zip"
            )

    @pytest.mark.asyncio
    async def test_listing_extracts_nothing(self, legitimate_zip, tmp_path, worker_pool):
        before = sorted(p.name for p in tmp_path.iterdir())
        await ArchiveExtractor(pool=worker_pool).compute_uncompressed_size(legitimate_zip)
        assert sorted(p.name for p in tmp_path.iterdir()) == before


class TestMissingTool:
    """A missing unzip executable is an extraction failure."""

    @pytest.mark.asyncio
    async def test_missing_executable(self, legitimate_zip, worker_pool):
        extractor = ArchiveExtractor(unzip_bin="safeintake-no-such-unzip", pool=worker_pool)
        with pytest.raises(ExtractionError, match="not found"):
            await extractor.compute_uncompressed_size(legitimate_zip)


@requires_unzip
class TestUnpack:
    """Extraction into the sandbox."""

    @pytest.mark.asyncio
    async def test_legitimate_archive(self, legitimate_zip, sandbox, worker_pool):
        await ArchiveExtractor(pool=worker_pool).unpack(sandbox, legitimate_zip)
        assert (sandbox / "index.php").read_bytes() == b"<?php echo 'hi';\n"
        assert (sandbox / ".htaccess").exists()
        assert (sandbox / "lib" / "vendor" / "pkg.php").exists()

    @pytest.mark.asyncio
    async def test_corrupt_archive(self, corrupt_zip, sandbox, worker_pool):
        with pytest.raises(ExtractionError):
            await ArchiveExtractor(pool=worker_pool).unpack(sandbox, corrupt_zip)
        assert list(sandbox.iterdir()) == []

    @pytest.mark.asyncio
    async def test_empty_upload(self, empty_upload, sandbox, worker_pool):
        with pytest.raises(ExtractionError):
            await ArchiveExtractor(pool=worker_pool).unpack(sandbox, empty_upload)

    @pytest.mark.asyncio
    async def test_traversal_rejected_before_extraction(
        self, traversal_zip, sandbox, tmp_path, worker_pool
    ):
        with pytest.raises(EscapeError, match="points outside"):
            await ArchiveExtractor(pool=worker_pool).unpack(sandbox, traversal_zip)
        assert list(sandbox.iterdir()) == []
        assert not (tmp_path / "evil.txt").exists()

    @pytest.mark.asyncio
    async def test_absolute_member_rejected(self, absolute_zip, sandbox, worker_pool):
        with pytest.raises(EscapeError, match="Absolute"):
            await ArchiveExtractor(pool=worker_pool).unpack(sandbox, absolute_zip)
        assert list(sandbox.iterdir()) == []

    @pytest.mark.asyncio
    async def test_escaping_symlink_member_rejected(
        self, symlink_escape_zip, sandbox, worker_pool
    ):
        with pytest.raises(EscapeError):
            await ArchiveExtractor(pool=worker_pool).unpack(sandbox, symlink_escape_zip)

    @pytest.mark.asyncio
    async def test_member_beneath_symlink_rejected(
        self, symlink_nested_zip, sandbox, tmp_path, worker_pool
    ):
        with pytest.raises(EscapeError, match="beneath a symlink"):
            await ArchiveExtractor(pool=worker_pool).unpack(sandbox, symlink_nested_zip)
        assert list((tmp_path / "outside").iterdir()) == []
        assert list(sandbox.iterdir()) == []

    @pytest.mark.asyncio
    async def test_internal_symlink_allowed(
        self, symlink_internal_zip, sandbox, worker_pool
    ):
        await ArchiveExtractor(pool=worker_pool).unpack(sandbox, symlink_internal_zip)
        assert (sandbox / "target.txt").read_bytes() == b"target\n"
        assert (sandbox / "alias.txt").resolve() == (sandbox / "target.txt").resolve()

    @pytest.mark.asyncio
    async def test_given_listing_reused(self, legitimate_zip, sandbox, tmp_path, worker_pool):
        extractor = ArchiveExtractor(pool=worker_pool)
        entries = await extractor.list_entries(legitimate_zip)
        link = tmp_path / "sandbox_link"
        link.symlink_to(sandbox, target_is_directory=True)
        assert await extractor.unpack(link, legitimate_zip, entries) is entries
        assert (sandbox / "lib" / "vendor" / "pkg.php").exists()

    def test_unpack_sync_outside_event_loop(self, legitimate_zip, sandbox):
        extractor = ArchiveExtractor()
        entries = [
            ArchiveEntry("index.php", 17),
            ArchiveEntry(".htaccess", 17),
            ArchiveEntry("lib/util.php", 6),
            ArchiveEntry("lib/vendor/pkg.php", 6),
        ]
        extractor.unpack_sync(sandbox, legitimate_zip, entries)
        assert (sandbox / ".htaccess").read_bytes() == b"Options -Indexes\n"
