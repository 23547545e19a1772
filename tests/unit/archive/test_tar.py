"""Unit tests for tar stream generation."""

from __future__ import annotations

import io
import os
import tarfile
import zipfile
from pathlib import Path

import pytest

from dockhand.archive import NORMALIZED_DATETIME
from dockhand.archive.tar import (
    NORMALIZED_MTIME,
    TarBuilder,
    TarStream,
    read_dir_as_tar,
    read_zip_as_tar,
)
from dockhand.errors import ArchiveConstructionError
from tests.conftest import no_logs, open_archive


class TestReadDirAsTar:
    """Directory walking, rewriting, ownership and filtering."""

    def test_contains_exactly_accepted_entries(self, app_dir: Path):
        """Only entries accepted by the filter end up in the archive."""
        stream = read_dir_as_tar(str(app_dir), "/workspace", 1000, 1001, file_filter=no_logs)

        with open_archive(stream.read_all()) as tf:
            names = tf.getnames()

        assert names == ["/workspace/a.txt", "/workspace/sub", "/workspace/sub/b.txt"]

    def test_every_entry_stamped_with_owner(self, app_dir: Path):
        stream = read_dir_as_tar(str(app_dir), "/workspace", 1000, 1001)

        with open_archive(stream.read_all()) as tf:
            members = tf.getmembers()

        assert len(members) == 5
        for member in members:
            assert member.uid == 1000
            assert member.gid == 1001
            assert member.uname == ""
            assert member.gname == ""

    def test_negative_owner_keeps_disk_ownership(self, app_dir: Path):
        stream = read_dir_as_tar(str(app_dir), "/workspace", -1, -1)

        with open_archive(stream.read_all()) as tf:
            member = tf.getmember("/workspace/a.txt")

        assert member.uid == os.stat(app_dir / "a.txt").st_uid
        assert member.gid == os.stat(app_dir / "a.txt").st_gid

    def test_timestamps_are_normalized(self, app_dir: Path):
        stream = read_dir_as_tar(str(app_dir), "/workspace", 0, 0)

        with open_archive(stream.read_all()) as tf:
            assert {m.mtime for m in tf.getmembers()} == {NORMALIZED_MTIME}

    def test_archive_is_reproducible(self, app_dir: Path):
        stream = read_dir_as_tar(str(app_dir), "/workspace", 0, 0)

        assert stream.read_all() == stream.read_all()

    def test_mode_override(self, app_dir: Path):
        stream = read_dir_as_tar(str(app_dir), "/workspace", 0, 0, 0o777)

        with open_archive(stream.read_all()) as tf:
            assert {m.mode for m in tf.getmembers()} == {0o777}

    def test_mode_preserved_by_default(self, app_dir: Path):
        os.chmod(app_dir / "a.txt", 0o640)
        stream = read_dir_as_tar(str(app_dir), "/workspace", 0, 0)

        with open_archive(stream.read_all()) as tf:
            assert tf.getmember("/workspace/a.txt").mode == 0o640

    def test_file_content(self, app_dir: Path):
        stream = read_dir_as_tar(str(app_dir), "/workspace", 0, 0)

        with open_archive(stream.read_all()) as tf:
            assert tf.extractfile("/workspace/sub/b.txt").read() == b"beta"

    def test_filter_receives_relative_paths(self, app_dir: Path):
        seen: list[str] = []

        def record(path: str) -> bool:
            seen.append(path)
            return True

        read_dir_as_tar(str(app_dir), "/workspace", 0, 0, file_filter=record).read_all()

        assert sorted(seen) == sorted(
            ["a.txt", "build.log", "sub", os.path.join("sub", "b.txt"), os.path.join("sub", "c.log")]
        )

    def test_rejected_directory_contents_still_walked(self, app_dir: Path):
        stream = read_dir_as_tar(
            str(app_dir), "/workspace", 0, 0, file_filter=lambda p: p != "sub"
        )

        with open_archive(stream.read_all()) as tf:
            names = tf.getnames()

        assert "/workspace/sub" not in names
        assert "/workspace/sub/b.txt" in names

    def test_symlinks_are_kept(self, app_dir: Path):
        os.symlink("a.txt", app_dir / "link")
        stream = read_dir_as_tar(str(app_dir), "/workspace", 0, 0)

        with open_archive(stream.read_all()) as tf:
            member = tf.getmember("/workspace/link")

        assert member.issym()
        assert member.linkname == "a.txt"

    def test_hardlinks_written_once(self, app_dir: Path):
        os.link(app_dir / "a.txt", app_dir / "z.txt")
        stream = read_dir_as_tar(str(app_dir), "/workspace", 0, 0)

        with open_archive(stream.read_all()) as tf:
            member = tf.getmember("/workspace/z.txt")

        assert member.islnk()
        assert member.linkname == "/workspace/a.txt"

    def test_relative_base_path(self, app_dir: Path):
        stream = read_dir_as_tar(str(app_dir), "workspace", 0, 0, file_filter=no_logs)

        with open_archive(stream.read_all()) as tf:
            assert tf.getnames()[0] == "workspace/a.txt"

    def test_missing_directory_fails_on_read(self, tmp_path: Path):
        """Construction is lazy; the error surfaces when the stream is read."""
        stream = read_dir_as_tar(str(tmp_path / "missing"), "/workspace", 0, 0)

        with pytest.raises(ArchiveConstructionError) as exc_info:
            stream.read_all()

        assert exc_info.value.code == "archive_construction_failed"
        assert isinstance(exc_info.value.__cause__, FileNotFoundError)

    def test_chunks_respect_chunk_size(self, app_dir: Path):
        stream = read_dir_as_tar(str(app_dir), "/workspace", 0, 0)

        chunks = list(stream.chunks(1024))

        assert all(len(chunk) <= 1024 for chunk in chunks)
        assert b"".join(chunks) == stream.read_all()


class TestReadZipAsTar:
    """Zip sources re-encoded as tar."""

    @pytest.fixture
    def app_zip(self, tmp_path: Path) -> Path:
        path = tmp_path / "app.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("bin/", "")
            zf.writestr("bin/run", "#!/bin/sh\necho hi\n")
            zf.writestr("README.md", "docs")
            link = zipfile.ZipInfo("bin/latest")
            link.external_attr = (0o120777) << 16
            zf.writestr(link, "run")
        return path

    def test_entries_rewritten_and_filtered(self, app_zip: Path):
        stream = read_zip_as_tar(
            str(app_zip), "/layers", 1000, 1000, file_filter=lambda p: p != "README.md"
        )

        with open_archive(stream.read_all()) as tf:
            names = tf.getnames()
            run = tf.getmember("/layers/bin/run")
            content = tf.extractfile(run).read()
            uids = {m.uid for m in tf.getmembers()}

        assert names == ["/layers/bin", "/layers/bin/run", "/layers/bin/latest"]
        assert content == b"#!/bin/sh\necho hi\n"
        assert uids == {1000}

    def test_directory_entries_are_directories(self, app_zip: Path):
        stream = read_zip_as_tar(str(app_zip), "/layers", 0, 0)

        with open_archive(stream.read_all()) as tf:
            assert tf.getmember("/layers/bin").isdir()

    def test_zip_symlinks_are_kept(self, app_zip: Path):
        stream = read_zip_as_tar(str(app_zip), "/layers", 0, 0)

        with open_archive(stream.read_all()) as tf:
            link = tf.getmember("/layers/bin/latest")

        assert link.issym()
        assert link.linkname == "run"

    @pytest.fixture
    def zeroed_date_zip(self, tmp_path: Path) -> Path:
        path = tmp_path / "zeroed.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr(zipfile.ZipInfo("a.txt", date_time=(1980, 0, 0, 0, 0, 0)), "hello")
        return path

    def test_zeroed_dos_date(self, zeroed_date_zip: Path):
        stream = read_zip_as_tar(str(zeroed_date_zip), "/layers", 0, 0)

        with open_archive(stream.read_all()) as tf:
            member = tf.getmember("/layers/a.txt")
            content = tf.extractfile(member).read()

        assert member.mtime == NORMALIZED_MTIME
        assert content == b"hello"

    def test_zeroed_dos_date_kept_when_not_normalized(self, zeroed_date_zip: Path):
        stream = read_zip_as_tar(
            str(zeroed_date_zip), "/layers", 0, 0, normalize_mod_time=False
        )

        with open_archive(stream.read_all()) as tf:
            member = tf.getmember("/layers/a.txt")

        # 1980-01-01T00:00:00Z
        assert member.mtime == 315532800

    def test_not_a_zip(self, tmp_path: Path):
        bogus = tmp_path / "app.zip"
        bogus.write_bytes(b"definitely not a zip")

        with pytest.raises(ArchiveConstructionError):
            read_zip_as_tar(str(bogus), "/layers", 0, 0).read_all()


class TestTarBuilder:
    """In-memory single-file archives."""

    def test_single_file(self):
        builder = TarBuilder()
        builder.add_file("/cnb/stack.toml", 0o755, NORMALIZED_DATETIME, b"x = 1\n")

        with open_archive(builder.reader().read_all()) as tf:
            (member,) = tf.getmembers()
            content = tf.extractfile(member).read()

        assert member.name == "/cnb/stack.toml"
        assert member.mode == 0o755
        assert member.mtime == NORMALIZED_MTIME
        assert member.uid == 0
        assert member.gid == 0
        assert content == b"x = 1\n"


class TestTarStream:
    def test_failure_after_partial_output(self):
        """Bytes already produced are followed by the construction error."""

        def write_members(tw: tarfile.TarFile):
            info = tarfile.TarInfo("ok.txt")
            info.size = 20000
            tw.addfile(info, io.BytesIO(b"o" * 20000))
            yield
            raise OSError("disk gone")

        stream = TarStream(write_members, source="/src")
        received: list[bytes] = []

        with pytest.raises(ArchiveConstructionError, match="disk gone"):
            for chunk in stream.chunks():
                received.append(chunk)

        assert received

    def test_invalid_entry_data_is_wrapped(self):
        def write_members(tw: tarfile.TarFile):
            raise ValueError("month must be in 1..12")
            yield

        stream = TarStream(write_members, source="/src.zip")

        with pytest.raises(ArchiveConstructionError) as exc_info:
            stream.read_all()

        assert exc_info.value.operation == "archive"
        assert isinstance(exc_info.value.__cause__, ValueError)
