"""Tar stream generation for container injection.

Archives are produced lazily: nothing is read from disk until the stream
is iterated, and every iteration regenerates the archive from the source.
Entry timestamps are normalized so identical inputs give identical bytes.
"""

from __future__ import annotations

import calendar
import os
import posixpath
import stat
import tarfile
import zipfile
from collections.abc import Callable, Generator, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from io import BytesIO

import structlog

from dockhand.errors import ArchiveConstructionError

logger = structlog.get_logger()

NORMALIZED_DATETIME = datetime(1980, 1, 1, 0, 0, 1, tzinfo=timezone.utc)
NORMALIZED_MTIME = int(NORMALIZED_DATETIME.timestamp())

DEFAULT_CHUNK_SIZE = 64 * 1024

# Mode of -1 keeps permission bits from the source
KEEP_MODE = -1

FileFilter = Callable[[str], bool]
MemberWriter = Callable[[tarfile.TarFile], Iterator[None]]


class _ChunkSink:
    """Write-only file object collecting what tarfile emits."""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []

    def write(self, data: bytes) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks = []
        return data


def _split(data: bytes, chunk_size: int) -> Iterator[bytes]:
    for start in range(0, len(data), chunk_size):
        yield data[start : start + chunk_size]


class TarStream:
    """A lazily generated tar archive.

    ``write_members`` receives an open stream-mode ``TarFile`` and yields
    after each member it adds, which lets the archive be handed out in
    chunks while it is still being built.
    """

    def __init__(self, write_members: MemberWriter, *, source: str) -> None:
        self._write_members = write_members
        self.source = source

    def chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Generator[bytes, None, None]:
        """Generate the archive as byte chunks of at most ``chunk_size``.

        Raises:
            ArchiveConstructionError: If reading the source fails. Bytes
                yielded before the failure form a truncated archive.
        """
        sink = _ChunkSink()
        try:
            with tarfile.open(fileobj=sink, mode="w|", format=tarfile.PAX_FORMAT) as tw:
                for _ in self._write_members(tw):
                    yield from _split(sink.drain(), chunk_size)
            yield from _split(sink.drain(), chunk_size)
        except (OSError, ValueError, zipfile.BadZipFile, tarfile.TarError) as exc:
            raise ArchiveConstructionError(
                f"create tar archive from '{self.source}': {exc}",
                operation="archive",
                source=self.source,
            ) from exc

    def __iter__(self) -> Iterator[bytes]:
        return self.chunks()

    def read_all(self) -> bytes:
        """Build the whole archive in memory."""
        return b"".join(self.chunks())


def _finalize(
    info: tarfile.TarInfo,
    *,
    uid: int,
    gid: int,
    mode: int,
    normalize_mod_time: bool,
) -> tarfile.TarInfo:
    if uid >= 0:
        info.uid = uid
    if gid >= 0:
        info.gid = gid
    info.uname = ""
    info.gname = ""
    if mode != KEEP_MODE:
        info.mode = mode
    if normalize_mod_time:
        info.mtime = NORMALIZED_MTIME
    return info


def _header_name(base_path: str, rel_path: str) -> str:
    return posixpath.normpath(posixpath.join(base_path, rel_path.replace(os.sep, "/")))


def _walk(root: str) -> Iterator[tuple[str, os.stat_result]]:
    """Yield paths under ``root`` in lexical order, parents first."""
    st = os.lstat(root)
    yield root, st
    if stat.S_ISDIR(st.st_mode):
        for name in sorted(os.listdir(root)):
            yield from _walk(os.path.join(root, name))


def read_dir_as_tar(
    src_dir: str,
    base_path: str,
    uid: int,
    gid: int,
    mode: int = KEEP_MODE,
    *,
    normalize_mod_time: bool = True,
    file_filter: FileFilter | None = None,
) -> TarStream:
    """Archive the contents of ``src_dir`` under ``base_path``.

    Args:
        src_dir: Local directory to archive. The directory itself is not
            emitted, only its contents.
        base_path: Path inside the archive that replaces ``src_dir``.
        uid: Owner stamped on every entry, -1 keeps the on-disk owner.
        gid: Group stamped on every entry, -1 keeps the on-disk group.
        mode: Permission bits forced on every entry, -1 keeps them.
        normalize_mod_time: Stamp entries with ``NORMALIZED_DATETIME``.
        file_filter: Called with each entry's path relative to
            ``src_dir``; entries it rejects are left out. Rejecting a
            directory does not exclude its contents.
    """

    def write_members(tw: tarfile.TarFile) -> Iterator[None]:
        hardlinks: dict[tuple[int, int], str] = {}

        for path, st in _walk(src_dir):
            rel_path = os.path.relpath(path, src_dir)
            if rel_path == ".":
                continue
            if file_filter is not None and not file_filter(rel_path):
                continue
            if stat.S_ISSOCK(st.st_mode):
                logger.debug("archive.skip_socket", path=path)
                continue

            info = tarfile.TarInfo(_header_name(base_path, rel_path))
            info.mode = stat.S_IMODE(st.st_mode)
            info.uid = st.st_uid
            info.gid = st.st_gid
            info.mtime = int(st.st_mtime)
            _finalize(
                info,
                uid=uid,
                gid=gid,
                mode=mode,
                normalize_mod_time=normalize_mod_time,
            )

            if stat.S_ISDIR(st.st_mode):
                info.type = tarfile.DIRTYPE
                tw.addfile(info)
            elif stat.S_ISLNK(st.st_mode):
                info.type = tarfile.SYMTYPE
                info.linkname = os.readlink(path)
                tw.addfile(info)
            elif stat.S_ISREG(st.st_mode):
                inode = (st.st_dev, st.st_ino)
                if st.st_nlink > 1 and inode in hardlinks:
                    info.type = tarfile.LNKTYPE
                    info.linkname = hardlinks[inode]
                    tw.addfile(info)
                else:
                    if st.st_nlink > 1:
                        hardlinks[inode] = info.name
                    info.size = st.st_size
                    with open(path, "rb") as f:
                        tw.addfile(info, f)
            else:
                logger.debug("archive.skip_special", path=path, mode=oct(st.st_mode))
                continue
            yield

    return TarStream(write_members, source=src_dir)


def _zip_mtime(entry: zipfile.ZipInfo) -> int:
    # Zero DOS dates decode as month 0, day 0
    year, month, day, hour, minute, second = entry.date_time
    return calendar.timegm((year, max(1, month), max(1, day), hour, minute, second))


def read_zip_as_tar(
    src_zip: str,
    base_path: str,
    uid: int,
    gid: int,
    mode: int = KEEP_MODE,
    *,
    normalize_mod_time: bool = True,
    file_filter: FileFilter | None = None,
) -> TarStream:
    """Re-encode the entries of a zip file as a tar stream under ``base_path``.

    Ownership, mode and filtering follow ``read_dir_as_tar``; the filter
    receives each entry's name as stored in the zip.
    """

    def write_members(tw: tarfile.TarFile) -> Iterator[None]:
        with zipfile.ZipFile(src_zip) as zf:
            for entry in zf.infolist():
                if file_filter is not None and not file_filter(entry.filename):
                    continue

                unix_mode = entry.external_attr >> 16
                info = tarfile.TarInfo(_header_name(base_path, entry.filename.rstrip("/")))
                if not normalize_mod_time:
                    info.mtime = _zip_mtime(entry)

                if entry.is_dir():
                    info.type = tarfile.DIRTYPE
                    info.mode = stat.S_IMODE(unix_mode) or 0o755
                else:
                    info.mode = stat.S_IMODE(unix_mode) or 0o644
                _finalize(
                    info,
                    uid=uid,
                    gid=gid,
                    mode=mode,
                    normalize_mod_time=normalize_mod_time,
                )

                if entry.is_dir():
                    tw.addfile(info)
                elif stat.S_ISLNK(unix_mode):
                    info.type = tarfile.SYMTYPE
                    info.linkname = zf.read(entry).decode("utf-8")
                    tw.addfile(info)
                else:
                    info.size = entry.file_size
                    with zf.open(entry) as f:
                        tw.addfile(info, f)
                yield

    return TarStream(write_members, source=src_zip)


@dataclass(slots=True)
class _FileEntry:
    name: str
    mode: int
    mod_time: datetime
    content: bytes


@dataclass
class TarBuilder:
    """Collects in-memory files and emits them as a tar stream."""

    _files: list[_FileEntry] = field(default_factory=list)

    def add_file(self, name: str, mode: int, mod_time: datetime, content: bytes) -> None:
        self._files.append(_FileEntry(name=name, mode=mode, mod_time=mod_time, content=content))

    def reader(self, *, uid: int = 0, gid: int = 0) -> TarStream:
        files = list(self._files)

        def write_members(tw: tarfile.TarFile) -> Iterator[None]:
            for entry in files:
                info = tarfile.TarInfo(entry.name)
                info.type = tarfile.REGTYPE
                info.mode = entry.mode
                info.mtime = int(entry.mod_time.timestamp())
                info.uid = uid
                info.gid = gid
                info.size = len(entry.content)
                tw.addfile(info, BytesIO(entry.content))
                yield

        return TarStream(write_members, source="<memory>")
