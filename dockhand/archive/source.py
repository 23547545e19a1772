"""Archive construction from an injection source path."""

from __future__ import annotations

import os
import stat
import sys

from dockhand.archive.tar import (
    KEEP_MODE,
    FileFilter,
    TarStream,
    read_dir_as_tar,
    read_zip_as_tar,
)
from dockhand.errors import SourceUnreadableError

# Entries archived on a Windows host get this mode so they stay writable
WINDOWS_HOST_MODE = 0o777


def win_path_to_tar_path(path: str) -> str:
    """Convert a Windows container path to a tar member path.

    Strips the volume and converts separators:
    ``C:\\windows\\layers\\x.toml`` -> ``windows/layers/x.toml``.
    """
    return path.replace("\\", "/")[2:].lstrip("/")


def create_reader(
    src: str,
    dst: str,
    uid: int,
    gid: int,
    file_filter: FileFilter | None = None,
    *,
    host_platform: str = sys.platform,
) -> TarStream:
    """Build a lazy tar stream of ``src`` rooted at ``dst``.

    Directories are walked; any other source is read as a zip archive.

    Raises:
        SourceUnreadableError: If ``src`` cannot be stat'ed.
    """
    try:
        st = os.stat(src)
    except OSError as exc:
        raise SourceUnreadableError(
            f"create tar archive from '{src}': {exc}",
            operation="archive",
            source=src,
        ) from exc

    if stat.S_ISDIR(st.st_mode):
        mode = WINDOWS_HOST_MODE if host_platform == "win32" else KEEP_MODE
        return read_dir_as_tar(src, dst, uid, gid, mode, file_filter=file_filter)

    return read_zip_as_tar(src, dst, uid, gid, KEEP_MODE, file_filter=file_filter)
