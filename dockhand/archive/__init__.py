"""Archive layer - tar stream construction."""

from dockhand.archive.source import create_reader, win_path_to_tar_path
from dockhand.archive.tar import (
    NORMALIZED_DATETIME,
    TarBuilder,
    TarStream,
    read_dir_as_tar,
    read_zip_as_tar,
)

__all__ = [
    "NORMALIZED_DATETIME",
    "TarBuilder",
    "TarStream",
    "create_reader",
    "read_dir_as_tar",
    "read_zip_as_tar",
    "win_path_to_tar_path",
]
