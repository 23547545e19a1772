"""Mount lookup for Windows targets.

Mounts are directory-granular, so a file destination is looked up by its
parent directory. Matching is exact: the caller must already know the
mount layout of the target container.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

from dockhand.drivers.base import ContainerDetails, MountPoint
from dockhand.errors import NoMatchingMountError

NodeKind = Literal["f", "d"]

DEFAULT_FILE_SUFFIXES = (".toml",)


def find_mount(details: ContainerDetails, dst: str) -> MountPoint:
    """Return the mount whose destination is exactly ``dst``."""
    for mount in details.mounts:
        if mount.destination == dst:
            return mount
    raise NoMatchingMountError(
        f"no matching mount found for '{dst}'",
        operation="find_mount",
        container_id=details.id,
        destination=dst,
    )


def classify_destination(
    dst: str,
    file_suffixes: Iterable[str] = DEFAULT_FILE_SUFFIXES,
) -> tuple[NodeKind, str]:
    """Classify a Windows destination as file or directory.

    Returns the xcopy node kind and the path to probe for a mount:
    ``C:\\windows\\stage.toml`` -> ``("f", "C:\\windows")``,
    ``C:\\windows\\stage`` -> ``("d", "C:\\windows\\stage")``.
    """
    if dst.endswith(tuple(file_suffixes)):
        return "f", "\\".join(dst.split("\\")[:-1])
    return "d", dst
