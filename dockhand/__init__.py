"""dockhand - inject local content into running Linux and Windows containers."""

from dockhand.operations import (
    ContainerOperation,
    copy_dir,
    write_stack_toml,
    write_toml,
)

__all__ = [
    "ContainerOperation",
    "copy_dir",
    "write_stack_toml",
    "write_toml",
]
