"""Error taxonomy for container content injection.

Every error is terminal: nothing in dockhand retries. Each error records
the operation that produced it so failures read as
``"<operation>: <message>"``.
"""

from __future__ import annotations

from typing import Any


class DockhandError(Exception):
    """Base class for all injection failures."""

    code: str = "dockhand_error"

    def __init__(self, message: str, *, operation: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.details = details

    def __str__(self) -> str:
        return f"{self.operation}: {self.message}"


class SourceUnreadableError(DockhandError):
    """The injection source does not exist or cannot be stat'ed."""

    code = "source_unreadable"


class ArchiveConstructionError(DockhandError):
    """Reading the source while generating the tar stream failed."""

    code = "archive_construction_failed"


class RuntimeInspectError(DockhandError):
    """Runtime info or container inspection failed."""

    code = "runtime_inspect_failed"


class NoMatchingMountError(DockhandError):
    """No mount of the target container has the requested destination."""

    code = "no_matching_mount"


class HelperCreateError(DockhandError):
    """The helper container could not be created."""

    code = "helper_create_failed"


class CopyToContainerError(DockhandError):
    """The runtime rejected or failed a copy into the target container."""

    code = "copy_to_container_failed"


class StageCopyError(DockhandError):
    """Staging the archive inside the helper container failed."""

    code = "stage_copy_failed"


class HelperExecutionError(DockhandError):
    """The helper container failed to run or its copy tool exited non-zero."""

    code = "helper_execution_failed"

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        exit_code: int | None = None,
        **details: Any,
    ) -> None:
        super().__init__(message, operation=operation, **details)
        self.exit_code = exit_code


class MetadataEncodeError(DockhandError):
    """A metadata value could not be serialized."""

    code = "metadata_encode_failed"
