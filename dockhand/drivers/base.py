"""Driver base class - container runtime abstraction.

Driver exposes ONLY the runtime calls injection needs:
- runtime info (OS family)
- container inspection
- helper container create / run / remove
- copy of a tar archive into a container

It does NOT handle retries; every failure surfaces as DriverError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterable
from dataclasses import dataclass, field
from typing import Any, TextIO

# Archive payload accepted by copy_to_container
ArchiveData = bytes | AsyncIterable[bytes]


class DriverError(Exception):
    """A runtime API call failed."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class RuntimeInfo:
    """Runtime information from the daemon."""

    os_type: str  # "linux" or "windows"

    @property
    def is_windows(self) -> bool:
        return self.os_type.lower() == "windows"


@dataclass(frozen=True)
class MountPoint:
    """A mount of a container, as reported by inspection."""

    destination: str
    name: str = ""
    source: str = ""
    driver: str = ""
    type: str = ""
    rw: bool = True

    @classmethod
    def from_inspect(cls, data: dict[str, Any]) -> "MountPoint":
        return cls(
            destination=data.get("Destination", ""),
            name=data.get("Name", "") or "",
            source=data.get("Source", "") or "",
            driver=data.get("Driver", "") or "",
            type=data.get("Type", "") or "",
            rw=bool(data.get("RW", True)),
        )

    @property
    def bind_source(self) -> str:
        """Volume name, or host path for bind mounts."""
        return self.name or self.source


@dataclass(frozen=True)
class ContainerDetails:
    """Read-only snapshot of a container inspection."""

    id: str
    image: str
    mounts: tuple[MountPoint, ...] = ()

    @classmethod
    def from_inspect(cls, data: dict[str, Any]) -> "ContainerDetails":
        return cls(
            id=data.get("Id", ""),
            image=data.get("Image", ""),
            mounts=tuple(MountPoint.from_inspect(m) for m in data.get("Mounts") or []),
        )


@dataclass
class ContainerSpec:
    """Configuration for a container created by a driver."""

    image: str
    cmd: list[str]
    working_dir: str = "/"
    user: str = ""
    binds: list[str] = field(default_factory=list)
    isolation: str | None = None
    labels: dict[str, str] = field(default_factory=dict)


class Driver(ABC):
    """Abstract driver interface for the container runtime."""

    @abstractmethod
    async def info(self) -> RuntimeInfo:
        """Get runtime information."""
        ...

    @abstractmethod
    async def inspect(self, container_id: str) -> ContainerDetails:
        """Inspect a container.

        Args:
            container_id: Container ID

        Returns:
            Container details including mounts
        """
        ...

    @abstractmethod
    async def create_container(self, spec: ContainerSpec) -> str:
        """Create a container without starting it.

        Args:
            spec: Container configuration

        Returns:
            Container ID
        """
        ...

    @abstractmethod
    async def copy_to_container(self, container_id: str, path: str, data: ArchiveData) -> None:
        """Extract a tar archive into a container.

        Args:
            container_id: Container ID
            path: Directory inside the container the archive is extracted to
            data: Tar archive, whole or as a stream of chunks
        """
        ...

    @abstractmethod
    async def run_container(
        self,
        container_id: str,
        *,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> int:
        """Start a created container and wait for it to exit.

        Args:
            container_id: Container ID
            stdout: Sink for standard output, None discards it
            stderr: Sink for standard error, None discards it

        Returns:
            Exit code
        """
        ...

    @abstractmethod
    async def remove_container(self, container_id: str, *, force: bool = True) -> None:
        """Remove a container.

        Args:
            container_id: Container ID
            force: Kill the container first if it is running
        """
        ...
