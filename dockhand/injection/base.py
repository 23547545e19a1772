"""Injection strategy interfaces and shared data structures."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, TextIO, runtime_checkable

from dockhand.archive.tar import FileFilter, TarStream
from dockhand.drivers.base import Driver


@dataclass(frozen=True, slots=True)
class InjectionRequest:
    """What to inject and how to own it.

    ``uid``/``gid`` of -1 keep the source's ownership.
    """

    src: str
    dst: str
    uid: int = -1
    gid: int = -1
    file_filter: FileFilter | None = None

    def __post_init__(self) -> None:
        if self.uid < -1 or self.gid < -1:
            raise ValueError(f"invalid ownership {self.uid}:{self.gid}")


@runtime_checkable
class Injector(Protocol):
    """Move a built archive into a container's filesystem.

    ``dst`` is the runtime-native destination the archive was rooted at.
    """

    async def inject(
        self,
        driver: Driver,
        container_id: str,
        stream: TarStream,
        *,
        dst: str,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None: ...
