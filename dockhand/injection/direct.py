"""Direct injection - stream the archive into the container root."""

from __future__ import annotations

from typing import TextIO

import structlog

from dockhand.archive.tar import TarStream
from dockhand.config import InjectionConfig
from dockhand.drivers.base import Driver, DriverError
from dockhand.errors import CopyToContainerError
from dockhand.injection.pipe import stream_archive

logger = structlog.get_logger()


class DirectInjector:
    """Uses the runtime's copy-into-container call against ``/``.

    Works for any destination on runtimes whose copy call handles mounted
    volumes, which is every runtime except Windows containers.
    """

    def __init__(self, config: InjectionConfig | None = None) -> None:
        self._config = config or InjectionConfig()
        self._log = logger.bind(injector="direct")

    async def inject(
        self,
        driver: Driver,
        container_id: str,
        stream: TarStream,
        *,
        dst: str,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self._log.info(
            "injection.direct.start",
            container_id=container_id,
            source=stream.source,
            dst=dst,
        )

        try:
            await stream_archive(
                driver,
                container_id,
                "/",
                stream,
                depth=self._config.pipe_depth,
                chunk_size=self._config.chunk_size,
            )
        except DriverError as e:
            raise CopyToContainerError(
                f"copy archive to container: {e}",
                operation="copy_to_container",
                container_id=container_id,
                status=e.status,
            ) from e

        self._log.info("injection.direct.done", container_id=container_id, dst=dst)
