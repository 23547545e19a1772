"""Docker driver implementation using aiodocker.

Supports Linux and Windows daemons; the daemon's OS family decides the
injection strategy.
"""

from __future__ import annotations

from typing import TextIO

import aiodocker
import aiohttp
import structlog
from aiodocker.exceptions import DockerError

from dockhand.config import get_settings
from dockhand.drivers.base import (
    ArchiveData,
    ContainerDetails,
    ContainerSpec,
    Driver,
    DriverError,
    RuntimeInfo,
)

logger = structlog.get_logger()


def _driver_error(e: DockerError | aiohttp.ClientError) -> DriverError:
    if isinstance(e, DockerError):
        return DriverError(str(e.message), status=e.status)
    # Daemon unreachable or connection dropped mid-request
    return DriverError(f"docker daemon request failed: {e}")


class DockerDriver(Driver):
    """Docker driver implementation using aiodocker."""

    def __init__(self, socket: str | None = None) -> None:
        socket_url = socket or get_settings().docker.socket
        if "://" in socket_url:
            self._socket = socket_url
        else:
            self._socket = f"unix://{socket_url}"

        self._log = logger.bind(driver="docker")
        self._client: aiodocker.Docker | None = None

    async def _get_client(self) -> aiodocker.Docker:
        """Get or create the aiodocker client."""
        if self._client is None:
            self._client = aiodocker.Docker(url=self._socket)
        return self._client

    async def close(self) -> None:
        """Close the docker client."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def info(self) -> RuntimeInfo:
        client = await self._get_client()

        try:
            data = await client.system.info()
        except (DockerError, aiohttp.ClientError) as e:
            raise _driver_error(e) from e

        return RuntimeInfo(os_type=data.get("OSType", "linux"))

    async def inspect(self, container_id: str) -> ContainerDetails:
        client = await self._get_client()

        try:
            container = client.containers.container(container_id)
            data = await container.show()
        except (DockerError, aiohttp.ClientError) as e:
            raise _driver_error(e) from e

        return ContainerDetails.from_inspect(data)

    async def create_container(self, spec: ContainerSpec) -> str:
        client = await self._get_client()

        host_config: dict = {"Binds": spec.binds}
        if spec.isolation:
            host_config["Isolation"] = spec.isolation

        config = {
            "Image": spec.image,
            "Cmd": spec.cmd,
            "WorkingDir": spec.working_dir,
            "User": spec.user,
            "Labels": spec.labels,
            "HostConfig": host_config,
        }

        self._log.info("docker.create", image=spec.image, binds=spec.binds)

        try:
            container = await client.containers.create(config=config)
        except (DockerError, aiohttp.ClientError) as e:
            raise _driver_error(e) from e

        self._log.info("docker.created", container_id=container.id)
        return container.id

    async def copy_to_container(self, container_id: str, path: str, data: ArchiveData) -> None:
        client = await self._get_client()
        self._log.info("docker.copy_to_container", container_id=container_id, path=path)

        try:
            container = client.containers.container(container_id)
            await container.put_archive(path, data)
        except (DockerError, aiohttp.ClientError) as e:
            raise _driver_error(e) from e

    async def run_container(
        self,
        container_id: str,
        *,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> int:
        client = await self._get_client()
        self._log.info("docker.run", container_id=container_id)

        try:
            container = client.containers.container(container_id)
            await container.start()
            result = await container.wait()

            if stdout is not None:
                stdout.write("".join(await container.log(stdout=True)))
            if stderr is not None:
                stderr.write("".join(await container.log(stderr=True)))
        except (DockerError, aiohttp.ClientError) as e:
            raise _driver_error(e) from e

        exit_code = int(result.get("StatusCode", -1))
        self._log.info("docker.exited", container_id=container_id, exit_code=exit_code)
        return exit_code

    async def remove_container(self, container_id: str, *, force: bool = True) -> None:
        client = await self._get_client()
        self._log.info("docker.remove", container_id=container_id)

        try:
            container = client.containers.container(container_id)
            await container.delete(force=force)
        except DockerError as e:
            if e.status == 404:
                self._log.warning("docker.remove.not_found", container_id=container_id)
            else:
                raise _driver_error(e) from e
        except aiohttp.ClientError as e:
            raise _driver_error(e) from e
