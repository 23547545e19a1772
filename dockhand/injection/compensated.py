"""Compensated injection for Windows containers.

Copying an archive straight into a mounted volume of a running Windows
container does not work (moby/moby#40771). Instead a helper container is
created from the target's image with the same volume bound, the archive
is staged into the helper while it is still stopped, and ``xcopy`` run
inside the helper moves the staged files onto the volume.

Sequence (strictly ordered, any failure is terminal):
1. inspect target
2. classify destination as file or directory
3. resolve the mount covering it
4. create helper
5. stage archive into helper
6. run helper
7. force-remove helper (always, even on failure or cancellation)
"""

from __future__ import annotations

import asyncio
from typing import TextIO

import structlog

from dockhand.archive.tar import TarStream
from dockhand.config import InjectionConfig, WindowsConfig
from dockhand.drivers.base import ContainerSpec, Driver, DriverError, MountPoint
from dockhand.errors import (
    HelperCreateError,
    HelperExecutionError,
    RuntimeInspectError,
    StageCopyError,
)
from dockhand.injection.mounts import NodeKind, classify_destination, find_mount
from dockhand.injection.pipe import stream_archive

logger = structlog.get_logger()

# Removal tasks outlive a cancelled caller; keep references until done
_cleanup_tasks: set[asyncio.Task] = set()


class CompensatedInjector:
    """Injects through a throwaway helper container running xcopy."""

    def __init__(
        self,
        windows: WindowsConfig | None = None,
        injection: InjectionConfig | None = None,
    ) -> None:
        self._windows = windows or WindowsConfig()
        self._injection = injection or InjectionConfig()
        self._log = logger.bind(injector="compensated")

    def helper_command(self, dst: str, node_kind: NodeKind) -> list[str]:
        """xcopy invocation moving the staged copy of ``dst`` into place.

        The node kind is echoed into xcopy's "file or directory" prompt.
        """
        staged = f"{self._windows.staging_dir}\\{dst[3:]}"
        return [
            "cmd",
            "/c",
            f"echo {node_kind}|xcopy /e /h /y /c /b {staged} {dst}",
        ]

    def helper_spec(
        self,
        image: str,
        mount: MountPoint,
        dst: str,
        node_kind: NodeKind,
        *,
        target_id: str,
    ) -> ContainerSpec:
        return ContainerSpec(
            image=image,
            cmd=self.helper_command(dst, node_kind),
            working_dir="/",
            user=self._windows.admin_user,
            binds=[f"{mount.bind_source}:{mount.destination}"],
            isolation=self._windows.isolation,
            labels={
                "dockhand.managed": "true",
                "dockhand.target": target_id,
            },
        )

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
        log = self._log.bind(container_id=container_id, dst=dst)

        try:
            details = await driver.inspect(container_id)
        except DriverError as e:
            raise RuntimeInspectError(
                f"inspect container: {e}",
                operation="inspect",
                container_id=container_id,
                status=e.status,
            ) from e

        node_kind, probe = classify_destination(dst, self._injection.file_suffixes)
        mount = find_mount(details, probe)
        log.info("injection.mount_resolved", node_kind=node_kind, mount=mount.destination)

        spec = self.helper_spec(details.image, mount, dst, node_kind, target_id=container_id)
        try:
            helper_id = await driver.create_container(spec)
        except DriverError as e:
            raise HelperCreateError(
                f"creating prep container: {e}",
                operation="create_helper",
                image=details.image,
                status=e.status,
            ) from e

        log = log.bind(helper_id=helper_id)
        log.info("injection.helper.created")

        try:
            await self._stage(driver, helper_id, stream)
            await self._execute(driver, helper_id, stderr)
        finally:
            await self._teardown(driver, helper_id)

        log.info("injection.compensated.done")

    async def _stage(self, driver: Driver, helper_id: str, stream: TarStream) -> None:
        try:
            await stream_archive(
                driver,
                helper_id,
                self._windows.staging_tar_path,
                stream,
                depth=self._injection.pipe_depth,
                chunk_size=self._injection.chunk_size,
            )
        except DriverError as e:
            raise StageCopyError(
                f"copy app to container: {e}",
                operation="stage",
                helper_id=helper_id,
                status=e.status,
            ) from e

    async def _execute(self, driver: Driver, helper_id: str, stderr: TextIO | None) -> None:
        try:
            # xcopy output is noise; only stderr reaches the caller
            exit_code = await driver.run_container(helper_id, stdout=None, stderr=stderr)
        except DriverError as e:
            raise HelperExecutionError(
                f"run prep container: {e}",
                operation="run_helper",
                helper_id=helper_id,
            ) from e

        if exit_code != 0:
            raise HelperExecutionError(
                f"container {helper_id} failed with status code: {exit_code}",
                operation="run_helper",
                exit_code=exit_code,
                helper_id=helper_id,
            )

    async def _teardown(self, driver: Driver, helper_id: str) -> None:
        task = asyncio.create_task(
            self._remove_helper(driver, helper_id),
            name=f"remove-helper-{helper_id[:12]}",
        )
        _cleanup_tasks.add(task)
        task.add_done_callback(_cleanup_tasks.discard)
        await asyncio.shield(task)

    async def _remove_helper(self, driver: Driver, helper_id: str) -> None:
        try:
            await driver.remove_container(helper_id, force=True)
        except Exception as e:
            self._log.warning(
                "injection.helper.remove_failed",
                helper_id=helper_id,
                error=str(e),
            )
            return
        self._log.info("injection.helper.removed", helper_id=helper_id)
