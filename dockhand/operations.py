"""Container operations - the public entry points.

A ContainerOperation is an async callable taking a driver, the target
container ID and output/error sinks. It either returns None or raises a
single DockhandError. Each operation asks the runtime for its OS family
and dispatches to the direct or compensated injector.

Usage:
    op = copy_dir("./app", "/workspace", uid=1000, gid=1000)
    await op(driver, container_id, sys.stdout, sys.stderr)
"""

from __future__ import annotations

import sys
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TextIO

import structlog
from pydantic import BaseModel

from dockhand.archive import (
    NORMALIZED_DATETIME,
    TarBuilder,
    create_reader,
    win_path_to_tar_path,
)
from dockhand.archive.tar import FileFilter
from dockhand.config import Settings, get_settings
from dockhand.drivers.base import Driver, DriverError, RuntimeInfo
from dockhand.errors import RuntimeInspectError
from dockhand.injection import CompensatedInjector, DirectInjector, InjectionRequest, Injector
from dockhand.metadata import StackMetadata, encode_toml

logger = structlog.get_logger()

ContainerOperation = Callable[[Driver, str, TextIO | None, TextIO | None], Awaitable[None]]

# Generated files are always executable and owned by the writer
METADATA_FILE_MODE = 0o755


def select_injector(info: RuntimeInfo, settings: Settings) -> Injector:
    """Pick the injection strategy for a runtime."""
    if info.is_windows:
        return CompensatedInjector(windows=settings.windows, injection=settings.injection)
    return DirectInjector(settings.injection)


async def _runtime_info(driver: Driver) -> RuntimeInfo:
    try:
        return await driver.info()
    except DriverError as e:
        raise RuntimeInspectError(
            f"get runtime info: {e}",
            operation="info",
            status=e.status,
        ) from e


def copy_dir(
    src: str,
    dst: str,
    uid: int,
    gid: int,
    file_filter: FileFilter | None = None,
    *,
    settings: Settings | None = None,
    host_platform: str = sys.platform,
) -> ContainerOperation:
    """Copy a local directory or zip file to ``dst`` in the container.

    Entries are owned by ``uid``/``gid`` and filtered by ``file_filter``,
    which receives each path relative to ``src``.
    """
    request = InjectionRequest(src=src, dst=dst, uid=uid, gid=gid, file_filter=file_filter)

    async def operation(
        driver: Driver,
        container_id: str,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        cfg = settings or get_settings()
        info = await _runtime_info(driver)

        tar_root = win_path_to_tar_path(request.dst) if info.is_windows else request.dst
        stream = create_reader(
            request.src,
            tar_root,
            request.uid,
            request.gid,
            request.file_filter,
            host_platform=host_platform,
        )

        logger.info(
            "operation.copy_dir",
            container_id=container_id,
            src=request.src,
            dst=request.dst,
            os_type=info.os_type,
        )
        injector = select_injector(info, cfg)
        await injector.inject(
            driver,
            container_id,
            stream,
            dst=request.dst,
            stdout=stdout,
            stderr=stderr,
        )

    return operation


def write_toml(
    dst_path: str,
    value: BaseModel | Mapping[str, Any],
    *,
    settings: Settings | None = None,
) -> ContainerOperation:
    """Write ``value`` as a TOML file at ``dst_path`` in the container."""

    async def operation(
        driver: Driver,
        container_id: str,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        # Encoding errors surface before the runtime is contacted
        content = encode_toml(value)

        cfg = settings or get_settings()
        info = await _runtime_info(driver)

        name = win_path_to_tar_path(dst_path) if info.is_windows else dst_path
        builder = TarBuilder()
        builder.add_file(name, METADATA_FILE_MODE, NORMALIZED_DATETIME, content)

        logger.info(
            "operation.write_toml",
            container_id=container_id,
            dst=dst_path,
            os_type=info.os_type,
        )
        injector = select_injector(info, cfg)
        await injector.inject(
            driver,
            container_id,
            builder.reader(),
            dst=dst_path,
            stdout=stdout,
            stderr=stderr,
        )

    return operation


def write_stack_toml(
    dst_path: str,
    stack: StackMetadata,
    *,
    settings: Settings | None = None,
) -> ContainerOperation:
    """Write a ``stack.toml`` describing ``stack`` to ``dst_path``."""
    return write_toml(dst_path, stack, settings=settings)
