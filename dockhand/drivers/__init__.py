"""Driver layer - container runtime abstraction."""

from dockhand.drivers.base import (
    ContainerDetails,
    ContainerSpec,
    Driver,
    DriverError,
    MountPoint,
    RuntimeInfo,
)
from dockhand.drivers.docker import DockerDriver

__all__ = [
    "ContainerDetails",
    "ContainerSpec",
    "DockerDriver",
    "Driver",
    "DriverError",
    "MountPoint",
    "RuntimeInfo",
]
