"""Docker driver."""

from dockhand.drivers.docker.docker import DockerDriver

__all__ = ["DockerDriver"]
