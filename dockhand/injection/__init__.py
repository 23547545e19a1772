"""Injection layer - strategies moving archives into containers."""

from dockhand.injection.base import InjectionRequest, Injector
from dockhand.injection.compensated import CompensatedInjector
from dockhand.injection.direct import DirectInjector
from dockhand.injection.mounts import classify_destination, find_mount

__all__ = [
    "CompensatedInjector",
    "DirectInjector",
    "InjectionRequest",
    "Injector",
    "classify_destination",
    "find_mount",
]
