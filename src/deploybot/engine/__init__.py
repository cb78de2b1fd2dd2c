"""Container engine adapters.

Provides engine implementations behind a common interface:
    - ContainerEngine: Abstract interface
    - DockerEngine: Docker daemon via docker-py
    - InMemoryContainerEngine: In-memory engine for testing

Design: Adapter Pattern + Dependency Inversion
    The deployer depends on ContainerEngine only, so engines can be swapped
    without touching the deploy protocol.
"""

from deploybot.engine.base import (
    BindMount,
    ContainerEngine,
    ContainerNotFoundError,
    ContainerSpec,
    EngineError,
    ImageInfo,
    NetworkAttachment,
    PortBinding,
)
from deploybot.engine.memory import InMemoryContainerEngine

# DockerEngine is imported lazily so the SDK is only loaded when used


def __getattr__(name: str):
    """Lazy import of the Docker adapter."""
    if name == "DockerEngine":
        from deploybot.engine.docker import DockerEngine

        return DockerEngine
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "BindMount",
    "ContainerEngine",
    "ContainerNotFoundError",
    "ContainerSpec",
    "DockerEngine",
    "EngineError",
    "ImageInfo",
    "InMemoryContainerEngine",
    "NetworkAttachment",
    "PortBinding",
]
