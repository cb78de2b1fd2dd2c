"""
ContainerEngine - Abstract interface for container runtimes.

Design Pattern: Adapter Pattern
ContainerEngine defines the target interface the deployer programs against.
Concrete runtimes (Docker, in-memory) adapt to it.

Design Principle: Dependency Inversion
ContainerDeployer and EngineMaintenance depend on this abstraction, never on
the Docker SDK, so the whole deploy protocol is testable with
InMemoryContainerEngine.

The one contract every adapter must honor: a missing container, image or
network raises ContainerNotFoundError, every other failure raises
EngineError. The deployer relies on that split to make teardown idempotent.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from deploybot.errors import DeployBotError


class EngineError(DeployBotError):
    """Container engine operation failed."""

    pass


class ContainerNotFoundError(EngineError):
    """The named container, image or network does not exist."""

    pass


@dataclass(frozen=True)
class PortBinding:
    """Publish ``container_port/protocol`` on ``host_ip:host_port``.

    An empty host_ip binds on all interfaces.
    """

    container_port: str
    host_port: str
    protocol: str = "tcp"
    host_ip: str = ""

    @property
    def key(self) -> str:
        return f"{self.container_port}/{self.protocol}"


@dataclass(frozen=True)
class BindMount:
    """Bind-mount ``source`` on the host into ``target`` in the container."""

    source: str
    target: str


@dataclass(frozen=True)
class NetworkAttachment:
    """Network the container joins at creation."""

    name: str
    network_id: str


@dataclass(frozen=True)
class ContainerSpec:
    """Runtime configuration for creating one container.

    Built by the deployer from a DeploymentConfig; engines translate it into
    their own create call.
    """

    name: str
    image: str
    env: tuple[str, ...] = ()
    ports: tuple[PortBinding, ...] = ()
    mounts: tuple[BindMount, ...] = ()
    restart_policy: str = "on-failure"
    restart_max_retries: int = 0
    auto_remove: bool = False
    network: NetworkAttachment | None = None

    @property
    def exposed_ports(self) -> list[str]:
        return [binding.key for binding in self.ports]


@dataclass
class ImageInfo:
    """Summary of a locally stored image."""

    image_id: str
    tags: list[str] = field(default_factory=list)


class ContainerEngine(ABC):
    """
    Abstract container runtime used by the deployer.

    Every method is a coroutine; blocking SDKs are expected to push their
    calls off the event loop.
    """

    # ========================================================================
    # Deploy protocol operations
    # ========================================================================

    @abstractmethod
    async def stop_container(self, name: str) -> None:
        """
        Stop the container with this name.

        Raises:
            ContainerNotFoundError: If no such container exists
            EngineError: If the engine refuses the stop
        """
        pass

    @abstractmethod
    async def remove_container(self, name: str, force: bool = False) -> None:
        """
        Remove the container with this name.

        Args:
            name: Container name or id
            force: Kill a running container before removing it

        Raises:
            ContainerNotFoundError: If no such container exists
            EngineError: If the engine refuses the removal
        """
        pass

    @abstractmethod
    async def pull_image(self, image: str) -> None:
        """
        Pull ``image`` (``name:tag``) from its registry.

        Raises:
            ContainerNotFoundError: If the registry has no such image
            EngineError: On any other pull failure
        """
        pass

    @abstractmethod
    async def create_container(self, spec: ContainerSpec) -> str:
        """
        Create (but do not start) a container named ``spec.name``.

        Returns:
            Engine-assigned container id

        Raises:
            EngineError: If creation fails, e.g. the name is taken
        """
        pass

    @abstractmethod
    async def start_container(self, container_id: str) -> None:
        """
        Start a created container.

        Raises:
            ContainerNotFoundError: If the container vanished
            EngineError: If the engine cannot start it
        """
        pass

    # ========================================================================
    # Maintenance operations
    # ========================================================================

    @abstractmethod
    async def restart_container(self, name: str) -> None:
        """Restart a container by name."""
        pass

    @abstractmethod
    async def container_logs(self, name: str) -> bytes:
        """Return the stdout log of a container."""
        pass

    @abstractmethod
    async def create_network(self, name: str, driver: str = "bridge") -> str:
        """Create a network and return its id."""
        pass

    @abstractmethod
    async def get_network_id(self, name: str) -> str:
        """Look up a network id by name.

        Raises:
            ContainerNotFoundError: If the network does not exist
        """
        pass

    @abstractmethod
    async def remove_network(self, name: str) -> None:
        """Remove a network by name or id."""
        pass

    @abstractmethod
    async def list_images(self) -> list[ImageInfo]:
        """List locally stored images."""
        pass

    @abstractmethod
    async def remove_image(self, image_id: str) -> list[str]:
        """Force-remove an image and prune its children.

        Returns:
            Descriptions of what the engine deleted or untagged
        """
        pass

    @abstractmethod
    async def prune_build_cache(self) -> int:
        """Prune the builder cache and return the reclaimed bytes."""
        pass
