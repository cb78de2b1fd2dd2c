"""In-memory container engine for tests and demos.

Design Pattern: Adapter Pattern
InMemoryContainerEngine adapts plain dictionaries to the ContainerEngine
interface. It enforces the same per-name uniqueness a real engine does, so
the deploy protocol's idempotency can be exercised without Docker.

Instance is immediately usable after __init__.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from uuid_extensions import uuid7

from deploybot.engine.base import (
    ContainerEngine,
    ContainerNotFoundError,
    ContainerSpec,
    EngineError,
    ImageInfo,
)


@dataclass
class FakeContainer:
    """A container tracked by InMemoryContainerEngine."""

    container_id: str
    spec: ContainerSpec
    running: bool = False
    logs: bytes = b""
    restarts: int = 0


@dataclass
class FakeNetwork:
    network_id: str
    name: str
    driver: str


@dataclass
class FakeImage:
    image_id: str
    tags: list[str] = field(default_factory=list)


class InMemoryContainerEngine(ContainerEngine):
    """In-memory engine for tests and local demos.

    Usage:
        engine = InMemoryContainerEngine()
        engine.fail("pull", EngineError("registry unreachable"))
        engine.delay("start", 0.5)

    Every call is appended to ``calls`` as ``(operation, target)`` so tests
    can assert on the exact protocol order.
    """

    def __init__(self, available_images: set[str] | None = None):
        """Initialize an empty engine.

        Args:
            available_images: Image refs the fake registry can serve.
                None means every image can be pulled.
        """
        self.containers: dict[str, FakeContainer] = {}
        self.networks: dict[str, FakeNetwork] = {}
        self.images: dict[str, FakeImage] = {}
        self.calls: list[tuple[str, str]] = []
        self.build_cache_bytes = 0

        self._available_images = available_images
        self._failures: dict[str, Exception] = {}
        self._delays: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"InMemoryContainerEngine(containers={len(self.containers)})"

    # ------------------------------------------------------------------
    # Test controls
    # ------------------------------------------------------------------

    def fail(self, operation: str, error: Exception) -> None:
        """Make every subsequent call of ``operation`` raise ``error``."""
        self._failures[operation] = error

    def clear_failure(self, operation: str) -> None:
        self._failures.pop(operation, None)

    def delay(self, operation: str, seconds: float) -> None:
        """Make ``operation`` sleep before acting, to simulate slow engines."""
        self._delays[operation] = seconds

    def running(self, name: str) -> FakeContainer | None:
        """Return the container under ``name`` if it is running."""
        container = self.containers.get(name)
        if container is not None and container.running:
            return container
        return None

    async def _enter(self, operation: str, target: str) -> None:
        self.calls.append((operation, target))
        seconds = self._delays.get(operation)
        if seconds:
            await asyncio.sleep(seconds)
        error = self._failures.get(operation)
        if error is not None:
            raise error

    def _by_id(self, container_id: str) -> FakeContainer | None:
        for container in self.containers.values():
            if container.container_id == container_id:
                return container
        return self.containers.get(container_id)

    # ------------------------------------------------------------------
    # Deploy protocol operations
    # ------------------------------------------------------------------

    async def stop_container(self, name: str) -> None:
        await self._enter("stop", name)
        async with self._lock:
            container = self.containers.get(name)
            if container is None:
                raise ContainerNotFoundError(f"No such container: {name}")
            container.running = False
            if container.spec.auto_remove:
                del self.containers[name]

    async def remove_container(self, name: str, force: bool = False) -> None:
        await self._enter("remove", name)
        async with self._lock:
            container = self.containers.get(name)
            if container is None:
                raise ContainerNotFoundError(f"No such container: {name}")
            if container.running and not force:
                raise EngineError(
                    f"You cannot remove a running container {container.container_id}. "
                    "Stop the container before attempting removal or force remove"
                )
            del self.containers[name]

    async def pull_image(self, image: str) -> None:
        await self._enter("pull", image)
        if self._available_images is not None and image not in self._available_images:
            raise ContainerNotFoundError(f"manifest for {image} not found")
        async with self._lock:
            if image not in self.images:
                self.images[image] = FakeImage(image_id=f"sha256:{uuid7().hex}", tags=[image])

    async def create_container(self, spec: ContainerSpec) -> str:
        await self._enter("create", spec.name)
        async with self._lock:
            if spec.image not in self.images:
                raise ContainerNotFoundError(f"No such image: {spec.image}")
            if spec.name in self.containers:
                raise EngineError(
                    f'Conflict. The container name "/{spec.name}" is already in use'
                )
            if spec.network is not None and spec.network.name not in self.networks:
                self.networks[spec.network.name] = FakeNetwork(
                    network_id=spec.network.network_id, name=spec.network.name, driver="bridge"
                )
            container_id = uuid7().hex
            self.containers[spec.name] = FakeContainer(container_id=container_id, spec=spec)
            return container_id

    async def start_container(self, container_id: str) -> None:
        await self._enter("start", container_id)
        async with self._lock:
            container = self._by_id(container_id)
            if container is None:
                raise ContainerNotFoundError(f"No such container: {container_id}")
            container.running = True
            container.logs += f"{container.spec.name} started\n".encode()

    # ------------------------------------------------------------------
    # Maintenance operations
    # ------------------------------------------------------------------

    async def restart_container(self, name: str) -> None:
        await self._enter("restart", name)
        async with self._lock:
            container = self.containers.get(name)
            if container is None:
                raise ContainerNotFoundError(f"No such container: {name}")
            container.running = True
            container.restarts += 1

    async def container_logs(self, name: str) -> bytes:
        await self._enter("logs", name)
        container = self.containers.get(name)
        if container is None:
            raise ContainerNotFoundError(f"No such container: {name}")
        return container.logs

    async def create_network(self, name: str, driver: str = "bridge") -> str:
        await self._enter("network_create", name)
        async with self._lock:
            if name in self.networks:
                raise EngineError(f"network with name {name} already exists")
            network = FakeNetwork(network_id=uuid7().hex, name=name, driver=driver)
            self.networks[name] = network
            return network.network_id

    async def get_network_id(self, name: str) -> str:
        await self._enter("network_inspect", name)
        network = self.networks.get(name)
        if network is None:
            raise ContainerNotFoundError(f"network {name} not found")
        return network.network_id

    async def remove_network(self, name: str) -> None:
        await self._enter("network_remove", name)
        async with self._lock:
            for key, network in list(self.networks.items()):
                if name in (key, network.network_id):
                    del self.networks[key]
                    return
            raise ContainerNotFoundError(f"network {name} not found")

    async def list_images(self) -> list[ImageInfo]:
        await self._enter("image_list", "")
        return [
            ImageInfo(image_id=img.image_id, tags=list(img.tags)) for img in self.images.values()
        ]

    async def remove_image(self, image_id: str) -> list[str]:
        await self._enter("image_remove", image_id)
        async with self._lock:
            for ref, image in list(self.images.items()):
                if image.image_id == image_id:
                    del self.images[ref]
                    return [f"Untagged: {tag}" for tag in image.tags] + [f"Deleted: {image_id}"]
            raise ContainerNotFoundError(f"No such image: {image_id}")

    async def prune_build_cache(self) -> int:
        await self._enter("builder_prune", "")
        reclaimed = self.build_cache_bytes
        self.build_cache_bytes = 0
        return reclaimed
