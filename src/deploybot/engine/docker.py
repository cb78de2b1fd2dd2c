"""Docker-backed container engine.

Adapts the Docker SDK (docker-py) to the ContainerEngine interface. The SDK
is synchronous, so every call runs in a worker thread via asyncio.to_thread;
the event loop stays free to accept notifications while an image pulls.

Error mapping:
- docker.errors.NotFound (and ImageNotFound) → ContainerNotFoundError
- 409 "removal already in progress" on remove → ContainerNotFoundError
- any other docker.errors.DockerException → EngineError

Design: Adapter Pattern
Implements ContainerEngine for Docker, adapting the SDK's object model
(containers, images, networks collections) to name-addressed operations.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, TypeVar

import docker
from docker.errors import APIError, DockerException, NotFound
from docker.types import Mount
from docker.utils import parse_repository_tag

from deploybot.engine.base import (
    ContainerEngine,
    ContainerNotFoundError,
    ContainerSpec,
    EngineError,
    ImageInfo,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DOCKER_HOST = "unix:///var/run/docker.sock"


def _removal_in_progress(error: BaseException | None) -> bool:
    """Check for the daemon's 409 answer to removing a container mid-removal."""
    if not isinstance(error, APIError) or error.status_code != 409:
        return False
    return "already in progress" in str(error.explanation or error)


class DockerEngine(ContainerEngine):
    """Docker engine using a shared DockerClient.

    Usage:
        engine = DockerEngine("unix:///var/run/docker.sock")
        await engine.pull_image("nginx:1.27")
        ...
        engine.close()
    """

    def __init__(self, docker_host: str = DEFAULT_DOCKER_HOST, client: Any | None = None):
        """Initialize the engine.

        Args:
            docker_host: Daemon address, ignored when ``client`` is given
            client: Pre-built DockerClient (tests pass a mock here)

        Raises:
            EngineError: If the client cannot be constructed
        """
        if client is None:
            try:
                client = docker.DockerClient(base_url=docker_host, version="auto")
            except DockerException as e:
                raise EngineError(f"Cannot connect to Docker at {docker_host}: {e}") from e
        self._client = client
        self._docker_host = docker_host

    def __repr__(self) -> str:
        return f"DockerEngine({self._docker_host!r})"

    def close(self) -> None:
        """Close the underlying HTTP session to the daemon."""
        self._client.close()

    async def _call(self, operation: str, fn: Callable[[], T]) -> T:
        """Run a blocking SDK call in a thread and translate its errors."""
        try:
            return await asyncio.to_thread(fn)
        except NotFound as e:
            raise ContainerNotFoundError(f"{operation}: {e.explanation or e}") from e
        except DockerException as e:
            raise EngineError(f"{operation}: {e}") from e

    # ========================================================================
    # Deploy protocol operations
    # ========================================================================

    async def stop_container(self, name: str) -> None:
        await self._call("stop", lambda: self._client.containers.get(name).stop())

    async def remove_container(self, name: str, force: bool = False) -> None:
        """Remove a container by name.

        Stopping an auto-remove container makes the daemon remove it on its
        own; a remove racing that answers 409 "removal ... already in
        progress", which is reported as ContainerNotFoundError like a
        container that is already gone.
        """
        try:
            await self._call(
                "remove", lambda: self._client.containers.get(name).remove(force=force)
            )
        except ContainerNotFoundError:
            raise
        except EngineError as e:
            if _removal_in_progress(e.__cause__):
                logger.debug(f"Container {name} is already being removed")
                raise ContainerNotFoundError(f"remove: {e}") from e.__cause__
            raise

    async def pull_image(self, image: str) -> None:
        repository, tag = parse_repository_tag(image)

        def pull() -> None:
            pulled = self._client.images.pull(repository, tag=tag or "latest")
            logger.info(f"Pulled image {image}: {getattr(pulled, 'id', pulled)}")

        await self._call("pull", pull)

    async def create_container(self, spec: ContainerSpec) -> str:
        kwargs = self._create_kwargs(spec)

        def create() -> str:
            return self._client.containers.create(spec.image, **kwargs).id

        return await self._call("create", create)

    async def start_container(self, container_id: str) -> None:
        await self._call("start", lambda: self._client.containers.get(container_id).start())

    @staticmethod
    def _create_kwargs(spec: ContainerSpec) -> dict[str, Any]:
        """Translate a ContainerSpec into ``containers.create`` keyword arguments.

        Ports are given as ``{"8080/tcp": "9090"}``; the SDK derives the
        exposed-port set from the keys and an unqualified host port binds on
        all interfaces.
        """
        kwargs: dict[str, Any] = {
            "name": spec.name,
            "environment": list(spec.env),
            "auto_remove": spec.auto_remove,
            "restart_policy": {
                "Name": spec.restart_policy,
                "MaximumRetryCount": spec.restart_max_retries,
            },
        }
        if spec.ports:
            kwargs["ports"] = {
                binding.key: (binding.host_ip, binding.host_port)
                if binding.host_ip
                else binding.host_port
                for binding in spec.ports
            }
        if spec.mounts:
            kwargs["mounts"] = [
                Mount(target=mount.target, source=mount.source, type="bind")
                for mount in spec.mounts
            ]
        if spec.network is not None:
            kwargs["network"] = spec.network.name
        return kwargs

    # ========================================================================
    # Maintenance operations
    # ========================================================================

    async def restart_container(self, name: str) -> None:
        await self._call("restart", lambda: self._client.containers.get(name).restart())

    async def container_logs(self, name: str) -> bytes:
        return await self._call(
            "logs", lambda: self._client.containers.get(name).logs(stdout=True, stderr=False)
        )

    async def create_network(self, name: str, driver: str = "bridge") -> str:
        return await self._call(
            "network_create", lambda: self._client.networks.create(name, driver=driver).id
        )

    async def get_network_id(self, name: str) -> str:
        return await self._call("network_inspect", lambda: self._client.networks.get(name).id)

    async def remove_network(self, name: str) -> None:
        await self._call("network_remove", lambda: self._client.networks.get(name).remove())

    async def list_images(self) -> list[ImageInfo]:
        images = await self._call("image_list", lambda: self._client.images.list())
        return [ImageInfo(image_id=img.id, tags=list(img.tags)) for img in images]

    async def remove_image(self, image_id: str) -> list[str]:
        items = await self._call(
            "image_remove",
            lambda: self._client.api.remove_image(image_id, force=True, noprune=False),
        )
        removed: list[str] = []
        for item in items or []:
            for action, ref in item.items():
                removed.append(f"{action}: {ref}")
        return removed

    async def prune_build_cache(self) -> int:
        report = await self._call("builder_prune", lambda: self._client.images.prune_builds())
        return int((report or {}).get("SpaceReclaimed") or 0)
