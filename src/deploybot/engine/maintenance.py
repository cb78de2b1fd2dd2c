"""Operational helpers around a container engine.

Everything here is outside the deploy protocol: restarting or inspecting a
service, managing networks and reclaiming disk space. Cleanup is best
effort; a single image that cannot be removed is logged and recorded in the
report instead of aborting the sweep.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from deploybot.engine.base import ContainerEngine, ContainerNotFoundError, EngineError

logger = logging.getLogger(__name__)


@dataclass
class PruneReport:
    """Outcome of an image cleanup sweep."""

    removed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    """Image id → error message for images that could not be removed."""

    @property
    def ok(self) -> bool:
        return not self.failed


class EngineMaintenance:
    """Service and host housekeeping on top of a ContainerEngine."""

    def __init__(self, engine: ContainerEngine):
        self._engine = engine

    async def restart_service(self, service_name: str) -> None:
        logger.info(f"Restarting service container {service_name}")
        await self._engine.restart_container(service_name)

    async def service_logs(self, service_name: str) -> bytes:
        return await self._engine.container_logs(service_name)

    async def stop_service(self, service_name: str) -> None:
        await self._engine.stop_container(service_name)

    async def remove_service(self, service_name: str) -> None:
        """Force-remove the service container, running or not."""
        await self._engine.remove_container(service_name, force=True)

    async def create_network(self, name: str) -> str:
        network_id = await self._engine.create_network(name, driver="bridge")
        logger.info(f"Created network {name} ({network_id})")
        return network_id

    async def get_network_id(self, name: str) -> str:
        return await self._engine.get_network_id(name)

    async def ensure_network(self, name: str) -> str:
        """Return the id of network ``name``, creating it if it is missing."""
        try:
            return await self._engine.get_network_id(name)
        except ContainerNotFoundError:
            return await self.create_network(name)

    async def remove_network(self, name: str) -> None:
        await self._engine.remove_network(name)

    async def remove_images(self) -> PruneReport:
        """Force-remove every local image.

        Listing failures propagate; per-image failures do not.
        """
        report = PruneReport()
        images = await self._engine.list_images()
        for image in images:
            try:
                items = await self._engine.remove_image(image.image_id)
            except EngineError as e:
                logger.warning(f"Failed to remove image {image.image_id}: {e}")
                report.failed[image.image_id] = str(e)
                continue
            logger.info(f"Removed image {image.image_id}: {items}")
            report.removed.append(image.image_id)
        return report

    async def remove_builder_cache(self) -> int:
        reclaimed = await self._engine.prune_build_cache()
        logger.info(f"Builder cache pruned, reclaimed {reclaimed} bytes")
        return reclaimed
