"""
Process assembly.

Design Pattern: Façade Pattern
Launcher hides how settings become a control-plane client, a container
engine, a deployer and an orchestrator, and owns the lifetime of the
clients it creates.

Usage:
    settings = load_settings()
    launcher = Launcher(settings)
    await launcher.start()
    ack = await launcher.ingestor.handle(request_body)
    ...
    await launcher.aclose()
"""

from __future__ import annotations

import logging

from deploybot.client.control_plane import ControlPlaneClient
from deploybot.config import Settings
from deploybot.engine.base import ContainerEngine
from deploybot.engine.maintenance import EngineMaintenance
from deploybot.executor.deployer import ContainerDeployer
from deploybot.executor.ingestor import WebhookIngestor
from deploybot.executor.orchestrator import OrchestratorHandle, TaskOrchestrator

logger = logging.getLogger(__name__)


class Launcher:
    """Wires the launcher's collaborators from Settings."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: ControlPlaneClient | None = None,
        engine: ContainerEngine | None = None,
    ):
        """Build collaborators, creating the real ones when not injected.

        Args:
            settings: Validated settings
            client: Control-plane client; an httpx-backed one if omitted
            engine: Container engine; a DockerEngine on settings.docker_host if omitted
        """
        self.settings = settings

        self._owns_client = client is None
        self.client = client or ControlPlaneClient(
            base_url=settings.api_base_url,
            access_token=settings.api_access_token,
            timeout_seconds=settings.http_timeout_seconds,
        )

        self._owns_engine = engine is None
        if engine is None:
            from deploybot.engine.docker import DockerEngine

            engine = DockerEngine(settings.docker_host)
        self.engine = engine

        self.orchestrator = TaskOrchestrator(
            self.client,
            ContainerDeployer(self.engine),
            timeout_unit_seconds=settings.timeout_unit_seconds,
            event_queue_size=settings.event_queue_size,
        )
        self.ingestor = WebhookIngestor(self.orchestrator)
        self.maintenance = EngineMaintenance(self.engine)
        self._handle: OrchestratorHandle | None = None

    async def start(self) -> OrchestratorHandle:
        """Start consuming queued notifications."""
        self._handle = await self.orchestrator.start()
        logger.info(f"Launcher started against {self.settings.api_base_url}")
        return self._handle

    async def aclose(self) -> None:
        """Shut the orchestrator down and close owned clients."""
        await self.orchestrator.shutdown()
        if self._owns_client:
            await self.client.aclose()
        if self._owns_engine:
            close = getattr(self.engine, "close", None)
            if close is not None:
                close()
        logger.info("Launcher closed")

    async def __aenter__(self) -> Launcher:
        await self.start()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()
