"""
Container replacement protocol.

Replaces the container named after a service with one built from a new
image and configuration, in a fixed order:

    stop → remove → pull → create → start

Stop and remove tolerate "not found", which is what makes a repeated deploy
of the same service safe. Every other failure aborts the protocol at that
step and is raised as DeployError naming the step. Nothing is rolled back:
a container that was created but failed to start stays where it is, and the
next deploy's stop/remove clears it.
"""

from __future__ import annotations

import logging

from deploybot.engine.base import (
    BindMount,
    ContainerEngine,
    ContainerNotFoundError,
    ContainerSpec,
    EngineError,
    NetworkAttachment,
    PortBinding,
)
from deploybot.errors import DeployBotError
from deploybot.models import DeploymentConfig

logger = logging.getLogger(__name__)


class DeployError(DeployBotError):
    """A step of the deploy protocol failed.

    Attributes:
        step: Failing step (stop, remove, pull, create, start or config)
        service_name: Service being deployed
    """

    def __init__(self, step: str, service_name: str, cause: Exception | str):
        super().__init__(f"deploy of {service_name!r} failed at {step}: {cause}")
        self.step = step
        self.service_name = service_name


def build_container_spec(config: DeploymentConfig) -> ContainerSpec:
    """Translate a DeploymentConfig into the engine's runtime configuration.

    - env is passed verbatim
    - each container port is bound as tcp to its host port on all interfaces
    - volume mounts become bind mounts (host path → container path)
    - an empty restart policy name means "on-failure"
    - the network is attached only when both its name and id are known
    """
    network = None
    if config.has_network:
        network = NetworkAttachment(name=config.network_name, network_id=config.network_id)

    return ContainerSpec(
        name=config.service_name,
        image=config.image_ref,
        env=tuple(config.env),
        ports=tuple(
            PortBinding(container_port=container_port, host_port=host_port)
            for container_port, host_port in config.ports.items()
        ),
        mounts=tuple(
            BindMount(source=source, target=target)
            for source, target in config.volume_mounts.items()
        ),
        restart_policy=config.restart_policy.effective_name,
        restart_max_retries=config.restart_policy.maximum_retry_count,
        auto_remove=config.auto_remove,
        network=network,
    )


class ContainerDeployer:
    """Runs the deploy protocol against a ContainerEngine.

    Holds no state between deploys; the engine is the source of truth for
    what is running.

    Usage:
        deployer = ContainerDeployer(engine)
        container_id = await deployer.deploy(config)
    """

    def __init__(self, engine: ContainerEngine):
        self._engine = engine

    @property
    def engine(self) -> ContainerEngine:
        return self._engine

    async def deploy(self, config: DeploymentConfig) -> str:
        """Replace the service's container.

        Args:
            config: Decoded deployment configuration

        Returns:
            Id of the newly started container

        Raises:
            DeployError: If any step fails; ``step`` names which one
        """
        name = config.service_name
        logger.info(f"Deploying {name} from {config.image_ref}")

        await self._teardown("stop", name)
        await self._teardown("remove", name)

        try:
            await self._engine.pull_image(config.image_ref)
        except EngineError as e:
            raise DeployError("pull", name, e) from e
        logger.info(f"Pulled {config.image_ref}")

        spec = build_container_spec(config)
        try:
            container_id = await self._engine.create_container(spec)
        except EngineError as e:
            raise DeployError("create", name, e) from e
        logger.debug(f"Created container {name} ({container_id})")

        try:
            await self._engine.start_container(container_id)
        except EngineError as e:
            raise DeployError("start", name, e) from e

        logger.info(f"Started {name} ({container_id})")
        return container_id

    async def _teardown(self, step: str, name: str) -> None:
        try:
            if step == "stop":
                await self._engine.stop_container(name)
            else:
                await self._engine.remove_container(name)
        except ContainerNotFoundError:
            logger.debug(f"No existing container {name} to {step}")
        except EngineError as e:
            raise DeployError(step, name, e) from e
