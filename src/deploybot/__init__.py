"""
deploybot: deployment-task launcher.

Receives "task ready" notifications from a pipeline control plane, replaces
the task's service container with the requested image and configuration,
and reports the task's status back to the control plane.

Design Pattern: Façade Pattern
This module exposes the handful of types a hosting process needs, hiding
the engine adapters and the dispatch machinery behind them.

Example:
    ```python
    import asyncio
    from deploybot import Launcher, configure_logging, load_settings

    async def main(body: bytes):
        settings = load_settings()
        configure_logging(settings.log_level)
        async with Launcher(settings) as launcher:
            ack = await launcher.ingestor.handle(body)
            print(ack.http_status, ack.to_dict())
            await launcher.orchestrator.wait_idle()

    asyncio.run(main(b'{"payload": {"pipelineId": "p1", "taskId": "t1"}}'))
    ```
"""

from deploybot.app import Launcher
from deploybot.client import ControlPlaneClient, ControlPlaneError
from deploybot.config import ConfigurationError, Settings, configure_logging, load_settings
from deploybot.engine import (
    ContainerEngine,
    ContainerNotFoundError,
    ContainerSpec,
    EngineError,
    InMemoryContainerEngine,
)
from deploybot.engine.maintenance import EngineMaintenance, PruneReport
from deploybot.errors import DeployBotError
from deploybot.executor import (
    ContainerDeployer,
    DeployError,
    Dispatch,
    DispatchHandle,
    QueueFullError,
    ReportResult,
    StatusReporter,
    TaskOrchestrator,
    TimeoutSupervisor,
    TimerHandle,
    WebhookIngestor,
)
from deploybot.models import (
    AckCode,
    Acknowledgment,
    DeploymentConfig,
    NotificationEvent,
    RestartPolicy,
    Task,
    TaskStatus,
)

__version__ = "0.1.0"

__all__ = [
    # Assembly
    "Launcher",
    "Settings",
    "load_settings",
    "configure_logging",
    # Models
    "AckCode",
    "Acknowledgment",
    "DeploymentConfig",
    "NotificationEvent",
    "RestartPolicy",
    "Task",
    "TaskStatus",
    # Control plane
    "ControlPlaneClient",
    "ControlPlaneError",
    # Engines
    "ContainerEngine",
    "ContainerSpec",
    "InMemoryContainerEngine",
    "EngineMaintenance",
    "PruneReport",
    # Dispatch
    "ContainerDeployer",
    "Dispatch",
    "DispatchHandle",
    "ReportResult",
    "StatusReporter",
    "TaskOrchestrator",
    "TimeoutSupervisor",
    "TimerHandle",
    "WebhookIngestor",
    # Errors
    "DeployBotError",
    "ConfigurationError",
    "ContainerNotFoundError",
    "DeployError",
    "EngineError",
    "QueueFullError",
    # Metadata
    "__version__",
]
