"""
Executor module - runtime engine for task dispatch.

This module contains the execution components:
- deployer: the stop/remove/pull/create/start container replacement
- timer: single-shot timeout timers with best-effort cancellation
- reporter: best-effort status updates to the control plane
- orchestrator: fetch, timeout race and terminal-status guard per dispatch
- ingestor: webhook-facing acknowledgment layer
"""

from deploybot.executor.deployer import ContainerDeployer, DeployError, build_container_spec
from deploybot.executor.ingestor import WebhookIngestor
from deploybot.executor.orchestrator import (
    Dispatch,
    DispatchHandle,
    OrchestratorHandle,
    QueueFullError,
    TaskOrchestrator,
)
from deploybot.executor.reporter import ReportResult, StatusReporter
from deploybot.executor.timer import TimeoutSupervisor, TimerError, TimerHandle, TimerState

__all__ = [
    # Deploy protocol
    "ContainerDeployer",
    "DeployError",
    "build_container_spec",
    # Timers
    "TimeoutSupervisor",
    "TimerError",
    "TimerHandle",
    "TimerState",
    # Reporting
    "ReportResult",
    "StatusReporter",
    # Orchestration
    "Dispatch",
    "DispatchHandle",
    "OrchestratorHandle",
    "QueueFullError",
    "TaskOrchestrator",
    # Ingress
    "WebhookIngestor",
]
