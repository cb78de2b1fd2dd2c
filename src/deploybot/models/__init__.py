"""Data models for task dispatch.

Wire models (NotificationEvent, Task, DeploymentConfig) are pydantic models
decoded from JSON; TaskStatus and Acknowledgment are plain value types.
"""

from deploybot.models.acknowledgment import AckCode, Acknowledgment
from deploybot.models.deploy_config import DEFAULT_RESTART_POLICY, DeploymentConfig, RestartPolicy
from deploybot.models.status import TaskStatus
from deploybot.models.task import NotificationEvent, Task, decode_notification, decode_task_response

__all__ = [
    "AckCode",
    "Acknowledgment",
    "DEFAULT_RESTART_POLICY",
    "DeploymentConfig",
    "RestartPolicy",
    "TaskStatus",
    "NotificationEvent",
    "Task",
    "decode_notification",
    "decode_task_response",
]
