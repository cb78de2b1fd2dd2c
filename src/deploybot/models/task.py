"""Inbound notification and control-plane task models.

Both are decoded from JSON: the notification from the webhook body and the
task from the control-plane detail response. Wire names are camelCase.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

__all__ = ["NotificationEvent", "Task", "decode_notification", "decode_task_response"]


class NotificationEvent(BaseModel):
    """Trigger telling the launcher a pipeline task is ready to run.

    Owned by the ingress layer and consumed once; never persisted.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    pipeline_id: str = Field(alias="pipelineId", min_length=1)
    task_id: str = Field(alias="taskId", min_length=1)
    arguments: list[Any] = Field(default_factory=list)
    """Passed through untouched; items may be any JSON value."""

    @model_validator(mode="before")
    @classmethod
    def _unwrap_envelope(cls, data: Any) -> Any:
        # Webhook bodies wrap the event in {"payload": {...}}
        if isinstance(data, dict) and "payload" in data and isinstance(data["payload"], dict):
            return data["payload"]
        return data


class Task(BaseModel):
    """A unit of work as described by the control plane.

    Fetched read-only for one dispatch. ``config`` stays opaque here; the
    deployment path decodes it into a DeploymentConfig.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    name: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    timeout: int = Field(default=0, ge=0)
    """Declared timeout in minutes, 0 means no timeout."""
    arguments: list[Any] = Field(default_factory=list)

    @property
    def has_timeout(self) -> bool:
        return self.timeout > 0


def decode_notification(raw: bytes | str | dict[str, Any]) -> NotificationEvent:
    """Decode a webhook body into a NotificationEvent.

    Raises:
        pydantic.ValidationError: If the body is not valid JSON or misses fields
    """
    if isinstance(raw, dict):
        return NotificationEvent.model_validate(raw)
    return NotificationEvent.model_validate_json(raw)


def decode_task_response(body: dict[str, Any]) -> Task:
    """Extract the Task from a detail response ``{"payload": {"task": {...}}}``."""
    payload = body.get("payload") if isinstance(body, dict) else None
    if isinstance(payload, dict) and "task" in payload:
        return Task.model_validate(payload["task"])
    return Task.model_validate(body)
