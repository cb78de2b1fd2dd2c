"""Deployment configuration carried in a task's config payload.

The service name doubles as the container name, which is what makes
redeploying the same service idempotent: the previous container is found
(or not) by name.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = ["DEFAULT_RESTART_POLICY", "DeploymentConfig", "RestartPolicy"]

DEFAULT_RESTART_POLICY = "on-failure"


class RestartPolicy(BaseModel):
    """Container restart policy; an empty name means the engine default."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = ""
    maximum_retry_count: int = Field(default=0, alias="maximumRetryCount", ge=0)

    @property
    def effective_name(self) -> str:
        return self.name or DEFAULT_RESTART_POLICY


class DeploymentConfig(BaseModel):
    """Everything needed to replace one service container."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    service_name: str = Field(alias="serviceName", min_length=1)
    image_name: str = Field(alias="imageName", min_length=1)
    image_tag: str = Field(default="latest", alias="imageTag")
    env: list[str] = Field(default_factory=list)
    ports: dict[str, str] = Field(default_factory=dict)
    """Container port → host port."""
    volume_mounts: dict[str, str] = Field(default_factory=dict, alias="volumeMounts")
    """Host path → container path."""
    network_name: str = Field(default="", alias="networkName")
    network_id: str = Field(default="", alias="networkId")
    restart_policy: RestartPolicy = Field(default_factory=RestartPolicy, alias="restartPolicy")
    auto_remove: bool = Field(default=False, alias="autoRemove")

    @field_validator("env", mode="before")
    @classmethod
    def _normalize_env(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, dict):
            return [f"{key}={val}" for key, val in value.items()]
        return value

    @field_validator("ports", "volume_mounts", mode="before")
    @classmethod
    def _stringify_mapping(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(key): str(val) for key, val in value.items()}
        return value

    @field_validator("image_tag", mode="before")
    @classmethod
    def _default_tag(cls, value: Any) -> Any:
        return value or "latest"

    @property
    def image_ref(self) -> str:
        """Image reference in ``name:tag`` form."""
        return f"{self.image_name}:{self.image_tag}"

    @property
    def has_network(self) -> bool:
        """Network attachment requires both the name and the id."""
        return bool(self.network_name and self.network_id)

    @classmethod
    def from_task_config(cls, config: dict[str, Any]) -> DeploymentConfig:
        """Decode the opaque task config payload.

        Raises:
            pydantic.ValidationError: If required keys are missing or mistyped
        """
        return cls.model_validate(config)
