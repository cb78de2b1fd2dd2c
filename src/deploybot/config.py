"""Typed process configuration loaded from the environment via pydantic-settings.

Required settings are validated before anything is served: load_settings()
turns a missing or invalid value into a ConfigurationError naming the
offending variables, and the hosting process is expected to exit on it.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from deploybot.errors import DeployBotError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ConfigurationError(DeployBotError):
    """Raised when required configuration is missing or invalid."""


class Settings(BaseSettings):
    """Launcher settings; each field maps to the upper-case env variable."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Control plane ===
    api_base_url: str
    api_access_token: str
    http_timeout_seconds: float = 30.0

    # === Container engine ===
    docker_host: str = "unix:///var/run/docker.sock"

    # === Dispatch ===
    timeout_unit_seconds: float = 60.0
    event_queue_size: int = 100

    # === Logging ===
    log_level: str = "INFO"

    @field_validator("api_base_url")
    @classmethod
    def _absolute_http_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"expected an absolute http(s) URL, got {value!r}")
        return value.rstrip("/")

    @field_validator("api_access_token")
    @classmethod
    def _non_empty_token(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("http_timeout_seconds", "timeout_unit_seconds")
    @classmethod
    def _positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("event_queue_size")
    @classmethod
    def _positive_queue_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level {value!r}")
        return level


def load_settings(env_file: str | None = ".env", **overrides: object) -> Settings:
    """Load and validate settings, failing fast.

    Args:
        env_file: Optional .env file to read in addition to the environment
        **overrides: Explicit values that win over the environment

    Raises:
        ConfigurationError: If a required variable is missing or invalid
    """
    try:
        return Settings(_env_file=env_file, **overrides)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]).upper() for err in e.errors() if err["loc"]})
        raise ConfigurationError(
            f"Invalid launcher configuration ({', '.join(fields)}): {e}"
        ) from e


def configure_logging(level: str = "INFO") -> None:
    """Apply the process-wide log format."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
