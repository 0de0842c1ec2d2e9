"""Configuration for Logfire observability."""

import os

from pydantic import BaseModel, Field


class ObservabilityConfig(BaseModel):
    """Configuration for Logfire observability."""

    # Connection
    token: str = Field(default_factory=lambda: os.getenv("LOGFIRE_TOKEN", ""), repr=False)
    project_name: str = "usufruit"
    environment: str = Field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))

    # Behavior
    enabled: bool = Field(
        default_factory=lambda: os.getenv("LOGFIRE_ENABLED", "true").lower() == "true"
    )
    console_output: bool = Field(
        default_factory=lambda: os.getenv("LOGFIRE_CONSOLE", "false").lower() == "true"
    )
    send_to_logfire: bool = Field(
        default_factory=lambda: os.getenv("LOGFIRE_SEND", "false").lower() == "true"
    )

    max_attribute_length: int = 1000


def get_environment_config() -> ObservabilityConfig:
    """Get configuration based on environment."""
    if os.getenv("ENVIRONMENT", "development") == "production":
        return ObservabilityConfig(console_output=False, send_to_logfire=True)
    return ObservabilityConfig()


class _ObservabilityStore:
    config: ObservabilityConfig | None = None


def set_observability_config(config: ObservabilityConfig) -> None:
    _ObservabilityStore.config = config


def get_observability_config() -> ObservabilityConfig:
    """Get current observability configuration."""
    if _ObservabilityStore.config is None:
        _ObservabilityStore.config = ObservabilityConfig()
    return _ObservabilityStore.config
