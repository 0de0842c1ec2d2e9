"""Logfire observability for usufruit."""

import logging

import logfire

from .config import ObservabilityConfig, get_observability_config, set_observability_config
from .decorators import trace_resource, trace_tool
from .metrics import record_denial, record_embedding_job, record_loan_event, record_search

logger = logging.getLogger(__name__)


def initialize_observability(config: ObservabilityConfig | None = None) -> None:
    """Initialize Logfire with configuration."""
    config = config or ObservabilityConfig()
    set_observability_config(config)

    if not config.enabled:
        logger.debug("Observability disabled via configuration")
        return

    logfire.configure(
        token=config.token or None,
        service_name=config.project_name,
        environment=config.environment,
        send_to_logfire=config.send_to_logfire,
        console=False if not config.console_output else None,
    )
    logger.debug("Logfire configured for %s (%s)", config.project_name, config.environment)


__all__ = [
    "ObservabilityConfig",
    "get_observability_config",
    "initialize_observability",
    "record_denial",
    "record_embedding_job",
    "record_loan_event",
    "record_search",
    "trace_resource",
    "trace_tool",
]
