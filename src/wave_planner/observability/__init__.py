"""Public observability primitives: structlog configuration and correlation scopes."""

from wave_planner.observability.logging import (
    configure_logging,
    planning_scope,
    redact_sensitive_fields,
)

__all__ = [
    "configure_logging",
    "planning_scope",
    "redact_sensitive_fields",
]
