"""Tracker adapter boundary: source/provider protocols, typed failures and registry."""

from wave_planner.adapters.interface import (
    ADAPTER_TYPES,
    AdapterConfig,
    AdapterError,
    AdapterFactory,
    AdapterRegistry,
    AuthenticationError,
    ContextProvider,
    IssueFilter,
    IssueSource,
    NotFoundError,
    RateLimitError,
    detect_adapter,
    plan_from_source,
)

__all__ = [
    "ADAPTER_TYPES",
    "AdapterConfig",
    "AdapterError",
    "AdapterFactory",
    "AdapterRegistry",
    "AuthenticationError",
    "ContextProvider",
    "IssueFilter",
    "IssueSource",
    "NotFoundError",
    "RateLimitError",
    "detect_adapter",
    "plan_from_source",
]
