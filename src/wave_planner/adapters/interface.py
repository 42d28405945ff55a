"""
wave-planner — tracker adapter boundary

File: src/wave_planner/adapters/interface.py

Purpose
- Describe what the planning engine needs from project trackers and codebase search.
- Define the typed failures adapters surface before data reaches the engine.

What should be included in this file
- ``IssueSource`` and ``ContextProvider`` protocols plus ``IssueFilter``.
- ``AdapterError`` taxonomy, adapter registry and environment detection.
- ``plan_from_source`` wiring a source and provider into ``build_plan``.

Functional requirements
- Missing contexts are substituted with ``CodebaseContext.default()``.
- Adapter errors propagate unchanged to the caller.

Non-functional requirements
- No network code lives here; concrete adapters register factories.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Protocol, TypeAlias, runtime_checkable

import structlog

from wave_planner.domain.models import CodebaseContext, Issue, Priority
from wave_planner.planning.plan import WavePlan, build_plan

ADAPTER_TYPES: Final[tuple[str, ...]] = ("linear", "github", "jira")


@dataclass(frozen=True, slots=True)
class IssueFilter:
    """Tracker-agnostic issue query; ``None`` fields are unconstrained."""

    project_id: str | None = None
    milestone_id: str | None = None
    priorities: tuple[Priority, ...] = ()
    states: tuple[str, ...] = ()
    labels: tuple[str, ...] = ()
    assignee: str | None = None
    search: str | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        if self.limit is not None and (isinstance(self.limit, bool) or self.limit < 1):
            raise ValueError("IssueFilter.limit: must be >= 1")


@dataclass(frozen=True, slots=True)
class AdapterConfig:
    adapter_type: str
    api_key: str | None = None
    base_url: str | None = None
    team_id: str | None = None

    def __post_init__(self) -> None:
        normalized = self.adapter_type.strip().lower()
        if normalized not in ADAPTER_TYPES:
            raise ValueError(
                f"AdapterConfig.adapter_type: unknown adapter {self.adapter_type!r}; "
                f"expected one of: {', '.join(ADAPTER_TYPES)}"
            )
        object.__setattr__(self, "adapter_type", normalized)


@runtime_checkable
class IssueSource(Protocol):
    """Protocol implemented by tracker adapters (Linear, GitHub, Jira)."""

    name: str

    def list_issues(self, issue_filter: IssueFilter | None = None) -> Sequence[Issue]:
        """Return issues matching ``issue_filter`` in tracker order."""


@runtime_checkable
class ContextProvider(Protocol):
    """Protocol implemented by codebase search backends."""

    def analyze_issue(self, issue: Issue) -> CodebaseContext | None:
        """Return the files ``issue`` is likely to touch, or ``None`` if unknown."""


AdapterFactory: TypeAlias = Callable[[AdapterConfig], IssueSource]


class AdapterError(RuntimeError):
    """Base adapter failure rendered as ``[adapter] operation: message``."""

    def __init__(self, message: str, adapter: str, operation: str) -> None:
        self.message = message
        self.adapter = adapter
        self.operation = operation
        super().__init__(f"[{adapter}] {operation}: {message}")


class NotFoundError(AdapterError):
    def __init__(self, adapter: str, resource: str, identifier: str) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}", adapter, "lookup")


class AuthenticationError(AdapterError):
    def __init__(self, adapter: str) -> None:
        super().__init__("Authentication failed or credentials missing", adapter, "auth")


class RateLimitError(AdapterError):
    """Tracker rate limit; ``retry_after`` is in seconds when the tracker says."""

    def __init__(self, adapter: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        suffix = f", retry after {retry_after:g}s" if retry_after else ""
        super().__init__(f"Rate limit exceeded{suffix}", adapter, "rate_limit")


class AdapterRegistry:
    """Registry for tracker adapter factories."""

    def __init__(self) -> None:
        self._factories: dict[str, AdapterFactory] = {}

    def register(self, name: str, factory: AdapterFactory, *, overwrite: bool = False) -> None:
        normalized = name.strip().lower()
        if normalized not in ADAPTER_TYPES:
            raise ValueError(f"unknown adapter type: {name}")
        if normalized in self._factories and not overwrite:
            raise ValueError(f"adapter already registered: {normalized}")
        self._factories[normalized] = factory

    def is_registered(self, name: str) -> bool:
        return name.strip().lower() in self._factories

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._factories))

    def create(self, config: AdapterConfig) -> IssueSource:
        factory = self._factories.get(config.adapter_type)
        if factory is None:
            raise AdapterError("adapter is not registered", config.adapter_type, "create")
        adapter = factory(config)
        if not isinstance(adapter, IssueSource):
            raise TypeError(f"adapter factory returned invalid source for {config.adapter_type}")
        return adapter


def detect_adapter(environ: Mapping[str, str] | None = None) -> str | None:
    """Pick a tracker from credentials present in the environment."""

    env = os.environ if environ is None else environ
    if env.get("LINEAR_API_KEY"):
        return "linear"
    if env.get("GITHUB_TOKEN") or env.get("GH_TOKEN"):
        return "github"
    if env.get("JIRA_API_TOKEN") and env.get("JIRA_BASE_URL"):
        return "jira"
    return None


def plan_from_source(
    source: IssueSource,
    provider: ContextProvider,
    *,
    issue_filter: IssueFilter | None = None,
    config: Mapping[str, object] | None = None,
    run_id: str | None = None,
    logger: Any | None = None,
) -> WavePlan:
    """Fetch issues, resolve their contexts and build a wave plan."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    issues = list(source.list_issues(issue_filter))

    contexts: dict[str, CodebaseContext] = {}
    missing = 0
    for issue in issues:
        context = provider.analyze_issue(issue)
        if context is None:
            context = CodebaseContext.default()
            missing += 1
        contexts[issue.id] = context

    log.info(
        "planning_source_fetched",
        adapter=source.name,
        issue_count=len(issues),
        default_context_count=missing,
    )
    return build_plan(issues, contexts, config=config, run_id=run_id, logger=logger)


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
