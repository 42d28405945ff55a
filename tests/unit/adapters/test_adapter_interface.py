"""
wave-planner — unit tests for the tracker adapter boundary

File: tests/unit/adapters/test_adapter_interface.py

Purpose
- Validate adapter protocols, typed failures, the adapter registry and source wiring.

What this test file should cover
- Error rendering for the adapter error taxonomy.
- Environment-based adapter detection.
- Registry registration, duplicate handling and factory result checks.
- ``plan_from_source`` substituting default contexts and propagating errors.

Functional requirements
- Offline; sources and providers are in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Sequence

import pytest
from structlog.testing import capture_logs

from wave_planner.adapters import (
    AdapterConfig,
    AdapterError,
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
from wave_planner.domain.models import CodebaseContext, FileInfo, Issue
from wave_planner.planning.estimator import FABRICATED_CONTEXT_ASSUMPTION

pytestmark = pytest.mark.unit


class _StaticSource:
    name = "linear"

    def __init__(self, issues: Sequence[Issue], error: Exception | None = None) -> None:
        self._issues = list(issues)
        self._error = error
        self.filters: list[IssueFilter | None] = []

    def list_issues(self, issue_filter: IssueFilter | None = None) -> Sequence[Issue]:
        self.filters.append(issue_filter)
        if self._error is not None:
            raise self._error
        return list(self._issues)


class _MappedProvider:
    def __init__(self, contexts: dict[str, CodebaseContext]) -> None:
        self._contexts = contexts

    def analyze_issue(self, issue: Issue) -> CodebaseContext | None:
        return self._contexts.get(issue.id)


def _issue(number: int) -> Issue:
    return Issue(id=f"id-{number}", identifier=f"ENG-{number}", title=f"Issue {number}")


def test_adapter_errors_render_adapter_and_operation() -> None:
    base = AdapterError("boom", "github", "list_issues")
    missing = NotFoundError("jira", "Issue", "PROJ-9")
    auth = AuthenticationError("linear")
    limited = RateLimitError("github", retry_after=30)

    assert str(base) == "[github] list_issues: boom"
    assert str(missing) == "[jira] lookup: Issue not found: PROJ-9"
    assert (missing.resource, missing.identifier) == ("Issue", "PROJ-9")
    assert str(auth) == "[linear] auth: Authentication failed or credentials missing"
    assert str(limited) == "[github] rate_limit: Rate limit exceeded, retry after 30s"
    assert str(RateLimitError("github")) == "[github] rate_limit: Rate limit exceeded"
    assert all(isinstance(error, AdapterError) for error in (missing, auth, limited))


@pytest.mark.parametrize(
    ("environ", "expected"),
    [
        ({"LINEAR_API_KEY": "k", "GITHUB_TOKEN": "t"}, "linear"),
        ({"GH_TOKEN": "t"}, "github"),
        ({"JIRA_API_TOKEN": "t", "JIRA_BASE_URL": "https://jira.example"}, "jira"),
        ({"JIRA_API_TOKEN": "t"}, None),
        ({"LINEAR_API_KEY": ""}, None),
        ({}, None),
    ],
)
def test_detect_adapter(environ: dict[str, str], expected: str | None) -> None:
    assert detect_adapter(environ) == expected


def test_adapter_config_normalizes_type() -> None:
    assert AdapterConfig(adapter_type=" GitHub ").adapter_type == "github"
    with pytest.raises(ValueError, match="unknown adapter"):
        AdapterConfig(adapter_type="trello")


def test_issue_filter_rejects_non_positive_limit() -> None:
    assert IssueFilter(limit=10).limit == 10
    with pytest.raises(ValueError, match="limit"):
        IssueFilter(limit=0)


def test_fakes_satisfy_runtime_protocols() -> None:
    assert isinstance(_StaticSource([]), IssueSource)
    assert isinstance(_MappedProvider({}), ContextProvider)


def test_registry_creates_registered_adapters() -> None:
    registry = AdapterRegistry()
    seen: list[AdapterConfig] = []

    def factory(config: AdapterConfig) -> IssueSource:
        seen.append(config)
        return _StaticSource([])

    registry.register("Linear", factory)
    config = AdapterConfig(adapter_type="linear", api_key="secret")

    source = registry.create(config)

    assert isinstance(source, _StaticSource)
    assert seen == [config]
    assert registry.is_registered("LINEAR")
    assert registry.names() == ("linear",)


def test_registry_rejects_duplicates_and_unknown_types() -> None:
    registry = AdapterRegistry()
    registry.register("github", lambda config: _StaticSource([]))

    with pytest.raises(ValueError, match="already registered"):
        registry.register("github", lambda config: _StaticSource([]))
    registry.register("github", lambda config: _StaticSource([]), overwrite=True)

    with pytest.raises(ValueError, match="unknown adapter type"):
        registry.register("trello", lambda config: _StaticSource([]))


def test_registry_create_failures() -> None:
    registry = AdapterRegistry()

    with pytest.raises(AdapterError, match=r"\[jira\] create: adapter is not registered"):
        registry.create(AdapterConfig(adapter_type="jira"))

    registry.register("jira", lambda config: object())  # type: ignore[arg-type,return-value]
    with pytest.raises(TypeError, match="invalid source"):
        registry.create(AdapterConfig(adapter_type="jira"))


def test_plan_from_source_defaults_missing_contexts() -> None:
    issues = [_issue(1), _issue(2)]
    source = _StaticSource(issues)
    provider = _MappedProvider(
        {"id-1": CodebaseContext.from_files([FileInfo(path="src/app.py", lines=30)])}
    )
    issue_filter = IssueFilter(project_id="proj", limit=50)

    with capture_logs() as logs:
        plan = plan_from_source(source, provider, issue_filter=issue_filter)

    assert source.filters == [issue_filter]
    assert plan.issue_count == 2
    estimates = {wave.issues[0].id: wave.token_estimate for wave in plan.waves}
    # The default context is passed explicitly, so the estimator records no fabrication.
    assert FABRICATED_CONTEXT_ASSUMPTION not in estimates["id-2"].assumptions
    assert estimates["id-2"].files_analyzed == 0
    (fetched,) = [entry for entry in logs if entry["event"] == "planning_source_fetched"]
    assert fetched["adapter"] == "linear"
    assert fetched["default_context_count"] == 1


def test_plan_from_source_propagates_adapter_errors() -> None:
    source = _StaticSource([], error=RateLimitError("linear", retry_after=5))

    with pytest.raises(RateLimitError) as excinfo:
        plan_from_source(source, _MappedProvider({}))

    assert excinfo.value.retry_after == 5
