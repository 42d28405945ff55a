"""
Integration test: tracker payloads -> contexts -> wave plan.

Purpose:
- Verify the shipped config file, the organizer, the risk predictor and the source wiring
  agree on one realistic backlog.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

import pytest

from wave_planner.adapters import IssueFilter, plan_from_source
from wave_planner.config import load_config
from wave_planner.domain.models import (
    AdjustmentType,
    AgentType,
    CodebaseContext,
    Issue,
    RiskCategory,
    RiskImpact,
)
from wave_planner.planning.plan import build_plan

REPO_CONFIG = Path(__file__).resolve().parents[2] / "wave_planner.toml"

_ISSUE_PAYLOADS: tuple[dict[str, object], ...] = (
    {
        "id": "iss-10",
        "identifier": "ENG-10",
        "title": "Add OAuth login",
        "description": "Integrate with GitHub OAuth for user authentication.",
        "priority": "urgent",
        "labels": ["backend", {"name": "auth"}],
        "child_ids": ["iss-11"],
    },
    {
        "id": "iss-11",
        "identifier": "ENG-11",
        "title": "Session storage schema migration",
        "description": "Persist sessions in a new table.",
        "priority": "high",
        "labels": ["backend"],
        "parent_id": "iss-10",
    },
    {
        "id": "iss-12",
        "identifier": "ENG-12",
        "title": "Login page component",
        "priority": "medium",
        "labels": ["frontend", "depends:ENG-10"],
    },
    {
        "id": "iss-13",
        "identifier": "ENG-13",
        "title": "Document login flow",
        "priority": "low",
        "labels": ["docs"],
    },
    {
        "id": "iss-14",
        "identifier": "ENG-14",
        "title": "E2E tests for login",
        "priority": "medium",
        "labels": ["testing"],
    },
)

_CONTEXT_PAYLOADS: dict[str, dict[str, object]] = {
    "iss-10": {
        "files_likely_touched": [
            {"path": "src/auth/oauth.py", "lines": 120, "complexity": "high"},
            {"path": "src/api/routes.py", "lines": 80},
        ]
    },
    "iss-11": {
        "files_likely_touched": [
            {"path": "src/db/models/session.py", "lines": 60},
            {"path": "migrations/0002_sessions.py", "lines": 40},
        ],
        "related_files": [{"path": "src/auth/oauth.py", "lines": 120}],
    },
    "iss-12": {"files_likely_touched": [{"path": "web/components/Login.tsx", "lines": 40}]},
    "iss-14": {
        "files_likely_touched": [{"path": "tests/e2e/test_login.py", "lines": 30}],
        "related_files": [{"path": "web/components/Login.tsx", "lines": 40}],
    },
}


def _backlog() -> tuple[list[Issue], dict[str, CodebaseContext]]:
    issues = [Issue.from_dict(payload) for payload in _ISSUE_PAYLOADS]
    contexts = {
        issue_id: CodebaseContext.from_dict(payload)
        for issue_id, payload in _CONTEXT_PAYLOADS.items()
    }
    return issues, contexts


class _PayloadSource:
    name = "github"

    def __init__(self, issues: Sequence[Issue]) -> None:
        self._issues = list(issues)

    def list_issues(self, issue_filter: IssueFilter | None = None) -> Sequence[Issue]:
        return list(self._issues)


class _PayloadProvider:
    def __init__(self, contexts: dict[str, CodebaseContext]) -> None:
        self._contexts = contexts

    def analyze_issue(self, issue: Issue) -> CodebaseContext | None:
        return self._contexts.get(issue.id)


@pytest.mark.integration
def test_backlog_plan_from_repo_config() -> None:
    config = load_config(REPO_CONFIG, environ={})
    issues, contexts = _backlog()

    plan = build_plan(issues, contexts, config=config, run_id="e2e")

    assert [wave.issue_identifiers for wave in plan.waves] == [
        ("ENG-10",),
        ("ENG-11",),
        ("ENG-12", "ENG-14"),
        ("ENG-13",),
    ]
    assert [wave.dependencies for wave in plan.waves] == [(), (1,), (), ()]
    assert all(wave.parallelizable for wave in plan.waves)
    assert plan.waves[0].name == "Backend"
    assert plan.waves[2].name == "Frontend"
    assert plan.total_estimate == sum(wave.token_estimate.total for wave in plan.waves)

    agents = {
        assignment.issue_identifier: assignment.agent_type
        for wave in plan.waves
        for assignment in wave.agents
    }
    assert agents == {
        "ENG-10": AgentType.SECURITY_SPECIALIST,
        "ENG-11": AgentType.BACKEND_DEVELOPER,
        "ENG-12": AgentType.FRONTEND_DEVELOPER,
        "ENG-13": AgentType.DOCUMENTATION_WRITER,
        "ENG-14": AgentType.TEST_ENGINEER,
    }

    risks = plan.risk_analysis.risks
    security = [
        risk
        for risk in risks
        if risk.issue_identifier == "ENG-10" and risk.category is RiskCategory.SECURITY
    ]
    assert security and security[0].impact is RiskImpact.CRITICAL
    assert any(
        risk.issue_identifier == "ENG-11" and risk.category is RiskCategory.BREAKING_CHANGE
        for risk in risks
    )
    assert [risk.id for risk in risks] == [f"RISK-{index}" for index in range(1, len(risks) + 1)]
    assert 0 <= plan.risk_analysis.total_risk_score <= 100

    recommendations = {
        (adjustment.adjustment_type, adjustment.affected_issues[0]): adjustment.recommendation
        for adjustment in plan.risk_analysis.wave_adjustments
        if adjustment.affected_issues
    }
    assert (AdjustmentType.REORDER, "ENG-11") in recommendations
    assert recommendations[(AdjustmentType.ADD_DEPENDENCY, "ENG-11")] == (
        "Ensure ENG-10 complete before ENG-11"
    )
    assert recommendations[(AdjustmentType.ADD_DEPENDENCY, "ENG-12")] == (
        "Ensure ENG-10 complete before ENG-12"
    )


@pytest.mark.integration
def test_conservative_profile_tightens_waves() -> None:
    config = load_config(REPO_CONFIG, profile="conservative", environ={})
    issues = [
        Issue(id=f"id-{number}", identifier=f"ENG-{number}", title=f"Refine widget {number}")
        for number in range(1, 6)
    ]
    shared = CodebaseContext.from_dict(
        {"files_likely_touched": [{"path": "src/widget.py", "lines": 10}]}
    )

    plan = build_plan(issues, {issue.id: shared for issue in issues}, config=config)

    assert [len(wave.issues) for wave in plan.waves] == [3, 2]
    assert all(wave.token_estimate.total <= 100_000 for wave in plan.waves)


@pytest.mark.integration
def test_source_pipeline_serializes_deterministically() -> None:
    issues, contexts = _backlog()
    source = _PayloadSource(issues)
    provider = _PayloadProvider(contexts)

    first = plan_from_source(source, provider, run_id="same")
    second = plan_from_source(source, provider, run_id="same")

    assert first.to_json() == second.to_json()
    payload = json.loads(first.to_json())
    assert payload["total_estimate"] == first.total_estimate
    assert [wave["number"] for wave in payload["waves"]] == [1, 2, 3, 4]
    categories = {risk["category"] for risk in payload["risk_analysis"]["risks"]}
    assert {"security", "breaking_change", "integration"} <= categories
    # ENG-13 has no analyzed context, so the source wiring fills in the default.
    documentation_wave = payload["waves"][3]
    assert documentation_wave["token_estimate"]["files_analyzed"] == 0
