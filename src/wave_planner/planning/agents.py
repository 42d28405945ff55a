"""
wave-planner — specialist agent inference

File: src/wave_planner/planning/agents.py

Purpose
- Classify each issue into the specialist agent type that should execute it.

Functional requirements
- Rules are evaluated in a fixed order and the first matching rule wins:
  security, frontend, backend, devops, test, documentation, research.
- Issues matching no rule are assigned ``general-purpose``.
- Text patterns match anywhere in the title and description, so ``auth``
  also fires for ``OAuth`` and ``unauthorized``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Final

from wave_planner.domain.models import AgentAssignment, AgentType, Issue


@dataclass(frozen=True, slots=True)
class AgentRule:
    """One classification rule: a label set plus a text pattern."""

    agent_type: AgentType
    labels: frozenset[str]
    pattern: re.Pattern[str]

    def matches(self, label_names: Iterable[str], text: str) -> bool:
        if any(name in self.labels for name in label_names):
            return True
        return self.pattern.search(text) is not None


def _rule(agent_type: AgentType, labels: Iterable[str], terms: Iterable[str]) -> AgentRule:
    alternatives = "|".join(terms)
    return AgentRule(
        agent_type=agent_type,
        labels=frozenset(labels),
        pattern=re.compile(rf"(?:{alternatives})", re.IGNORECASE),
    )


AGENT_RULES: Final[tuple[AgentRule, ...]] = (
    _rule(
        AgentType.SECURITY_SPECIALIST,
        ("security", "auth", "authentication", "vulnerability"),
        (
            "security",
            "auth",
            "encrypt",
            "credential",
            "permission",
            "access control",
            "xss",
            "sql injection",
            "csrf",
        ),
    ),
    _rule(
        AgentType.FRONTEND_DEVELOPER,
        ("frontend", "ui", "ux", "component", "react", "vue", "css"),
        (
            "component",
            "ui",
            "ux",
            "react",
            "vue",
            "angular",
            "css",
            "style",
            "layout",
            "responsive",
            "accessibility",
        ),
    ),
    _rule(
        AgentType.BACKEND_DEVELOPER,
        ("backend", "api", "database", "server"),
        ("api", "endpoint", "database", "query", "migration", "server", "graphql", "rest"),
    ),
    _rule(
        AgentType.DEVOPS_ENGINEER,
        ("devops", "ci", "cd", "infrastructure", "deployment"),
        ("ci/cd", "pipeline", "deploy", "docker", "kubernetes", "terraform", "aws", "gcp", "azure"),
    ),
    _rule(
        AgentType.TEST_ENGINEER,
        ("testing", "test", "qa", "e2e"),
        ("test", "coverage", "e2e", "integration test", "unit test", "assertion"),
    ),
    _rule(
        AgentType.DOCUMENTATION_WRITER,
        ("documentation", "docs", "readme"),
        ("documentation", "readme", "guide", "tutorial", "api doc"),
    ),
    _rule(
        AgentType.RESEARCHER,
        ("spike", "research", "investigation", "exploration"),
        ("research", "investigate", "explore", "prototype", "poc", "proof of concept"),
    ),
)

AGENT_RATIONALES: Final[dict[AgentType, str]] = {
    AgentType.SECURITY_SPECIALIST: "Issue involves security-sensitive operations",
    AgentType.BACKEND_DEVELOPER: "Issue focuses on API/database/server-side work",
    AgentType.FRONTEND_DEVELOPER: "Issue involves UI components or user experience",
    AgentType.TEST_ENGINEER: "Issue is primarily about testing coverage",
    AgentType.DEVOPS_ENGINEER: "Issue involves CI/CD or infrastructure",
    AgentType.DOCUMENTATION_WRITER: "Issue focuses on documentation updates",
    AgentType.RESEARCHER: "Issue requires investigation or prototyping",
    AgentType.GENERAL_PURPOSE: "Issue spans multiple domains",
}


def infer_agent_type(issue: Issue, rules: Iterable[AgentRule] = AGENT_RULES) -> AgentType:
    text = f"{issue.title} {issue.description}".lower()
    label_names = [name.lower() for name in issue.label_names]
    for rule in rules:
        if rule.matches(label_names, text):
            return rule.agent_type
    return AgentType.GENERAL_PURPOSE


def assign_agents(
    issues: Iterable[Issue], rules: Iterable[AgentRule] = AGENT_RULES
) -> tuple[AgentAssignment, ...]:
    ordered_rules = tuple(rules)
    assignments: list[AgentAssignment] = []
    for issue in issues:
        agent_type = infer_agent_type(issue, ordered_rules)
        assignments.append(
            AgentAssignment(
                issue_id=issue.id,
                issue_identifier=issue.identifier,
                agent_type=agent_type,
                rationale=AGENT_RATIONALES[agent_type],
            )
        )
    return tuple(assignments)


__all__ = [
    "AGENT_RATIONALES",
    "AGENT_RULES",
    "AgentRule",
    "assign_agents",
    "infer_agent_type",
]
