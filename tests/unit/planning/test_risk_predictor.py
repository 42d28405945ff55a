"""
wave-planner — unit tests for the risk predictor

File: tests/unit/planning/test_risk_predictor.py

Purpose
- Validate pattern signals, likelihood/impact rules, dependency scanning and scoring.

What this test file should cover
- Signal counting against the built-in pattern table.
- Parent and ``depends:`` label integration risks.
- Wave adjustments, aggregate score and summary text.
- Custom pattern tables loaded from YAML, including malformed tables.

Functional requirements
- Offline; pattern files live under ``tmp_path``.

Non-functional requirements
- Deterministic risk numbering.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import strategies as st
from structlog.testing import capture_logs

from wave_planner.domain.models import (
    AdjustmentType,
    CodebaseContext,
    FileInfo,
    Issue,
    Priority,
    Risk,
    RiskCategory,
    RiskImpact,
    RiskLikelihood,
)
from wave_planner.planning.risk_predictor import (
    DEFAULT_RISK_PATTERNS,
    RiskPatternError,
    RiskPredictor,
    is_test_path,
    load_risk_patterns,
    parse_risk_patterns,
    risk_score,
)

pytestmark = pytest.mark.unit
_CUSTOM_PATTERNS = """
patterns:
  - category: performance
    keywords: [latency]
    description_patterns: ['p99\\s+latency']
    default_likelihood: high
    default_impact: high
    mitigation: Add a latency budget
"""


def _issue(
    issue_id: str,
    identifier: str,
    title: str,
    *,
    description: str = "",
    priority: Priority = Priority.P2_MEDIUM,
    labels: tuple[str, ...] = (),
    parent_id: str | None = None,
) -> Issue:
    return Issue(
        id=issue_id,
        identifier=identifier,
        title=title,
        description=description,
        priority=priority,
        labels=labels,  # type: ignore[arg-type]
        parent_id=parent_id,
    )


def _context(*paths: str) -> CodebaseContext:
    return CodebaseContext.from_files([FileInfo(path=path, lines=10) for path in paths])


def _by_category(risks: tuple[Risk, ...], category: RiskCategory) -> Risk:
    (match,) = [risk for risk in risks if risk.category is category]
    return match


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_two_signals_keep_default_likelihood() -> None:
    issue = _issue(
        "1", "ENG-1", "Payments checkout", description="OAuth integration with Stripe webhook"
    )

    result = RiskPredictor().analyze([issue])

    external = _by_category(result.risks, RiskCategory.EXTERNAL_DEPENDENCY)
    assert external.id == "RISK-1"
    assert external.likelihood is RiskLikelihood.MEDIUM
    assert external.impact is RiskImpact.HIGH
    assert external.description == (
        "ENG-1 relies on external service/API (affects: multiple files)"
    )
    assert not external.mitigation.endswith("given high priority")

    security = _by_category(result.risks, RiskCategory.SECURITY)
    assert security.id == "RISK-2"
    assert security.impact is RiskImpact.CRITICAL

    assert result.total_risk_score == 10
    assert len(result.high_risks) == 2
    assert result.wave_adjustments == ()
    assert result.summary == (
        "Identified 2 risk(s). 2 high-impact risk(s) require attention. "
        "Categories: 1 external dependency, 1 security."
    )


def test_three_signals_force_high_likelihood() -> None:
    issue = _issue("1", "ENG-1", "Webhook retries", description="Integrate with Stripe")

    result = RiskPredictor().analyze([issue], {"1": _context("integrations/stripe.py")})

    external = _by_category(result.risks, RiskCategory.EXTERNAL_DEPENDENCY)
    assert external.likelihood is RiskLikelihood.HIGH
    assert "(affects: integrations/stripe.py)" in external.description
    assert external.mitigation.endswith(". Add test coverage for affected files")


def test_single_signal_caps_high_default_at_medium() -> None:
    issue = _issue("1", "ENG-1", "Tweak")

    result = RiskPredictor().analyze([issue], {"1": _context("db/models/user.py")})

    breaking = _by_category(result.risks, RiskCategory.BREAKING_CHANGE)
    assert breaking.likelihood is RiskLikelihood.MEDIUM
    data = _by_category(result.risks, RiskCategory.DATA_INTEGRITY)
    assert data.likelihood is RiskLikelihood.LOW


def test_critical_priority_escalates_impact_and_mitigation() -> None:
    issue = _issue("1", "ENG-1", "Rename columns", priority=Priority.P0_CRITICAL)

    result = RiskPredictor().analyze([issue])

    (risk,) = result.risks
    assert risk.category is RiskCategory.BREAKING_CHANGE
    assert risk.likelihood is RiskLikelihood.HIGH
    assert risk.impact is RiskImpact.HIGH
    assert risk.mitigation.endswith(". Consider spike/POC first given high priority")
    (adjustment,) = result.wave_adjustments
    assert adjustment.adjustment_type is AdjustmentType.REORDER
    assert adjustment.affected_issues == ("ENG-1",)
    assert adjustment.reason == "ENG-1 has breaking change risk"


def test_test_files_in_context_suppress_coverage_clause() -> None:
    issue = _issue("1", "ENG-1", "Webhook retries")

    result = RiskPredictor().analyze(
        [issue], {"1": _context("integrations/stripe.py", "tests/test_stripe.py")}
    )

    external = _by_category(result.risks, RiskCategory.EXTERNAL_DEPENDENCY)
    assert "Add test coverage" not in external.mitigation


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("tests/test_api.py", True),
        ("src/app.test.ts", True),
        ("src/app.spec.js", True),
        ("pkg/client_test.go", True),
        ("web/__tests__/view.tsx", True),
        ("src\\tests\\helpers.py", True),
        ("src/contest.py", False),
        ("src/latest/handler.py", False),
        ("src/attest_x.py", False),
    ],
)
def test_is_test_path(path: str, expected: bool) -> None:
    assert is_test_path(path) is expected


def test_parent_link_creates_integration_risk() -> None:
    parent = _issue("a", "ENG-1", "Alpha")
    child = _issue("b", "ENG-2", "Beta", parent_id="a")

    result = RiskPredictor().analyze([parent, child])

    (risk,) = result.risks
    assert risk.id == "RISK-1"
    assert risk.category is RiskCategory.INTEGRATION
    assert risk.issue_identifier == "ENG-2"
    assert risk.description == "ENG-2 depends on parent ENG-1"
    assert risk.affected_issues == ("ENG-2", "ENG-1")
    assert risk.suggested_wave_adjustment == "Place ENG-1 in earlier wave than ENG-2"
    (adjustment,) = result.wave_adjustments
    assert adjustment.adjustment_type is AdjustmentType.ADD_DEPENDENCY
    assert adjustment.affected_issues == ("ENG-2", "ENG-1")
    assert adjustment.recommendation == "Ensure ENG-1 complete before ENG-2"
    assert result.total_risk_score == 5
    assert result.summary == (
        "Identified 1 risk(s). 1 high-impact risk(s) require attention. "
        "1 wave adjustment(s) recommended. Categories: 1 integration."
    )


def test_absent_parent_creates_no_risk() -> None:
    child = _issue("b", "ENG-2", "Beta", parent_id="missing")

    result = RiskPredictor().analyze([child])

    assert result.risks == ()
    assert result.total_risk_score == 0
    assert result.summary == "No significant risks identified."


def test_depends_label_creates_explicit_risk() -> None:
    first = _issue("a", "ENG-1", "Alpha")
    second = _issue("b", "ENG-2", "Beta", labels=("depends:eng-1", "depends:ENG-9"))

    result = RiskPredictor().analyze([first, second])

    assert [risk.id for risk in result.risks] == ["RISK-1", "RISK-2"]
    keyword_risk, explicit = result.risks
    assert keyword_risk.category is RiskCategory.INTEGRATION
    assert keyword_risk.affected_issues == ()
    assert explicit.description == "ENG-2 explicitly depends on ENG-1"
    assert explicit.mitigation == "Verify ENG-1 interface is stable before starting ENG-2"
    assert explicit.affected_issues == ("ENG-2", "ENG-1")
    (adjustment,) = result.wave_adjustments
    assert adjustment.recommendation == "Ensure ENG-1 complete before ENG-2"


def test_buffer_adjustment_uses_strict_threshold() -> None:
    issue = _issue(
        "1", "ENG-1", "Payments checkout", description="OAuth integration with Stripe webhook"
    )

    at_threshold = RiskPredictor(buffer_score_threshold=10).analyze([issue])
    below_threshold = RiskPredictor(buffer_score_threshold=9).analyze([issue])

    assert at_threshold.wave_adjustments == ()
    (buffer,) = below_threshold.wave_adjustments
    assert buffer.adjustment_type is AdjustmentType.ADD_BUFFER
    assert buffer.affected_issues == ()
    assert buffer.recommendation == (
        "Add 20% buffer to token estimates for risk mitigation overhead"
    )


def test_analyze_logs_completion_event() -> None:
    issue = _issue("1", "ENG-1", "Rename columns")

    with capture_logs() as logs:
        RiskPredictor().analyze([issue])

    (entry,) = [item for item in logs if item["event"] == "planning_risk_analysis_completed"]
    assert entry["log_level"] == "info"
    assert entry["risk_count"] == 1


def _risk(impact: RiskImpact, likelihood: RiskLikelihood, sequence: int = 1) -> Risk:
    return Risk(
        id=f"RISK-{sequence}",
        category=RiskCategory.SECURITY,
        issue_id="i",
        issue_identifier="ENG-1",
        description="d",
        likelihood=likelihood,
        impact=impact,
        mitigation="m",
    )


def test_risk_score_is_clamped() -> None:
    risks = [_risk(RiskImpact.CRITICAL, RiskLikelihood.HIGH, index) for index in range(1, 12)]

    assert risk_score(risks) == 100
    assert risk_score([]) == 0


_risks = st.lists(
    st.builds(_risk, st.sampled_from(list(RiskImpact)), st.sampled_from(list(RiskLikelihood))),
    max_size=15,
)


@given(_risks, st.sampled_from(list(RiskImpact)), st.sampled_from(list(RiskLikelihood)))
def test_risk_score_is_bounded_and_monotonic(
    risks: list[Risk], impact: RiskImpact, likelihood: RiskLikelihood
) -> None:
    before = risk_score(risks)
    after = risk_score([*risks, _risk(impact, likelihood)])

    assert 0 <= before <= after <= 100


def test_default_table_order() -> None:
    assert [pattern.category for pattern in DEFAULT_RISK_PATTERNS] == list(RiskCategory)


def test_custom_patterns_replace_defaults(tmp_path: Path) -> None:
    path = _write(tmp_path / "risks.yaml", _CUSTOM_PATTERNS)
    issue = _issue("1", "ENG-1", "Reduce latency", description="OAuth integration")

    predictor = RiskPredictor.from_config(
        {"patterns_file": str(path), "buffer_score_threshold": 50}
    )
    result = predictor.analyze([issue])

    (risk,) = result.risks
    assert risk.category is RiskCategory.PERFORMANCE
    assert risk.likelihood is RiskLikelihood.MEDIUM
    assert risk.mitigation == "Add a latency budget"


def test_from_config_without_file_uses_defaults() -> None:
    predictor = RiskPredictor.from_config({"patterns_file": None, "buffer_score_threshold": 50})

    assert predictor.patterns == DEFAULT_RISK_PATTERNS


def test_load_risk_patterns_reports_io_and_yaml_errors(tmp_path: Path) -> None:
    with pytest.raises(RiskPatternError, match="unable to read"):
        load_risk_patterns(tmp_path / "absent.yaml")

    broken = _write(tmp_path / "broken.yaml", "patterns: [\n")
    with pytest.raises(RiskPatternError, match="invalid YAML"):
        load_risk_patterns(broken)


@pytest.mark.parametrize(
    ("document", "message"),
    [
        (["not", "a", "mapping"], "risk patterns: document must be a mapping"),
        ({"patterns": []}, "patterns: expected a non-empty list"),
        ({"patterns": ["x"]}, "patterns[0]: expected mapping, got str"),
        (
            {
                "patterns": [
                    {
                        "category": "security",
                        "default_likelihood": "low",
                        "default_impact": "low",
                        "mitigation": "m",
                        "keywords": ["a"],
                        "severity": 3,
                    }
                ]
            },
            "patterns[0]: unexpected fields: ['severity']",
        ),
        (
            {"patterns": [{"category": "security", "keywords": ["a"]}]},
            "patterns[0]: missing required fields",
        ),
        (
            {
                "patterns": [
                    {
                        "category": "weather",
                        "default_likelihood": "low",
                        "default_impact": "low",
                        "mitigation": "m",
                        "keywords": ["a"],
                    }
                ]
            },
            "patterns[0].category: invalid value 'weather'",
        ),
        (
            {
                "patterns": [
                    {
                        "category": "security",
                        "default_likelihood": "low",
                        "default_impact": "low",
                        "mitigation": "m",
                        "file_patterns": ["ok/", "("],
                    }
                ]
            },
            "patterns[0].file_patterns[1]: invalid regex",
        ),
        (
            {
                "patterns": [
                    {
                        "category": "security",
                        "default_likelihood": "low",
                        "default_impact": "low",
                        "mitigation": "m",
                    }
                ]
            },
            "patterns[0]: at least one keyword or pattern is required",
        ),
    ],
)
def test_parse_risk_patterns_rejects_malformed_tables(document: object, message: str) -> None:
    with pytest.raises(RiskPatternError) as excinfo:
        parse_risk_patterns(document)

    assert str(excinfo.value).startswith(message)
