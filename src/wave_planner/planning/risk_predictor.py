"""
wave-planner — risk predictor

File: src/wave_planner/planning/risk_predictor.py

Purpose
- Match issue text and context files against an ordered table of risk patterns.
- Scan cross-issue dependencies (parent links and ``depends:<identifier>`` labels).
- Score the aggregate risk and recommend wave adjustments.

What should be included in this file
- ``RiskPattern`` records and the built-in ``DEFAULT_RISK_PATTERNS`` table.
- ``load_risk_patterns`` for custom tables stored as YAML.
- ``RiskPredictor.analyze`` producing a ``RiskAnalysisResult``.

Functional requirements
- One risk per (issue, category) pair whose pattern fires on any signal.
- All three signals force likelihood ``high``; a single signal caps a ``high``
  default at ``medium``.
- ``P0-Critical`` issues bump impact one step (medium -> high -> critical).
- ``total_risk_score`` is ``sum(impact * likelihood) / 240`` as a percentage,
  clamped to 100.

Non-functional requirements
- Pure and deterministic for a given pattern table; ``analyze`` never raises.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import structlog
import yaml

from wave_planner.constants import (
    DEFAULT_BUFFER_SCORE_THRESHOLD,
    RISK_IMPACT_WEIGHT,
    RISK_LIKELIHOOD_WEIGHT,
    RISK_SCORE_CEILING,
)
from wave_planner.domain.ids import format_risk_id, identifiers_match, parse_dependency_label
from wave_planner.domain.models import (
    AdjustmentType,
    CodebaseContext,
    Issue,
    Priority,
    Risk,
    RiskAnalysisResult,
    RiskCategory,
    RiskImpact,
    RiskLikelihood,
    WaveAdjustment,
)
from wave_planner.utils.numbers import round_half_up

_CONTEXT_PATHS_IN_DESCRIPTION = 3
_NO_RISKS_SUMMARY = "No significant risks identified."
_BUFFER_RECOMMENDATION = "Add 20% buffer to token estimates for risk mitigation overhead"
_MISSING_TESTS_CLAUSE = ". Add test coverage for affected files"
_URGENT_SPIKE_CLAUSE = ". Consider spike/POC first given high priority"

_TEST_FILE_RE: Final[re.Pattern[str]] = re.compile(
    r"(?:\.(?:test|spec)\.\w+$)"
    r"|(?:(?:^|/)test_[^/]+\.py$)"
    r"|(?:_test\.(?:py|go)$)"
    r"|(?:(?:^|/)(?:tests|__tests__)/)"
)

_IMPACT_ESCALATION: Final[dict[RiskImpact, RiskImpact]] = {
    RiskImpact.MEDIUM: RiskImpact.HIGH,
    RiskImpact.HIGH: RiskImpact.CRITICAL,
}

CATEGORY_PHRASES: Final[dict[RiskCategory, str]] = {
    RiskCategory.EXTERNAL_DEPENDENCY: "relies on external service/API",
    RiskCategory.BREAKING_CHANGE: "may introduce breaking changes",
    RiskCategory.INTEGRATION: "has dependencies on other issues",
    RiskCategory.PERFORMANCE: "may impact system performance",
    RiskCategory.SECURITY: "has security implications",
    RiskCategory.DATA_INTEGRITY: "may affect data consistency",
    RiskCategory.RESOURCE_CONSTRAINT: "may hit resource limits",
    RiskCategory.TIMELINE: "has timeline constraints",
}


class RiskPatternError(ValueError):
    """Raised when a custom risk pattern table is malformed."""


@dataclass(frozen=True, slots=True)
class RiskPattern:
    """One row of the risk table: three signal sources plus defaults."""

    category: RiskCategory
    keywords: tuple[str, ...]
    file_patterns: tuple[re.Pattern[str], ...]
    description_patterns: tuple[re.Pattern[str], ...]
    default_likelihood: RiskLikelihood
    default_impact: RiskImpact
    mitigation: str

    @classmethod
    def build(
        cls,
        category: RiskCategory | str,
        *,
        keywords: Iterable[str],
        file_patterns: Iterable[str],
        description_patterns: Iterable[str],
        default_likelihood: RiskLikelihood | str,
        default_impact: RiskImpact | str,
        mitigation: str,
    ) -> RiskPattern:
        """Compile regex sources; description patterns are case-insensitive."""

        return cls(
            category=RiskCategory(category),
            keywords=tuple(keyword.lower() for keyword in keywords),
            file_patterns=tuple(re.compile(source) for source in file_patterns),
            description_patterns=tuple(
                re.compile(source, re.IGNORECASE) for source in description_patterns
            ),
            default_likelihood=RiskLikelihood(default_likelihood),
            default_impact=RiskImpact(default_impact),
            mitigation=mitigation,
        )

    def signals(self, haystack: str, paths: Sequence[str]) -> tuple[bool, bool, bool]:
        """Keyword, file-path and description signals for one issue."""

        has_keyword = any(keyword in haystack for keyword in self.keywords)
        has_file = any(
            pattern.search(path) is not None for pattern in self.file_patterns for path in paths
        )
        has_description = any(
            pattern.search(haystack) is not None for pattern in self.description_patterns
        )
        return has_keyword, has_file, has_description


DEFAULT_RISK_PATTERNS: Final[tuple[RiskPattern, ...]] = (
    RiskPattern.build(
        RiskCategory.EXTERNAL_DEPENDENCY,
        keywords=("api", "external", "third-party", "integration", "webhook", "oauth", "sdk"),
        file_patterns=(r"api/", r"integrations/", r"external/", r"clients/"),
        description_patterns=(
            r"calls?\s+(external|third-party|remote)",
            r"integrat(e|ion)\s+with",
            r"api\s+(call|request|endpoint)",
            r"oauth|webhook|stripe|github|linear",
        ),
        default_likelihood=RiskLikelihood.MEDIUM,
        default_impact=RiskImpact.HIGH,
        mitigation=(
            "Add fallback mechanism, implement retry logic with exponential backoff, "
            "cache responses where possible"
        ),
    ),
    RiskPattern.build(
        RiskCategory.BREAKING_CHANGE,
        keywords=("schema", "migration", "refactor", "rename", "restructure", "breaking"),
        file_patterns=(r"schema", r"migrations/", r"db/", r"models/"),
        description_patterns=(
            r"chang(e|ing)\s+(schema|database|table)",
            r"migrat(e|ion)",
            r"breaking\s+change",
            r"refactor",
            r"renam(e|ing)",
        ),
        default_likelihood=RiskLikelihood.HIGH,
        default_impact=RiskImpact.MEDIUM,
        mitigation=(
            "Version the schema, create migration script, add backwards compatibility layer, "
            "test rollback procedure"
        ),
    ),
    RiskPattern.build(
        RiskCategory.INTEGRATION,
        keywords=("depends", "dependency", "requires", "blocks", "after", "before"),
        file_patterns=(),
        description_patterns=(
            r"depends\s+on",
            r"requires?\s+(completion|implementation)",
            r"after\s+(.*)\s+is\s+(done|complete)",
            r"blocks?\s+by",
            r"prerequisite",
        ),
        default_likelihood=RiskLikelihood.MEDIUM,
        default_impact=RiskImpact.HIGH,
        mitigation=(
            "Define interface contract first, create mock implementations for parallel "
            "development, establish clear handoff criteria"
        ),
    ),
    RiskPattern.build(
        RiskCategory.PERFORMANCE,
        keywords=("performance", "scale", "optimize", "cache", "load", "concurrent"),
        file_patterns=(r"cache/", r"performance/", r"workers/"),
        description_patterns=(
            r"performance",
            r"scal(e|ability|ing)",
            r"optimi(ze|zation)",
            r"slow|fast|speed",
            r"concurrent|parallel",
            r"large\s+(data|dataset|volume)",
        ),
        default_likelihood=RiskLikelihood.MEDIUM,
        default_impact=RiskImpact.MEDIUM,
        mitigation=(
            "Add performance benchmarks, implement caching strategy, set up monitoring alerts, "
            "define acceptable thresholds"
        ),
    ),
    RiskPattern.build(
        RiskCategory.SECURITY,
        keywords=("security", "auth", "permission", "encrypt", "vulnerability", "credential"),
        file_patterns=(r"auth/", r"security/", r"permissions/"),
        description_patterns=(
            r"security",
            r"auth(entication|orization)?",
            r"permission|access\s+control",
            r"encrypt|decrypt",
            r"vulnerabilit(y|ies)",
            r"credential|secret|key",
        ),
        default_likelihood=RiskLikelihood.MEDIUM,
        default_impact=RiskImpact.CRITICAL,
        mitigation=(
            "Conduct security review, add threat model, implement defense in depth, "
            "ensure secrets management compliance"
        ),
    ),
    RiskPattern.build(
        RiskCategory.DATA_INTEGRITY,
        keywords=("data", "consistency", "transaction", "atomic", "rollback"),
        file_patterns=(r"db/", r"repositories/", r"transactions/"),
        description_patterns=(
            r"data\s+(integrity|consistency)",
            r"transaction",
            r"atomic",
            r"rollback",
            r"race\s+condition",
        ),
        default_likelihood=RiskLikelihood.LOW,
        default_impact=RiskImpact.HIGH,
        mitigation=(
            "Use database transactions, implement idempotency, add data validation layer, "
            "create rollback procedures"
        ),
    ),
    RiskPattern.build(
        RiskCategory.RESOURCE_CONSTRAINT,
        keywords=("memory", "cpu", "disk", "quota", "limit", "timeout"),
        file_patterns=(),
        description_patterns=(
            r"memory|cpu|disk",
            r"quota|limit",
            r"timeout",
            r"resource\s+(constraint|limit)",
            r"out\s+of\s+(memory|space)",
        ),
        default_likelihood=RiskLikelihood.LOW,
        default_impact=RiskImpact.MEDIUM,
        mitigation=(
            "Add resource monitoring, implement graceful degradation, set up alerts, "
            "define resource budgets"
        ),
    ),
    RiskPattern.build(
        RiskCategory.TIMELINE,
        keywords=("deadline", "urgent", "critical", "blocker", "priority"),
        file_patterns=(),
        description_patterns=(
            r"deadline",
            r"urgent|critical|blocker",
            r"time\s+(sensitive|critical)",
            r"must\s+be\s+(done|complete)",
        ),
        default_likelihood=RiskLikelihood.MEDIUM,
        default_impact=RiskImpact.MEDIUM,
        mitigation=(
            "Break into smaller deliverables, identify MVP scope, establish checkpoints, "
            "prepare contingency plan"
        ),
    ),
)


def load_risk_patterns(path: str | Path) -> tuple[RiskPattern, ...]:
    """
    Load a custom risk pattern table from YAML.

    The document is a mapping with a ``patterns`` list; each entry carries
    ``category``, ``keywords``, ``file_patterns``, ``description_patterns``,
    ``default_likelihood``, ``default_impact`` and ``mitigation``. List order
    is evaluation order.
    """

    source = Path(path)
    try:
        raw_text = source.read_text(encoding="utf-8")
    except OSError as exc:
        raise RiskPatternError(f"unable to read risk patterns {source}: {exc}") from exc
    try:
        document = yaml.safe_load(raw_text)
    except yaml.YAMLError as exc:
        raise RiskPatternError(f"invalid YAML in {source}: {exc}") from exc
    return parse_risk_patterns(document)


def parse_risk_patterns(document: object) -> tuple[RiskPattern, ...]:
    if not isinstance(document, Mapping):
        raise RiskPatternError("risk patterns: document must be a mapping with a 'patterns' list")
    entries = document.get("patterns")
    if not isinstance(entries, list) or not entries:
        raise RiskPatternError("patterns: expected a non-empty list")
    return tuple(_parse_pattern(entry, f"patterns[{index}]") for index, entry in enumerate(entries))


def risk_score(risks: Iterable[Risk]) -> int:
    """Aggregate score in ``[0, 100]``."""

    total = sum(
        RISK_IMPACT_WEIGHT[risk.impact.value] * RISK_LIKELIHOOD_WEIGHT[risk.likelihood.value]
        for risk in risks
    )
    return min(100, round_half_up(total / RISK_SCORE_CEILING * 100))


class RiskPredictor:
    """Pattern-driven risk analysis over one planning run's issues."""

    def __init__(
        self,
        patterns: Sequence[RiskPattern] | None = None,
        *,
        buffer_score_threshold: int = DEFAULT_BUFFER_SCORE_THRESHOLD,
        logger: Any | None = None,
    ) -> None:
        self._patterns = tuple(patterns) if patterns is not None else DEFAULT_RISK_PATTERNS
        self._buffer_score_threshold = buffer_score_threshold
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def patterns(self) -> tuple[RiskPattern, ...]:
        return self._patterns

    @classmethod
    def from_config(
        cls, risk_config: Mapping[str, object] | None = None, *, logger: Any | None = None
    ) -> RiskPredictor:
        """Build from the ``[risk]`` config section, loading ``patterns_file`` if set."""

        cfg = dict(risk_config or {})
        patterns_file = cfg.get("patterns_file")
        patterns = load_risk_patterns(str(patterns_file)) if patterns_file else None
        threshold = cfg.get("buffer_score_threshold", DEFAULT_BUFFER_SCORE_THRESHOLD)
        if isinstance(threshold, bool) or not isinstance(threshold, int):
            raise RiskPatternError("risk.buffer_score_threshold: expected integer")
        return cls(patterns, buffer_score_threshold=threshold, logger=logger)

    def analyze(
        self,
        issues: Sequence[Issue],
        contexts: Mapping[str, CodebaseContext] | None = None,
    ) -> RiskAnalysisResult:
        context_map = contexts or {}
        risks: list[Risk] = []
        for issue in issues:
            risks.extend(self._issue_risks(issue, context_map.get(issue.id), len(risks) + 1))
        risks.extend(self._integration_risks(issues, len(risks) + 1))

        total_score = risk_score(risks)
        high_risks = tuple(risk for risk in risks if risk.is_high_impact)
        adjustments = self._wave_adjustments(risks, total_score)
        summary = _summarize(risks, high_risks, adjustments)

        self._logger.info(
            "planning_risk_analysis_completed",
            issue_count=len(issues),
            risk_count=len(risks),
            high_risk_count=len(high_risks),
            adjustment_count=len(adjustments),
            total_risk_score=total_score,
        )
        return RiskAnalysisResult(
            risks=tuple(risks),
            total_risk_score=total_score,
            high_risks=high_risks,
            wave_adjustments=adjustments,
            summary=summary,
        )

    def _issue_risks(
        self, issue: Issue, context: CodebaseContext | None, first_sequence: int
    ) -> list[Risk]:
        haystack = " ".join((issue.title, issue.description, " ".join(issue.label_names))).lower()
        paths = context.file_paths if context is not None else ()
        urgent = issue.priority is Priority.P0_CRITICAL

        risks: list[Risk] = []
        for pattern in self._patterns:
            signals = pattern.signals(haystack, paths)
            fired = sum(signals)
            if fired == 0:
                continue

            likelihood = pattern.default_likelihood
            if fired == 3:
                likelihood = RiskLikelihood.HIGH
            elif fired == 1 and likelihood is RiskLikelihood.HIGH:
                likelihood = RiskLikelihood.MEDIUM

            impact = pattern.default_impact
            if urgent:
                impact = _IMPACT_ESCALATION.get(impact, impact)

            risks.append(
                Risk(
                    id=format_risk_id(first_sequence + len(risks)),
                    category=pattern.category,
                    issue_id=issue.id,
                    issue_identifier=issue.identifier,
                    description=_describe(pattern.category, issue, paths),
                    likelihood=likelihood,
                    impact=impact,
                    mitigation=_mitigation(pattern, paths, urgent=urgent),
                )
            )
        return risks

    def _integration_risks(self, issues: Sequence[Issue], first_sequence: int) -> list[Risk]:
        by_id: dict[str, Issue] = {}
        for issue in issues:
            by_id.setdefault(issue.id, issue)

        risks: list[Risk] = []
        for issue in issues:
            parent = by_id.get(issue.parent_id) if issue.parent_id is not None else None
            if parent is None:
                continue
            risks.append(
                Risk(
                    id=format_risk_id(first_sequence + len(risks)),
                    category=RiskCategory.INTEGRATION,
                    issue_id=issue.id,
                    issue_identifier=issue.identifier,
                    description=f"{issue.identifier} depends on parent {parent.identifier}",
                    likelihood=RiskLikelihood.HIGH,
                    impact=RiskImpact.HIGH,
                    mitigation=(
                        f"Ensure {parent.identifier} is completed first "
                        "or define clear interface contract"
                    ),
                    affected_issues=(issue.identifier, parent.identifier),
                    suggested_wave_adjustment=(
                        f"Place {parent.identifier} in earlier wave than {issue.identifier}"
                    ),
                )
            )

        for issue in issues:
            for label in issue.label_names:
                target = parse_dependency_label(label)
                if target is None:
                    continue
                dependency = _find_by_identifier(issues, target)
                if dependency is None:
                    continue
                risks.append(
                    Risk(
                        id=format_risk_id(first_sequence + len(risks)),
                        category=RiskCategory.INTEGRATION,
                        issue_id=issue.id,
                        issue_identifier=issue.identifier,
                        description=(
                            f"{issue.identifier} explicitly depends on {dependency.identifier}"
                        ),
                        likelihood=RiskLikelihood.HIGH,
                        impact=RiskImpact.HIGH,
                        mitigation=(
                            f"Verify {dependency.identifier} interface is stable "
                            f"before starting {issue.identifier}"
                        ),
                        affected_issues=(issue.identifier, dependency.identifier),
                        suggested_wave_adjustment=(
                            f"Place {dependency.identifier} in earlier wave"
                        ),
                    )
                )
        return risks

    def _wave_adjustments(
        self, risks: Sequence[Risk], total_score: int
    ) -> tuple[WaveAdjustment, ...]:
        grouped: dict[str, list[Risk]] = {}
        for risk in risks:
            grouped.setdefault(risk.issue_identifier, []).append(risk)

        adjustments: list[WaveAdjustment] = []
        for identifier, issue_risks in grouped.items():
            categories = {risk.category for risk in issue_risks}
            if RiskCategory.BREAKING_CHANGE in categories:
                adjustments.append(
                    WaveAdjustment(
                        adjustment_type=AdjustmentType.REORDER,
                        reason=f"{identifier} has breaking change risk",
                        affected_issues=(identifier,),
                        recommendation=(
                            f"Place {identifier} earlier in wave sequence "
                            "to allow dependent issues to adapt"
                        ),
                    )
                )
            if RiskCategory.INTEGRATION in categories:
                dependencies = tuple(
                    dict.fromkeys(
                        affected
                        for risk in issue_risks
                        if risk.category is RiskCategory.INTEGRATION
                        for affected in risk.affected_issues
                        if affected != identifier
                    )
                )
                if dependencies:
                    adjustments.append(
                        WaveAdjustment(
                            adjustment_type=AdjustmentType.ADD_DEPENDENCY,
                            reason=f"{identifier} has integration dependencies",
                            affected_issues=(identifier, *dependencies),
                            recommendation=(
                                f"Ensure {', '.join(dependencies)} complete before {identifier}"
                            ),
                        )
                    )

        if total_score > self._buffer_score_threshold:
            adjustments.append(
                WaveAdjustment(
                    adjustment_type=AdjustmentType.ADD_BUFFER,
                    reason="High overall risk score",
                    affected_issues=(),
                    recommendation=_BUFFER_RECOMMENDATION,
                )
            )
        return tuple(adjustments)


def is_test_path(path: str) -> bool:
    return _TEST_FILE_RE.search(path.replace("\\", "/")) is not None


def _describe(category: RiskCategory, issue: Issue, paths: Sequence[str]) -> str:
    affected = ", ".join(paths[:_CONTEXT_PATHS_IN_DESCRIPTION]) or "multiple files"
    return f"{issue.identifier} {CATEGORY_PHRASES[category]} (affects: {affected})"


def _mitigation(pattern: RiskPattern, paths: Sequence[str], *, urgent: bool) -> str:
    mitigation = pattern.mitigation
    if paths and not any(is_test_path(path) for path in paths):
        mitigation += _MISSING_TESTS_CLAUSE
    if urgent:
        mitigation += _URGENT_SPIKE_CLAUSE
    return mitigation


def _find_by_identifier(issues: Iterable[Issue], identifier: str) -> Issue | None:
    for issue in issues:
        if identifiers_match(issue.identifier, identifier):
            return issue
    return None


def _summarize(
    risks: Sequence[Risk],
    high_risks: Sequence[Risk],
    adjustments: Sequence[WaveAdjustment],
) -> str:
    if not risks:
        return _NO_RISKS_SUMMARY

    parts = [f"Identified {len(risks)} risk(s)."]
    if high_risks:
        parts.append(f"{len(high_risks)} high-impact risk(s) require attention.")
    if adjustments:
        parts.append(f"{len(adjustments)} wave adjustment(s) recommended.")

    by_category: dict[RiskCategory, int] = {}
    for risk in risks:
        by_category[risk.category] = by_category.get(risk.category, 0) + 1
    tally = ", ".join(
        f"{count} {category.value.replace('_', ' ')}" for category, count in by_category.items()
    )
    parts.append(f"Categories: {tally}.")
    return " ".join(parts)


def _parse_pattern(entry: object, path: str) -> RiskPattern:
    if not isinstance(entry, Mapping):
        raise RiskPatternError(f"{path}: expected mapping, got {type(entry).__name__}")

    required = {"category", "default_likelihood", "default_impact", "mitigation"}
    allowed = required | {"keywords", "file_patterns", "description_patterns"}
    unknown = sorted(str(key) for key in entry if key not in allowed)
    if unknown:
        raise RiskPatternError(f"{path}: unexpected fields: {unknown}")
    missing = sorted(key for key in required if key not in entry)
    if missing:
        raise RiskPatternError(f"{path}: missing required fields: {missing}")

    category = _enum_field(RiskCategory, entry["category"], f"{path}.category")
    likelihood = _enum_field(
        RiskLikelihood, entry["default_likelihood"], f"{path}.default_likelihood"
    )
    impact = _enum_field(RiskImpact, entry["default_impact"], f"{path}.default_impact")
    mitigation = entry["mitigation"]
    if not isinstance(mitigation, str) or not mitigation.strip():
        raise RiskPatternError(f"{path}.mitigation: expected non-empty string")

    keywords = _string_list(entry.get("keywords", []), f"{path}.keywords")
    file_patterns = _string_list(entry.get("file_patterns", []), f"{path}.file_patterns")
    description_patterns = _string_list(
        entry.get("description_patterns", []), f"{path}.description_patterns"
    )
    if not (keywords or file_patterns or description_patterns):
        raise RiskPatternError(f"{path}: at least one keyword or pattern is required")

    for field_name, sources in (
        ("file_patterns", file_patterns),
        ("description_patterns", description_patterns),
    ):
        for index, source in enumerate(sources):
            try:
                re.compile(source)
            except re.error as exc:
                raise RiskPatternError(
                    f"{path}.{field_name}[{index}]: invalid regex {source!r} ({exc})"
                ) from exc

    return RiskPattern.build(
        category,
        keywords=keywords,
        file_patterns=file_patterns,
        description_patterns=description_patterns,
        default_likelihood=likelihood,
        default_impact=impact,
        mitigation=mitigation.strip(),
    )


def _enum_field(enum_type: Any, value: object, path: str) -> Any:
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(item.value for item in enum_type)
        raise RiskPatternError(
            f"{path}: invalid value {value!r}; expected one of: {allowed}"
        ) from None


def _string_list(value: object, path: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise RiskPatternError(f"{path}: expected list of strings")
    out: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str) or not item:
            raise RiskPatternError(f"{path}[{index}]: expected non-empty string")
        out.append(item)
    return tuple(out)


__all__ = [
    "CATEGORY_PHRASES",
    "DEFAULT_RISK_PATTERNS",
    "RiskPattern",
    "RiskPatternError",
    "RiskPredictor",
    "is_test_path",
    "load_risk_patterns",
    "parse_risk_patterns",
    "risk_score",
]
