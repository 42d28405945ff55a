"""
wave-planner — token cost estimator

File: src/wave_planner/planning/estimator.py

Purpose
- Convert one issue plus its codebase context into a layered token estimate.
- Aggregate per-issue estimates into a wave estimate with a shared-context discount.

What should be included in this file
- ``EstimationConfig`` typed view over the ``[estimation]`` config section.
- ``TokenEstimator`` with ``estimate``, ``estimate_many``, ``estimate_wave``
  and ``shared_context_reduction``.

Functional requirements
- ``estimate(...).total == base_overhead + breakdown.subtotal`` for every input.
- Missing context is substituted with ``CodebaseContext.default()``; never raises.
- A wave charges the base overhead once, so a singleton wave equals its issue estimate.

Non-functional requirements
- Pure and deterministic; instances hold immutable configuration only.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import structlog

from wave_planner.config.schema import assert_valid_config, default_config, merge_config
from wave_planner.constants import (
    CONFIDENCE_SCORE,
    DEFAULT_CONTEXT_LINES,
    MAX_SHARED_CONTEXT_REDUCTION,
    NEW_CODE_FACTOR,
    ORDINAL_HIGH_THRESHOLD,
    ORDINAL_MEDIUM_THRESHOLD,
    SHARED_CONTEXT_WEIGHT,
)
from wave_planner.domain.models import (
    CodebaseContext,
    Confidence,
    Issue,
    TokenBreakdown,
    TokenEstimate,
)
from wave_planner.utils.numbers import format_number, round_half_up

_DEFAULT_PRIORITY_MULTIPLIER = 1.0
_DEFAULT_COMPLEXITY_MULTIPLIER = 1.0
FABRICATED_CONTEXT_ASSUMPTION = (
    f"No codebase context; assumed {DEFAULT_CONTEXT_LINES} lines at medium complexity"
)

ContextMap = Mapping[str, CodebaseContext]


@dataclass(frozen=True, slots=True)
class EstimationMultipliers:
    context_expansion: float = 1.5
    test_overhead: float = 0.6
    review_overhead: float = 0.3
    documentation: float = 0.1


@dataclass(frozen=True, slots=True)
class EstimationConfig:
    """Immutable cost-model parameters; build from config with :meth:`from_mapping`."""

    base_overhead: int = 5_000
    tokens_per_line: int = 100
    review_cycles: int = 2
    multipliers: EstimationMultipliers = field(default_factory=EstimationMultipliers)
    complexity: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType({"low": 1.0, "medium": 1.5, "high": 2.5})
    )
    priority: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType(
            {"P0-Critical": 1.5, "P1-High": 1.2, "P2-Medium": 1.0, "P3-Low": 0.8}
        )
    )

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object] | None = None) -> EstimationConfig:
        """
        Build from a partial ``[estimation]`` mapping merged over defaults.

        Raises ``ConfigValidationError`` for wrong types or negative values.
        """

        merged = merge_config(default_config(), {"estimation": dict(payload or {})})
        section: dict[str, Any] = assert_valid_config(merged)["estimation"]
        multipliers = section["multipliers"]
        return cls(
            base_overhead=section["base_overhead"],
            tokens_per_line=section["tokens_per_line"],
            review_cycles=section["review_cycles"],
            multipliers=EstimationMultipliers(
                context_expansion=multipliers["context_expansion"],
                test_overhead=multipliers["test_overhead"],
                review_overhead=multipliers["review_overhead"],
                documentation=multipliers["documentation"],
            ),
            complexity=MappingProxyType(dict(section["complexity"])),
            priority=MappingProxyType(dict(section["priority"])),
        )


class TokenEstimator:
    """Layered token cost model over issues and their codebase contexts."""

    def __init__(
        self,
        config: EstimationConfig | None = None,
        *,
        logger: Any | None = None,
    ) -> None:
        self._config = config if config is not None else EstimationConfig()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def config(self) -> EstimationConfig:
        return self._config

    def estimate(self, issue: Issue, context: CodebaseContext | None = None) -> TokenEstimate:
        assumptions: list[str] = []
        if context is None:
            context = CodebaseContext.default()
            assumptions.append(FABRICATED_CONTEXT_ASSUMPTION)

        cfg = self._config
        multipliers = cfg.multipliers

        context_tokens = self._context_tokens(context, assumptions)
        implementation = self._implementation_tokens(issue, context, assumptions)

        tests = round_half_up(implementation * multipliers.test_overhead)
        test_pct = format_number(multipliers.test_overhead * 100)
        assumptions.append(f"Tests estimated at {test_pct}% of implementation")

        review = round_half_up(
            (implementation + tests) * multipliers.review_overhead * cfg.review_cycles
        )
        assumptions.append(
            f"{cfg.review_cycles} review cycles at "
            f"{format_number(multipliers.review_overhead * 100)}% overhead each"
        )

        documentation = round_half_up(implementation * multipliers.documentation)

        breakdown = TokenBreakdown(
            codebase_context=context_tokens,
            implementation=implementation,
            tests=tests,
            review=review,
            documentation=documentation,
        )
        estimate = TokenEstimate(
            total=cfg.base_overhead + breakdown.subtotal,
            breakdown=breakdown,
            confidence=self._confidence(issue, context),
            assumptions=tuple(assumptions),
            files_analyzed=context.file_count,
        )
        self._logger.debug(
            "planning_estimate_computed",
            issue_id=issue.id,
            issue_identifier=issue.identifier,
            total_tokens=estimate.total,
            confidence=estimate.confidence.value,
            files_analyzed=estimate.files_analyzed,
        )
        return estimate

    def estimate_many(
        self, issues: Iterable[Issue], contexts: ContextMap | None = None
    ) -> dict[str, TokenEstimate]:
        """Per-issue estimates keyed by issue id, in input order."""

        context_map = contexts or {}
        return {issue.id: self.estimate(issue, context_map.get(issue.id)) for issue in issues}

    def estimate_wave(
        self, issues: Sequence[Issue], contexts: ContextMap | None = None
    ) -> TokenEstimate:
        """
        Aggregate estimate for issues executed together.

        Components are summed per issue; only the context component is reduced
        by :meth:`shared_context_reduction`. The base overhead is charged once.
        """

        context_map = contexts or {}
        if not issues:
            return TokenEstimate(
                total=self._config.base_overhead,
                breakdown=TokenBreakdown(),
                confidence=Confidence.LOW,
                assumptions=(),
                files_analyzed=0,
            )

        estimates = [self.estimate(issue, context_map.get(issue.id)) for issue in issues]
        combined = TokenBreakdown()
        assumptions: list[str] = []
        for item in estimates:
            combined = combined + item.breakdown
            assumptions.extend(item.assumptions)

        reduction = self.shared_context_reduction(issues, context_map)
        combined = TokenBreakdown(
            codebase_context=round_half_up(combined.codebase_context * (1 - reduction)),
            implementation=combined.implementation,
            tests=combined.tests,
            review=combined.review,
            documentation=combined.documentation,
        )
        if reduction > 0:
            assumptions.append(f"Shared context reduction: {round_half_up(reduction * 100)}%")

        return TokenEstimate(
            total=self._config.base_overhead + combined.subtotal,
            breakdown=combined,
            confidence=aggregate_confidence(item.confidence for item in estimates),
            assumptions=tuple(dict.fromkeys(assumptions)),
            files_analyzed=sum(item.files_analyzed for item in estimates),
        )

    def shared_context_reduction(
        self, issues: Sequence[Issue], contexts: ContextMap | None = None
    ) -> float:
        """
        Fraction of combined context tokens saved by files shared across issues.

        ``min(shared / distinct * 0.7, 0.5)`` where ``shared`` counts files that
        appear in at least two issues' contexts. Issues without a context entry
        contribute no files; fewer than two issues yields ``0.0``.
        """

        if len(issues) < 2:
            return 0.0
        context_map = contexts or {}

        seen: set[str] = set()
        shared: set[str] = set()
        for issue in issues:
            context = context_map.get(issue.id)
            if context is None:
                continue
            for path in set(context.file_paths):
                if path in seen:
                    shared.add(path)
                seen.add(path)

        if not seen:
            return 0.0
        overlap_ratio = len(shared) / len(seen)
        return min(overlap_ratio * SHARED_CONTEXT_WEIGHT, MAX_SHARED_CONTEXT_REDUCTION)

    def _context_tokens(self, context: CodebaseContext, assumptions: list[str]) -> int:
        per_line = self._config.tokens_per_line
        direct = sum(item.lines * per_line for item in context.files_likely_touched)
        related = sum(item.lines * per_line for item in context.related_files)
        assumptions.append(
            f"{len(context.files_likely_touched)} direct files, "
            f"{len(context.related_files)} related files"
        )
        return direct + round_half_up(related * self._config.multipliers.context_expansion)

    def _implementation_tokens(
        self, issue: Issue, context: CodebaseContext, assumptions: list[str]
    ) -> int:
        cfg = self._config
        base = context.total_lines * NEW_CODE_FACTOR * cfg.tokens_per_line

        complexity_multiplier = cfg.complexity.get(
            context.avg_complexity.value, _DEFAULT_COMPLEXITY_MULTIPLIER
        )
        assumptions.append(
            f"Complexity: {context.avg_complexity.value} ({format_number(complexity_multiplier)}x)"
        )

        priority_multiplier = cfg.priority.get(issue.priority.value, _DEFAULT_PRIORITY_MULTIPLIER)
        assumptions.append(
            f"Priority: {issue.priority.value} ({format_number(priority_multiplier)}x)"
        )

        return round_half_up(base * complexity_multiplier * priority_multiplier)

    @staticmethod
    def _confidence(issue: Issue, context: CodebaseContext) -> Confidence:
        score = 0

        touched = len(context.files_likely_touched)
        if touched >= 3:
            score += 2
        elif touched >= 1:
            score += 1

        description_length = len(issue.description)
        if description_length > 200:
            score += 2
        elif description_length > 50:
            score += 1

        if len(issue.labels) >= 2:
            score += 1

        # Zero story points count as absent.
        if issue.estimate:
            score += 1

        if score >= 5:
            return Confidence.HIGH
        if score >= 3:
            return Confidence.MEDIUM
        return Confidence.LOW


def aggregate_confidence(values: Iterable[Confidence]) -> Confidence:
    """Mean of low=1/medium=2/high=3 re-bucketed at 2.5/1.5; empty input is low."""

    scores = [CONFIDENCE_SCORE[item.value] for item in values]
    if not scores:
        return Confidence.LOW
    mean = sum(scores) / len(scores)
    if mean >= ORDINAL_HIGH_THRESHOLD:
        return Confidence.HIGH
    if mean >= ORDINAL_MEDIUM_THRESHOLD:
        return Confidence.MEDIUM
    return Confidence.LOW


__all__ = [
    "FABRICATED_CONTEXT_ASSUMPTION",
    "ContextMap",
    "EstimationConfig",
    "EstimationMultipliers",
    "TokenEstimator",
    "aggregate_confidence",
]
