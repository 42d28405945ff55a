"""Stable constants shared across the planning engine."""

from __future__ import annotations

from typing import Final

# Schema versions for serialized contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
PLAN_SCHEMA_VERSION: Final[int] = 1

# Cost model.
BASE_OVERHEAD_TOKENS: Final[int] = 5_000
TOKENS_PER_LINE: Final[int] = 100
NEW_CODE_FACTOR: Final[int] = 2
DEFAULT_CONTEXT_LINES: Final[int] = 50
MAX_SHARED_CONTEXT_REDUCTION: Final[float] = 0.5
SHARED_CONTEXT_WEIGHT: Final[float] = 0.7

# Ordinal scales used for averaging and bucketing.
COMPLEXITY_SCORE: Final[dict[str, int]] = {"low": 1, "medium": 2, "high": 3}
CONFIDENCE_SCORE: Final[dict[str, int]] = {"low": 1, "medium": 2, "high": 3}
ORDINAL_HIGH_THRESHOLD: Final[float] = 2.5
ORDINAL_MEDIUM_THRESHOLD: Final[float] = 1.5

# Priority ordering, P0 first.
PRIORITY_ORDER: Final[dict[str, int]] = {
    "P0-Critical": 0,
    "P1-High": 1,
    "P2-Medium": 2,
    "P3-Low": 3,
}

# Risk scoring.
RISK_IMPACT_WEIGHT: Final[dict[str, int]] = {"low": 1, "medium": 2, "high": 4, "critical": 8}
RISK_LIKELIHOOD_WEIGHT: Final[dict[str, int]] = {"low": 1, "medium": 2, "high": 3}
RISK_SCORE_CEILING: Final[int] = 10 * 8 * 3
DEFAULT_BUFFER_SCORE_THRESHOLD: Final[int] = 50

# Wave naming.
DEFAULT_WAVE_NAMES: Final[tuple[str, ...]] = (
    "Foundation",
    "Core Features",
    "Integration",
    "Enhancement",
    "Polish",
    "Finalization",
)

__all__ = [
    "BASE_OVERHEAD_TOKENS",
    "COMPLEXITY_SCORE",
    "CONFIDENCE_SCORE",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_BUFFER_SCORE_THRESHOLD",
    "DEFAULT_CONTEXT_LINES",
    "DEFAULT_WAVE_NAMES",
    "MAX_SHARED_CONTEXT_REDUCTION",
    "NEW_CODE_FACTOR",
    "ORDINAL_HIGH_THRESHOLD",
    "ORDINAL_MEDIUM_THRESHOLD",
    "PLAN_SCHEMA_VERSION",
    "PRIORITY_ORDER",
    "RISK_IMPACT_WEIGHT",
    "RISK_LIKELIHOOD_WEIGHT",
    "RISK_SCORE_CEILING",
    "SHARED_CONTEXT_WEIGHT",
    "TOKENS_PER_LINE",
]
