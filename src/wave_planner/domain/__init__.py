"""
wave-planner domain types.

Issues, codebase contexts, and the estimate/risk/wave records produced by the
planning engine. The domain layer has no IO side effects.
"""

from wave_planner.domain.models import (
    AdjustmentType,
    AgentAssignment,
    AgentType,
    CodebaseContext,
    Complexity,
    Confidence,
    FileInfo,
    Issue,
    Label,
    Priority,
    Risk,
    RiskAnalysisResult,
    RiskCategory,
    RiskImpact,
    RiskLikelihood,
    TokenBreakdown,
    TokenEstimate,
    Wave,
    WaveAdjustment,
    average_complexity,
    normalize_priority,
)

__all__ = [
    "AdjustmentType",
    "AgentAssignment",
    "AgentType",
    "CodebaseContext",
    "Complexity",
    "Confidence",
    "FileInfo",
    "Issue",
    "Label",
    "Priority",
    "Risk",
    "RiskAnalysisResult",
    "RiskCategory",
    "RiskImpact",
    "RiskLikelihood",
    "TokenBreakdown",
    "TokenEstimate",
    "Wave",
    "WaveAdjustment",
    "average_complexity",
    "normalize_priority",
]
