"""
wave-planner — planning engine

File: src/wave_planner/planning/__init__.py

Purpose
- Planning layer: token estimation, risk prediction, wave organization and agent inference.

What should be included in this file
- Public entrypoints of the estimator, risk predictor and organizer plus the ``build_plan`` facade.

Functional requirements
- Every entrypoint is a total function over well-typed domain input.

Non-functional requirements
- Must produce identical plans given identical issues, contexts and config.
"""

from __future__ import annotations

from wave_planner.planning.agents import AgentRule, assign_agents, infer_agent_type
from wave_planner.planning.estimator import (
    EstimationConfig,
    EstimationMultipliers,
    TokenEstimator,
    aggregate_confidence,
)
from wave_planner.planning.organizer import OrganizerConfig, WaveGroup, WaveOrganizer
from wave_planner.planning.plan import WavePlan, build_plan
from wave_planner.planning.risk_predictor import (
    DEFAULT_RISK_PATTERNS,
    RiskPattern,
    RiskPatternError,
    RiskPredictor,
    load_risk_patterns,
    risk_score,
)
from wave_planner.planning.similarity import jaccard_similarity, overlap_matrix

__all__ = [
    "DEFAULT_RISK_PATTERNS",
    "AgentRule",
    "EstimationConfig",
    "EstimationMultipliers",
    "OrganizerConfig",
    "RiskPattern",
    "RiskPatternError",
    "RiskPredictor",
    "TokenEstimator",
    "WaveGroup",
    "WaveOrganizer",
    "WavePlan",
    "aggregate_confidence",
    "assign_agents",
    "build_plan",
    "infer_agent_type",
    "jaccard_similarity",
    "load_risk_patterns",
    "overlap_matrix",
    "risk_score",
]
