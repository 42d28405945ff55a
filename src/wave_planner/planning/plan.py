"""Planning facade: organize waves and analyze risks over one set of inputs."""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from wave_planner.config.schema import assert_valid_config, default_config, merge_config
from wave_planner.constants import PLAN_SCHEMA_VERSION
from wave_planner.domain.models import (
    CanonicalModel,
    CodebaseContext,
    Issue,
    RiskAnalysisResult,
    Wave,
)
from wave_planner.observability.logging import planning_scope
from wave_planner.planning.estimator import EstimationConfig, TokenEstimator
from wave_planner.planning.organizer import OrganizerConfig, WaveOrganizer
from wave_planner.planning.risk_predictor import RiskPredictor


@dataclass(frozen=True, slots=True)
class WavePlan(CanonicalModel):
    """Hand-off record for downstream plan and config generators."""

    waves: tuple[Wave, ...]
    risk_analysis: RiskAnalysisResult
    total_estimate: int
    schema_version: int = PLAN_SCHEMA_VERSION

    @property
    def issue_count(self) -> int:
        return sum(len(wave.issues) for wave in self.waves)


def build_plan(
    issues: Sequence[Issue],
    contexts: Mapping[str, CodebaseContext] | None = None,
    *,
    config: Mapping[str, object] | None = None,
    run_id: str | None = None,
    logger: Any | None = None,
) -> WavePlan:
    """
    Run the organizer and risk predictor over the same issues and contexts.

    ``config`` is a full or partial planner config merged over the defaults.
    ``total_estimate`` is the sum of the wave totals.
    """

    effective = assert_valid_config(merge_config(default_config(), dict(config or {})))
    log = logger if logger is not None else structlog.get_logger(__name__)
    context_map = dict(contexts or {})

    with planning_scope(run_id=run_id or uuid.uuid4().hex):
        estimator = TokenEstimator(
            EstimationConfig.from_mapping(effective["estimation"]), logger=logger
        )
        organizer = WaveOrganizer(
            OrganizerConfig.from_mapping(effective["organizer"]), estimator, logger=logger
        )
        predictor = RiskPredictor.from_config(effective["risk"], logger=logger)

        waves = tuple(organizer.organize(issues, context_map))
        risk_analysis = predictor.analyze(issues, context_map)
        plan = WavePlan(
            waves=waves,
            risk_analysis=risk_analysis,
            total_estimate=sum(wave.token_estimate.total for wave in waves),
        )
        log.info(
            "planning_plan_built",
            issue_count=len(issues),
            wave_count=len(waves),
            risk_count=len(risk_analysis.risks),
            total_risk_score=risk_analysis.total_risk_score,
            total_estimate=plan.total_estimate,
        )
    return plan


__all__ = [
    "WavePlan",
    "build_plan",
]
