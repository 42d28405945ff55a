"""
wave-planner — wave organizer

File: src/wave_planner/planning/organizer.py

Purpose
- Partition issues into ordered, budget-sized waves with specialist agents assigned.

What should be included in this file
- ``OrganizerConfig`` typed view over the ``[organizer]`` config section.
- Greedy similarity grouping seeded in priority order.
- Comparator-based dependency ordering of groups.
- Budget and count aware splitting into waves, naming and wave dependencies.

Functional requirements
- Every input issue lands in exactly one wave; wave numbers run 1..N.
- With dependency ordering enabled a wave only depends on earlier waves.

Non-functional requirements
- Deterministic given inputs and config; the overlap matrix is O(n^2).
"""

from __future__ import annotations

import functools
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from wave_planner.config.schema import assert_valid_config, default_config, merge_config
from wave_planner.constants import DEFAULT_WAVE_NAMES, PRIORITY_ORDER
from wave_planner.domain.models import CodebaseContext, Issue, Wave
from wave_planner.planning.agents import assign_agents
from wave_planner.planning.estimator import TokenEstimator
from wave_planner.planning.similarity import overlap_matrix
from wave_planner.utils.numbers import round_half_up


@dataclass(frozen=True, slots=True)
class OrganizerConfig:
    similarity_threshold: float = 0.3
    max_issues_per_wave: int = 5
    token_budget_per_wave: int = 150_000
    respect_dependencies: bool = True

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object] | None = None) -> OrganizerConfig:
        """Build from a partial ``[organizer]`` mapping merged over defaults."""

        merged = merge_config(default_config(), {"organizer": dict(payload or {})})
        section: dict[str, Any] = assert_valid_config(merged)["organizer"]
        return cls(
            similarity_threshold=section["similarity_threshold"],
            max_issues_per_wave=section["max_issues_per_wave"],
            token_budget_per_wave=section["token_budget_per_wave"],
            respect_dependencies=section["respect_dependencies"],
        )


@dataclass(frozen=True, slots=True)
class WaveGroup:
    """Issues clustered together and their mean pairwise similarity."""

    issues: tuple[Issue, ...]
    similarity: float

    @property
    def issue_ids(self) -> frozenset[str]:
        return frozenset(issue.id for issue in self.issues)


def priority_rank(issue: Issue) -> int:
    return PRIORITY_ORDER[issue.priority.value]


def mean_pairwise_similarity(
    indices: Sequence[int], matrix: Sequence[Sequence[float]]
) -> float:
    """Mean over unordered pairs; ``1.0`` for groups of fewer than two."""

    if len(indices) < 2:
        return 1.0
    total = 0.0
    pairs = 0
    for position, left in enumerate(indices):
        for right in indices[position + 1 :]:
            total += matrix[left][right]
            pairs += 1
    return total / pairs


def order_by_dependencies(groups: Sequence[WaveGroup]) -> list[WaveGroup]:
    """
    Stable sort pushing a group after any group holding a parent of its issues.

    This is a pairwise comparator, not a topological sort: chains spanning
    several groups, or cycles, keep whatever order the stable sort leaves.
    """

    parent_of = {issue.id: issue.parent_id for group in groups for issue in group.issues}

    def depends_on(group: WaveGroup, other: WaveGroup) -> bool:
        other_ids = other.issue_ids
        return any(parent_of.get(issue.id) in other_ids for issue in group.issues)

    def compare(left: WaveGroup, right: WaveGroup) -> int:
        left_after = depends_on(left, right)
        right_after = depends_on(right, left)
        if left_after and not right_after:
            return 1
        if right_after and not left_after:
            return -1
        return 0

    return sorted(groups, key=functools.cmp_to_key(compare))


class WaveOrganizer:
    """Cluster, order and split issues into numbered waves."""

    def __init__(
        self,
        config: OrganizerConfig | None = None,
        estimator: TokenEstimator | None = None,
        *,
        logger: Any | None = None,
    ) -> None:
        self._config = config if config is not None else OrganizerConfig()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._estimator = estimator if estimator is not None else TokenEstimator(logger=logger)

    @property
    def config(self) -> OrganizerConfig:
        return self._config

    @property
    def estimator(self) -> TokenEstimator:
        return self._estimator

    def organize(
        self,
        issues: Sequence[Issue],
        contexts: Mapping[str, CodebaseContext] | None = None,
    ) -> list[Wave]:
        if not issues:
            return []
        context_map = contexts or {}

        groups = self.group_by_context(issues, context_map)
        if self._config.respect_dependencies:
            groups = order_by_dependencies(groups)

        waves = self._groups_to_waves(groups, context_map)
        self._logger.info(
            "planning_waves_organized",
            issue_count=len(issues),
            group_count=len(groups),
            wave_count=len(waves),
            respect_dependencies=self._config.respect_dependencies,
        )
        return waves

    def group_by_context(
        self,
        issues: Sequence[Issue],
        contexts: Mapping[str, CodebaseContext] | None = None,
    ) -> list[WaveGroup]:
        """
        Single-pass greedy cover seeded in priority order.

        Each unassigned seed takes every still-unassigned issue whose
        similarity to the seed meets the threshold. Members are not required
        to be similar to each other, and issues are never reconsidered.
        """

        matrix = overlap_matrix(issues, contexts or {})
        ordered = sorted(range(len(issues)), key=lambda index: priority_rank(issues[index]))
        threshold = self._config.similarity_threshold

        assigned: set[int] = set()
        groups: list[WaveGroup] = []
        for seed in ordered:
            if seed in assigned:
                continue
            members = [
                index
                for index in ordered
                if index not in assigned and (index == seed or matrix[seed][index] >= threshold)
            ]
            assigned.update(members)
            groups.append(
                WaveGroup(
                    issues=tuple(issues[index] for index in members),
                    similarity=mean_pairwise_similarity(members, matrix),
                )
            )

        self._logger.debug(
            "planning_issues_grouped",
            issue_count=len(issues),
            group_count=len(groups),
            similarity_threshold=threshold,
        )
        return groups

    def split_group(
        self,
        group: WaveGroup,
        contexts: Mapping[str, CodebaseContext] | None = None,
    ) -> list[WaveGroup]:
        """Return ``[group]`` when within limits, else count/budget-bounded sub-groups."""

        context_map = contexts or {}
        cfg = self._config
        if len(group.issues) <= cfg.max_issues_per_wave:
            combined = self._estimator.estimate_wave(group.issues, context_map)
            if combined.total <= cfg.token_budget_per_wave:
                return [group]

        sub_groups: list[WaveGroup] = []
        current: list[Issue] = []
        current_tokens = 0
        for issue in group.issues:
            issue_tokens = self._estimator.estimate(issue, context_map.get(issue.id)).total
            over_count = len(current) >= cfg.max_issues_per_wave
            over_budget = (
                bool(current) and current_tokens + issue_tokens > cfg.token_budget_per_wave
            )
            if over_count or over_budget:
                sub_groups.append(WaveGroup(issues=tuple(current), similarity=group.similarity))
                current = []
                current_tokens = 0
            current.append(issue)
            current_tokens += issue_tokens
        if current:
            sub_groups.append(WaveGroup(issues=tuple(current), similarity=group.similarity))

        self._logger.info(
            "planning_wave_group_split",
            group_size=len(group.issues),
            sub_group_sizes=[len(item.issues) for item in sub_groups],
            max_issues_per_wave=cfg.max_issues_per_wave,
            token_budget_per_wave=cfg.token_budget_per_wave,
        )
        return sub_groups

    def _groups_to_waves(
        self,
        groups: Sequence[WaveGroup],
        contexts: Mapping[str, CodebaseContext],
    ) -> list[Wave]:
        waves: list[Wave] = []
        for group in groups:
            for sub_group in self.split_group(group, contexts):
                number = len(waves) + 1
                waves.append(
                    Wave(
                        number=number,
                        name=wave_name(sub_group.issues, number),
                        description=wave_description(sub_group),
                        issues=sub_group.issues,
                        token_estimate=self._estimator.estimate_wave(sub_group.issues, contexts),
                        agents=assign_agents(sub_group.issues),
                        dependencies=wave_dependencies(sub_group.issues, waves),
                        parallelizable=is_parallelizable(sub_group.issues),
                    )
                )
        return waves


def wave_name(issues: Sequence[Issue], number: int) -> str:
    """Most common label when it covers at least half the issues, else a default name."""

    counts: dict[str, int] = {}
    for issue in issues:
        for name in issue.label_names:
            counts[name] = counts.get(name, 0) + 1

    top_label = ""
    top_count = 0
    for name, count in counts.items():
        if count > top_count:
            top_label = name
            top_count = count

    if top_label and top_count >= len(issues) / 2:
        return top_label[:1].upper() + top_label[1:]
    if 1 <= number <= len(DEFAULT_WAVE_NAMES):
        return DEFAULT_WAVE_NAMES[number - 1]
    return f"Wave {number}"


def wave_description(group: WaveGroup) -> str:
    identifiers = ", ".join(issue.identifier for issue in group.issues)
    return f"Issues: {identifiers} ({round_half_up(group.similarity * 100)}% context overlap)"


def wave_dependencies(issues: Sequence[Issue], earlier_waves: Sequence[Wave]) -> tuple[int, ...]:
    """Numbers of earlier waves holding a parent of any issue, ascending."""

    numbers: set[int] = set()
    for issue in issues:
        if issue.parent_id is None:
            continue
        for wave in earlier_waves:
            if issue.parent_id in wave.issue_ids:
                numbers.add(wave.number)
    return tuple(sorted(numbers))


def is_parallelizable(issues: Sequence[Issue]) -> bool:
    ids = {issue.id for issue in issues}
    return not any(issue.parent_id is not None and issue.parent_id in ids for issue in issues)


__all__ = [
    "OrganizerConfig",
    "WaveGroup",
    "WaveOrganizer",
    "is_parallelizable",
    "mean_pairwise_similarity",
    "order_by_dependencies",
    "priority_rank",
    "wave_dependencies",
    "wave_description",
    "wave_name",
]
