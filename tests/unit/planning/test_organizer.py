"""
wave-planner — unit tests for the wave organizer

File: tests/unit/planning/test_organizer.py

Purpose
- Validate greedy grouping, dependency ordering, splitting and wave metadata.

What this test file should cover
- Every issue lands in exactly one wave with contiguous numbering.
- Count and token budget splitting.
- Parent/child ordering, wave dependencies and parallelizability.
- Wave naming and description text.

Non-functional requirements
- Deterministic; no I/O.
"""

from __future__ import annotations

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from structlog.testing import capture_logs

from wave_planner.config.schema import ConfigValidationError
from wave_planner.domain.models import CodebaseContext, FileInfo, Issue, Priority
from wave_planner.planning.organizer import (
    OrganizerConfig,
    WaveGroup,
    WaveOrganizer,
    is_parallelizable,
    mean_pairwise_similarity,
    order_by_dependencies,
    priority_rank,
    wave_description,
    wave_name,
)

pytestmark = pytest.mark.unit


def _issue(
    number: int,
    *,
    priority: Priority = Priority.P2_MEDIUM,
    labels: tuple[str, ...] = (),
    parent: int | None = None,
) -> Issue:
    return Issue(
        id=f"id-{number}",
        identifier=f"ENG-{number}",
        title=f"Issue {number}",
        priority=priority,
        labels=labels,  # type: ignore[arg-type]
        parent_id=f"id-{parent}" if parent is not None else None,
    )


def _context(*paths: str) -> CodebaseContext:
    return CodebaseContext.from_files([FileInfo(path=path, lines=10) for path in paths])


def _shared(issues: list[Issue], *paths: str) -> dict[str, CodebaseContext]:
    return {issue.id: _context(*paths) for issue in issues}


def test_empty_input_yields_no_waves() -> None:
    assert WaveOrganizer().organize([]) == []


def test_issues_without_overlap_get_separate_waves() -> None:
    issues = [_issue(1), _issue(2)]

    waves = WaveOrganizer().organize(issues)

    assert [wave.issue_identifiers for wave in waves] == [("ENG-1",), ("ENG-2",)]
    assert [wave.name for wave in waves] == ["Foundation", "Core Features"]


def test_groups_are_seeded_in_priority_order() -> None:
    issues = [
        _issue(1, priority=Priority.P3_LOW),
        _issue(2, priority=Priority.P0_CRITICAL),
        _issue(3, priority=Priority.P1_HIGH),
    ]

    waves = WaveOrganizer().organize(issues)

    assert [wave.issue_identifiers for wave in waves] == [("ENG-2",), ("ENG-3",), ("ENG-1",)]


def test_group_members_need_only_match_the_seed() -> None:
    seed = _issue(1, priority=Priority.P0_CRITICAL)
    left = _issue(2)
    right = _issue(3)
    contexts = {
        seed.id: _context("x.py", "y.py"),
        left.id: _context("x.py"),
        right.id: _context("y.py"),
    }

    groups = WaveOrganizer().group_by_context([left, right, seed], contexts)

    (group,) = groups
    assert [issue.identifier for issue in group.issues] == ["ENG-1", "ENG-2", "ENG-3"]
    assert group.similarity == pytest.approx(1 / 3)
    assert wave_description(group) == "Issues: ENG-1, ENG-2, ENG-3 (33% context overlap)"


def test_large_group_is_split_by_count() -> None:
    issues = [_issue(number) for number in range(1, 8)]

    waves = WaveOrganizer().organize(issues, _shared(issues, "shared.py"))

    assert [len(wave.issues) for wave in waves] == [5, 2]
    assert [wave.number for wave in waves] == [1, 2]
    assert waves[0].description.endswith("(100% context overlap)")
    assert len(waves[0].agents) == 5


def test_group_is_split_by_token_budget() -> None:
    issues = [_issue(number) for number in range(1, 4)]
    config = OrganizerConfig(token_budget_per_wave=30_000)
    organizer = WaveOrganizer(config)
    contexts = _shared(issues, "shared.py")

    with capture_logs() as logs:
        waves = organizer.organize(issues, contexts)

    assert [wave.issue_identifiers for wave in waves] == [("ENG-1", "ENG-2"), ("ENG-3",)]
    assert all(wave.token_estimate.total <= 30_000 for wave in waves)
    events = [entry["event"] for entry in logs]
    assert "planning_wave_group_split" in events
    assert "planning_waves_organized" in events


def test_oversized_single_issue_still_gets_a_wave() -> None:
    organizer = WaveOrganizer(OrganizerConfig(token_budget_per_wave=1))

    waves = organizer.organize([_issue(1)])

    (wave,) = waves
    assert wave.token_estimate.total > 1


def test_parent_wave_precedes_child_wave() -> None:
    parent = _issue(1, priority=Priority.P3_LOW)
    child = _issue(2, priority=Priority.P0_CRITICAL, parent=1)

    waves = WaveOrganizer().organize([parent, child])

    assert [wave.issue_identifiers for wave in waves] == [("ENG-1",), ("ENG-2",)]
    assert waves[0].dependencies == ()
    assert waves[1].dependencies == (1,)
    assert all(wave.parallelizable for wave in waves)


def test_dependency_ordering_can_be_disabled() -> None:
    parent = _issue(1, priority=Priority.P3_LOW)
    child = _issue(2, priority=Priority.P0_CRITICAL, parent=1)
    organizer = WaveOrganizer(OrganizerConfig(respect_dependencies=False))

    waves = organizer.organize([parent, child])

    assert [wave.issue_identifiers for wave in waves] == [("ENG-2",), ("ENG-1",)]
    assert [wave.dependencies for wave in waves] == [(), ()]


def test_parent_and_child_in_one_wave_are_not_parallelizable() -> None:
    parent = _issue(1)
    child = _issue(2, parent=1)

    waves = WaveOrganizer().organize([parent, child], _shared([parent, child], "a.py"))

    (wave,) = waves
    assert not wave.parallelizable
    assert is_parallelizable([parent])


def test_dependency_comparator_leaves_cycles_in_place() -> None:
    first = WaveGroup(issues=(_issue(1, parent=2),), similarity=1.0)
    second = WaveGroup(issues=(_issue(2, parent=1),), similarity=1.0)

    assert order_by_dependencies([first, second]) == [first, second]


@pytest.mark.parametrize(
    ("labels", "number", "expected"),
    [
        ((("backend",), ("backend",), ("frontend",)), 1, "Backend"),
        ((("api",), ("db",), ("ui",), ("ops",)), 2, "Core Features"),
        ((("api",), ("db",)), 1, "Api"),
        (((), ()), 6, "Finalization"),
        (((), ()), 7, "Wave 7"),
    ],
)
def test_wave_name(labels: tuple[tuple[str, ...], ...], number: int, expected: str) -> None:
    issues = [_issue(index, labels=item) for index, item in enumerate(labels, start=1)]

    assert wave_name(issues, number) == expected


def test_mean_pairwise_similarity_of_singleton_is_one() -> None:
    assert mean_pairwise_similarity([0], ((0.0,),)) == 1.0
    assert mean_pairwise_similarity([0, 1], ((1.0, 0.25), (0.25, 1.0))) == 0.25


def test_priority_rank_orders_p0_first() -> None:
    ranks = [priority_rank(_issue(1, priority=priority)) for priority in Priority]

    assert ranks == [0, 1, 2, 3]


def test_unrecognized_priority_ranks_as_medium() -> None:
    issue = Issue(
        id="x", identifier="ENG-9", title="Odd", priority="someday"  # type: ignore[arg-type]
    )

    assert issue.priority is Priority.P2_MEDIUM
    assert priority_rank(issue) == 2


def test_config_from_mapping_validates() -> None:
    assert OrganizerConfig.from_mapping({"max_issues_per_wave": 2}).max_issues_per_wave == 2
    with pytest.raises(ConfigValidationError):
        OrganizerConfig.from_mapping({"similarity_threshold": 1.5})


_PATHS = ("a.py", "b.py", "c.py", "d.py")


@st.composite
def _planning_inputs(draw: st.DrawFn) -> tuple[list[Issue], dict[str, CodebaseContext]]:
    count = draw(st.integers(min_value=1, max_value=12))
    issues: list[Issue] = []
    contexts: dict[str, CodebaseContext] = {}
    for number in range(1, count + 1):
        parent = draw(st.none() | st.integers(min_value=1, max_value=count))
        issue = _issue(
            number,
            priority=draw(st.sampled_from(list(Priority))),
            parent=parent if parent != number else None,
        )
        issues.append(issue)
        paths = draw(st.lists(st.sampled_from(_PATHS), unique=True, max_size=3))
        if paths:
            contexts[issue.id] = _context(*paths)
    return issues, contexts


@settings(max_examples=60, suppress_health_check=[HealthCheck.too_slow])
@given(
    _planning_inputs(),
    st.integers(min_value=1, max_value=4),
    st.sampled_from([20_000, 60_000, 150_000]),
)
def test_organize_partitions_issues(
    inputs: tuple[list[Issue], dict[str, CodebaseContext]],
    max_issues: int,
    budget: int,
) -> None:
    issues, contexts = inputs
    config = OrganizerConfig(max_issues_per_wave=max_issues, token_budget_per_wave=budget)

    waves = WaveOrganizer(config).organize(issues, contexts)

    placed = [issue.id for wave in waves for issue in wave.issues]
    assert sorted(placed) == sorted(issue.id for issue in issues)
    assert [wave.number for wave in waves] == list(range(1, len(waves) + 1))
    for wave in waves:
        assert 1 <= len(wave.issues) <= max_issues
        assert wave.token_estimate.total <= budget or len(wave.issues) == 1
        assert all(dependency < wave.number for dependency in wave.dependencies)
        assert len(wave.agents) == len(wave.issues)
