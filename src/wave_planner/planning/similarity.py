"""File-set overlap between issues: Jaccard similarity and the pairwise matrix."""

from __future__ import annotations

from collections.abc import Mapping, Sequence, Set

from wave_planner.domain.models import CodebaseContext, Issue


def jaccard_similarity(left: Set[str], right: Set[str]) -> float:
    """
    ``|left & right| / |left | right|`` in ``[0, 1]``.

    Two empty sets have similarity ``0.0``: no known files means no
    demonstrated overlap.
    """

    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def issue_file_set(issue: Issue, contexts: Mapping[str, CodebaseContext]) -> frozenset[str]:
    """Touched and related paths for ``issue``; empty when it has no context."""

    context = contexts.get(issue.id)
    if context is None:
        return frozenset()
    return frozenset(context.file_paths)


def overlap_matrix(
    issues: Sequence[Issue], contexts: Mapping[str, CodebaseContext]
) -> tuple[tuple[float, ...], ...]:
    """Square matrix indexed by position in ``issues``; the diagonal is ``1.0``."""

    file_sets = [issue_file_set(issue, contexts) for issue in issues]
    size = len(issues)
    rows: list[list[float]] = [[0.0] * size for _ in range(size)]
    for row in range(size):
        rows[row][row] = 1.0
        for column in range(row + 1, size):
            value = jaccard_similarity(file_sets[row], file_sets[column])
            rows[row][column] = value
            rows[column][row] = value
    return tuple(tuple(row) for row in rows)


__all__ = [
    "issue_file_set",
    "jaccard_similarity",
    "overlap_matrix",
]
