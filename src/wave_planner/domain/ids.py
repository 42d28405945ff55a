"""Identifier formatting and parsing for planning entities."""

from __future__ import annotations

import re
from typing import Final

RISK_ID_PREFIX: Final[str] = "RISK"
DEPENDS_LABEL_PREFIX: Final[str] = "depends:"

_DEPENDS_LABEL_RE: Final[re.Pattern[str]] = re.compile(r"^depends:", re.IGNORECASE)


def format_risk_id(sequence: int) -> str:
    """Return ``RISK-<sequence>`` for a 1-based sequence number."""

    if isinstance(sequence, bool) or not isinstance(sequence, int):
        raise TypeError("sequence must be an integer")
    if sequence < 1:
        raise ValueError("sequence must be >= 1")
    return f"{RISK_ID_PREFIX}-{sequence}"


def is_dependency_label(label: str) -> bool:
    return _DEPENDS_LABEL_RE.match(label) is not None


def parse_dependency_label(label: str) -> str | None:
    """
    Return the identifier named by a ``depends:<identifier>`` label.

    The prefix match is case-insensitive. Returns ``None`` for other labels or
    an empty target.
    """

    if not is_dependency_label(label):
        return None
    target = _DEPENDS_LABEL_RE.sub("", label, count=1).strip()
    return target or None


def identifiers_match(left: str, right: str) -> bool:
    return left.casefold() == right.casefold()


__all__ = [
    "DEPENDS_LABEL_PREFIX",
    "RISK_ID_PREFIX",
    "format_risk_id",
    "identifiers_match",
    "is_dependency_label",
    "parse_dependency_label",
]
