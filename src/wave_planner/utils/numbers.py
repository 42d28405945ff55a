"""
wave-planner — numeric helpers

File: src/wave_planner/utils/numbers.py

Purpose
- Integer rounding and compact number rendering shared by estimator and risk scoring.

Functional requirements
- Rounding is half-up on the number line (``2.5 -> 3``, ``-2.5 -> -2``).
- Rendered numbers drop a trailing ``.0`` and float noise (``30.000000000000004 -> 30``).

Non-functional requirements
- Standard library only.
"""

from __future__ import annotations

import math

__all__ = [
    "format_number",
    "round_half_up",
]

_DISPLAY_PRECISION = 6


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties toward positive infinity."""

    if not math.isfinite(value):
        raise ValueError(f"cannot round non-finite value {value!r}")
    return int(math.floor(value + 0.5))


def format_number(value: float) -> str:
    """Render a multiplier or percentage for human-readable assumptions."""

    rounded = round(float(value), _DISPLAY_PRECISION)
    if rounded == 0:
        return "0"
    return f"{rounded:g}"
