"""Utility exports for numeric helpers."""

from wave_planner.utils.numbers import format_number, round_half_up

__all__ = [
    "format_number",
    "round_half_up",
]
