"""
wave-planner — package root

File: src/wave_planner/__init__.py

Purpose
- Package root. Partition tracker issues into ordered waves, estimate their
  token cost, and flag cross-issue risks.

What should be included in this file
- Version export and a small public API surface.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

from wave_planner.planning import WavePlan, build_plan

__version__ = "0.1.0"

__all__ = [
    "WavePlan",
    "__version__",
    "build_plan",
]
