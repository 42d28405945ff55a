"""
wave-planner — integration test package

File: tests/integration/__init__.py

Purpose
- Test package marker file.

Functional requirements
- Must not trigger tracker calls or network access.
"""
