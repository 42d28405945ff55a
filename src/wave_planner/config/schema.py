"""
wave-planner — configuration schema and validation.

File: src/wave_planner/config/schema.py

Purpose
- Define authoritative planning defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Profile overlay validation and deterministic deep-merge helpers.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Support built-in profile overlays (conservative, fast).

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

from wave_planner.constants import (
    BASE_OVERHEAD_TOKENS,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_BUFFER_SCORE_THRESHOLD,
    TOKENS_PER_LINE,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("conservative", "fast")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMATS: Final[tuple[str, ...]] = ("json", "console")
COMPLEXITY_KEYS: Final[tuple[str, ...]] = ("low", "medium", "high")


class MetaConfig(TypedDict):
    schema_version: int


class MultipliersConfig(TypedDict):
    context_expansion: float
    test_overhead: float
    review_overhead: float
    documentation: float


class EstimationSection(TypedDict):
    base_overhead: int
    tokens_per_line: int
    review_cycles: int
    multipliers: MultipliersConfig
    complexity: dict[str, float]
    priority: dict[str, float]


class OrganizerSection(TypedDict):
    similarity_threshold: float
    max_issues_per_wave: int
    token_budget_per_wave: int
    respect_dependencies: bool


class RiskSection(TypedDict):
    patterns_file: NotRequired[str | None]
    buffer_score_threshold: int


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "console"]


class ProfileOverlay(TypedDict, total=False):
    estimation: dict[str, object]
    organizer: dict[str, object]
    risk: dict[str, object]
    observability: dict[str, object]


class PlannerConfig(TypedDict):
    meta: MetaConfig
    estimation: EstimationSection
    organizer: OrganizerSection
    risk: RiskSection
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[PlannerConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "estimation": {
        "base_overhead": BASE_OVERHEAD_TOKENS,
        "tokens_per_line": TOKENS_PER_LINE,
        "review_cycles": 2,
        "multipliers": {
            "context_expansion": 1.5,
            "test_overhead": 0.6,
            "review_overhead": 0.3,
            "documentation": 0.1,
        },
        "complexity": {
            "low": 1.0,
            "medium": 1.5,
            "high": 2.5,
        },
        "priority": {
            "P0-Critical": 1.5,
            "P1-High": 1.2,
            "P2-Medium": 1.0,
            "P3-Low": 0.8,
        },
    },
    "organizer": {
        "similarity_threshold": 0.3,
        "max_issues_per_wave": 5,
        "token_budget_per_wave": 150_000,
        "respect_dependencies": True,
    },
    "risk": {
        "patterns_file": None,
        "buffer_score_threshold": DEFAULT_BUFFER_SCORE_THRESHOLD,
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
    },
    "profiles": {
        "conservative": {
            "estimation": {"review_cycles": 3},
            "organizer": {"max_issues_per_wave": 3, "token_budget_per_wave": 100_000},
        },
        "fast": {
            "estimation": {"review_cycles": 1},
            "organizer": {"max_issues_per_wave": 8, "token_budget_per_wave": 250_000},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> PlannerConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade wave_planner.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the wave-planner package"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    if profile is None:
        return materialized

    selected = profile.strip()
    if not selected:
        return materialized

    profiles_raw = materialized.get("profiles")
    if not isinstance(profiles_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", "profiles section is required"),)
        )

    overlay_raw = profiles_raw.get(selected)
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    merged = merge_config(materialized, overlay_raw)
    return assert_valid_config(merged)


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, "", issues, partial=False)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on any issue."""

    result = validate_config(config)
    if not result.is_valid or result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _validate_root(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    required = {"meta", "estimation", "organizer", "risk", "observability"}
    allowed = required | {"profiles"}

    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, required, path, issues)

    out: dict[str, Any] = {}
    validators: tuple[tuple[str, Callable[..., dict[str, Any]]], ...] = (
        ("meta", _validate_meta),
        ("estimation", _validate_estimation),
        ("organizer", _validate_organizer),
        ("risk", _validate_risk),
        ("observability", _validate_observability),
    )
    for key, validator in validators:
        _section(
            payload,
            key=key,
            path=path,
            issues=issues,
            validator=lambda section, section_path, fn=validator: fn(
                section, section_path, issues, partial=partial
            ),
            out=out,
        )

    profiles_raw = payload.get("profiles")
    if profiles_raw is not None:
        profiles_path = _join(path, "profiles")
        profiles_obj = _as_object(profiles_raw, profiles_path, issues)
        if profiles_obj is not None:
            out["profiles"] = _validate_profiles(profiles_obj, profiles_path, issues)
    return out


def _section(
    payload: Mapping[str, object],
    *,
    key: str,
    path: str,
    issues: _IssueCollector,
    validator: Callable[[dict[str, object], str], dict[str, Any]],
    out: dict[str, Any],
) -> None:
    raw = payload.get(key)
    if raw is None:
        return
    section_path = _join(path, key)
    section_obj = _as_object(raw, section_path, issues)
    if section_obj is None:
        return
    out[key] = validator(section_obj, section_path)


def _validate_meta(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    if not partial:
        _require_keys(payload, {"schema_version"}, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(
            payload["schema_version"], _join(path, "schema_version"), issues, minimum=1
        )
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_estimation(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    required = {
        "base_overhead",
        "tokens_per_line",
        "review_cycles",
        "multipliers",
        "complexity",
        "priority",
    }
    _reject_unknown_keys(payload, required, path, issues)
    if not partial:
        _require_keys(payload, required, path, issues)

    out: dict[str, Any] = {}
    for key in ("base_overhead", "tokens_per_line", "review_cycles"):
        if key in payload:
            parsed_int = _as_int(payload[key], _join(path, key), issues, minimum=0)
            if parsed_int is not None:
                out[key] = parsed_int

    if "multipliers" in payload:
        multipliers_path = _join(path, "multipliers")
        multipliers = _as_object(payload["multipliers"], multipliers_path, issues)
        if multipliers is not None:
            keys = {"context_expansion", "test_overhead", "review_overhead", "documentation"}
            _reject_unknown_keys(multipliers, keys, multipliers_path, issues)
            if not partial:
                _require_keys(multipliers, keys, multipliers_path, issues)
            parsed_multipliers: dict[str, float] = {}
            for key in sorted(keys & set(multipliers)):
                parsed_float = _as_float(
                    multipliers[key], _join(multipliers_path, key), issues, minimum=0.0
                )
                if parsed_float is not None:
                    parsed_multipliers[key] = parsed_float
            out["multipliers"] = parsed_multipliers

    if "complexity" in payload:
        complexity_path = _join(path, "complexity")
        complexity = _as_object(payload["complexity"], complexity_path, issues)
        if complexity is not None:
            _reject_unknown_keys(complexity, set(COMPLEXITY_KEYS), complexity_path, issues)
            out["complexity"] = _weight_table(complexity, complexity_path, issues)

    if "priority" in payload:
        priority_path = _join(path, "priority")
        priority = _as_object(payload["priority"], priority_path, issues)
        if priority is not None:
            out["priority"] = _weight_table(priority, priority_path, issues)

    return out


def _validate_organizer(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    required = {
        "similarity_threshold",
        "max_issues_per_wave",
        "token_budget_per_wave",
        "respect_dependencies",
    }
    _reject_unknown_keys(payload, required, path, issues)
    if not partial:
        _require_keys(payload, required, path, issues)

    out: dict[str, Any] = {}
    if "similarity_threshold" in payload:
        threshold_path = _join(path, "similarity_threshold")
        threshold = _as_float(payload["similarity_threshold"], threshold_path, issues, minimum=0.0)
        if threshold is not None:
            if threshold > 1.0:
                issues.add(threshold_path, "must be <= 1.0")
            else:
                out["similarity_threshold"] = threshold

    for key in ("max_issues_per_wave", "token_budget_per_wave"):
        if key in payload:
            parsed_int = _as_int(payload[key], _join(path, key), issues, minimum=1)
            if parsed_int is not None:
                out[key] = parsed_int

    if "respect_dependencies" in payload:
        parsed_bool = _as_bool(
            payload["respect_dependencies"], _join(path, "respect_dependencies"), issues
        )
        if parsed_bool is not None:
            out["respect_dependencies"] = parsed_bool

    return out


def _validate_risk(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"patterns_file", "buffer_score_threshold"}, path, issues)
    if not partial:
        _require_keys(payload, {"buffer_score_threshold"}, path, issues)

    out: dict[str, Any] = {}
    if "patterns_file" in payload:
        raw = payload["patterns_file"]
        if raw is None:
            out["patterns_file"] = None
        else:
            parsed_path = _as_path_text(raw, _join(path, "patterns_file"), issues)
            if parsed_path is not None:
                out["patterns_file"] = parsed_path

    if "buffer_score_threshold" in payload:
        threshold_path = _join(path, "buffer_score_threshold")
        threshold = _as_int(payload["buffer_score_threshold"], threshold_path, issues, minimum=0)
        if threshold is not None:
            if threshold > 100:
                issues.add(threshold_path, "must be <= 100")
            else:
                out["buffer_score_threshold"] = threshold

    return out


def _validate_observability(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"log_level", "log_format"}, path, issues)
    if not partial:
        _require_keys(payload, {"log_level", "log_format"}, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        raw_level = payload["log_level"]
        level_value = raw_level.strip().upper() if isinstance(raw_level, str) else raw_level
        level = _as_enum(level_value, _join(path, "log_level"), issues, allowed_values=LOG_LEVELS)
        if level is not None:
            out["log_level"] = level
    if "log_format" in payload:
        log_format = _as_enum(
            payload["log_format"], _join(path, "log_format"), issues, allowed_values=LOG_FORMATS
        )
        if log_format is not None:
            out["log_format"] = log_format
    return out


def _validate_profiles(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name in sorted(payload):
        profile_path = _join(path, name)
        overlay = _as_object(payload[name], profile_path, issues)
        if overlay is None:
            continue
        if "profiles" in overlay or "meta" in overlay:
            issues.add(profile_path, "profile overlays may not nest profiles or meta")
            continue
        out[name] = _validate_root(overlay, profile_path, issues, partial=True)
    return out


def _weight_table(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, float]:
    out: dict[str, float] = {}
    for key in sorted(payload):
        parsed = _as_float(payload[key], _join(path, key), issues, minimum=0.0)
        if parsed is not None:
            out[key] = parsed
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        out[key] = _deep_copy_value(value[key])
    return out


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_deep_copy_value(item) for item in value)
    return copy.deepcopy(value)


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "PlannerConfig",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
