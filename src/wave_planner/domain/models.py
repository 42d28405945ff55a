"""Frozen dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, fields, is_dataclass
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import NoReturn, TypeVar, cast

from wave_planner.constants import (
    COMPLEXITY_SCORE,
    DEFAULT_CONTEXT_LINES,
    ORDINAL_HIGH_THRESHOLD,
    ORDINAL_MEDIUM_THRESHOLD,
)

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TModel = TypeVar("TModel", bound="CanonicalModel")
TEnum = TypeVar("TEnum", bound=Enum)

_MAX_TEXT = 65_536
_MAX_COLLECTION = 4_096


class Priority(StrEnum):
    P0_CRITICAL = "P0-Critical"
    P1_HIGH = "P1-High"
    P2_MEDIUM = "P2-Medium"
    P3_LOW = "P3-Low"


class Complexity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Confidence(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskCategory(StrEnum):
    EXTERNAL_DEPENDENCY = "external_dependency"
    BREAKING_CHANGE = "breaking_change"
    INTEGRATION = "integration"
    PERFORMANCE = "performance"
    SECURITY = "security"
    DATA_INTEGRITY = "data_integrity"
    RESOURCE_CONSTRAINT = "resource_constraint"
    TIMELINE = "timeline"


class RiskLikelihood(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskImpact(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AdjustmentType(StrEnum):
    REORDER = "reorder"
    SPLIT = "split"
    ADD_DEPENDENCY = "add_dependency"
    ADD_BUFFER = "add_buffer"


class AgentType(StrEnum):
    SECURITY_SPECIALIST = "security-specialist"
    BACKEND_DEVELOPER = "backend-developer"
    FRONTEND_DEVELOPER = "frontend-developer"
    TEST_ENGINEER = "test-engineer"
    DEVOPS_ENGINEER = "devops-engineer"
    DOCUMENTATION_WRITER = "documentation-writer"
    RESEARCHER = "researcher"
    GENERAL_PURPOSE = "general-purpose"


_PRIORITY_ALIASES: dict[str, Priority] = {
    "p0": Priority.P0_CRITICAL,
    "p0-critical": Priority.P0_CRITICAL,
    "urgent": Priority.P0_CRITICAL,
    "critical": Priority.P0_CRITICAL,
    "p1": Priority.P1_HIGH,
    "p1-high": Priority.P1_HIGH,
    "high": Priority.P1_HIGH,
    "p2": Priority.P2_MEDIUM,
    "p2-medium": Priority.P2_MEDIUM,
    "medium": Priority.P2_MEDIUM,
    "normal": Priority.P2_MEDIUM,
    "none": Priority.P2_MEDIUM,
    "p3": Priority.P3_LOW,
    "p3-low": Priority.P3_LOW,
    "low": Priority.P3_LOW,
}


def normalize_priority(value: Priority | str | None) -> Priority:
    """Map a tracker priority name onto :class:`Priority`; unknown values are P2."""

    if isinstance(value, Priority):
        return value
    if not isinstance(value, str):
        return Priority.P2_MEDIUM
    return _PRIORITY_ALIASES.get(value.strip().lower(), Priority.P2_MEDIUM)


def average_complexity(values: Iterable[Complexity | str]) -> Complexity:
    """Mean of low=1/medium=2/high=3, re-bucketed at 2.5/1.5; empty input is medium."""

    scores = [COMPLEXITY_SCORE[str(value)] for value in values]
    if not scores:
        return Complexity.MEDIUM
    mean = sum(scores) / len(scores)
    if mean >= ORDINAL_HIGH_THRESHOLD:
        return Complexity.HIGH
    if mean >= ORDINAL_MEDIUM_THRESHOLD:
        return Complexity.MEDIUM
    return Complexity.LOW


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        serialized = _serialize_value(self, self.__class__.__name__)
        if not isinstance(serialized, dict):
            _fail(self.__class__.__name__, "serialized model must be an object")
        return serialized

    def to_json(self) -> str:
        return _canonical_json(self.to_dict())

    @classmethod
    def from_json(cls: type[TModel], raw: str) -> TModel:
        if not isinstance(raw, str):
            _fail(cls.__name__, f"expected JSON string, got {type(raw).__name__}")
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail(cls.__name__, f"invalid JSON: {exc}")
        if not isinstance(parsed, dict):
            _fail(cls.__name__, "JSON root must be an object")
        return cls.from_dict(parsed)

    @classmethod
    def from_dict(cls: type[TModel], data: Mapping[str, object]) -> TModel:
        _fail(cls.__name__, "from_dict is not implemented for this model type")


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_str(value: object, path: str, *, min_len: int = 1, strip: bool = True) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip() if strip else value
    if len(normalized) < min_len:
        _fail(path, f"must be at least {min_len} character(s)")
    if len(normalized) > _MAX_TEXT:
        _fail(path, f"must be <= {_MAX_TEXT} characters")
    return normalized


def _as_optional_str(value: object, path: str) -> str | None:
    if value is None:
        return None
    return _as_str(value, path)


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_optional_float(value: object, path: str, *, minimum: float | None = None) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(path, f"expected number, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed):
        _fail(path, "must be finite")
    if minimum is not None and parsed < minimum:
        _fail(path, f"must be >= {minimum}")
    return parsed


def _as_optional_datetime(value: object, path: str) -> datetime | None:
    if value is None:
        return None
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        _fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware")
    return parsed.astimezone(UTC)


def _datetime_to_iso8601z(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        if len(value) > _MAX_COLLECTION:
            _fail(path, f"too many items (>{_MAX_COLLECTION})")
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _as_str_tuple(value: object, path: str) -> tuple[str, ...]:
    return tuple(
        _as_str(item, f"{path}[{index}]") for index, item in enumerate(_as_sequence(value, path))
    )


def _serialize_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, bool):
        return cast("JSONValue", value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite")
        return value
    if isinstance(value, Enum):
        raw = value.value
        if not isinstance(raw, str):
            _fail(path, "enum value must be string")
        return raw
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        return _datetime_to_iso8601z(value)
    if isinstance(value, (tuple, list)):
        return [_serialize_value(item, f"{path}[]") for item in value]
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, "dict keys must be strings")
            out[key] = _serialize_value(item, f"{path}.{key}")
        return out
    if is_dataclass(value):
        out_obj: dict[str, JSONValue] = {}
        for dataclass_field in fields(value):
            out_obj[dataclass_field.name] = _serialize_value(
                getattr(value, dataclass_field.name),
                f"{path}.{dataclass_field.name}",
            )
        return out_obj

    _fail(path, f"cannot serialize value of type {type(value).__name__}")


# ---------------------------------------------------------------------------
# Planning inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Label(CanonicalModel):
    name: str
    color: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _as_str(self.name, "Label.name"))
        object.__setattr__(self, "color", _as_optional_str(self.color, "Label.color"))
        object.__setattr__(
            self, "description", _as_optional_str(self.description, "Label.description")
        )

    @classmethod
    def coerce(cls, value: Label | str | Mapping[str, object], path: str = "Label") -> Label:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(name=value)
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        _fail(path, f"expected label name or object, got {type(value).__name__}")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Label:
        parsed = _expect_object(
            data, "Label", required={"name"}, optional={"id", "color", "description"}
        )
        return cls(
            name=_as_str(parsed["name"], "Label.name"),
            color=_as_optional_str(parsed.get("color"), "Label.color"),
            description=_as_optional_str(parsed.get("description"), "Label.description"),
        )


@dataclass(frozen=True, slots=True)
class FileInfo(CanonicalModel):
    path: str
    lines: int
    language: str = "unknown"
    complexity: Complexity = Complexity.MEDIUM

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", _as_str(self.path, "FileInfo.path"))
        object.__setattr__(self, "lines", _as_int(self.lines, "FileInfo.lines", minimum=0))
        object.__setattr__(self, "language", _as_str(self.language, "FileInfo.language"))
        object.__setattr__(
            self, "complexity", _as_enum(Complexity, self.complexity, "FileInfo.complexity")
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> FileInfo:
        parsed = _expect_object(
            data, "FileInfo", required={"path", "lines"}, optional={"language", "complexity"}
        )
        return cls(
            path=_as_str(parsed["path"], "FileInfo.path"),
            lines=_as_int(parsed["lines"], "FileInfo.lines", minimum=0),
            language=_as_str(parsed.get("language", "unknown"), "FileInfo.language"),
            complexity=_as_enum(
                Complexity, parsed.get("complexity", Complexity.MEDIUM), "FileInfo.complexity"
            ),
        )


@dataclass(frozen=True, slots=True)
class Issue(CanonicalModel):
    """
    One work item fetched from a project tracker.

    ``parent_id`` and ``child_ids`` are weak references to other issues by ``id``;
    the referenced issues may be absent from a planning run.
    """

    id: str
    identifier: str
    title: str
    description: str = ""
    priority: Priority = Priority.P2_MEDIUM
    labels: tuple[Label, ...] = ()
    parent_id: str | None = None
    child_ids: tuple[str, ...] = ()
    estimate: float | None = None
    state: str | None = None
    url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_str(self.id, "Issue.id"))
        object.__setattr__(self, "identifier", _as_str(self.identifier, "Issue.identifier"))
        object.__setattr__(self, "title", _as_str(self.title, "Issue.title", min_len=0))
        description = "" if self.description is None else self.description
        object.__setattr__(
            self,
            "description",
            _as_str(description, "Issue.description", min_len=0, strip=False),
        )
        object.__setattr__(self, "priority", normalize_priority(self.priority))
        object.__setattr__(
            self,
            "labels",
            tuple(
                Label.coerce(item, f"Issue.labels[{index}]")
                for index, item in enumerate(_as_sequence(self.labels, "Issue.labels"))
            ),
        )
        object.__setattr__(self, "parent_id", _as_optional_str(self.parent_id, "Issue.parent_id"))
        object.__setattr__(self, "child_ids", _as_str_tuple(self.child_ids, "Issue.child_ids"))
        object.__setattr__(
            self, "estimate", _as_optional_float(self.estimate, "Issue.estimate", minimum=0.0)
        )
        object.__setattr__(self, "state", _as_optional_str(self.state, "Issue.state"))
        object.__setattr__(self, "url", _as_optional_str(self.url, "Issue.url"))
        object.__setattr__(
            self, "created_at", _as_optional_datetime(self.created_at, "Issue.created_at")
        )
        object.__setattr__(
            self, "updated_at", _as_optional_datetime(self.updated_at, "Issue.updated_at")
        )

    @property
    def label_names(self) -> tuple[str, ...]:
        return tuple(label.name for label in self.labels)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Issue:
        parsed = _expect_object(
            data,
            "Issue",
            required={"id", "identifier", "title"},
            optional={
                "description",
                "priority",
                "labels",
                "parent_id",
                "child_ids",
                "estimate",
                "state",
                "url",
                "created_at",
                "updated_at",
            },
        )
        raw_priority = parsed.get("priority")
        if raw_priority is not None and not isinstance(raw_priority, str):
            _fail("Issue.priority", f"expected string, got {type(raw_priority).__name__}")
        raw_description = parsed.get("description")
        return cls(
            id=_as_str(parsed["id"], "Issue.id"),
            identifier=_as_str(parsed["identifier"], "Issue.identifier"),
            title=_as_str(parsed["title"], "Issue.title", min_len=0),
            description=(
                ""
                if raw_description is None
                else _as_str(raw_description, "Issue.description", min_len=0, strip=False)
            ),
            priority=normalize_priority(raw_priority),
            labels=tuple(_as_sequence(parsed.get("labels", ()), "Issue.labels")),
            parent_id=_as_optional_str(parsed.get("parent_id"), "Issue.parent_id"),
            child_ids=_as_str_tuple(parsed.get("child_ids", ()), "Issue.child_ids"),
            estimate=_as_optional_float(parsed.get("estimate"), "Issue.estimate", minimum=0.0),
            state=_as_optional_str(parsed.get("state"), "Issue.state"),
            url=_as_optional_str(parsed.get("url"), "Issue.url"),
            created_at=_as_optional_datetime(parsed.get("created_at"), "Issue.created_at"),
            updated_at=_as_optional_datetime(parsed.get("updated_at"), "Issue.updated_at"),
        )


@dataclass(frozen=True, slots=True)
class CodebaseContext(CanonicalModel):
    """
    Files an issue is expected to touch, plus supporting files it must read.

    Touched and related files are disjoint by path: a related entry whose path is
    already touched is dropped, as are repeated paths within either list.
    """

    files_likely_touched: tuple[FileInfo, ...] = ()
    related_files: tuple[FileInfo, ...] = ()
    total_lines: int = DEFAULT_CONTEXT_LINES
    avg_complexity: Complexity = Complexity.MEDIUM

    def __post_init__(self) -> None:
        touched = _unique_files(self.files_likely_touched, "CodebaseContext.files_likely_touched")
        touched_paths = {item.path for item in touched}
        related = tuple(
            item
            for item in _unique_files(self.related_files, "CodebaseContext.related_files")
            if item.path not in touched_paths
        )
        object.__setattr__(self, "files_likely_touched", touched)
        object.__setattr__(self, "related_files", related)
        object.__setattr__(
            self,
            "total_lines",
            _as_int(self.total_lines, "CodebaseContext.total_lines", minimum=0),
        )
        object.__setattr__(
            self,
            "avg_complexity",
            _as_enum(Complexity, self.avg_complexity, "CodebaseContext.avg_complexity"),
        )

    @classmethod
    def default(cls) -> CodebaseContext:
        """Context fabricated for issues the codebase search found nothing for."""

        return cls(
            files_likely_touched=(),
            related_files=(),
            total_lines=DEFAULT_CONTEXT_LINES,
            avg_complexity=Complexity.MEDIUM,
        )

    @classmethod
    def from_files(
        cls,
        touched: Iterable[FileInfo],
        related: Iterable[FileInfo] = (),
    ) -> CodebaseContext:
        """Derive ``total_lines`` and ``avg_complexity`` from the touched files."""

        touched_files = _unique_files(tuple(touched), "CodebaseContext.files_likely_touched")
        return cls(
            files_likely_touched=touched_files,
            related_files=tuple(related),
            total_lines=sum(item.lines for item in touched_files),
            avg_complexity=average_complexity(item.complexity for item in touched_files),
        )

    @property
    def file_paths(self) -> tuple[str, ...]:
        return tuple(item.path for item in self.files_likely_touched) + tuple(
            item.path for item in self.related_files
        )

    @property
    def file_count(self) -> int:
        return len(self.files_likely_touched) + len(self.related_files)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> CodebaseContext:
        parsed = _expect_object(
            data,
            "CodebaseContext",
            required=set(),
            optional={"files_likely_touched", "related_files", "total_lines", "avg_complexity"},
        )
        touched = tuple(
            FileInfo.from_dict(cast("Mapping[str, object]", item))
            for item in _as_sequence(
                parsed.get("files_likely_touched", ()), "CodebaseContext.files_likely_touched"
            )
        )
        related = tuple(
            FileInfo.from_dict(cast("Mapping[str, object]", item))
            for item in _as_sequence(
                parsed.get("related_files", ()), "CodebaseContext.related_files"
            )
        )
        if "total_lines" not in parsed and "avg_complexity" not in parsed and touched:
            return cls.from_files(touched, related)
        return cls(
            files_likely_touched=touched,
            related_files=related,
            total_lines=_as_int(
                parsed.get("total_lines", DEFAULT_CONTEXT_LINES),
                "CodebaseContext.total_lines",
                minimum=0,
            ),
            avg_complexity=_as_enum(
                Complexity,
                parsed.get("avg_complexity", Complexity.MEDIUM),
                "CodebaseContext.avg_complexity",
            ),
        )


def _unique_files(values: object, path: str) -> tuple[FileInfo, ...]:
    seen: set[str] = set()
    unique: list[FileInfo] = []
    for index, item in enumerate(_as_sequence(values, path)):
        if not isinstance(item, FileInfo):
            _fail(f"{path}[{index}]", f"expected FileInfo, got {type(item).__name__}")
        if item.path in seen:
            continue
        seen.add(item.path)
        unique.append(item)
    return tuple(unique)


# ---------------------------------------------------------------------------
# Planning outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TokenBreakdown(CanonicalModel):
    codebase_context: int = 0
    implementation: int = 0
    tests: int = 0
    review: int = 0
    documentation: int = 0

    @property
    def subtotal(self) -> int:
        return (
            self.codebase_context
            + self.implementation
            + self.tests
            + self.review
            + self.documentation
        )

    def __add__(self, other: TokenBreakdown) -> TokenBreakdown:
        return TokenBreakdown(
            codebase_context=self.codebase_context + other.codebase_context,
            implementation=self.implementation + other.implementation,
            tests=self.tests + other.tests,
            review=self.review + other.review,
            documentation=self.documentation + other.documentation,
        )


@dataclass(frozen=True, slots=True)
class TokenEstimate(CanonicalModel):
    total: int
    breakdown: TokenBreakdown
    confidence: Confidence
    assumptions: tuple[str, ...] = ()
    files_analyzed: int = 0


@dataclass(frozen=True, slots=True)
class Risk(CanonicalModel):
    id: str
    category: RiskCategory
    issue_id: str
    issue_identifier: str
    description: str
    likelihood: RiskLikelihood
    impact: RiskImpact
    mitigation: str
    affected_issues: tuple[str, ...] = ()
    suggested_wave_adjustment: str | None = None

    @property
    def is_high_impact(self) -> bool:
        return self.impact in (RiskImpact.HIGH, RiskImpact.CRITICAL)


@dataclass(frozen=True, slots=True)
class WaveAdjustment(CanonicalModel):
    adjustment_type: AdjustmentType
    reason: str
    affected_issues: tuple[str, ...]
    recommendation: str


@dataclass(frozen=True, slots=True)
class RiskAnalysisResult(CanonicalModel):
    risks: tuple[Risk, ...]
    total_risk_score: int
    high_risks: tuple[Risk, ...]
    wave_adjustments: tuple[WaveAdjustment, ...]
    summary: str


@dataclass(frozen=True, slots=True)
class AgentAssignment(CanonicalModel):
    issue_id: str
    issue_identifier: str
    agent_type: AgentType
    rationale: str


@dataclass(frozen=True, slots=True)
class Wave(CanonicalModel):
    number: int
    name: str
    description: str
    issues: tuple[Issue, ...]
    token_estimate: TokenEstimate
    agents: tuple[AgentAssignment, ...]
    dependencies: tuple[int, ...]
    parallelizable: bool

    @property
    def issue_ids(self) -> tuple[str, ...]:
        return tuple(issue.id for issue in self.issues)

    @property
    def issue_identifiers(self) -> tuple[str, ...]:
        return tuple(issue.identifier for issue in self.issues)


__all__ = [
    "AdjustmentType",
    "AgentAssignment",
    "AgentType",
    "CanonicalModel",
    "CodebaseContext",
    "Complexity",
    "Confidence",
    "FileInfo",
    "Issue",
    "JSONValue",
    "Label",
    "Priority",
    "Risk",
    "RiskAnalysisResult",
    "RiskCategory",
    "RiskImpact",
    "RiskLikelihood",
    "TokenBreakdown",
    "TokenEstimate",
    "Wave",
    "WaveAdjustment",
    "average_complexity",
    "normalize_priority",
]
