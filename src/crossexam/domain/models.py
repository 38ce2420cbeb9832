"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import Final, NoReturn, TypeVar, cast

from crossexam.domain import ids as domain_ids

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TModel = TypeVar("TModel", bound="CanonicalModel")
TEnum = TypeVar("TEnum", bound=Enum)

_SCHEMA_VERSION = 1
_MAX_TEXT = 65_536
_MAX_BLOB = 10_000_000
_MAX_ISSUE_ID = 128
_MAX_PATH = 4096
_MAX_COLLECTION = 100_000


class Severity(StrEnum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        """Higher rank is more severe."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: Final[dict[Severity, int]] = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


class IssueCategory(StrEnum):
    SECURITY = "SECURITY"
    CORRECTNESS = "CORRECTNESS"
    RELIABILITY = "RELIABILITY"
    MAINTAINABILITY = "MAINTAINABILITY"
    PERFORMANCE = "PERFORMANCE"


# Expected number of checks per category; a coverage signal only.
CATEGORY_TOTALS: Final[dict[IssueCategory, int]] = {
    IssueCategory.SECURITY: 8,
    IssueCategory.CORRECTNESS: 6,
    IssueCategory.RELIABILITY: 4,
    IssueCategory.MAINTAINABILITY: 4,
    IssueCategory.PERFORMANCE: 4,
}


class IssueStatus(StrEnum):
    RAISED = "RAISED"
    CHALLENGED = "CHALLENGED"
    RESOLVED = "RESOLVED"
    UNRESOLVED = "UNRESOLVED"


class SessionStatus(StrEnum):
    INITIALIZED = "initialized"
    VERIFYING = "verifying"
    CONVERGING = "converging"
    CONVERGED = "converged"
    FORCED_STOP = "forced_stop"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES: Final[frozenset[SessionStatus]] = frozenset(
    {SessionStatus.CONVERGED, SessionStatus.FORCED_STOP, SessionStatus.ERROR}
)

# Forward-only ordering; terminal states share the last rank.
SESSION_STATUS_ORDER: Final[dict[SessionStatus, int]] = {
    SessionStatus.INITIALIZED: 0,
    SessionStatus.VERIFYING: 1,
    SessionStatus.CONVERGING: 2,
    SessionStatus.CONVERGED: 3,
    SessionStatus.FORCED_STOP: 3,
    SessionStatus.ERROR: 3,
}


class Role(StrEnum):
    VERIFIER = "verifier"
    CRITIC = "critic"

    @property
    def opposite(self) -> Role:
        return Role.CRITIC if self is Role.VERIFIER else Role.VERIFIER


class NextRole(StrEnum):
    VERIFIER = "verifier"
    CRITIC = "critic"
    COMPLETE = "complete"


class Layer(StrEnum):
    BASE = "base"
    DISCOVERED = "discovered"


class Verdict(StrEnum):
    PASS = "PASS"
    FAIL = "FAIL"
    CONDITIONAL = "CONDITIONAL"


class IssueFilter(StrEnum):
    ALL = "all"
    UNRESOLVED = "unresolved"
    CRITICAL = "critical"


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


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


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


def _as_schema_version(value: object, path: str) -> int:
    version = _as_int(value, path, minimum=1)
    if version > _SCHEMA_VERSION:
        _fail(path, f"schema version {version} is newer than supported {_SCHEMA_VERSION}")
    return version


def _as_str(
    value: object,
    path: str,
    *,
    min_len: int = 1,
    max_len: int = _MAX_TEXT,
    strip: bool = True,
) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip() if strip else value
    if len(normalized) < min_len:
        _fail(path, f"must be at least {min_len} character(s)")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_text(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str:
    return _as_str(value, path, min_len=0, max_len=max_len, strip=False)


def _as_optional_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str | None:
    if value is None:
        return None
    return _as_str(value, path, max_len=max_len)


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_optional_int(value: object, path: str, *, minimum: int | None = None) -> int | None:
    if value is None:
        return None
    return _as_int(value, path, minimum=minimum)


def _as_datetime(value: object, path: str) -> datetime:
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
        _fail(path, "datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def _datetime_to_iso8601z(value: datetime) -> str:
    normalized = _as_datetime(value, "datetime")
    return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(str(item.value) for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_optional_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum | None:
    if value is None:
        return None
    return _as_enum(enum_type, value, path)


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        if len(value) > _MAX_COLLECTION:
            _fail(path, f"too many items (>{_MAX_COLLECTION})")
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _as_str_tuple(
    value: object,
    path: str,
    *,
    unique: bool,
    max_len: int = _MAX_TEXT,
) -> tuple[str, ...]:
    values = _as_sequence(value, path)
    parsed: list[str] = []
    for index, item in enumerate(values):
        parsed.append(_as_str(item, f"{path}[{index}]", max_len=max_len))

    if unique and len(set(parsed)) != len(parsed):
        _fail(path, "contains duplicate values")
    return tuple(parsed)


def _as_int_tuple(value: object, path: str, *, minimum: int | None = None) -> tuple[int, ...]:
    values = _as_sequence(value, path)
    return tuple(
        _as_int(item, f"{path}[{index}]", minimum=minimum) for index, item in enumerate(values)
    )


def _as_issue_id(value: object, path: str) -> str:
    return _as_str(value, path, max_len=_MAX_ISSUE_ID)


def _as_issue_ids(value: object, path: str, *, unique: bool = False) -> tuple[str, ...]:
    return _as_str_tuple(value, path, unique=unique, max_len=_MAX_ISSUE_ID)


def _as_path_text(value: object, path: str) -> str:
    parsed = _as_str(value, path, max_len=_MAX_PATH, strip=False)
    if "\x00" in parsed:
        _fail(path, "must not contain NUL bytes")
    return parsed


def _as_path_tuple(value: object, path: str) -> tuple[str, ...]:
    values = _as_sequence(value, path)
    parsed = tuple(_as_path_text(item, f"{path}[{index}]") for index, item in enumerate(values))
    if len(set(parsed)) != len(parsed):
        _fail(path, "contains duplicate values")
    return parsed


def _serialize_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, bool):
        return cast("JSONValue", value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return value
    if isinstance(value, Enum):
        raw = value.value
        if not isinstance(raw, str):
            _fail(path, "enum value must be string")
        return raw
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


@dataclass(slots=True)
class FileContext(CanonicalModel):
    path: str
    content: str
    dependencies: tuple[str, ...] = ()
    layer: Layer = Layer.BASE
    added_in_round: int | None = None

    def __post_init__(self) -> None:
        self.path = _as_path_text(self.path, "FileContext.path")
        self.content = _as_text(self.content, "FileContext.content", max_len=_MAX_BLOB)
        self.dependencies = _as_str_tuple(
            self.dependencies, "FileContext.dependencies", unique=False, max_len=_MAX_PATH
        )
        self.layer = _as_enum(Layer, self.layer, "FileContext.layer")
        self.added_in_round = _as_optional_int(
            self.added_in_round, "FileContext.added_in_round", minimum=1
        )
        if self.layer is Layer.BASE and self.added_in_round is not None:
            _fail("FileContext.added_in_round", "base files have no discovery round")
        if self.layer is Layer.DISCOVERED and self.added_in_round is None:
            _fail("FileContext.added_in_round", "discovered files require a discovery round")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> FileContext:
        parsed = _expect_object(
            data,
            "FileContext",
            required={"path", "content", "layer"},
            optional={"dependencies", "added_in_round"},
        )
        return cls(
            path=_as_path_text(parsed["path"], "FileContext.path"),
            content=_as_text(parsed["content"], "FileContext.content", max_len=_MAX_BLOB),
            dependencies=_as_str_tuple(
                parsed.get("dependencies", ()),
                "FileContext.dependencies",
                unique=False,
                max_len=_MAX_PATH,
            ),
            layer=_as_enum(Layer, parsed["layer"], "FileContext.layer"),
            added_in_round=_as_optional_int(
                parsed.get("added_in_round"), "FileContext.added_in_round", minimum=1
            ),
        )


@dataclass(slots=True)
class VerificationContext(CanonicalModel):
    """Path-keyed file snapshots; a path is recorded once and never replaced."""

    target: str
    requirements: str = ""
    files: dict[str, FileContext] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.target = _as_text(self.target, "VerificationContext.target", max_len=_MAX_PATH)
        self.requirements = _as_text(self.requirements, "VerificationContext.requirements")
        if not isinstance(self.files, dict):
            _fail("VerificationContext.files", "expected mapping of path to FileContext")
        for key, item in self.files.items():
            if not isinstance(item, FileContext):
                _fail(f"VerificationContext.files.{key}", "expected FileContext")
            if item.path != key:
                _fail(f"VerificationContext.files.{key}", "key must equal FileContext.path")

    def add(self, file_context: FileContext) -> bool:
        """Add ``file_context`` unless its path is already present."""
        if file_context.path in self.files:
            return False
        self.files[file_context.path] = file_context
        return True

    def __contains__(self, path: object) -> bool:
        return path in self.files

    def __len__(self) -> int:
        return len(self.files)

    def paths(self) -> tuple[str, ...]:
        return tuple(self.files)

    def by_layer(self, layer: Layer) -> tuple[FileContext, ...]:
        return tuple(item for item in self.files.values() if item.layer is layer)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> VerificationContext:
        parsed = _expect_object(
            data,
            "VerificationContext",
            required={"target", "files"},
            optional={"requirements"},
        )
        raw_files = parsed["files"]
        if not isinstance(raw_files, Mapping):
            _fail("VerificationContext.files", f"expected object, got {type(raw_files).__name__}")
        files: dict[str, FileContext] = {}
        for key, item in raw_files.items():
            if not isinstance(key, str):
                _fail("VerificationContext.files", "keys must be strings")
            if not isinstance(item, Mapping):
                _fail(f"VerificationContext.files.{key}", "expected object")
            files[key] = FileContext.from_dict(item)
        return cls(
            target=_as_text(parsed["target"], "VerificationContext.target", max_len=_MAX_PATH),
            requirements=_as_text(
                parsed.get("requirements", ""), "VerificationContext.requirements"
            ),
            files=files,
        )


@dataclass(slots=True)
class Issue(CanonicalModel):
    id: str
    category: IssueCategory
    severity: Severity
    summary: str
    raised_by: Role
    raised_in_round: int
    location: str = ""
    description: str = ""
    evidence: str = ""
    status: IssueStatus = IssueStatus.RAISED
    challenged_in_round: int | None = None
    resolved_in_round: int | None = None
    resolution: str | None = None

    def __post_init__(self) -> None:
        self.id = _as_issue_id(self.id, "Issue.id")
        self.category = _as_enum(IssueCategory, self.category, "Issue.category")
        self.severity = _as_enum(Severity, self.severity, "Issue.severity")
        self.summary = _as_str(self.summary, "Issue.summary")
        self.raised_by = _as_enum(Role, self.raised_by, "Issue.raised_by")
        self.raised_in_round = _as_int(self.raised_in_round, "Issue.raised_in_round", minimum=1)
        self.location = _as_text(self.location, "Issue.location")
        self.description = _as_text(self.description, "Issue.description")
        self.evidence = _as_text(self.evidence, "Issue.evidence")
        self.status = _as_enum(IssueStatus, self.status, "Issue.status")
        self.challenged_in_round = _as_optional_int(
            self.challenged_in_round, "Issue.challenged_in_round", minimum=1
        )
        self.resolved_in_round = _as_optional_int(
            self.resolved_in_round, "Issue.resolved_in_round", minimum=1
        )
        self.resolution = _as_optional_str(self.resolution, "Issue.resolution")

    @property
    def is_resolved(self) -> bool:
        return self.status is IssueStatus.RESOLVED

    @classmethod
    def from_report(
        cls,
        data: Mapping[str, object],
        *,
        raised_by: Role,
        raised_in_round: int,
    ) -> Issue:
        """Build a freshly raised issue from a caller-supplied finding."""
        parsed = _expect_object(
            data,
            "Issue",
            required={"id", "category", "severity", "summary"},
            optional={"location", "description", "evidence"},
        )
        return cls(
            id=_as_issue_id(parsed["id"], "Issue.id"),
            category=_as_enum(IssueCategory, parsed["category"], "Issue.category"),
            severity=_as_enum(Severity, parsed["severity"], "Issue.severity"),
            summary=_as_str(parsed["summary"], "Issue.summary"),
            raised_by=raised_by,
            raised_in_round=raised_in_round,
            location=_as_text(parsed.get("location", ""), "Issue.location"),
            description=_as_text(parsed.get("description", ""), "Issue.description"),
            evidence=_as_text(parsed.get("evidence", ""), "Issue.evidence"),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Issue:
        parsed = _expect_object(
            data,
            "Issue",
            required={
                "id",
                "category",
                "severity",
                "summary",
                "raised_by",
                "raised_in_round",
                "status",
            },
            optional={
                "location",
                "description",
                "evidence",
                "challenged_in_round",
                "resolved_in_round",
                "resolution",
            },
        )
        return cls(
            id=_as_issue_id(parsed["id"], "Issue.id"),
            category=_as_enum(IssueCategory, parsed["category"], "Issue.category"),
            severity=_as_enum(Severity, parsed["severity"], "Issue.severity"),
            summary=_as_str(parsed["summary"], "Issue.summary"),
            raised_by=_as_enum(Role, parsed["raised_by"], "Issue.raised_by"),
            raised_in_round=_as_int(parsed["raised_in_round"], "Issue.raised_in_round", minimum=1),
            location=_as_text(parsed.get("location", ""), "Issue.location"),
            description=_as_text(parsed.get("description", ""), "Issue.description"),
            evidence=_as_text(parsed.get("evidence", ""), "Issue.evidence"),
            status=_as_enum(IssueStatus, parsed["status"], "Issue.status"),
            challenged_in_round=_as_optional_int(
                parsed.get("challenged_in_round"), "Issue.challenged_in_round", minimum=1
            ),
            resolved_in_round=_as_optional_int(
                parsed.get("resolved_in_round"), "Issue.resolved_in_round", minimum=1
            ),
            resolution=_as_optional_str(parsed.get("resolution"), "Issue.resolution"),
        )


@dataclass(frozen=True, slots=True)
class Round(CanonicalModel):
    number: int
    role: Role
    output: str
    input: str = ""
    issues_raised: tuple[str, ...] = ()
    issues_resolved: tuple[str, ...] = ()
    issues_challenged: tuple[str, ...] = ()
    context_expanded: bool = False
    new_files_discovered: tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "number", _as_int(self.number, "Round.number", minimum=1))
        object.__setattr__(self, "role", _as_enum(Role, self.role, "Round.role"))
        object.__setattr__(self, "output", _as_text(self.output, "Round.output", max_len=_MAX_BLOB))
        object.__setattr__(self, "input", _as_text(self.input, "Round.input", max_len=_MAX_BLOB))
        object.__setattr__(
            self, "issues_raised", _as_issue_ids(self.issues_raised, "Round.issues_raised")
        )
        object.__setattr__(
            self, "issues_resolved", _as_issue_ids(self.issues_resolved, "Round.issues_resolved")
        )
        object.__setattr__(
            self,
            "issues_challenged",
            _as_issue_ids(self.issues_challenged, "Round.issues_challenged"),
        )
        object.__setattr__(
            self, "context_expanded", _as_bool(self.context_expanded, "Round.context_expanded")
        )
        object.__setattr__(
            self,
            "new_files_discovered",
            _as_path_tuple(self.new_files_discovered, "Round.new_files_discovered"),
        )
        object.__setattr__(self, "timestamp", _as_datetime(self.timestamp, "Round.timestamp"))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Round:
        parsed = _expect_object(
            data,
            "Round",
            required={"number", "role", "output", "timestamp"},
            optional={
                "input",
                "issues_raised",
                "issues_resolved",
                "issues_challenged",
                "context_expanded",
                "new_files_discovered",
            },
        )
        return cls(
            number=_as_int(parsed["number"], "Round.number", minimum=1),
            role=_as_enum(Role, parsed["role"], "Round.role"),
            output=_as_text(parsed["output"], "Round.output", max_len=_MAX_BLOB),
            input=_as_text(parsed.get("input", ""), "Round.input", max_len=_MAX_BLOB),
            issues_raised=_as_issue_ids(parsed.get("issues_raised", ()), "Round.issues_raised"),
            issues_resolved=_as_issue_ids(
                parsed.get("issues_resolved", ()), "Round.issues_resolved"
            ),
            issues_challenged=_as_issue_ids(
                parsed.get("issues_challenged", ()), "Round.issues_challenged"
            ),
            context_expanded=_as_bool(
                parsed.get("context_expanded", False), "Round.context_expanded"
            ),
            new_files_discovered=_as_path_tuple(
                parsed.get("new_files_discovered", ()), "Round.new_files_discovered"
            ),
            timestamp=_as_datetime(parsed["timestamp"], "Round.timestamp"),
        )


@dataclass(frozen=True, slots=True)
class Checkpoint(CanonicalModel):
    """Snapshot at a round boundary; ``issues_snapshot`` is never aliased."""

    round_number: int
    context_files: tuple[str, ...]
    issues_snapshot: tuple[Issue, ...]
    can_rollback_to: bool = True
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "round_number",
            _as_int(self.round_number, "Checkpoint.round_number", minimum=0),
        )
        object.__setattr__(
            self, "context_files", _as_path_tuple(self.context_files, "Checkpoint.context_files")
        )
        snapshot = tuple(_as_sequence(self.issues_snapshot, "Checkpoint.issues_snapshot"))
        for index, item in enumerate(snapshot):
            if not isinstance(item, Issue):
                _fail(f"Checkpoint.issues_snapshot[{index}]", "expected Issue")
        _reject_duplicate_issue_ids(snapshot, "Checkpoint.issues_snapshot")
        object.__setattr__(self, "issues_snapshot", snapshot)
        object.__setattr__(
            self, "can_rollback_to", _as_bool(self.can_rollback_to, "Checkpoint.can_rollback_to")
        )
        object.__setattr__(self, "timestamp", _as_datetime(self.timestamp, "Checkpoint.timestamp"))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Checkpoint:
        parsed = _expect_object(
            data,
            "Checkpoint",
            required={"round_number", "context_files", "issues_snapshot", "timestamp"},
            optional={"can_rollback_to"},
        )
        raw_issues = _as_sequence(parsed["issues_snapshot"], "Checkpoint.issues_snapshot")
        return cls(
            round_number=_as_int(parsed["round_number"], "Checkpoint.round_number", minimum=0),
            context_files=_as_path_tuple(parsed["context_files"], "Checkpoint.context_files"),
            issues_snapshot=tuple(
                Issue.from_dict(_expect_mapping(item, f"Checkpoint.issues_snapshot[{index}]"))
                for index, item in enumerate(raw_issues)
            ),
            can_rollback_to=_as_bool(
                parsed.get("can_rollback_to", True), "Checkpoint.can_rollback_to"
            ),
            timestamp=_as_datetime(parsed["timestamp"], "Checkpoint.timestamp"),
        )


@dataclass(slots=True)
class FileCoverage(CanonicalModel):
    path: str
    lines_mentioned: tuple[int, ...] = ()
    last_verified_round: int = 0

    def __post_init__(self) -> None:
        self.path = _as_path_text(self.path, "FileCoverage.path")
        self.lines_mentioned = _as_int_tuple(
            self.lines_mentioned, "FileCoverage.lines_mentioned", minimum=1
        )
        self.last_verified_round = _as_int(
            self.last_verified_round, "FileCoverage.last_verified_round", minimum=0
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> FileCoverage:
        parsed = _expect_object(
            data,
            "FileCoverage",
            required={"path", "last_verified_round"},
            optional={"lines_mentioned"},
        )
        return cls(
            path=_as_path_text(parsed["path"], "FileCoverage.path"),
            lines_mentioned=_as_int_tuple(
                parsed.get("lines_mentioned", ()), "FileCoverage.lines_mentioned", minimum=1
            ),
            last_verified_round=_as_int(
                parsed["last_verified_round"], "FileCoverage.last_verified_round", minimum=0
            ),
        )


@dataclass(frozen=True, slots=True)
class InterventionRecord(CanonicalModel):
    """History entry for an emitted mediator intervention."""

    type: str
    severity: str
    round_number: int
    reason: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", _as_str(self.type, "InterventionRecord.type"))
        object.__setattr__(self, "severity", _as_str(self.severity, "InterventionRecord.severity"))
        object.__setattr__(
            self,
            "round_number",
            _as_int(self.round_number, "InterventionRecord.round_number", minimum=0),
        )
        object.__setattr__(self, "reason", _as_text(self.reason, "InterventionRecord.reason"))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> InterventionRecord:
        parsed = _expect_object(
            data,
            "InterventionRecord",
            required={"type", "severity", "round_number", "reason"},
        )
        return cls(
            type=_as_str(parsed["type"], "InterventionRecord.type"),
            severity=_as_str(parsed["severity"], "InterventionRecord.severity"),
            round_number=_as_int(
                parsed["round_number"], "InterventionRecord.round_number", minimum=0
            ),
            reason=_as_text(parsed["reason"], "InterventionRecord.reason"),
        )


@dataclass(slots=True)
class MediatorLedger(CanonicalModel):
    """Persisted mediator coverage and intervention history for one session."""

    total_files: int = 0
    verified_files: dict[str, FileCoverage] = field(default_factory=dict)
    unverified_critical: list[str] = field(default_factory=list)
    interventions: list[InterventionRecord] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.total_files = _as_int(self.total_files, "MediatorLedger.total_files", minimum=0)
        for key, item in self.verified_files.items():
            if not isinstance(item, FileCoverage) or item.path != key:
                _fail(f"MediatorLedger.verified_files.{key}", "expected FileCoverage for key")
        self.unverified_critical = list(
            _as_path_tuple(self.unverified_critical, "MediatorLedger.unverified_critical")
        )
        for index, record in enumerate(self.interventions):
            if not isinstance(record, InterventionRecord):
                _fail(f"MediatorLedger.interventions[{index}]", "expected InterventionRecord")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> MediatorLedger:
        parsed = _expect_object(
            data,
            "MediatorLedger",
            required={"total_files"},
            optional={"verified_files", "unverified_critical", "interventions"},
        )
        raw_verified = parsed.get("verified_files", {})
        if not isinstance(raw_verified, Mapping):
            _fail("MediatorLedger.verified_files", "expected object")
        verified: dict[str, FileCoverage] = {}
        for key, item in raw_verified.items():
            verified[str(key)] = FileCoverage.from_dict(
                _expect_mapping(item, f"MediatorLedger.verified_files.{key}")
            )
        raw_records = _as_sequence(parsed.get("interventions", ()), "MediatorLedger.interventions")
        return cls(
            total_files=_as_int(parsed["total_files"], "MediatorLedger.total_files", minimum=0),
            verified_files=verified,
            unverified_critical=list(
                _as_path_tuple(
                    parsed.get("unverified_critical", ()), "MediatorLedger.unverified_critical"
                )
            ),
            interventions=[
                InterventionRecord.from_dict(
                    _expect_mapping(item, f"MediatorLedger.interventions[{index}]")
                )
                for index, item in enumerate(raw_records)
            ],
        )


@dataclass(slots=True)
class Session(CanonicalModel):
    """Root aggregate of a review session."""

    id: str
    target: str
    requirements: str
    working_dir: str
    context: VerificationContext
    status: SessionStatus = SessionStatus.INITIALIZED
    current_round: int = 0
    max_rounds: int = 10
    issues: list[Issue] = field(default_factory=list)
    rounds: list[Round] = field(default_factory=list)
    checkpoints: list[Checkpoint] = field(default_factory=list)
    mediator: MediatorLedger = field(default_factory=MediatorLedger)
    verdict: Verdict | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    schema_version: int = _SCHEMA_VERSION

    def __post_init__(self) -> None:
        self.schema_version = _as_schema_version(self.schema_version, "Session.schema_version")
        try:
            self.id = domain_ids.validate_session_id(self.id)
        except ValueError as exc:
            _fail("Session.id", str(exc))
        self.target = _as_text(self.target, "Session.target", max_len=_MAX_PATH)
        self.requirements = _as_text(self.requirements, "Session.requirements")
        self.working_dir = _as_path_text(self.working_dir, "Session.working_dir")
        if not isinstance(self.context, VerificationContext):
            _fail("Session.context", "expected VerificationContext")
        self.status = _as_enum(SessionStatus, self.status, "Session.status")
        self.current_round = _as_int(self.current_round, "Session.current_round", minimum=0)
        self.max_rounds = _as_int(self.max_rounds, "Session.max_rounds", minimum=1)
        if not isinstance(self.mediator, MediatorLedger):
            _fail("Session.mediator", "expected MediatorLedger")
        self.verdict = _as_optional_enum(Verdict, self.verdict, "Session.verdict")
        self.created_at = _as_datetime(self.created_at, "Session.created_at")
        self.updated_at = _as_datetime(self.updated_at, "Session.updated_at")

        _reject_duplicate_issue_ids(self.issues, "Session.issues")
        if self.current_round != len(self.rounds):
            _fail(
                "Session.current_round",
                f"must equal the number of rounds ({len(self.rounds)}), got {self.current_round}",
            )
        for index, item in enumerate(self.rounds, start=1):
            if not isinstance(item, Round):
                _fail(f"Session.rounds[{index - 1}]", "expected Round")
            if item.number != index:
                _fail(f"Session.rounds[{index - 1}].number", f"expected {index}, got {item.number}")

    def touch(self, now: datetime | None = None) -> None:
        self.updated_at = now if now is not None else utc_now()

    def find_issue(self, issue_id: str) -> Issue | None:
        for issue in self.issues:
            if issue.id == issue_id:
                return issue
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Session:
        parsed = _expect_object(
            data,
            "Session",
            required={
                "id",
                "target",
                "requirements",
                "working_dir",
                "context",
                "status",
                "current_round",
                "max_rounds",
                "created_at",
                "updated_at",
            },
            optional={"issues", "rounds", "checkpoints", "mediator", "verdict", "schema_version"},
        )
        raw_issues = _as_sequence(parsed.get("issues", ()), "Session.issues")
        raw_rounds = _as_sequence(parsed.get("rounds", ()), "Session.rounds")
        raw_checkpoints = _as_sequence(parsed.get("checkpoints", ()), "Session.checkpoints")
        raw_mediator = parsed.get("mediator")
        return cls(
            id=_as_str(parsed["id"], "Session.id", max_len=domain_ids.SESSION_ID_MAX_LENGTH),
            target=_as_text(parsed["target"], "Session.target", max_len=_MAX_PATH),
            requirements=_as_text(parsed["requirements"], "Session.requirements"),
            working_dir=_as_path_text(parsed["working_dir"], "Session.working_dir"),
            context=VerificationContext.from_dict(
                _expect_mapping(parsed["context"], "Session.context")
            ),
            status=_as_enum(SessionStatus, parsed["status"], "Session.status"),
            current_round=_as_int(parsed["current_round"], "Session.current_round", minimum=0),
            max_rounds=_as_int(parsed["max_rounds"], "Session.max_rounds", minimum=1),
            issues=[
                Issue.from_dict(_expect_mapping(item, f"Session.issues[{index}]"))
                for index, item in enumerate(raw_issues)
            ],
            rounds=[
                Round.from_dict(_expect_mapping(item, f"Session.rounds[{index}]"))
                for index, item in enumerate(raw_rounds)
            ],
            checkpoints=[
                Checkpoint.from_dict(_expect_mapping(item, f"Session.checkpoints[{index}]"))
                for index, item in enumerate(raw_checkpoints)
            ],
            mediator=(
                MediatorLedger()
                if raw_mediator is None
                else MediatorLedger.from_dict(_expect_mapping(raw_mediator, "Session.mediator"))
            ),
            verdict=_as_optional_enum(Verdict, parsed.get("verdict"), "Session.verdict"),
            created_at=_as_datetime(parsed["created_at"], "Session.created_at"),
            updated_at=_as_datetime(parsed["updated_at"], "Session.updated_at"),
            schema_version=_as_schema_version(
                parsed.get("schema_version", _SCHEMA_VERSION), "Session.schema_version"
            ),
        )


def _expect_mapping(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    return value


def _reject_duplicate_issue_ids(issues: object, path: str) -> None:
    seen: set[str] = set()
    for index, issue in enumerate(_as_sequence(issues, path)):
        if not isinstance(issue, Issue):
            _fail(f"{path}[{index}]", "expected Issue")
        if issue.id in seen:
            _fail(f"{path}[{index}].id", f"duplicate issue id {issue.id!r}")
        seen.add(issue.id)


__all__ = [
    "CATEGORY_TOTALS",
    "SESSION_STATUS_ORDER",
    "CanonicalModel",
    "Checkpoint",
    "FileContext",
    "FileCoverage",
    "InterventionRecord",
    "Issue",
    "IssueCategory",
    "IssueFilter",
    "IssueStatus",
    "Layer",
    "MediatorLedger",
    "NextRole",
    "Role",
    "Round",
    "Session",
    "SessionStatus",
    "Severity",
    "Verdict",
    "VerificationContext",
    "utc_now",
]
