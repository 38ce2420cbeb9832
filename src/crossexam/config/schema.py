"""
crossexam — config schema and validation.

File: src/crossexam/config/schema.py
Last updated: 2026-10-17

Purpose
- Define the typed configuration contract, built-in defaults, and strict validation.

What should be included in this file
- TypedDict sections for every runtime knob of the review engine.
- Deterministic deep merge and profile overlays.
- Structured validation issues with dotted paths.

Functional requirements
- Reject unknown keys and out-of-range values with a full list of problems.
- Keep defaults identical to the engine's documented behavior.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, TypedDict

from crossexam.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_AUTO_CHECKPOINT_INTERVAL,
    DEFAULT_CODE_EXTENSIONS,
    DEFAULT_MAX_FILE_BYTES,
    DEFAULT_MAX_ROUNDS,
    DEFAULT_SESSIONS_DIR,
    DEFAULT_SKIP_DIRS,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("lenient", "strict")

PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("storage", "sessions_dir"),
    ("observability", "log_file"),
)

_EXTENSION_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\.[A-Za-z0-9]+$")
_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passphrase", "apikey", "credential"}
)
_NON_ALNUM: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]+")


class MetaConfig(TypedDict):
    schema_version: int


class SessionConfig(TypedDict):
    max_rounds: int
    auto_checkpoint_interval: int


class StorageConfig(TypedDict):
    sessions_dir: str


class ContextConfig(TypedDict):
    max_file_bytes: int
    restrict_to_working_dir: bool
    skip_dirs: list[str]
    code_extensions: list[str]


class ConvergenceConfig(TypedDict):
    min_rounds: int
    stable_rounds: int
    require_category_coverage: bool


class ArbiterConfig(TypedDict):
    context_expand_threshold: int
    loop_window: int
    loop_repeat_threshold: int
    soft_correct_file_limit: int


class MediatorConfig(TypedDict):
    critical_threshold_factor: float
    max_affected_files_display: int
    max_critical_files_display: int
    coverage_check_min_round: int
    low_coverage_check_min_round: int
    low_coverage_threshold: float
    drift_threshold: float
    min_files_for_drift: int
    side_effect_warning_threshold: int
    side_effect_depth: int
    file_importance_threshold: int
    ripple_max_depth: int


class RolesConfig(TypedDict):
    strict_mode: bool
    min_compliance_score: int
    require_alternation: bool


class ObservabilityConfig(TypedDict, total=False):
    log_level: str
    log_format: str
    log_file: str
    redact_secrets: bool


ProfileOverlay = dict[str, Any]


class CrossexamConfig(TypedDict):
    meta: MetaConfig
    session: SessionConfig
    storage: StorageConfig
    context: ContextConfig
    convergence: ConvergenceConfig
    arbiter: ArbiterConfig
    mediator: MediatorConfig
    roles: RolesConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[CrossexamConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "session": {
        "max_rounds": DEFAULT_MAX_ROUNDS,
        "auto_checkpoint_interval": DEFAULT_AUTO_CHECKPOINT_INTERVAL,
    },
    "storage": {
        "sessions_dir": str(DEFAULT_SESSIONS_DIR),
    },
    "context": {
        "max_file_bytes": DEFAULT_MAX_FILE_BYTES,
        "restrict_to_working_dir": True,
        "skip_dirs": list(DEFAULT_SKIP_DIRS),
        "code_extensions": list(DEFAULT_CODE_EXTENSIONS),
    },
    "convergence": {
        "min_rounds": 2,
        "stable_rounds": 2,
        "require_category_coverage": False,
    },
    "arbiter": {
        "context_expand_threshold": 3,
        "loop_window": 4,
        "loop_repeat_threshold": 3,
        "soft_correct_file_limit": 50,
    },
    "mediator": {
        "critical_threshold_factor": 0.5,
        "max_affected_files_display": 10,
        "max_critical_files_display": 5,
        "coverage_check_min_round": 3,
        "low_coverage_check_min_round": 5,
        "low_coverage_threshold": 0.5,
        "drift_threshold": 0.5,
        "min_files_for_drift": 3,
        "side_effect_warning_threshold": 5,
        "side_effect_depth": 2,
        "file_importance_threshold": 3,
        "ripple_max_depth": 0,
    },
    "roles": {
        "strict_mode": False,
        "min_compliance_score": 60,
        "require_alternation": True,
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
        "redact_secrets": True,
    },
    "profiles": {
        "strict": {
            "roles": {"strict_mode": True},
            "convergence": {"require_category_coverage": True},
        },
        "lenient": {
            "roles": {"require_alternation": False},
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


def default_config() -> CrossexamConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade crossexam.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the crossexam runtime"
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
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return a redacted copy safe for logs and ``crossexam config`` output."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config)
    if isinstance(redacted, dict):
        return redacted
    return {}


_SectionValidator = Callable[[Mapping[str, object], str, _IssueCollector, bool], dict[str, Any]]


def _validate_root(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    validators: dict[str, _SectionValidator] = {
        "meta": _validate_meta,
        "session": _validate_session,
        "storage": _validate_storage,
        "context": _validate_context,
        "convergence": _validate_convergence,
        "arbiter": _validate_arbiter,
        "mediator": _validate_mediator,
        "roles": _validate_roles,
        "observability": _validate_observability,
    }
    allowed = set(validators)
    if not partial:
        allowed.add("profiles")
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, set(validators), path, issues)

    out: dict[str, Any] = {}
    for key in sorted(validators):
        raw = payload.get(key)
        if raw is None:
            continue
        section_path = _join(path, key)
        section = _as_object(raw, section_path, issues)
        if section is None:
            continue
        out[key] = validators[key](section, section_path, issues, partial)

    if not partial and "profiles" in payload:
        out["profiles"] = _validate_profiles(payload["profiles"], "profiles", issues)
    return out


def _validate_profiles(
    value: object, path: str, issues: _IssueCollector
) -> dict[str, ProfileOverlay]:
    profiles = _as_object(value, path, issues)
    if profiles is None:
        return {}
    out: dict[str, ProfileOverlay] = {}
    for name in sorted(profiles):
        overlay = _as_object(profiles[name], _join(path, name), issues)
        if overlay is None:
            continue
        out[name] = _validate_root(overlay, _join(path, name), issues, partial=True)
    return out


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"schema_version"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

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


def _validate_session(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    return _validate_ints(
        payload,
        path,
        issues,
        partial,
        minimums={"max_rounds": 1, "auto_checkpoint_interval": 1},
    )


def _validate_storage(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"sessions_dir"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "sessions_dir" in payload:
        parsed = _as_path_text(payload["sessions_dir"], _join(path, "sessions_dir"), issues)
        if parsed is not None:
            out["sessions_dir"] = parsed
    return out


def _validate_context(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"max_file_bytes", "restrict_to_working_dir", "skip_dirs", "code_extensions"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "max_file_bytes" in payload:
        parsed_bytes = _as_int(
            payload["max_file_bytes"], _join(path, "max_file_bytes"), issues, minimum=1
        )
        if parsed_bytes is not None:
            out["max_file_bytes"] = parsed_bytes

    if "restrict_to_working_dir" in payload:
        parsed_restrict = _as_bool(
            payload["restrict_to_working_dir"], _join(path, "restrict_to_working_dir"), issues
        )
        if parsed_restrict is not None:
            out["restrict_to_working_dir"] = parsed_restrict

    if "skip_dirs" in payload:
        parsed_dirs = _as_str_list(payload["skip_dirs"], _join(path, "skip_dirs"), issues)
        if parsed_dirs is not None:
            out["skip_dirs"] = parsed_dirs

    if "code_extensions" in payload:
        extensions_path = _join(path, "code_extensions")
        parsed_exts = _as_str_list(payload["code_extensions"], extensions_path, issues)
        if parsed_exts is not None:
            invalid = [item for item in parsed_exts if not _EXTENSION_PATTERN.fullmatch(item)]
            if invalid:
                issues.add(extensions_path, f"extensions must look like '.py', got {invalid}")
            else:
                out["code_extensions"] = parsed_exts
    return out


def _validate_convergence(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"min_rounds", "stable_rounds", "require_category_coverage"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out = _validate_ints(
        {key: payload[key] for key in ("min_rounds", "stable_rounds") if key in payload},
        path,
        issues,
        True,
        minimums={"min_rounds": 1, "stable_rounds": 1},
    )
    if "require_category_coverage" in payload:
        parsed = _as_bool(
            payload["require_category_coverage"],
            _join(path, "require_category_coverage"),
            issues,
        )
        if parsed is not None:
            out["require_category_coverage"] = parsed
    return out


def _validate_arbiter(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    return _validate_ints(
        payload,
        path,
        issues,
        partial,
        minimums={
            "context_expand_threshold": 0,
            "loop_window": 1,
            "loop_repeat_threshold": 1,
            "soft_correct_file_limit": 0,
        },
    )


def _validate_mediator(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    ratios = ("critical_threshold_factor", "low_coverage_threshold", "drift_threshold")
    counts = {
        "max_affected_files_display": 1,
        "max_critical_files_display": 1,
        "coverage_check_min_round": 1,
        "low_coverage_check_min_round": 1,
        "min_files_for_drift": 0,
        "side_effect_warning_threshold": 0,
        "side_effect_depth": 1,
        "file_importance_threshold": 0,
        "ripple_max_depth": 0,
    }
    allowed = set(ratios) | set(counts)
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out = _validate_ints(
        {key: payload[key] for key in counts if key in payload},
        path,
        issues,
        True,
        minimums=counts,
    )
    for key in ratios:
        if key not in payload:
            continue
        parsed = _as_float(payload[key], _join(path, key), issues, minimum=0.0, maximum=1.0)
        if parsed is not None:
            out[key] = parsed
    return out


def _validate_roles(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"strict_mode", "min_compliance_score", "require_alternation"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("strict_mode", "require_alternation"):
        if key in payload:
            parsed_flag = _as_bool(payload[key], _join(path, key), issues)
            if parsed_flag is not None:
                out[key] = parsed_flag
    if "min_compliance_score" in payload:
        score_path = _join(path, "min_compliance_score")
        parsed_score = _as_int(payload["min_compliance_score"], score_path, issues, minimum=0)
        if parsed_score is not None:
            if parsed_score > 100:
                issues.add(score_path, "must be <= 100")
            else:
                out["min_compliance_score"] = parsed_score
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"log_level", "log_format", "log_file", "redact_secrets"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, {"log_level", "log_format", "redact_secrets"}, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        parsed_level = _as_enum(
            payload["log_level"],
            _join(path, "log_level"),
            issues,
            allowed_values=("DEBUG", "INFO", "WARNING", "ERROR"),
        )
        if parsed_level is not None:
            out["log_level"] = parsed_level

    if "log_format" in payload:
        parsed_format = _as_enum(
            payload["log_format"],
            _join(path, "log_format"),
            issues,
            allowed_values=("json", "text"),
        )
        if parsed_format is not None:
            out["log_format"] = parsed_format

    if "log_file" in payload:
        parsed_file = _as_path_text(payload["log_file"], _join(path, "log_file"), issues)
        if parsed_file is not None:
            out["log_file"] = parsed_file

    if "redact_secrets" in payload:
        parsed_redact = _as_bool(payload["redact_secrets"], _join(path, "redact_secrets"), issues)
        if parsed_redact is not None:
            out["redact_secrets"] = parsed_redact
    return out


def _validate_ints(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
    *,
    minimums: Mapping[str, int],
) -> dict[str, Any]:
    allowed = set(minimums)
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(minimums):
        if key not in payload:
            continue
        parsed = _as_int(payload[key], _join(path, key), issues, minimum=minimums[key])
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


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if not isinstance(value, (list, tuple)):
        issues.add(path, f"expected array, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]", issues)
        if parsed is None:
            return None
        if parsed not in out:
            out.append(parsed)
    return out


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
    maximum: float | None = None,
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
    if maximum is not None and parsed > maximum:
        issues.add(path, f"must be <= {maximum}")
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
            elif isinstance(existing, Mapping):
                nested = _deep_copy_mapping(existing)
                _merge_into(nested, value)
                target[key] = nested
            else:
                nested_new: dict[str, Any] = {}
                _merge_into(nested_new, value)
                target[key] = nested_new
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        out[key] = _deep_copy_value(value[key])
    return out


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        out: dict[str, Any] = {}
        for key, item in value.items():
            if isinstance(key, str):
                out[key] = _deep_copy_value(item)
        return out
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    if isinstance(value, tuple):
        return [_deep_copy_value(item) for item in value]
    return copy.deepcopy(value)


def _redact_value(value: object) -> object:
    if isinstance(value, Mapping):
        out: dict[str, object] = {}
        for key in sorted(value):
            if _looks_sensitive_key(str(key)):
                out[key] = "<redacted>"
            else:
                out[key] = _redact_value(value[key])
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_value(item) for item in value]
    return value


def _looks_sensitive_key(key: str) -> bool:
    normalized = _NON_ALNUM.sub("_", key.lower()).strip("_")
    if "api_key" in normalized:
        return True
    return any(token in _SENSITIVE_KEY_TOKENS for token in normalized.split("_") if token)


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "ArbiterConfig",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "ContextConfig",
    "ConvergenceConfig",
    "CrossexamConfig",
    "MediatorConfig",
    "ObservabilityConfig",
    "ProfileOverlay",
    "RolesConfig",
    "SessionConfig",
    "StorageConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
