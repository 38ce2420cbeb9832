"""
crossexam — file reference extraction and dependency adapters.

File: src/crossexam/knowledge_plane/references.py
Last updated: 2026-10-17

Purpose
- Pull candidate file paths out of free-form round output.
- Extract outgoing dependency references from source files per language.

What should be included in this file
- ``ReferenceExtractor`` protocol (text -> candidate paths) and the default regex extractor.
- Line-level mention extraction used for coverage tracking.
- ``DependencyAdapter`` protocol with Python (``ast``) and JS/TS (regex) adapters.

Functional requirements
- Filter obvious false positives (URLs, lockfiles, VCS/env files, no extension).
- Keep every path pattern bounded so long tokens scan in linear time.
- Resolve relative imports against the importing file's directory.
"""

from __future__ import annotations

import ast
import os
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Protocol

from crossexam.constants import SCRIPT_EXTENSIONS

MIN_REFERENCE_LENGTH: Final[int] = 3
MAX_REFERENCE_LENGTH: Final[int] = 200
MAX_EXTENSION_LENGTH: Final[int] = 16
DEFAULT_MAX_IMPORTS_PER_FILE: Final[int] = 256

_PATH_CHARS: Final[str] = r"a-zA-Z0-9_\-./"

# A path starts at a token boundary and is capped in length.
_PATH: Final[str] = (
    rf"(?<![{_PATH_CHARS}])[{_PATH_CHARS}]{{1,{MAX_REFERENCE_LENGTH}}}"
    rf"\.[a-zA-Z]{{1,{MAX_EXTENSION_LENGTH}}}"
)

_DEFAULT_REFERENCE_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(rf"({_PATH}):(\d+)"),
    re.compile(rf"```\w*\s+({_PATH})"),
    re.compile(rf"import\s+[^\n]{{0,{MAX_REFERENCE_LENGTH}}}?\bfrom\s+['\"]([^'\"]+)['\"]"),
    re.compile(r"require\(['\"]([^'\"]+)['\"]\)"),
    re.compile(
        rf"(?:file|path|in)\s*[:=]?\s*[`'\"]?({_PATH})[`'\"]?",
        flags=re.IGNORECASE,
    ),
)

_REJECTED_MARKERS: Final[tuple[str, ...]] = (
    "http",
    "https",
    "mailto",
    "node_modules",
    "package.json",
    ".git",
    ".env",
)
_LOCKFILE_NAMES: Final[frozenset[str]] = frozenset(
    {"package-lock.json", "npm-shrinkwrap.json", "pnpm-lock.yaml", "yarn.lock", "go.sum"}
)

_MENTION_WITH_LINE: Final[re.Pattern[str]] = re.compile(
    rf"({_PATH}):(\d+)"
)
_MENTION_WITH_LINE_WORD: Final[re.Pattern[str]] = re.compile(
    rf"({_PATH})\s*\(\s*line\s*(\d+)\s*\)",
    flags=re.IGNORECASE,
)
_MENTION_BACKTICKED: Final[re.Pattern[str]] = re.compile(
    rf"`({_PATH})`"
)

_SCRIPT_IMPORT_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\bimport\s+[^'\"]*?\bfrom\s+['\"]([^'\"]+)['\"]"),
    re.compile(r"^\s*import\s+['\"]([^'\"]+)['\"]", flags=re.MULTILINE),
    re.compile(r"\brequire\(\s*['\"]([^'\"]+)['\"]\s*\)"),
    re.compile(r"\bimport\(\s*['\"]([^'\"]+)['\"]\s*\)"),
)
_SCRIPT_FUNCTION_DECL: Final[re.Pattern[str]] = re.compile(
    r"^(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*([A-Za-z_$][\w$]*)\s*\("
)
_SCRIPT_ARROW_DECL: Final[re.Pattern[str]] = re.compile(
    r"^(?:export\s+)?(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*=\s*(?:async\s*)?"
    r"(?:\([^)]*\)|[A-Za-z_$][\w$]*)\s*(?::\s*[^=]+)?=>"
)
_SCRIPT_CALL: Final[re.Pattern[str]] = re.compile(r"\b([A-Za-z_$][\w$]*)\s*\(")
_SCRIPT_CALL_KEYWORDS: Final[frozenset[str]] = frozenset(
    {"if", "for", "while", "switch", "catch", "function", "return", "typeof", "await"}
)
_SCRIPT_RESOLVE_SUFFIXES: Final[tuple[str, ...]] = (
    "",
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    ".mjs",
    "/index.ts",
    "/index.js",
)


class AdapterParseError(ValueError):
    """Raised when a dependency adapter cannot parse a source payload."""


class ReferenceExtractor(Protocol):
    """Turns free-form text into candidate file paths."""

    def extract(self, text: str) -> tuple[str, ...]: ...


def is_plausible_file_reference(candidate: str) -> bool:
    """Return whether ``candidate`` looks like a project file rather than noise."""

    if any(marker in candidate for marker in _REJECTED_MARKERS):
        return False
    if len(candidate) < MIN_REFERENCE_LENGTH or len(candidate) > MAX_REFERENCE_LENGTH:
        return False
    if _is_lockfile(candidate):
        return False
    return "." in candidate


def _is_lockfile(candidate: str) -> bool:
    name = candidate.rstrip("/").rsplit("/", 1)[-1].lower()
    return name in _LOCKFILE_NAMES or name.endswith(".lock")


@dataclass(frozen=True, slots=True)
class RegexReferenceExtractor:
    """Heuristic extractor over ``path:line``, fenced blocks, imports and ``file:`` mentions."""

    patterns: tuple[re.Pattern[str], ...] = _DEFAULT_REFERENCE_PATTERNS

    def extract(self, text: str) -> tuple[str, ...]:
        found: dict[str, None] = {}
        for pattern in self.patterns:
            for match in pattern.finditer(text):
                candidate = match.group(1)
                if candidate and is_plausible_file_reference(candidate):
                    found.setdefault(candidate, None)
        return tuple(found)


@dataclass(frozen=True, slots=True)
class MentionedFile:
    """A file named in round output with any line numbers cited for it."""

    path: str
    lines: tuple[int, ...] = ()


def extract_mentioned_files(text: str) -> tuple[MentionedFile, ...]:
    """Collect ``file:123``, ``file (line 123)`` and backticked file mentions."""

    lines_by_path: dict[str, list[int]] = {}
    for pattern in (_MENTION_WITH_LINE, _MENTION_WITH_LINE_WORD):
        for match in pattern.finditer(text):
            bucket = lines_by_path.setdefault(match.group(1), [])
            line = int(match.group(2))
            if line >= 1 and line not in bucket:
                bucket.append(line)
    for match in _MENTION_BACKTICKED.finditer(text):
        lines_by_path.setdefault(match.group(1), [])

    return tuple(
        MentionedFile(path=path, lines=tuple(sorted(lines)))
        for path, lines in lines_by_path.items()
    )


@dataclass(frozen=True, slots=True)
class FunctionInfo:
    """A function definition and the names it calls."""

    name: str
    calls: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FileAnalysis:
    """Adapter output for one file."""

    language: str
    dependencies: tuple[str, ...]
    functions: tuple[FunctionInfo, ...] = ()


class DependencyAdapter(Protocol):
    """Protocol for pluggable per-language dependency extraction."""

    @property
    def name(self) -> str: ...

    @property
    def extensions(self) -> frozenset[str]: ...

    def analyze(self, *, source: str, path: Path) -> FileAnalysis: ...


@dataclass(frozen=True, slots=True)
class PythonImportAdapter:
    """AST-backed Python adapter.

    Absolute imports are reported as dotted module names; relative imports are
    resolved to a file path when the target exists next to the importing file.
    """

    name: str = "python_ast"
    extensions: frozenset[str] = field(default_factory=lambda: frozenset({".py"}))
    max_imports: int = DEFAULT_MAX_IMPORTS_PER_FILE

    def analyze(self, *, source: str, path: Path) -> FileAnalysis:
        try:
            tree = ast.parse(source, filename=path.as_posix())
        except SyntaxError as exc:
            line = exc.lineno if exc.lineno is not None else 0
            col = exc.offset if exc.offset is not None else 0
            raise AdapterParseError(f"SyntaxError at line {line}, column {col}: {exc.msg}") from exc

        imports: dict[str, None] = {}
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                for alias in node.names:
                    if alias.name:
                        imports.setdefault(alias.name, None)
            elif isinstance(node, ast.ImportFrom):
                for reference in _python_from_import_references(node, path):
                    imports.setdefault(reference, None)

        functions: list[FunctionInfo] = []
        for node in ast.walk(tree):
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                functions.append(FunctionInfo(name=node.name, calls=_python_calls(node)))

        return FileAnalysis(
            language=self.name,
            dependencies=tuple(imports)[: self.max_imports],
            functions=tuple(functions),
        )


@dataclass(frozen=True, slots=True)
class ScriptImportAdapter:
    """Regex adapter for JavaScript/TypeScript ``import``/``require`` statements."""

    name: str = "script_regex"
    extensions: frozenset[str] = field(default_factory=lambda: frozenset(SCRIPT_EXTENSIONS))
    max_imports: int = DEFAULT_MAX_IMPORTS_PER_FILE

    def analyze(self, *, source: str, path: Path) -> FileAnalysis:
        imports: dict[str, None] = {}
        for pattern in _SCRIPT_IMPORT_PATTERNS:
            for match in pattern.finditer(source):
                specifier = match.group(1)
                if specifier.startswith("."):
                    specifier = _resolve_script_specifier(path.parent, specifier)
                imports.setdefault(specifier, None)

        return FileAnalysis(
            language=self.name,
            dependencies=tuple(imports)[: self.max_imports],
            functions=_script_functions(source),
        )


def default_adapters() -> tuple[DependencyAdapter, ...]:
    return (PythonImportAdapter(), ScriptImportAdapter())


def adapter_for_path(
    path: Path, adapters: Sequence[DependencyAdapter]
) -> DependencyAdapter | None:
    suffix = path.suffix.lower()
    for adapter in adapters:
        if suffix in adapter.extensions:
            return adapter
    return None


def _python_from_import_references(node: ast.ImportFrom, path: Path) -> Iterable[str]:
    if node.level <= 0:
        if node.module:
            yield node.module
            # `from pkg import mod` may name a submodule rather than an attribute.
            for alias in node.names:
                if alias.name != "*":
                    yield f"{node.module}.{alias.name}"
        return

    anchor = path.parent
    for _ in range(node.level - 1):
        anchor = anchor.parent

    if node.module:
        base = anchor.joinpath(*node.module.split("."))
        resolved = _existing_python_module(base)
        yield resolved if resolved is not None else "." * node.level + node.module
        return

    for alias in node.names:
        if alias.name == "*":
            continue
        resolved = _existing_python_module(anchor / alias.name)
        if resolved is not None:
            yield resolved
        else:
            init_file = anchor / "__init__.py"
            yield str(init_file) if init_file.is_file() else "." * node.level + alias.name


def _existing_python_module(base: Path) -> str | None:
    for candidate in (base.with_name(base.name + ".py"), base / "__init__.py"):
        if candidate.is_file():
            return str(candidate)
    return None


def _python_calls(node: ast.FunctionDef | ast.AsyncFunctionDef) -> tuple[str, ...]:
    calls: dict[str, None] = {}
    for child in ast.walk(node):
        if not isinstance(child, ast.Call):
            continue
        if isinstance(child.func, ast.Name):
            calls.setdefault(child.func.id, None)
        elif isinstance(child.func, ast.Attribute):
            calls.setdefault(child.func.attr, None)
    return tuple(calls)


def _resolve_script_specifier(directory: Path, specifier: str) -> str:
    base = os.path.normpath(os.path.join(directory, specifier))
    for suffix in _SCRIPT_RESOLVE_SUFFIXES:
        candidate = base + suffix
        if os.path.isfile(candidate):
            return candidate
    return base


def _script_functions(source: str) -> tuple[FunctionInfo, ...]:
    functions: list[FunctionInfo] = []
    current_name: str | None = None
    current_calls: dict[str, None] = {}
    depth = 0
    opened = False

    for raw_line in source.splitlines():
        line = raw_line.strip()
        if current_name is None:
            decl = _SCRIPT_FUNCTION_DECL.match(line)
            if decl is None:
                arrow = _SCRIPT_ARROW_DECL.match(line)
                if arrow is not None:
                    functions.append(FunctionInfo(name=arrow.group(1), calls=_line_calls(line)))
                continue
            current_name = decl.group(1)
            current_calls = {}
            depth = 0
            opened = False
            line = line[decl.end() :]

        for call in _line_calls(line):
            current_calls.setdefault(call, None)
        depth += line.count("{") - line.count("}")
        opened = opened or "{" in line
        if opened and depth <= 0:
            functions.append(FunctionInfo(name=current_name, calls=tuple(current_calls)))
            current_name = None

    if current_name is not None:
        functions.append(FunctionInfo(name=current_name, calls=tuple(current_calls)))
    return tuple(functions)


def _line_calls(line: str) -> tuple[str, ...]:
    calls: dict[str, None] = {}
    for match in _SCRIPT_CALL.finditer(line):
        name = match.group(1)
        if name not in _SCRIPT_CALL_KEYWORDS:
            calls.setdefault(name, None)
    return tuple(calls)


__all__ = [
    "MAX_EXTENSION_LENGTH",
    "MAX_REFERENCE_LENGTH",
    "MIN_REFERENCE_LENGTH",
    "AdapterParseError",
    "DependencyAdapter",
    "FileAnalysis",
    "FunctionInfo",
    "MentionedFile",
    "PythonImportAdapter",
    "ReferenceExtractor",
    "RegexReferenceExtractor",
    "ScriptImportAdapter",
    "adapter_for_path",
    "default_adapters",
    "extract_mentioned_files",
    "is_plausible_file_reference",
]
