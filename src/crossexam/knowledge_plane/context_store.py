"""
crossexam — layered verification context store.

File: src/crossexam/knowledge_plane/context_store.py
Last updated: 2026-10-17

Purpose
- Collect the base layer of files for a review target and grow it with files
  discovered in round output.

What should be included in this file
- Recursive base collection with directory/extension exclusions.
- New-reference detection against the current context and on-disk discovery.
- Markdown context summary fed back to the acting role.

Functional requirements
- A path is recorded once; its layer and discovery round never change.
- Unreadable, oversize, binary or non-UTF-8 files are skipped, never fatal.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from crossexam.constants import DEFAULT_CODE_EXTENSIONS, DEFAULT_MAX_FILE_BYTES, DEFAULT_SKIP_DIRS
from crossexam.domain.models import FileContext, Layer, VerificationContext
from crossexam.knowledge_plane.references import (
    AdapterParseError,
    DependencyAdapter,
    FileAnalysis,
    ReferenceExtractor,
    RegexReferenceExtractor,
    adapter_for_path,
    default_adapters,
)
from crossexam.utils.fs import is_within


@dataclass(frozen=True, slots=True)
class ContextLimits:
    """Collection policy for context files."""

    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    restrict_to_working_dir: bool = True
    skip_dirs: frozenset[str] = frozenset(DEFAULT_SKIP_DIRS)
    code_extensions: frozenset[str] = frozenset(DEFAULT_CODE_EXTENSIONS)

    @classmethod
    def from_config(cls, context_config: Mapping[str, Any]) -> ContextLimits:
        """Build limits from the ``[context]`` config section."""
        return cls(
            max_file_bytes=int(context_config.get("max_file_bytes", DEFAULT_MAX_FILE_BYTES)),
            restrict_to_working_dir=bool(context_config.get("restrict_to_working_dir", True)),
            skip_dirs=frozenset(context_config.get("skip_dirs", DEFAULT_SKIP_DIRS)),
            code_extensions=frozenset(
                ext.lower()
                for ext in context_config.get("code_extensions", DEFAULT_CODE_EXTENSIONS)
            ),
        )


def resolve_target(target: str, working_dir: str | Path) -> Path:
    """Resolve ``target`` against ``working_dir`` unless it is already absolute."""

    candidate = Path(target).expanduser()
    if not candidate.is_absolute():
        candidate = Path(working_dir).expanduser() / candidate
    return candidate.resolve()


def reference_in_context(reference: str, paths: Iterable[str]) -> bool:
    """Suffix match in either direction, so ``src/a.py`` matches ``/repo/src/a.py``."""

    return any(
        path == reference or path.endswith(reference) or reference.endswith(path)
        for path in paths
    )


class ContextStore:
    """Builds and expands :class:`VerificationContext` instances from disk."""

    def __init__(
        self,
        limits: ContextLimits | None = None,
        *,
        extractor: ReferenceExtractor | None = None,
        adapters: Sequence[DependencyAdapter] | None = None,
        logger: Any | None = None,
    ) -> None:
        self._limits = limits if limits is not None else ContextLimits()
        self._extractor = extractor if extractor is not None else RegexReferenceExtractor()
        self._adapters = tuple(adapters) if adapters is not None else default_adapters()
        self._log = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def limits(self) -> ContextLimits:
        return self._limits

    @property
    def extractor(self) -> ReferenceExtractor:
        return self._extractor

    def collect_base(
        self, target: str, working_dir: str | Path, *, requirements: str = ""
    ) -> VerificationContext:
        """Collect the base layer for ``target``; a missing target yields an empty context."""

        context = VerificationContext(target=target, requirements=requirements)
        root = resolve_target(target, working_dir)
        if root.is_file():
            self._add_file(context, root, layer=Layer.BASE, round_number=None)
        elif root.is_dir():
            for file_path in self._iter_code_files(root):
                self._add_file(context, file_path, layer=Layer.BASE, round_number=None)
        else:
            self._log.info("context_target_missing", target=target, resolved=str(root))

        self._log.debug("context_base_collected", target=target, files=len(context))
        return context

    def find_new_references(self, context: VerificationContext, text: str) -> tuple[str, ...]:
        """Return file references in ``text`` that are not already part of ``context``."""

        known = context.paths()
        return tuple(
            reference
            for reference in self._extractor.extract(text)
            if not reference_in_context(reference, known)
        )

    def expand(
        self,
        context: VerificationContext,
        references: Iterable[str],
        *,
        working_dir: str | Path,
        round_number: int,
    ) -> tuple[str, ...]:
        """Add readable ``references`` as discovered files; return the paths actually added."""

        base_dir = Path(working_dir).expanduser()
        added: list[str] = []
        for reference in references:
            candidate = resolve_target(reference, base_dir)
            if not candidate.is_file():
                self._log.debug("context_file_skipped", path=reference, reason="not_found")
                continue
            if self._limits.restrict_to_working_dir and not is_within(candidate, base_dir):
                self._log.info(
                    "context_file_skipped", path=reference, reason="outside_working_dir"
                )
                continue
            if self._add_file(
                context, candidate, layer=Layer.DISCOVERED, round_number=round_number
            ):
                added.append(str(candidate))
        return tuple(added)

    def discover(
        self,
        context: VerificationContext,
        text: str,
        *,
        working_dir: str | Path,
        round_number: int,
    ) -> tuple[str, ...]:
        references = self.find_new_references(context, text)
        return self.expand(
            context, references, working_dir=working_dir, round_number=round_number
        )

    def analyze(self, file_context: FileContext) -> FileAnalysis | None:
        """Run the matching dependency adapter over an already collected file."""

        path = Path(file_context.path)
        adapter = adapter_for_path(path, self._adapters)
        if adapter is None:
            return None
        try:
            return adapter.analyze(source=file_context.content, path=path)
        except AdapterParseError as exc:
            self._log.debug("context_parse_failed", path=file_context.path, error=str(exc))
            return None

    def _iter_code_files(self, root: Path) -> list[Path]:
        collected: list[Path] = []
        for current_dir, dir_names, file_names in os.walk(root, topdown=True, followlinks=False):
            dir_names[:] = sorted(name for name in dir_names if name not in self._limits.skip_dirs)
            current_path = Path(current_dir)
            for file_name in sorted(file_names):
                file_path = current_path / file_name
                if file_path.suffix.lower() in self._limits.code_extensions:
                    collected.append(file_path)
        return collected

    def _add_file(
        self,
        context: VerificationContext,
        path: Path,
        *,
        layer: Layer,
        round_number: int | None,
    ) -> bool:
        key = str(path)
        if key in context:
            return False

        source = self._read_source(path)
        if source is None:
            return False

        draft = FileContext(path=key, content=source, layer=layer, added_in_round=round_number)
        analysis = self.analyze(draft)
        dependencies = analysis.dependencies if analysis is not None else ()
        return context.add(
            FileContext(
                path=key,
                content=source,
                dependencies=dependencies,
                layer=layer,
                added_in_round=round_number,
            )
        )

    def _read_source(self, path: Path) -> str | None:
        try:
            size = path.stat().st_size
            if size > self._limits.max_file_bytes:
                self._log.info(
                    "context_file_skipped", path=str(path), reason="too_large", size_bytes=size
                )
                return None
            raw = path.read_bytes()
        except OSError as exc:
            self._log.warning(
                "context_file_skipped", path=str(path), reason="unreadable", error=str(exc)
            )
            return None

        if b"\x00" in raw:
            self._log.info("context_file_skipped", path=str(path), reason="binary")
            return None
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            self._log.info("context_file_skipped", path=str(path), reason="not_utf8")
            return None


def render_context_summary(context: VerificationContext) -> str:
    """Markdown summary of the context handed to the acting role."""

    base_files = [item.path for item in context.by_layer(Layer.BASE)]
    discovered = [
        f"{item.path} (discovered in round {item.added_in_round})"
        for item in context.by_layer(Layer.DISCOVERED)
    ]
    discovered_block = (
        "\n".join(f"- {entry}" for entry in discovered) if discovered else "(none yet)"
    )
    lines = [
        "## Verification Context",
        "",
        f"**Target**: {context.target}",
        f"**Requirements**: {context.requirements}",
        "",
        "### Base Files (Layer 0)",
        *(f"- {path}" for path in base_files),
        "",
        "### Discovered Files (Layer 1)",
        discovered_block,
    ]
    return "\n".join(lines).strip()


__all__ = [
    "ContextLimits",
    "ContextStore",
    "reference_in_context",
    "render_context_summary",
    "resolve_target",
]
