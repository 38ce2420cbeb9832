"""Output rendering for the crossexam CLI.

File: src/crossexam/ui/render.py
Last updated: 2026-10-17

Purpose
- Provide a thin rendering layer for CLI output: plain text for people,
  JSON or YAML for scripts and agents.
- Respect the NO_COLOR environment variable and the --no-color CLI flag.

Functional requirements
- Machine formats are deterministic (sorted keys, stable separators).
- Plain-text rendering must always work without a terminal.
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Mapping, Sequence
from enum import StrEnum
from typing import IO

import yaml

_YELLOW = "\033[33m"
_RESET = "\033[0m"


class OutputFormat(StrEnum):
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


def _color_allowed(no_color_flag: bool) -> bool:
    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def dump_payload(payload: object, output_format: OutputFormat | str) -> str:
    """Serialize ``payload`` for the machine-readable formats."""

    selected = OutputFormat(output_format)
    if selected is OutputFormat.YAML:
        return yaml.safe_dump(payload, sort_keys=True, allow_unicode=True, default_flow_style=False)
    return json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False) + "\n"


class CLIRenderer:
    """Plain-text renderer writing to ``stream`` (stdout by default)."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        stream: IO[str] | None = None,
    ) -> None:
        self._color = _color_allowed(no_color)
        self._stream = stream

    def _write(self, line: str) -> None:
        print(line, file=self._stream if self._stream is not None else sys.stdout)

    def kv(self, key: str, value: object) -> None:
        self._write(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._write(line)

    def section(self, title: str) -> None:
        self._write(f"\n{title}")

    def warning(self, text: str) -> None:
        label = f"{_YELLOW}Warning{_RESET}" if self._color else "Warning"
        self._write(f"  {label}: {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._write(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table; nothing is printed for zero rows."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        self._write(f"  {_pad(list(headers))}")
        self._write(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            self._write(f"  {_pad(list(row))}")

    def mapping(self, payload: Mapping[str, object]) -> None:
        """Fallback rendering: scalars as ``key: value``, nested values as indented JSON."""

        for key in sorted(payload):
            value = payload[key]
            if isinstance(value, (Mapping, list)):
                self.section(f"{key}:")
                for line in json.dumps(value, indent=2, sort_keys=True).splitlines():
                    self._write(f"  {line}")
            else:
                self.kv(key, value)

    def next_steps(self, steps: Sequence[str]) -> None:
        if not steps:
            return
        self.section("Next steps:")
        for step in steps:
            self._write(f"  $ {step}")


def create_renderer(*, no_color: bool = False, stream: IO[str] | None = None) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, stream=stream)


__all__ = ["CLIRenderer", "OutputFormat", "create_renderer", "dump_payload"]
