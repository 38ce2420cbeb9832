"""
crossexam — filesystem helpers

File: src/crossexam/utils/fs.py
Last updated: 2026-10-17

Purpose
- Write session documents so a reader sees either the old or the new document.
- Keep context collection inside the session's working directory.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]


def atomic_write(path: PathLike, text: str, *, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``text`` through a synced sibling temp file."""

    target = Path(path)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding=encoding,
        dir=target.parent,
        prefix=f".{target.name}.",
        suffix=".tmp",
        delete=False,
    ) as handle:
        temp_path = Path(handle.name)
        try:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        except OSError:
            handle.close()
            temp_path.unlink(missing_ok=True)
            raise
    try:
        os.replace(temp_path, target)
    except OSError:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def ensure_directory(path: PathLike) -> Path:
    directory = Path(path).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    return directory.resolve(strict=True)


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Whether ``child`` resolves (symlinks included) to a path under directory ``parent``."""

    try:
        resolved_parent = Path(parent).resolve(strict=True)
        resolved_child = Path(child).resolve(strict=True)
    except OSError:
        return False
    return resolved_parent.is_dir() and resolved_child.is_relative_to(resolved_parent)


__all__ = [
    "atomic_write",
    "ensure_directory",
    "is_within",
]
