"""Utility exports for filesystem helpers."""

from crossexam.utils.fs import atomic_write, ensure_directory, is_within

__all__ = [
    "atomic_write",
    "ensure_directory",
    "is_within",
]
