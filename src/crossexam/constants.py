"""Stable constants shared across crossexam planes."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
SESSION_DOCUMENT_SCHEMA_VERSION: Final[int] = 1

# Default runtime paths.
DEFAULT_SESSIONS_DIR: Final[PurePosixPath] = PurePosixPath("~/.crossexam/sessions")
SESSION_DOCUMENT_NAME: Final[str] = "session.json"

# Session defaults.
DEFAULT_MAX_ROUNDS: Final[int] = 10
DEFAULT_AUTO_CHECKPOINT_INTERVAL: Final[int] = 2

# Context collection.
DEFAULT_MAX_FILE_BYTES: Final[int] = 1_000_000
DEFAULT_SKIP_DIRS: Final[tuple[str, ...]] = (
    "node_modules",
    ".git",
    "dist",
    "build",
    "__pycache__",
)
DEFAULT_CODE_EXTENSIONS: Final[tuple[str, ...]] = (
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    ".mjs",
    ".py",
    ".rb",
    ".go",
    ".rs",
    ".java",
    ".c",
    ".cpp",
    ".h",
    ".hpp",
    ".cs",
    ".php",
    ".swift",
    ".kt",
)
SCRIPT_EXTENSIONS: Final[tuple[str, ...]] = (".ts", ".tsx", ".js", ".jsx", ".mjs")

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_AUTO_CHECKPOINT_INTERVAL",
    "DEFAULT_CODE_EXTENSIONS",
    "DEFAULT_MAX_FILE_BYTES",
    "DEFAULT_MAX_ROUNDS",
    "DEFAULT_SESSIONS_DIR",
    "DEFAULT_SKIP_DIRS",
    "SCRIPT_EXTENSIONS",
    "SESSION_DOCUMENT_NAME",
    "SESSION_DOCUMENT_SCHEMA_VERSION",
]
