"""
crossexam — control plane

File: src/crossexam/control_plane/__init__.py
Last updated: 2026-10-17

Purpose
- Session orchestration and the same-process session cache.
"""

from crossexam.control_plane.orchestrator import (
    CheckpointResult,
    ContextFileEntry,
    ContextView,
    RollbackResult,
    RoundResult,
    SessionOrchestrator,
    SessionSummary,
    SeverityTally,
    StartResult,
)
from crossexam.control_plane.session_cache import (
    DEFAULT_CACHE_CAPACITY,
    CachedSession,
    SessionCache,
)

__all__ = [
    "DEFAULT_CACHE_CAPACITY",
    "CachedSession",
    "CheckpointResult",
    "ContextFileEntry",
    "ContextView",
    "RollbackResult",
    "RoundResult",
    "SessionCache",
    "SessionOrchestrator",
    "SessionSummary",
    "SeverityTally",
    "StartResult",
]
