"""
crossexam — persistence layer

File: src/crossexam/persistence/__init__.py
Last updated: 2026-10-17

Purpose
- Durable session documents, one per session id.

Functional requirements
- Must support safe resume after a crash and concurrent readers.
"""

from crossexam.persistence.session_store import (
    MalformedSessionError,
    SessionConflictError,
    SessionNotFoundError,
    SessionStore,
    SessionStoreError,
)

__all__ = [
    "MalformedSessionError",
    "SessionConflictError",
    "SessionNotFoundError",
    "SessionStore",
    "SessionStoreError",
]
