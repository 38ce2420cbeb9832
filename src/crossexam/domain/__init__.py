"""
crossexam — domain layer

File: src/crossexam/domain/__init__.py
Last updated: 2026-10-17

Purpose
- Domain types shared across planes: Session, VerificationContext, Issue, Round, Checkpoint.

What should be included in this file
- Re-export of core domain entities for convenience.
- Keep domain layer free of IO side effects.

Functional requirements
- Domain objects must be serializable and versioned.
"""

from crossexam.domain.ids import (
    InvalidSessionIdError,
    generate_session_id,
    is_valid_session_id,
    validate_session_id,
)
from crossexam.domain.models import (
    CATEGORY_TOTALS,
    Checkpoint,
    FileContext,
    FileCoverage,
    InterventionRecord,
    Issue,
    IssueCategory,
    IssueFilter,
    IssueStatus,
    Layer,
    MediatorLedger,
    NextRole,
    Role,
    Round,
    Session,
    SessionStatus,
    Severity,
    Verdict,
    VerificationContext,
)

__all__ = [
    "CATEGORY_TOTALS",
    "Checkpoint",
    "FileContext",
    "FileCoverage",
    "InterventionRecord",
    "InvalidSessionIdError",
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
    "generate_session_id",
    "is_valid_session_id",
    "validate_session_id",
]
