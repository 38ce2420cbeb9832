"""Shared deterministic builders for crossexam unit tests."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Final

from crossexam.domain.models import (
    FileContext,
    Issue,
    IssueCategory,
    IssueStatus,
    Layer,
    Role,
    Round,
    Session,
    SessionStatus,
    Severity,
    VerificationContext,
)

FIXED_NOW: Final[datetime] = datetime(2026, 10, 17, 12, 0, 0, tzinfo=UTC)
SESSION_ID: Final[str] = "2026-10-17_src-auth_abc123"


def fixed_now(seed: int) -> datetime:
    return FIXED_NOW + timedelta(seconds=seed)


def make_issue(
    issue_id: str = "SEC-01",
    *,
    severity: Severity = Severity.HIGH,
    category: IssueCategory = IssueCategory.SECURITY,
    status: IssueStatus = IssueStatus.RAISED,
    raised_in_round: int = 1,
    raised_by: Role = Role.VERIFIER,
    location: str = "src/auth/login.py:12",
    summary: str | None = None,
    description: str = "",
) -> Issue:
    return Issue(
        id=issue_id,
        category=category,
        severity=severity,
        summary=summary if summary is not None else f"finding {issue_id}",
        raised_by=raised_by,
        raised_in_round=raised_in_round,
        location=location,
        description=description,
        status=status,
    )


def issue_report(
    issue_id: str,
    *,
    severity: str = "HIGH",
    category: str = "SECURITY",
    summary: str | None = None,
    location: str = "src/auth/login.py:12",
    description: str = "",
) -> dict[str, object]:
    """Issue payload in the shape callers submit with a round."""

    return {
        "id": issue_id,
        "category": category,
        "severity": severity,
        "summary": summary if summary is not None else f"finding {issue_id}",
        "location": location,
        "description": description,
    }


def make_round(
    number: int,
    *,
    role: Role | None = None,
    output: str = "",
    issues_raised: Sequence[str] = (),
    issues_resolved: Sequence[str] = (),
    issues_challenged: Sequence[str] = (),
) -> Round:
    """Odd rounds default to the verifier, even rounds to the critic."""

    return Round(
        number=number,
        role=role if role is not None else (Role.VERIFIER if number % 2 else Role.CRITIC),
        output=output,
        issues_raised=tuple(issues_raised),
        issues_resolved=tuple(issues_resolved),
        issues_challenged=tuple(issues_challenged),
        timestamp=fixed_now(number),
    )


def make_context(
    files: Mapping[str, str] | None = None,
    *,
    target: str = "src/auth",
    requirements: str = "security review",
    dependencies: Mapping[str, Sequence[str]] | None = None,
) -> VerificationContext:
    context = VerificationContext(target=target, requirements=requirements)
    deps = dependencies or {}
    for path, content in (files or {}).items():
        context.add(
            FileContext(
                path=path,
                content=content,
                dependencies=tuple(deps.get(path, ())),
                layer=Layer.BASE,
            )
        )
    return context


def make_session(
    *,
    session_id: str = SESSION_ID,
    rounds: Sequence[Round] = (),
    issues: Sequence[Issue] = (),
    context: VerificationContext | None = None,
    max_rounds: int = 10,
    status: SessionStatus = SessionStatus.INITIALIZED,
    working_dir: str = "/repo",
) -> Session:
    return Session(
        id=session_id,
        target="src/auth",
        requirements="security review",
        working_dir=working_dir,
        context=context if context is not None else make_context(),
        status=status,
        current_round=len(rounds),
        max_rounds=max_rounds,
        issues=list(issues),
        rounds=list(rounds),
        created_at=FIXED_NOW,
        updated_at=FIXED_NOW,
    )


def write_tree(root: Path, files: Mapping[str, str]) -> None:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


__all__ = [
    "FIXED_NOW",
    "SESSION_ID",
    "fixed_now",
    "issue_report",
    "make_context",
    "make_issue",
    "make_round",
    "make_session",
    "write_tree",
]
