"""
crossexam — issue ledger.

File: src/crossexam/verification_plane/issue_ledger.py
Last updated: 2026-10-17

Purpose
- Maintain the deduplicated set of findings for one session, keyed by the
  caller-supplied issue id.

Functional requirements
- Upsert is idempotent: re-raising an id replaces the entry in place.
- Resolve/challenge only touch ids that already exist.
- Snapshots are deep copies so checkpoints never alias live issues.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from crossexam.domain.models import Issue, IssueFilter, IssueStatus, Severity


@dataclass(frozen=True, slots=True)
class IssueSummary:
    """Counts over the ledger; every severity and status key is always present."""

    total: int
    unresolved: int
    critical_unresolved: int
    by_severity: dict[str, int]
    by_status: dict[str, int]

    def to_dict(self) -> dict[str, object]:
        return {
            "total": self.total,
            "unresolved": self.unresolved,
            "critical_unresolved": self.critical_unresolved,
            "by_severity": dict(self.by_severity),
            "by_status": dict(self.by_status),
        }


class IssueLedger:
    """View over a session's issue list; mutations write through to that list."""

    __slots__ = ("_issues",)

    def __init__(self, issues: list[Issue]) -> None:
        self._issues = issues

    def __len__(self) -> int:
        return len(self._issues)

    def __iter__(self) -> Iterator[Issue]:
        return iter(tuple(self._issues))

    def get(self, issue_id: str) -> Issue | None:
        for issue in self._issues:
            if issue.id == issue_id:
                return issue
        return None

    def upsert(self, issue: Issue) -> bool:
        """Insert ``issue`` or replace the entry with the same id; return ``True`` if new."""

        for index, existing in enumerate(self._issues):
            if existing.id == issue.id:
                self._issues[index] = issue
                return False
        self._issues.append(issue)
        return True

    def resolve(self, issue_id: str, *, round_number: int, resolution: str | None = None) -> bool:
        issue = self.get(issue_id)
        if issue is None:
            return False
        issue.status = IssueStatus.RESOLVED
        issue.resolved_in_round = round_number
        if resolution is not None:
            issue.resolution = resolution
        return True

    def challenge(self, issue_id: str, *, round_number: int) -> bool:
        issue = self.get(issue_id)
        if issue is None or issue.status is not IssueStatus.RAISED:
            return False
        issue.status = IssueStatus.CHALLENGED
        issue.challenged_in_round = round_number
        return True

    def mark_unresolved(self) -> int:
        """Close out every open issue as UNRESOLVED; return how many changed."""

        changed = 0
        for issue in self._issues:
            if issue.status in (IssueStatus.RAISED, IssueStatus.CHALLENGED):
                issue.status = IssueStatus.UNRESOLVED
                changed += 1
        return changed

    def filter(self, issue_filter: IssueFilter | str = IssueFilter.ALL) -> tuple[Issue, ...]:
        selected = IssueFilter(issue_filter)
        if selected is IssueFilter.UNRESOLVED:
            return tuple(
                issue for issue in self._issues if issue.status is not IssueStatus.RESOLVED
            )
        if selected is IssueFilter.CRITICAL:
            return tuple(issue for issue in self._issues if issue.severity is Severity.CRITICAL)
        return tuple(self._issues)

    def snapshot(self) -> tuple[Issue, ...]:
        return copy_issues(self._issues)

    def replace_all(self, issues: Iterable[Issue]) -> None:
        self._issues[:] = copy_issues(issues)

    def summary(self) -> IssueSummary:
        return summarize_issues(self._issues)


def copy_issues(issues: Iterable[Issue]) -> tuple[Issue, ...]:
    return tuple(dataclasses.replace(issue) for issue in issues)


def summarize_issues(issues: Iterable[Issue]) -> IssueSummary:
    by_severity = {severity.value: 0 for severity in Severity}
    by_status = {status.value: 0 for status in IssueStatus}
    total = unresolved = critical_unresolved = 0
    for issue in issues:
        total += 1
        by_severity[issue.severity.value] += 1
        by_status[issue.status.value] += 1
        if issue.status is not IssueStatus.RESOLVED:
            unresolved += 1
            if issue.severity is Severity.CRITICAL:
                critical_unresolved += 1
    return IssueSummary(
        total=total,
        unresolved=unresolved,
        critical_unresolved=critical_unresolved,
        by_severity=by_severity,
        by_status=by_status,
    )


__all__ = [
    "IssueLedger",
    "IssueSummary",
    "copy_issues",
    "summarize_issues",
]
