"""Convergence evaluation: a pure function of session state."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from crossexam.domain.models import (
    CATEGORY_TOTALS,
    IssueCategory,
    IssueStatus,
    Role,
    Session,
    Severity,
)
from crossexam.verification_plane.round_log import RoundLog

CONVERGED_REASON = "No critical issues, 2+ rounds without new issues"
IN_PROGRESS_REASON = "Verification in progress"


@dataclass(frozen=True, slots=True)
class ConvergencePolicy:
    min_rounds: int = 2
    stable_rounds: int = 2
    require_category_coverage: bool = False

    @classmethod
    def from_config(cls, convergence_config: Mapping[str, Any]) -> ConvergencePolicy:
        return cls(
            min_rounds=int(convergence_config.get("min_rounds", 2)),
            stable_rounds=int(convergence_config.get("stable_rounds", 2)),
            require_category_coverage=bool(
                convergence_config.get("require_category_coverage", False)
            ),
        )


@dataclass(frozen=True, slots=True)
class CategoryCoverage:
    checked: int
    total: int


@dataclass(frozen=True, slots=True)
class ConvergenceStatus:
    is_converged: bool
    reason: str
    category_coverage: dict[IssueCategory, CategoryCoverage]
    unresolved_issues: int
    critical_unresolved: int
    rounds_without_new_issues: int
    current_round: int

    def to_dict(self) -> dict[str, object]:
        return {
            "is_converged": self.is_converged,
            "reason": self.reason,
            "category_coverage": {
                category.value: {"checked": item.checked, "total": item.total}
                for category, item in self.category_coverage.items()
            },
            "unresolved_issues": self.unresolved_issues,
            "critical_unresolved": self.critical_unresolved,
            "rounds_without_new_issues": self.rounds_without_new_issues,
            "current_round": self.current_round,
        }


def evaluate_convergence(
    session: Session, policy: ConvergencePolicy | None = None
) -> ConvergenceStatus:
    """Converged when no CRITICAL issue is open and the last rounds raised nothing new.

    Round-budget exhaustion is not considered here; the orchestrator handles it.
    """

    active = policy if policy is not None else ConvergencePolicy()

    coverage = {
        category: CategoryCoverage(
            checked=sum(1 for issue in session.issues if issue.category is category),
            total=CATEGORY_TOTALS[category],
        )
        for category in IssueCategory
    }
    unresolved = [issue for issue in session.issues if issue.status is not IssueStatus.RESOLVED]
    critical_unresolved = sum(1 for issue in unresolved if issue.severity is Severity.CRITICAL)
    quiet_rounds = RoundLog(session.rounds).trailing_quiet_rounds()

    missing_categories: tuple[IssueCategory, ...] = ()
    if active.require_category_coverage:
        missing_categories = _unreviewed_categories(session, coverage)

    is_converged = (
        critical_unresolved == 0
        and quiet_rounds >= active.stable_rounds
        and session.current_round >= active.min_rounds
        and not missing_categories
    )

    if is_converged:
        reason = CONVERGED_REASON
    elif critical_unresolved > 0:
        reason = f"{critical_unresolved} critical issues unresolved"
    elif missing_categories and quiet_rounds >= active.stable_rounds:
        names = ", ".join(category.value for category in missing_categories)
        reason = f"Categories not yet reviewed: {names}"
    else:
        reason = IN_PROGRESS_REASON

    return ConvergenceStatus(
        is_converged=is_converged,
        reason=reason,
        category_coverage=coverage,
        unresolved_issues=len(unresolved),
        critical_unresolved=critical_unresolved,
        rounds_without_new_issues=quiet_rounds,
        current_round=session.current_round,
    )


def _unreviewed_categories(
    session: Session, coverage: Mapping[IssueCategory, CategoryCoverage]
) -> tuple[IssueCategory, ...]:
    # A category counts as reviewed once it has an issue or a verifier round names it.
    verifier_text = "\n".join(
        entry.output for entry in session.rounds if entry.role is Role.VERIFIER
    )
    missing: list[IssueCategory] = []
    for category, item in coverage.items():
        if item.checked > 0:
            continue
        if re.search(rf"\b{category.value}\b", verifier_text, flags=re.IGNORECASE):
            continue
        missing.append(category)
    return tuple(missing)


__all__ = [
    "CONVERGED_REASON",
    "IN_PROGRESS_REASON",
    "CategoryCoverage",
    "ConvergencePolicy",
    "ConvergenceStatus",
    "evaluate_convergence",
]
