"""
crossexam — role compliance checks.

File: src/crossexam/verification_plane/roles.py
Last updated: 2026-10-17

Purpose
- Score each round's output against the behavior expected of its role.

What should be included in this file
- Alternation check (verifier first, then strictly alternating).
- Per-role criteria (evidence, severity labels, verdicts, reasoning, role drift).
- Required-element checks and the 0..100 compliance score.

Functional requirements
- Results are advisory unless ``roles.strict_mode`` is enabled by the caller.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Final

from crossexam.domain.models import IssueStatus, Role, Session, Severity
from crossexam.verification_plane.round_log import RoundLog

SCORE_BASE: Final[int] = 100
ERROR_PENALTY: Final[int] = 20
WARNING_PENALTY: Final[int] = 5

_ISSUE_ID: Final[re.Pattern[str]] = re.compile(r"(SEC|COR|REL|MNT|PRF)-\d+")
_FILE_LINE: Final[re.Pattern[str]] = re.compile(r"\w+\.\w+:\d+")
_VERDICT: Final[re.Pattern[str]] = re.compile(r"\b(VALID|INVALID|PARTIAL)\b", flags=re.IGNORECASE)
_INVALID: Final[re.Pattern[str]] = re.compile(r"INVALID", flags=re.IGNORECASE)
_REASONING: Final[re.Pattern[str]] = re.compile(r"reasoning|because", flags=re.IGNORECASE)
_CHALLENGE_REASONING: Final[re.Pattern[str]] = re.compile(
    r"reasoning|because|since|actually|in fact", flags=re.IGNORECASE
)
_EVIDENCE: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"```[\s\S]*?```"),
    _FILE_LINE,
    re.compile(r"evidence", flags=re.IGNORECASE),
)
_CRITIC_BEHAVIOR: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"this issue is (invalid|a false positive)", flags=re.IGNORECASE),
    re.compile(r"\bINVALID\b"),
    re.compile(r"\bdisagree\b", flags=re.IGNORECASE),
)
_NEW_ISSUE_BEHAVIOR: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"new\s*issue", flags=re.IGNORECASE),
    re.compile(r"additionally\s+found", flags=re.IGNORECASE),
    re.compile(r"also\s+found", flags=re.IGNORECASE),
)
_VERIFIER_BEHAVIOR: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"newly\s+discovered", flags=re.IGNORECASE),
    re.compile(r"additional\s+issues?", flags=re.IGNORECASE),
    re.compile(r"following\s+vulnerabilit", flags=re.IGNORECASE),
    re.compile(r"review\s+found", flags=re.IGNORECASE),
)
_CATEGORY_NAMES: Final[tuple[str, ...]] = (
    "SECURITY",
    "CORRECTNESS",
    "RELIABILITY",
    "MAINTAINABILITY",
    "PERFORMANCE",
)
_BLIND_VERDICT_RATIO: Final[float] = 0.9


class ComplianceSeverity(StrEnum):
    ERROR = "ERROR"
    WARNING = "WARNING"


@dataclass(frozen=True, slots=True)
class RolePolicy:
    strict_mode: bool = False
    min_compliance_score: int = 60
    require_alternation: bool = True

    @classmethod
    def from_config(cls, roles_config: Mapping[str, Any]) -> RolePolicy:
        return cls(
            strict_mode=bool(roles_config.get("strict_mode", False)),
            min_compliance_score=int(roles_config.get("min_compliance_score", 60)),
            require_alternation=bool(roles_config.get("require_alternation", True)),
        )


@dataclass(frozen=True, slots=True)
class RoleViolation:
    criterion_id: str
    severity: ComplianceSeverity
    message: str
    fix: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "criterion_id": self.criterion_id,
            "severity": self.severity.value,
            "message": self.message,
            "fix": self.fix,
        }


@dataclass(frozen=True, slots=True)
class RoleWarning:
    type: str
    message: str
    suggestion: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "message": self.message, "suggestion": self.suggestion}


@dataclass(frozen=True, slots=True)
class RoleComplianceResult:
    role: Role
    round_number: int
    expected_role: Role
    is_compliant: bool
    score: int
    violations: tuple[RoleViolation, ...] = ()
    warnings: tuple[RoleWarning, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "role": self.role.value,
            "round_number": self.round_number,
            "expected_role": self.expected_role.value,
            "is_compliant": self.is_compliant,
            "score": self.score,
            "violations": [item.to_dict() for item in self.violations],
            "warnings": [item.to_dict() for item in self.warnings],
        }


_Check = Callable[[str, Session], "str | None"]


@dataclass(frozen=True, slots=True)
class _Criterion:
    id: str
    severity: ComplianceSeverity
    check: _Check


def expected_role(session: Session) -> Role:
    """The verifier opens a session; afterwards roles alternate."""

    last = RoundLog(session.rounds).last()
    return Role.VERIFIER if last is None else last.role.opposite


def check_role_compliance(
    session: Session,
    role: Role,
    output: str,
    policy: RolePolicy | None = None,
) -> RoleComplianceResult:
    """Evaluate ``output`` as the next round of ``session`` played by ``role``."""

    active = policy if policy is not None else RolePolicy()
    violations: list[RoleViolation] = []
    warnings: list[RoleWarning] = []

    expected = expected_role(session)
    if active.require_alternation and role is not expected:
        violations.append(
            RoleViolation(
                criterion_id="ALT001",
                severity=ComplianceSeverity.ERROR,
                message=(
                    f"Role alternation violation: Expected {expected.value}, "
                    f"but {role.value} was submitted"
                ),
                fix=f"Expected role: {expected.value}",
            )
        )

    criteria = _VERIFIER_CRITERIA if role is Role.VERIFIER else _CRITIC_CRITERIA
    for criterion in criteria:
        message = criterion.check(output, session)
        if message is None:
            continue
        if criterion.severity is ComplianceSeverity.ERROR:
            violations.append(
                RoleViolation(
                    criterion_id=criterion.id,
                    severity=ComplianceSeverity.ERROR,
                    message=message,
                )
            )
        else:
            warnings.append(RoleWarning(type=criterion.id, message=message))

    _check_required_elements(role, output, violations, warnings)

    errors = sum(1 for item in violations if item.severity is ComplianceSeverity.ERROR)
    soft = len(violations) - errors + len(warnings)
    score = max(0, min(SCORE_BASE, SCORE_BASE - errors * ERROR_PENALTY - soft * WARNING_PENALTY))

    return RoleComplianceResult(
        role=role,
        round_number=session.current_round + 1,
        expected_role=expected,
        is_compliant=errors == 0 and score >= active.min_compliance_score,
        score=score,
        violations=tuple(violations),
        warnings=tuple(warnings),
    )


def _check_required_elements(
    role: Role,
    output: str,
    violations: list[RoleViolation],
    warnings: list[RoleWarning],
) -> None:
    has_issue_ids = _ISSUE_ID.search(output) is not None
    if role is Role.VERIFIER:
        if not has_issue_ids and "no issues" not in output.lower():
            warnings.append(
                RoleWarning(
                    type="MISSING_ISSUE_FORMAT",
                    message="Standard issue ID format (SEC-01, etc.) not found",
                    suggestion="If there are issues, specify them in SEC-XX, COR-XX format",
                )
            )
        if has_issue_ids and _FILE_LINE.search(output) is None:
            violations.append(
                RoleViolation(
                    criterion_id="REQ001",
                    severity=ComplianceSeverity.WARNING,
                    message="Issue location (file:line) not specified",
                    fix="Specify location in file:line format for each issue",
                )
            )
        return

    if _VERDICT.search(output) is None:
        warnings.append(
            RoleWarning(
                type="MISSING_VERDICT",
                message="Issue verdict (VALID/INVALID/PARTIAL) not found",
                suggestion="Specify VALID, INVALID, or PARTIAL for each issue",
            )
        )
    if _INVALID.search(output) is not None and _REASONING.search(output) is None:
        violations.append(
            RoleViolation(
                criterion_id="REQ002",
                severity=ComplianceSeverity.WARNING,
                message="INVALID verdict lacks reasoning",
                fix="Provide specific reasoning when refuting",
            )
        )


def _verifier_has_evidence(output: str, session: Session) -> str | None:
    del session
    if _ISSUE_ID.search(output) and not any(pattern.search(output) for pattern in _EVIDENCE):
        return "Issues raised without code evidence"
    return None


def _verifier_classifies_severity(output: str, session: Session) -> str | None:
    del session
    if _ISSUE_ID.search(output) and not any(level.value in output for level in Severity):
        return "Issue severity not specified"
    return None


def _verifier_does_not_repeat_challenged(output: str, session: Session) -> str | None:
    challenged = {
        issue.id for issue in session.issues if issue.status is IssueStatus.CHALLENGED
    }
    repeated = sorted({match.group(0) for match in _ISSUE_ID.finditer(output)} & challenged)
    if repeated:
        return f"Re-raised issues already challenged: {', '.join(repeated)}"
    return None


def _verifier_does_not_act_as_critic(output: str, session: Session) -> str | None:
    del session
    if any(pattern.search(output) for pattern in _CRITIC_BEHAVIOR):
        return "Verifier performed the critic role (refutation)"
    return None


def _verifier_names_category(output: str, session: Session) -> str | None:
    del session
    if not any(name in output for name in _CATEGORY_NAMES):
        return "No review category stated"
    return None


def _critic_reviews_all_issues(output: str, session: Session) -> str | None:
    last_verifier = RoundLog(session.rounds).last(Role.VERIFIER)
    if last_verifier is None:
        return None
    missing = [issue_id for issue_id in last_verifier.issues_raised if issue_id not in output]
    if missing:
        return f"{len(missing)} issues not reviewed: {', '.join(missing)}"
    return None


def _critic_raises_no_new_issues(output: str, session: Session) -> str | None:
    existing = {issue.id for issue in session.issues}
    new_ids = sorted({match.group(0) for match in _ISSUE_ID.finditer(output)} - existing)
    if new_ids or any(pattern.search(output) for pattern in _NEW_ISSUE_BEHAVIOR):
        suffix = f": {', '.join(new_ids)}" if new_ids else ""
        return f"Critic raised new issues{suffix}"
    return None


def _critic_challenge_has_reasoning(output: str, session: Session) -> str | None:
    del session
    if _INVALID.search(output) and _CHALLENGE_REASONING.search(output) is None:
        return "INVALID verdict given without grounds"
    return None


def _critic_not_blind(output: str, session: Session) -> str | None:
    del session
    verdicts = re.findall(r"\b(VALID|INVALID|PARTIAL)\b", output)
    if len(verdicts) < 2:
        return None
    total = len(verdicts)
    accepted = verdicts.count("VALID")
    rejected = verdicts.count("INVALID")
    if accepted / total > _BLIND_VERDICT_RATIO:
        return f"Accepted nearly every issue without scrutiny (VALID: {accepted}/{total})"
    if rejected / total > _BLIND_VERDICT_RATIO:
        return f"Rejected nearly every issue (INVALID: {rejected}/{total})"
    return None


def _critic_does_not_act_as_verifier(output: str, session: Session) -> str | None:
    del session
    if sum(1 for pattern in _VERIFIER_BEHAVIOR if pattern.search(output)) > 1:
        return "Critic performed the verifier role (new findings)"
    return None


_VERIFIER_CRITERIA: Final[tuple[_Criterion, ...]] = (
    _Criterion("V001", ComplianceSeverity.ERROR, _verifier_has_evidence),
    _Criterion("V002", ComplianceSeverity.WARNING, _verifier_classifies_severity),
    _Criterion("V003", ComplianceSeverity.ERROR, _verifier_does_not_repeat_challenged),
    _Criterion("V004", ComplianceSeverity.WARNING, _verifier_does_not_act_as_critic),
    _Criterion("V005", ComplianceSeverity.WARNING, _verifier_names_category),
)

_CRITIC_CRITERIA: Final[tuple[_Criterion, ...]] = (
    _Criterion("C001", ComplianceSeverity.ERROR, _critic_reviews_all_issues),
    _Criterion("C002", ComplianceSeverity.ERROR, _critic_raises_no_new_issues),
    _Criterion("C003", ComplianceSeverity.WARNING, _critic_challenge_has_reasoning),
    _Criterion("C004", ComplianceSeverity.WARNING, _critic_not_blind),
    _Criterion("C005", ComplianceSeverity.WARNING, _critic_does_not_act_as_verifier),
)


__all__ = [
    "ComplianceSeverity",
    "RoleComplianceResult",
    "RolePolicy",
    "RoleViolation",
    "RoleWarning",
    "check_role_compliance",
    "expected_role",
]
