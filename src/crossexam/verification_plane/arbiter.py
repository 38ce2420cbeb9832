"""Arbiter: first-match heuristics over the latest round."""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from crossexam.domain.models import Session
from crossexam.verification_plane.round_log import RoundLog


class ArbiterInterventionType(StrEnum):
    CONTEXT_EXPAND = "CONTEXT_EXPAND"
    LOOP_BREAK = "LOOP_BREAK"
    SOFT_CORRECT = "SOFT_CORRECT"


@dataclass(frozen=True, slots=True)
class ArbiterPolicy:
    context_expand_threshold: int = 3
    loop_window: int = 4
    loop_repeat_threshold: int = 3
    soft_correct_file_limit: int = 50

    @classmethod
    def from_config(cls, arbiter_config: Mapping[str, Any]) -> ArbiterPolicy:
        return cls(
            context_expand_threshold=int(arbiter_config.get("context_expand_threshold", 3)),
            loop_window=int(arbiter_config.get("loop_window", 4)),
            loop_repeat_threshold=int(arbiter_config.get("loop_repeat_threshold", 3)),
            soft_correct_file_limit=int(arbiter_config.get("soft_correct_file_limit", 50)),
        )


@dataclass(frozen=True, slots=True)
class ArbiterIntervention:
    """Advisory record returned with the round that triggered it; never persisted."""

    type: ArbiterInterventionType
    reason: str
    action: str
    affected_files: tuple[str, ...] = ()
    affected_issues: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.type.value,
            "reason": self.reason,
            "action": self.action,
            "affected_files": list(self.affected_files),
            "affected_issues": list(self.affected_issues),
        }


def check_for_intervention(
    session: Session,
    new_files: tuple[str, ...],
    policy: ArbiterPolicy | None = None,
) -> ArbiterIntervention | None:
    """Return at most one intervention; rules are checked in a fixed order."""

    active = policy if policy is not None else ArbiterPolicy()

    if len(new_files) > active.context_expand_threshold:
        return ArbiterIntervention(
            type=ArbiterInterventionType.CONTEXT_EXPAND,
            reason=f"{len(new_files)} new files discovered - significant scope expansion",
            action="Review if all files are necessary for verification",
            affected_files=new_files,
        )

    repeated = _repeated_issue_ids(session, active)
    if repeated:
        return ArbiterIntervention(
            type=ArbiterInterventionType.LOOP_BREAK,
            reason="Same issues being raised/challenged repeatedly",
            action="Force conclusion on disputed issues",
            affected_issues=repeated,
        )

    if len(session.context) > active.soft_correct_file_limit:
        return ArbiterIntervention(
            type=ArbiterInterventionType.SOFT_CORRECT,
            reason="Verification scope has grown too large",
            action="Focus on core files, defer peripheral issues",
        )

    return None


def _repeated_issue_ids(session: Session, policy: ArbiterPolicy) -> tuple[str, ...]:
    counts: Counter[str] = Counter()
    for entry in RoundLog(session.rounds).recent(policy.loop_window):
        counts.update(set(entry.issues_raised))
    return tuple(
        issue_id for issue_id, count in counts.items() if count >= policy.loop_repeat_threshold
    )


__all__ = [
    "ArbiterIntervention",
    "ArbiterInterventionType",
    "ArbiterPolicy",
    "check_for_intervention",
]
