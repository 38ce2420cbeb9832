"""
crossexam — graph-aware mediator.

File: src/crossexam/verification_plane/mediator.py
Last updated: 2026-10-17

Purpose
- Track which context files the roles have actually examined and raise
  advisory interventions derived from the dependency graph.

What should be included in this file
- Coverage bookkeeping persisted in ``Session.mediator``.
- Intervention checks: missed dependencies, coverage gaps, side effects,
  scope drift, circular dependencies, ignored critical files, critic corrections.
- Ripple-effect entry point and the summary projection.

Functional requirements
- Interventions are advisory; they never change issues or rounds.
- The graph is supplied per call and never stored.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import PurePosixPath
from typing import Any, Final

import structlog

from crossexam.domain.models import (
    FileCoverage,
    InterventionRecord,
    Issue,
    Role,
    Session,
    Severity,
)
from crossexam.knowledge_plane.dependency_graph import DependencyGraph, NodeKind, RippleEffect
from crossexam.knowledge_plane.references import MentionedFile, extract_mentioned_files
from crossexam.verification_plane.round_log import RoundLog

CORRECTION_KEYWORDS: Final[tuple[str, ...]] = (
    "incorrect",
    "wrong",
    "misunderstand",
    "false positive",
    "exaggerated",
    "actually",
    "in fact",
)

_LOCATION_FILE: Final[re.Pattern[str]] = re.compile(r"^([^:]+)")
_SIDE_EFFECT_PREVIEW: Final[int] = 3
_CYCLE_PREVIEW: Final[int] = 3


class InterventionType(StrEnum):
    MISSED_DEPENDENCY = "MISSED_DEPENDENCY"
    INCOMPLETE_COVERAGE = "INCOMPLETE_COVERAGE"
    SIDE_EFFECT_WARNING = "SIDE_EFFECT_WARNING"
    SCOPE_DRIFT = "SCOPE_DRIFT"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    CRITICAL_PATH_IGNORED = "CRITICAL_PATH_IGNORED"
    CONTEXT_CORRECTION = "CONTEXT_CORRECTION"


class InterventionSeverity(StrEnum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class MissedPriority(StrEnum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


@dataclass(frozen=True, slots=True)
class MediatorPolicy:
    critical_threshold_factor: float = 0.5
    max_affected_files_display: int = 10
    max_critical_files_display: int = 5
    coverage_check_min_round: int = 3
    low_coverage_check_min_round: int = 5
    low_coverage_threshold: float = 0.5
    drift_threshold: float = 0.5
    min_files_for_drift: int = 3
    side_effect_warning_threshold: int = 5
    side_effect_depth: int = 2
    file_importance_threshold: int = 3
    ripple_max_depth: int = 0

    @classmethod
    def from_config(cls, mediator_config: Mapping[str, Any]) -> MediatorPolicy:
        defaults = cls()
        values: dict[str, Any] = {}
        for name in cls.__dataclass_fields__:
            default = getattr(defaults, name)
            raw = mediator_config.get(name, default)
            values[name] = float(raw) if isinstance(default, float) else int(raw)
        return cls(**values)


@dataclass(frozen=True, slots=True)
class MissedDependency:
    file: str
    reason: str
    priority: MissedPriority

    def to_dict(self) -> dict[str, str]:
        return {"file": self.file, "reason": self.reason, "priority": self.priority.value}


@dataclass(frozen=True, slots=True)
class MediatorIntervention:
    """Graph-derived advisory, shaped like an arbiter intervention."""

    type: InterventionType
    severity: InterventionSeverity
    reason: str
    action: str
    affected_files: tuple[str, ...] = ()
    related_issues: tuple[str, ...] = ()
    suggested_checks: tuple[str, ...] = ()
    missed_dependencies: tuple[MissedDependency, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "reason": self.reason,
            "action": self.action,
            "affected_files": list(self.affected_files),
            "related_issues": list(self.related_issues),
            "suggested_checks": list(self.suggested_checks),
            "missed_dependencies": [item.to_dict() for item in self.missed_dependencies],
        }


class Mediator:
    """Stateless service; all state lives in ``Session.mediator``."""

    def __init__(self, policy: MediatorPolicy | None = None, *, logger: Any | None = None) -> None:
        self._policy = policy if policy is not None else MediatorPolicy()
        self._log = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def policy(self) -> MediatorPolicy:
        return self._policy

    def initialize(self, session: Session, graph: DependencyGraph) -> None:
        """Seed coverage with the files whose importance makes them must-verify."""

        ledger = session.mediator
        scores = graph.importance_scores()
        ledger.total_files = len(scores)
        top = max(scores.values(), default=0)
        threshold = top * self._policy.critical_threshold_factor
        ledger.unverified_critical = [
            path for path, score in scores.items() if score > 0 and score >= threshold
        ]
        self._log.debug(
            "mediator_initialized",
            session_id=session.id,
            files=ledger.total_files,
            critical=len(ledger.unverified_critical),
        )

    def analyze_round(
        self,
        session: Session,
        graph: DependencyGraph,
        *,
        output: str,
        role: Role,
        new_issues: Sequence[Issue],
    ) -> tuple[MediatorIntervention, ...]:
        """Update coverage from ``output`` and return this round's interventions."""

        session.mediator.total_files = len(graph.file_nodes)
        mentions = extract_mentioned_files(output)
        mentioned_nodes = self._update_coverage(session, graph, mentions)
        scores = graph.importance_scores()

        candidates = [
            self._missed_dependencies(session, graph, mentioned_nodes, new_issues, scores),
            self._incomplete_coverage(session, graph),
            self._side_effects(graph, new_issues),
            self._scope_drift(session, mentions),
            self._circular_dependencies(graph) if session.current_round == 1 else None,
            self._critical_path_ignored(session, graph, mentioned_nodes, scores),
            self._context_correction(session, output) if role is Role.CRITIC else None,
        ]
        interventions = tuple(item for item in candidates if item is not None)

        for item in interventions:
            session.mediator.interventions.append(
                InterventionRecord(
                    type=item.type.value,
                    severity=item.severity.value,
                    round_number=session.current_round,
                    reason=item.reason,
                )
            )
        if interventions:
            self._log.info(
                "mediator_interventions",
                session_id=session.id,
                round_number=session.current_round,
                types=[item.type.value for item in interventions],
            )
        return interventions

    def ripple_effect(
        self,
        graph: DependencyGraph,
        changed_file: str,
        changed_function: str | None = None,
    ) -> RippleEffect | None:
        node = changed_file if changed_file in graph else graph.find_node(changed_file)
        if node is None:
            return None
        max_depth = self._policy.ripple_max_depth or None
        return graph.ripple_effect(node, changed_function, max_depth=max_depth)

    def summary(self, session: Session, graph: DependencyGraph) -> dict[str, object]:
        ledger = session.mediator
        total = len(graph.file_nodes)
        verified = len(ledger.verified_files)
        by_type = Counter(record.type for record in ledger.interventions)
        last = ledger.interventions[-1].to_dict() if ledger.interventions else None
        return {
            "graph_stats": {
                **graph.stats().to_dict(),
                "cycles": [list(cycle) for cycle in graph.detect_cycles()],
            },
            "coverage": {
                "total_files": total,
                "verified_files": verified,
                "coverage_rate": f"{_rate(verified, total) * 100:.1f}%",
                "unverified_critical": len(ledger.unverified_critical),
                "unverified_critical_files": list(ledger.unverified_critical),
            },
            "interventions": {
                "total": len(ledger.interventions),
                "by_type": dict(by_type),
                "last": last,
            },
        }

    def _update_coverage(
        self,
        session: Session,
        graph: DependencyGraph,
        mentions: Sequence[MentionedFile],
    ) -> dict[str, MentionedFile]:
        ledger = session.mediator
        matched: dict[str, MentionedFile] = {}
        for mention in mentions:
            node = graph.find_node(mention.path)
            if node is None:
                continue
            matched[node] = mention
            existing = ledger.verified_files.get(node)
            lines = existing.lines_mentioned if existing is not None else ()
            merged = tuple(sorted(set(lines) | set(mention.lines)))
            ledger.verified_files[node] = FileCoverage(
                path=node, lines_mentioned=merged, last_verified_round=session.current_round
            )
            if node in ledger.unverified_critical:
                ledger.unverified_critical.remove(node)
        return matched

    def _missed_dependencies(
        self,
        session: Session,
        graph: DependencyGraph,
        mentioned: Mapping[str, MentionedFile],
        new_issues: Sequence[Issue],
        scores: Mapping[str, int],
    ) -> MediatorIntervention | None:
        missed: dict[str, MissedDependency] = {}
        for path, mention in mentioned.items():
            for dependency in graph.dependencies_of(path):
                if graph.node(dependency).kind is not NodeKind.FILE:
                    continue
                if dependency in session.mediator.verified_files or dependency in mentioned:
                    continue
                if dependency in missed:
                    continue
                module = PurePosixPath(dependency).stem
                related = [
                    issue
                    for issue in new_issues
                    if mention.path in issue.location and module in issue.description
                ]
                if related:
                    missed[dependency] = MissedDependency(
                        file=dependency,
                        reason=f"Used in {mention.path} and related issues found",
                        priority=MissedPriority.HIGH,
                    )
                elif scores.get(dependency, 0) > self._policy.file_importance_threshold:
                    missed[dependency] = MissedDependency(
                        file=dependency,
                        reason=f"Dependency of {mention.path} and widely used elsewhere",
                        priority=MissedPriority.MEDIUM,
                    )

        if not missed:
            return None
        entries = tuple(missed.values())
        high = [item for item in entries if item.priority is MissedPriority.HIGH]
        return MediatorIntervention(
            type=InterventionType.MISSED_DEPENDENCY,
            severity=InterventionSeverity.WARNING if high else InterventionSeverity.INFO,
            reason=f"{len(entries)} related files not verified",
            action="Include the following files in verification",
            affected_files=tuple(item.file for item in entries),
            suggested_checks=tuple(f"{item.file}: {item.reason}" for item in high),
            missed_dependencies=entries,
        )

    def _incomplete_coverage(
        self, session: Session, graph: DependencyGraph
    ) -> MediatorIntervention | None:
        policy = self._policy
        if session.current_round < policy.coverage_check_min_round:
            return None

        ledger = session.mediator
        total = len(graph.file_nodes)
        if total == 0:
            return None
        rate = _rate(len(ledger.verified_files), total)
        still_critical = [
            path for path in ledger.unverified_critical if path not in ledger.verified_files
        ]
        if still_critical:
            shown = tuple(still_critical[: policy.max_critical_files_display])
            return MediatorIntervention(
                type=InterventionType.INCOMPLETE_COVERAGE,
                severity=InterventionSeverity.WARNING,
                reason=(
                    f"{len(still_critical)} critical files not yet verified "
                    f"(total coverage: {rate * 100:.1f}%)"
                ),
                action="Verify the following critical files",
                affected_files=shown,
                suggested_checks=tuple(
                    f"{path} (referenced by {len(_dependents(graph, path))} files)"
                    for path in shown
                ),
            )

        if (
            rate < policy.low_coverage_threshold
            and session.current_round >= policy.low_coverage_check_min_round
        ):
            unverified = [
                path for path in graph.file_nodes if path not in ledger.verified_files
            ]
            return MediatorIntervention(
                type=InterventionType.INCOMPLETE_COVERAGE,
                severity=InterventionSeverity.INFO,
                reason=f"Total coverage is low at {rate * 100:.1f}%",
                action="Verify more files or narrow the scope",
                affected_files=tuple(unverified[: policy.max_affected_files_display]),
            )
        return None

    def _side_effects(
        self, graph: DependencyGraph, new_issues: Sequence[Issue]
    ) -> MediatorIntervention | None:
        severe = [
            issue for issue in new_issues if issue.severity in (Severity.CRITICAL, Severity.HIGH)
        ]
        if not severe:
            return None

        all_affected: dict[str, None] = {}
        checks: list[str] = []
        for issue in severe:
            match = _LOCATION_FILE.match(issue.location)
            if match is None:
                continue
            node = graph.find_node(match.group(1).strip())
            if node is None:
                continue
            affected = graph.affected_files(node, depth=self._policy.side_effect_depth)
            if not affected:
                continue
            checks.append(
                f"Check when fixing {issue.id}: {', '.join(affected[:_SIDE_EFFECT_PREVIEW])}"
            )
            for path in affected:
                all_affected.setdefault(path, None)

        if not all_affected:
            return None
        severity = (
            InterventionSeverity.WARNING
            if len(all_affected) > self._policy.side_effect_warning_threshold
            else InterventionSeverity.INFO
        )
        return MediatorIntervention(
            type=InterventionType.SIDE_EFFECT_WARNING,
            severity=severity,
            reason=f"Fixing {len(severe)} issues may affect {len(all_affected)} files",
            action="Check impact scope before fixing",
            affected_files=tuple(all_affected)[: self._policy.max_affected_files_display],
            related_issues=tuple(issue.id for issue in severe),
            suggested_checks=tuple(checks),
        )

    def _scope_drift(
        self, session: Session, mentions: Sequence[MentionedFile]
    ) -> MediatorIntervention | None:
        if not mentions:
            return None
        target_dir = re.sub(r"/[^/]+$", "", session.target)
        outside = [
            mention.path
            for mention in mentions
            if not mention.path.startswith(target_dir) and target_dir not in mention.path
        ]
        drift = len(outside) / len(mentions)
        if drift <= self._policy.drift_threshold:
            return None
        if len(mentions) <= self._policy.min_files_for_drift:
            return None
        return MediatorIntervention(
            type=InterventionType.SCOPE_DRIFT,
            severity=InterventionSeverity.WARNING,
            reason=(
                f"Verification scope expanded outside target ({session.target}) "
                f"by {drift * 100:.0f}%"
            ),
            action="Focus on target scope or explicitly expand verification scope",
            affected_files=tuple(outside[: self._policy.max_critical_files_display]),
            suggested_checks=(
                f"Current target: {session.target}",
                f"{len(outside)} external files mentioned",
                "Request explicit scope expansion if needed",
            ),
        )

    def _circular_dependencies(self, graph: DependencyGraph) -> MediatorIntervention | None:
        cycles = graph.detect_cycles()
        if not cycles:
            return None
        return MediatorIntervention(
            type=InterventionType.CIRCULAR_DEPENDENCY,
            severity=InterventionSeverity.WARNING if len(cycles) > 2 else InterventionSeverity.INFO,
            reason=f"{len(cycles)} circular dependencies detected",
            action="Circular dependencies can cause bugs, please review",
            suggested_checks=tuple(
                f"Cycle: {' → '.join(cycle)}" for cycle in cycles[:_CYCLE_PREVIEW]
            ),
        )

    def _critical_path_ignored(
        self,
        session: Session,
        graph: DependencyGraph,
        mentioned: Mapping[str, MentionedFile],
        scores: Mapping[str, int],
    ) -> MediatorIntervention | None:
        already_warned = any(
            record.type == InterventionType.CRITICAL_PATH_IGNORED.value
            for record in session.mediator.interventions
        )
        if already_warned:
            return None

        ranked = sorted(
            ((path, score) for path, score in scores.items() if score > 0),
            key=lambda item: item[1],
            reverse=True,
        )[: self._policy.max_critical_files_display]
        ignored = [
            (path, score)
            for path, score in ranked
            if path not in mentioned and path not in session.mediator.verified_files
        ]
        if not ignored:
            return None
        return MediatorIntervention(
            type=InterventionType.CRITICAL_PATH_IGNORED,
            severity=InterventionSeverity.INFO,
            reason="Critical project files not yet verified",
            action="Also review the following critical files",
            affected_files=tuple(path for path, _ in ignored),
            suggested_checks=tuple(
                f"{path} (importance: {score}, imported by {len(_dependents(graph, path))} files)"
                for path, score in ignored
            ),
        )

    def _context_correction(self, session: Session, output: str) -> MediatorIntervention | None:
        lowered = output.lower()
        if not any(keyword in lowered for keyword in CORRECTION_KEYWORDS):
            return None

        last_verifier = RoundLog(session.rounds).last(Role.VERIFIER)
        if last_verifier is None:
            return None

        disputed: list[str] = []
        for issue_id in last_verifier.issues_raised:
            issue = session.find_issue(issue_id)
            if issue is not None and (issue.id in output or issue.summary in output):
                disputed.append(issue.id)
        if not disputed:
            return None
        return MediatorIntervention(
            type=InterventionType.CONTEXT_CORRECTION,
            severity=InterventionSeverity.INFO,
            reason=f"Critic disputed {len(disputed)} issues",
            action="Re-review these issues and check code context again",
            related_issues=tuple(disputed),
            suggested_checks=(
                "Verify if evidence matches actual behavior",
                "Re-read the full context of related code",
                "Check intended behavior in tests or documentation",
            ),
        )


def _dependents(graph: DependencyGraph, path: str) -> tuple[str, ...]:
    return graph.dependents_of(path) if path in graph else ()


def _rate(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return numerator / denominator


__all__ = [
    "CORRECTION_KEYWORDS",
    "InterventionSeverity",
    "InterventionType",
    "Mediator",
    "MediatorIntervention",
    "MediatorPolicy",
    "MissedDependency",
    "MissedPriority",
]
