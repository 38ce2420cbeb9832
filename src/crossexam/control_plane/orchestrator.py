"""
crossexam — session orchestrator

File: src/crossexam/control_plane/orchestrator.py
Last updated: 2026-10-17

Purpose
- The only component that mutates sessions. Every operation follows
  load, mutate, persist against the session store.

What should be included in this file
- Operation surface: start, context, submit round, issues, checkpoint,
  rollback, end, list, ripple effect, mediator summary.
- Result records with ``to_dict`` projections for callers.

Functional requirements
- A failed operation returns ``None``, logs why, and leaves storage untouched.
- Invalid session ids are rejected before storage is consulted and are
  reported exactly like unknown sessions.
- Writes carry the revision that was read; a conflict evicts the cached copy.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from crossexam.constants import DEFAULT_AUTO_CHECKPOINT_INTERVAL, DEFAULT_MAX_ROUNDS
from crossexam.control_plane.session_cache import SessionCache
from crossexam.domain import ids
from crossexam.domain.models import (
    SESSION_STATUS_ORDER,
    Issue,
    IssueFilter,
    Layer,
    NextRole,
    Role,
    Round,
    Session,
    SessionStatus,
    Severity,
    Verdict,
)
from crossexam.knowledge_plane.context_store import (
    ContextLimits,
    ContextStore,
    render_context_summary,
    resolve_target,
)
from crossexam.knowledge_plane.dependency_graph import DependencyGraph, RippleEffect
from crossexam.observability.logging import session_log_scope
from crossexam.persistence.session_store import (
    MalformedSessionError,
    SessionConflictError,
    SessionNotFoundError,
    SessionStore,
    SessionStoreError,
)
from crossexam.verification_plane.arbiter import (
    ArbiterIntervention,
    ArbiterPolicy,
    check_for_intervention,
)
from crossexam.verification_plane.checkpoints import CheckpointManager, CheckpointNotFoundError
from crossexam.verification_plane.convergence import (
    ConvergencePolicy,
    ConvergenceStatus,
    evaluate_convergence,
)
from crossexam.verification_plane.issue_ledger import IssueLedger, IssueSummary
from crossexam.verification_plane.mediator import (
    Mediator,
    MediatorIntervention,
    MediatorPolicy,
)
from crossexam.verification_plane.roles import (
    RoleComplianceResult,
    RolePolicy,
    check_role_compliance,
)
from crossexam.verification_plane.round_log import RoundLog


@dataclass(frozen=True, slots=True)
class StartResult:
    session_id: str
    status: SessionStatus
    max_rounds: int
    file_count: int
    critical_files: tuple[str, ...]
    context_summary: str

    def to_dict(self) -> dict[str, object]:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "max_rounds": self.max_rounds,
            "file_count": self.file_count,
            "critical_files": list(self.critical_files),
            "context_summary": self.context_summary,
        }


@dataclass(frozen=True, slots=True)
class ContextFileEntry:
    path: str
    layer: Layer
    added_in_round: int | None
    dependencies: int

    def to_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "layer": self.layer.value,
            "added_in_round": self.added_in_round,
            "dependencies": self.dependencies,
        }


@dataclass(frozen=True, slots=True)
class ContextView:
    """Read-only projection of a session for the acting role."""

    session_id: str
    status: SessionStatus
    current_round: int
    max_rounds: int
    next_role: NextRole
    files: tuple[ContextFileEntry, ...]
    issues_summary: IssueSummary
    summary: str

    def to_dict(self) -> dict[str, object]:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "current_round": self.current_round,
            "max_rounds": self.max_rounds,
            "next_role": self.next_role.value,
            "files": [item.to_dict() for item in self.files],
            "issues_summary": self.issues_summary.to_dict(),
            "summary": self.summary,
        }


@dataclass(frozen=True, slots=True)
class RoundResult:
    session_id: str
    round_number: int
    role: Role
    issues_raised: int
    issues_resolved: int
    issues_challenged: int
    context_expanded: bool
    new_files_discovered: tuple[str, ...]
    convergence: ConvergenceStatus
    intervention: ArbiterIntervention | None
    mediator_interventions: tuple[MediatorIntervention, ...]
    compliance: RoleComplianceResult
    status: SessionStatus
    next_role: NextRole

    def to_dict(self) -> dict[str, object]:
        return {
            "session_id": self.session_id,
            "round_number": self.round_number,
            "role": self.role.value,
            "issues_raised": self.issues_raised,
            "issues_resolved": self.issues_resolved,
            "issues_challenged": self.issues_challenged,
            "context_expanded": self.context_expanded,
            "new_files_discovered": list(self.new_files_discovered),
            "convergence": self.convergence.to_dict(),
            "intervention": None if self.intervention is None else self.intervention.to_dict(),
            "mediator_interventions": [item.to_dict() for item in self.mediator_interventions],
            "compliance": self.compliance.to_dict(),
            "status": self.status.value,
            "next_role": self.next_role.value,
        }


@dataclass(frozen=True, slots=True)
class CheckpointResult:
    session_id: str
    round_number: int

    def to_dict(self) -> dict[str, object]:
        return {"session_id": self.session_id, "round_number": self.round_number}


@dataclass(frozen=True, slots=True)
class RollbackResult:
    session_id: str
    restored_to_round: int
    issues_restored: int

    def to_dict(self) -> dict[str, object]:
        return {
            "session_id": self.session_id,
            "restored_to_round": self.restored_to_round,
            "issues_restored": self.issues_restored,
        }


@dataclass(frozen=True, slots=True)
class SeverityTally:
    total: int
    resolved: int
    unresolved: int

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "resolved": self.resolved, "unresolved": self.unresolved}


@dataclass(frozen=True, slots=True)
class SessionSummary:
    session_id: str
    verdict: Verdict
    status: SessionStatus
    rounds: int
    total_issues: int
    resolved_issues: int
    unresolved_issues: int
    by_severity: dict[Severity, SeverityTally]

    def to_dict(self) -> dict[str, object]:
        return {
            "session_id": self.session_id,
            "verdict": self.verdict.value,
            "status": self.status.value,
            "rounds": self.rounds,
            "total_issues": self.total_issues,
            "resolved_issues": self.resolved_issues,
            "unresolved_issues": self.unresolved_issues,
            "by_severity": {
                severity.value: tally.to_dict() for severity, tally in self.by_severity.items()
            },
        }


class SessionOrchestrator:
    """Drives review sessions through the verifier/critic loop."""

    def __init__(
        self,
        store: SessionStore,
        *,
        cache: SessionCache | None = None,
        context_store: ContextStore | None = None,
        mediator: Mediator | None = None,
        checkpoints: CheckpointManager | None = None,
        convergence_policy: ConvergencePolicy | None = None,
        arbiter_policy: ArbiterPolicy | None = None,
        role_policy: RolePolicy | None = None,
        default_max_rounds: int = DEFAULT_MAX_ROUNDS,
        logger: Any | None = None,
    ) -> None:
        if default_max_rounds < 1:
            raise ValueError("default_max_rounds must be >= 1")
        self._log = logger if logger is not None else structlog.get_logger(__name__)
        self._store = store
        self._cache = cache if cache is not None else SessionCache()
        self._context = context_store if context_store is not None else ContextStore()
        self._mediator = mediator if mediator is not None else Mediator()
        self._checkpoints = (
            checkpoints
            if checkpoints is not None
            else CheckpointManager(DEFAULT_AUTO_CHECKPOINT_INTERVAL)
        )
        self._convergence = (
            convergence_policy if convergence_policy is not None else ConvergencePolicy()
        )
        self._arbiter = arbiter_policy if arbiter_policy is not None else ArbiterPolicy()
        self._roles = role_policy if role_policy is not None else RolePolicy()
        self._default_max_rounds = default_max_rounds

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        cache: SessionCache | None = None,
        logger: Any | None = None,
    ) -> SessionOrchestrator:
        """Wire every collaborator from an effective config mapping."""

        session_cfg = config.get("session", {})
        return cls(
            SessionStore(config["storage"]["sessions_dir"]),
            cache=cache,
            context_store=ContextStore(ContextLimits.from_config(config.get("context", {}))),
            mediator=Mediator(MediatorPolicy.from_config(config.get("mediator", {}))),
            checkpoints=CheckpointManager(
                int(session_cfg.get("auto_checkpoint_interval", DEFAULT_AUTO_CHECKPOINT_INTERVAL))
            ),
            convergence_policy=ConvergencePolicy.from_config(config.get("convergence", {})),
            arbiter_policy=ArbiterPolicy.from_config(config.get("arbiter", {})),
            role_policy=RolePolicy.from_config(config.get("roles", {})),
            default_max_rounds=int(session_cfg.get("max_rounds", DEFAULT_MAX_ROUNDS)),
            logger=logger,
        )

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def cache(self) -> SessionCache:
        return self._cache

    def start_session(
        self,
        target: str,
        requirements: str = "",
        working_dir: str | Path | None = None,
        *,
        max_rounds: int | None = None,
    ) -> StartResult | None:
        """Create a session; a missing target still yields a session with empty context."""

        rounds = self._default_max_rounds if max_rounds is None else max_rounds
        if rounds < 1:
            self._log.warning("session_rejected", reason="invalid_max_rounds", max_rounds=rounds)
            return None
        base_dir = Path(working_dir).expanduser() if working_dir is not None else Path.cwd()
        base_dir = base_dir.resolve()

        session_id = ids.generate_session_id(target)
        with session_log_scope(session_id):
            context = self._context.collect_base(target, base_dir, requirements=requirements)
            session = Session(
                id=session_id,
                target=target,
                requirements=requirements,
                working_dir=str(base_dir),
                context=context,
                max_rounds=rounds,
            )
            graph = self._graph(session)
            self._mediator.initialize(session, graph)

            try:
                revision = self._store.save(session)
            except (SessionStoreError, OSError) as exc:
                self._log.error("session_persist_failed", operation="start", error=str(exc))
                return None
            self._cache.put(session, revision)
            self._log.info(
                "session_started",
                target=target,
                files=len(context),
                max_rounds=rounds,
            )
            return StartResult(
                session_id=session_id,
                status=session.status,
                max_rounds=rounds,
                file_count=len(context),
                critical_files=tuple(session.mediator.unverified_critical),
                context_summary=render_context_summary(context),
            )

    def get_context(self, session_id: str) -> ContextView | None:
        loaded = self._load(session_id, operation="get_context")
        if loaded is None:
            return None
        session, _ = loaded
        files = tuple(
            ContextFileEntry(
                path=item.path,
                layer=item.layer,
                added_in_round=item.added_in_round,
                dependencies=len(item.dependencies),
            )
            for item in session.context.files.values()
        )
        return ContextView(
            session_id=session.id,
            status=session.status,
            current_round=session.current_round,
            max_rounds=session.max_rounds,
            next_role=self._next_role(session),
            files=files,
            issues_summary=IssueLedger(session.issues).summary(),
            summary=render_context_summary(session.context),
        )

    def submit_round(
        self,
        session_id: str,
        role: Role | str,
        output: str,
        issues_raised: Sequence[Mapping[str, object]] | None = None,
        issues_resolved: Sequence[str] | None = None,
        issues_challenged: Sequence[str] | None = None,
    ) -> RoundResult | None:
        """Record one round and report what the caller should do next."""

        loaded = self._load(session_id, operation="submit_round")
        if loaded is None:
            return None
        session, revision = loaded

        with session_log_scope(session.id):
            try:
                acting = Role(role)
            except ValueError:
                self._log.warning("round_rejected", reason="unknown_role", role=str(role))
                return None
            if session.status.is_terminal:
                self._log.info(
                    "round_rejected", reason="session_closed", status=session.status.value
                )
                return None

            round_number = session.current_round + 1
            try:
                new_issues = [
                    Issue.from_report(report, raised_by=acting, raised_in_round=round_number)
                    for report in issues_raised or ()
                ]
            except ValueError as exc:
                self._log.warning("round_rejected", reason="invalid_issue", error=str(exc))
                return None

            compliance = check_role_compliance(session, acting, output, self._roles)
            if self._roles.strict_mode and not compliance.is_compliant:
                self._log.warning(
                    "round_rejected",
                    reason="role_compliance",
                    score=compliance.score,
                    violations=[item.criterion_id for item in compliance.violations],
                )
                return None

            try:
                result = self._apply_round(
                    session,
                    acting,
                    output,
                    round_number=round_number,
                    new_issues=new_issues,
                    resolved_ids=issues_resolved or (),
                    challenged_ids=issues_challenged or (),
                    compliance=compliance,
                )
            except (ValueError, OSError) as exc:
                self._cache.evict(session.id)
                self._log.error("round_failed", round_number=round_number, error=str(exc))
                return None

            if not self._persist(session, revision, operation="submit_round"):
                return None
            self._log.info(
                "round_submitted",
                round_number=round_number,
                role=acting.value,
                issues_raised=result.issues_raised,
                issues_resolved=result.issues_resolved,
                new_files=len(result.new_files_discovered),
                converged=result.convergence.is_converged,
                next_role=result.next_role.value,
            )
            return result

    def get_issues(
        self, session_id: str, issue_filter: IssueFilter | str = IssueFilter.ALL
    ) -> tuple[Issue, ...] | None:
        try:
            selected = IssueFilter(issue_filter)
        except ValueError:
            self._log.warning("issue_filter_rejected", issue_filter=str(issue_filter))
            return None
        loaded = self._load(session_id, operation="get_issues")
        if loaded is None:
            return None
        session, _ = loaded
        return IssueLedger(session.issues).filter(selected)

    def checkpoint(self, session_id: str) -> CheckpointResult | None:
        loaded = self._load(session_id, operation="checkpoint")
        if loaded is None:
            return None
        session, revision = loaded
        with session_log_scope(session.id):
            checkpoint = self._checkpoints.create(session)
            session.touch()
            if not self._persist(session, revision, operation="checkpoint"):
                return None
            return CheckpointResult(session_id=session.id, round_number=checkpoint.round_number)

    def rollback(self, session_id: str, to_round: int) -> RollbackResult | None:
        loaded = self._load(session_id, operation="rollback")
        if loaded is None:
            return None
        session, revision = loaded
        with session_log_scope(session.id):
            try:
                checkpoint = self._checkpoints.rollback(session, to_round)
            except CheckpointNotFoundError:
                self._log.info("rollback_unavailable", to_round=to_round)
                return None
            session.verdict = None
            session.touch()
            if not self._persist(session, revision, operation="rollback"):
                return None
            return RollbackResult(
                session_id=session.id,
                restored_to_round=to_round,
                issues_restored=len(checkpoint.issues_snapshot),
            )

    def end_session(self, session_id: str, verdict: Verdict | str) -> SessionSummary | None:
        """Close the session with ``verdict`` whether or not it converged."""

        try:
            final = Verdict(verdict)
        except ValueError:
            self._log.warning("verdict_rejected", verdict=str(verdict))
            return None
        loaded = self._load(session_id, operation="end_session")
        if loaded is None:
            return None
        session, revision = loaded

        with session_log_scope(session.id):
            IssueLedger(session.issues).mark_unresolved()
            session.verdict = final
            session.status = SessionStatus.CONVERGED
            session.touch()
            if not self._persist(session, revision, operation="end_session"):
                return None
            self._cache.evict(session.id)

            summary = _summarize_session(session, final)
            self._log.info(
                "session_ended",
                verdict=final.value,
                rounds=summary.rounds,
                unresolved=summary.unresolved_issues,
            )
            return summary

    def list_sessions(self) -> list[str]:
        return self._store.list_session_ids()

    def ripple_effect(
        self,
        session_id: str,
        changed_file: str,
        changed_function: str | None = None,
    ) -> RippleEffect | None:
        """``None`` when the session or the changed file is unknown."""

        loaded = self._load(session_id, operation="ripple_effect")
        if loaded is None:
            return None
        session, _ = loaded
        graph = self._graph(session)

        candidate = str(resolve_target(changed_file, session.working_dir))
        node = candidate if candidate in graph else changed_file
        effect = self._mediator.ripple_effect(graph, node, changed_function)
        if effect is None:
            self._log.info(
                "ripple_target_unknown", session_id=session.id, changed_file=changed_file
            )
        return effect

    def mediator_summary(self, session_id: str) -> dict[str, object] | None:
        loaded = self._load(session_id, operation="mediator_summary")
        if loaded is None:
            return None
        session, _ = loaded
        return self._mediator.summary(session, self._graph(session))

    def _apply_round(
        self,
        session: Session,
        role: Role,
        output: str,
        *,
        round_number: int,
        new_issues: Sequence[Issue],
        resolved_ids: Sequence[str],
        challenged_ids: Sequence[str],
        compliance: RoleComplianceResult,
    ) -> RoundResult:
        round_input = render_context_summary(session.context)
        new_files = self._context.discover(
            session.context,
            output,
            working_dir=session.working_dir,
            round_number=round_number,
        )

        ledger = IssueLedger(session.issues)
        raised: list[str] = []
        for issue in new_issues:
            ledger.upsert(issue)
            if issue.id not in raised:
                raised.append(issue.id)
        resolved = _unique(
            issue_id
            for issue_id in resolved_ids
            if ledger.resolve(issue_id, round_number=round_number)
        )
        challenged = _unique(
            issue_id
            for issue_id in challenged_ids
            if ledger.challenge(issue_id, round_number=round_number)
        )

        RoundLog(session.rounds).append(
            Round(
                number=round_number,
                role=role,
                output=output,
                input=round_input,
                issues_raised=tuple(raised),
                issues_resolved=resolved,
                issues_challenged=challenged,
                context_expanded=bool(new_files),
                new_files_discovered=new_files,
            )
        )
        session.current_round = round_number
        _advance_status(session, SessionStatus.VERIFYING)

        if self._checkpoints.is_due(round_number):
            self._checkpoints.create(session)

        convergence = evaluate_convergence(session, self._convergence)
        intervention = check_for_intervention(session, new_files, self._arbiter)
        mediator_interventions = self._mediator.analyze_round(
            session,
            self._graph(session),
            output=output,
            role=role,
            new_issues=new_issues,
        )

        if convergence.is_converged:
            _advance_status(session, SessionStatus.CONVERGED)
        elif session.current_round >= session.max_rounds:
            _advance_status(session, SessionStatus.FORCED_STOP)
        elif convergence.critical_unresolved == 0 and convergence.rounds_without_new_issues > 0:
            _advance_status(session, SessionStatus.CONVERGING)
        session.touch()

        return RoundResult(
            session_id=session.id,
            round_number=round_number,
            role=role,
            issues_raised=len(raised),
            issues_resolved=len(resolved),
            issues_challenged=len(challenged),
            context_expanded=bool(new_files),
            new_files_discovered=new_files,
            convergence=convergence,
            intervention=intervention,
            mediator_interventions=mediator_interventions,
            compliance=compliance,
            status=session.status,
            next_role=self._next_role(session, convergence),
        )

    def _next_role(
        self, session: Session, convergence: ConvergenceStatus | None = None
    ) -> NextRole:
        status = convergence if convergence is not None else evaluate_convergence(
            session, self._convergence
        )
        if status.is_converged or session.current_round >= session.max_rounds:
            return NextRole.COMPLETE
        if session.status.is_terminal:
            return NextRole.COMPLETE
        last = RoundLog(session.rounds).last()
        if last is None:
            return NextRole.VERIFIER
        return NextRole(last.role.opposite.value)

    def _graph(self, session: Session) -> DependencyGraph:
        return DependencyGraph.from_context(session.context, analyzer=self._context.analyze)

    def _load(self, session_id: str, *, operation: str) -> tuple[Session, int] | None:
        try:
            valid_id = ids.validate_session_id(session_id)
        except ids.InvalidSessionIdError as exc:
            self._log.warning("session_id_rejected", operation=operation, reason=str(exc))
            return None

        cached = self._cache.get(valid_id)
        if cached is not None:
            if self._is_current(cached.revision, valid_id):
                return cached.session, cached.revision
            self._cache.evict(valid_id)
            self._log.debug("session_cache_stale", operation=operation, session_id=valid_id)

        try:
            session, revision = self._store.load(valid_id)
        except SessionNotFoundError:
            self._log.info("session_not_found", operation=operation, session_id=valid_id)
            return None
        except MalformedSessionError as exc:
            self._log.error(
                "session_load_failed",
                operation=operation,
                session_id=valid_id,
                reason=exc.reason,
            )
            return None
        self._cache.put(session, revision)
        return session, revision

    def _is_current(self, revision: int, session_id: str) -> bool:
        try:
            return self._store.revision(session_id) == revision
        except SessionStoreError:
            return False

    def _persist(self, session: Session, revision: int, *, operation: str) -> bool:
        try:
            new_revision = self._store.save(session, expected_revision=revision)
        except SessionConflictError as exc:
            self._cache.evict(session.id)
            self._log.warning(
                "session_conflict",
                operation=operation,
                expected=exc.expected,
                actual=exc.actual,
            )
            return False
        except (SessionStoreError, OSError) as exc:
            self._cache.evict(session.id)
            self._log.error("session_persist_failed", operation=operation, error=str(exc))
            return False
        self._cache.put(session, new_revision)
        return True


def _advance_status(session: Session, status: SessionStatus) -> None:
    if SESSION_STATUS_ORDER[status] > SESSION_STATUS_ORDER[session.status]:
        session.status = status


def _unique(values: Iterable[str]) -> tuple[str, ...]:
    seen: list[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return tuple(seen)


def _summarize_session(session: Session, verdict: Verdict) -> SessionSummary:
    by_severity: dict[Severity, SeverityTally] = {}
    for severity in Severity:
        matching = [issue for issue in session.issues if issue.severity is severity]
        resolved = sum(1 for issue in matching if issue.is_resolved)
        by_severity[severity] = SeverityTally(
            total=len(matching), resolved=resolved, unresolved=len(matching) - resolved
        )
    resolved_total = sum(1 for issue in session.issues if issue.is_resolved)
    return SessionSummary(
        session_id=session.id,
        verdict=verdict,
        status=session.status,
        rounds=session.current_round,
        total_issues=len(session.issues),
        resolved_issues=resolved_total,
        unresolved_issues=len(session.issues) - resolved_total,
        by_severity=by_severity,
    )


__all__ = [
    "CheckpointResult",
    "ContextFileEntry",
    "ContextView",
    "RollbackResult",
    "RoundResult",
    "SessionOrchestrator",
    "SessionSummary",
    "SeverityTally",
    "StartResult",
]
