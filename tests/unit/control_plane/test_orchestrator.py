"""
crossexam — unit tests for the session orchestrator

File: tests/unit/control_plane/test_orchestrator.py
Last updated: 2026-10-17

Purpose
- Exercise every orchestrator operation against a real on-disk session store.

What this test file should cover
- Status transitions, convergence and forced stop.
- Rejection paths return ``None``, log a reason and leave storage untouched.
- Session ids are validated on every operation.
- Revision conflicts between two orchestrators sharing one store.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from structlog.testing import capture_logs

from crossexam.control_plane.orchestrator import SessionOrchestrator
from crossexam.domain import models
from crossexam.domain.models import IssueStatus, Layer, NextRole, SessionStatus, Verdict
from crossexam.persistence.session_store import SessionStore
from crossexam.verification_plane.roles import RolePolicy

from .. import issue_report, write_tree

VERIFIER_ROUND_ONE = (
    "SECURITY review found two problems.\n"
    "SEC-01 [CRITICAL] token returned verbatim at src/auth/token.py:2\n"
    "```python\nreturn user\n```\n"
    "COR-01 [LOW] CORRECTNESS: misleading name at src/auth/login.py:3\n"
)
CRITIC_ROUND_TWO = (
    "SEC-01: VALID because the raw value leaks.\n"
    "COR-01: PARTIAL since naming is subjective.\n"
)
VERIFIER_ROUND_THREE = "Re-checked src/auth/login.py:3 for SECURITY, no issues remain."

ROUND_ONE_ISSUES = [
    issue_report("SEC-01", severity="CRITICAL", location="src/auth/token.py:2"),
    issue_report("COR-01", severity="LOW", category="CORRECTNESS", location="src/auth/login.py:3"),
]


def _repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    write_tree(
        root,
        {
            "src/auth/login.py": (
                "from . import token\n\n\ndef login(user):\n    return token.issue(user)\n"
            ),
            "src/auth/token.py": "def issue(user):\n    return user\n",
            "src/db.py": "def query(sql):\n    return sql\n",
        },
    )
    return root.resolve()


def _orchestrator(tmp_path: Path, **kwargs: Any) -> SessionOrchestrator:
    return SessionOrchestrator(SessionStore(tmp_path / "sessions"), **kwargs)


def _start(orchestrator: SessionOrchestrator, repo: Path, **kwargs: Any) -> str:
    result = orchestrator.start_session("src/auth", "security review", repo, **kwargs)
    assert result is not None
    return result.session_id


def _events(logs: list[dict[str, Any]], event: str) -> list[dict[str, Any]]:
    return [entry for entry in logs if entry["event"] == event]


def test_start_session_collects_context_and_persists(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    orchestrator = _orchestrator(tmp_path)

    with capture_logs() as logs:
        result = orchestrator.start_session("src/auth", "security review", repo)

    assert result is not None
    assert result.status is SessionStatus.INITIALIZED
    assert result.file_count == 2
    assert result.max_rounds == 10
    assert result.critical_files == (str(repo / "src" / "auth" / "token.py"),)
    assert "**Requirements**: security review" in result.context_summary
    assert orchestrator.store.exists(result.session_id)
    assert orchestrator.list_sessions() == [result.session_id]
    assert _events(logs, "session_started")[0]["files"] == 2


def test_missing_target_still_creates_a_session(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)
    result = orchestrator.start_session("src/ghost", "", _repo(tmp_path))
    assert result is not None
    assert result.file_count == 0
    assert result.critical_files == ()


def test_start_rejects_non_positive_round_budget(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)
    with capture_logs() as logs:
        result = orchestrator.start_session("src/auth", "", _repo(tmp_path), max_rounds=0)
    assert result is None
    assert _events(logs, "session_rejected")[0]["reason"] == "invalid_max_rounds"
    assert orchestrator.store.list_session_ids() == []


def test_context_view_for_fresh_session(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)
    session_id = _start(orchestrator, _repo(tmp_path))

    view = orchestrator.get_context(session_id)
    assert view is not None
    assert view.next_role is NextRole.VERIFIER
    assert view.current_round == 0
    assert {item.layer for item in view.files} == {Layer.BASE}
    assert view.issues_summary.total == 0
    assert view.to_dict()["status"] == "initialized"


def test_rounds_progress_to_convergence(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    orchestrator = _orchestrator(tmp_path)
    session_id = _start(orchestrator, repo)

    first = orchestrator.submit_round(
        session_id, "verifier", VERIFIER_ROUND_ONE, issues_raised=ROUND_ONE_ISSUES
    )
    assert first is not None
    assert first.round_number == 1
    assert first.issues_raised == 2
    assert first.status is SessionStatus.VERIFYING
    assert first.next_role is NextRole.CRITIC
    assert first.convergence.critical_unresolved == 1
    assert first.compliance.is_compliant

    second = orchestrator.submit_round(
        session_id, "critic", CRITIC_ROUND_TWO, issues_resolved=["SEC-01", "NOPE-99"]
    )
    assert second is not None
    assert second.issues_resolved == 1
    assert second.status is SessionStatus.CONVERGING
    assert second.next_role is NextRole.VERIFIER

    third = orchestrator.submit_round(session_id, "verifier", VERIFIER_ROUND_THREE)
    assert third is not None
    assert third.convergence.is_converged
    assert third.convergence.rounds_without_new_issues == 2
    assert third.status is SessionStatus.CONVERGED
    assert third.next_role is NextRole.COMPLETE

    reloaded = SessionOrchestrator(SessionStore(tmp_path / "sessions")).get_context(session_id)
    assert reloaded is not None
    assert reloaded.current_round == 3
    assert reloaded.next_role is NextRole.COMPLETE

    with capture_logs() as logs:
        assert orchestrator.submit_round(session_id, "critic", "SEC-01 VALID") is None
    assert _events(logs, "round_rejected")[0]["reason"] == "session_closed"


def test_round_discovers_referenced_files(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    orchestrator = _orchestrator(tmp_path)
    session_id = _start(orchestrator, repo)

    result = orchestrator.submit_round(
        session_id, "verifier", "SECURITY: the query helper at src/db.py:2 is never escaped"
    )
    assert result is not None
    db_path = str(repo / "src" / "db.py")
    assert result.new_files_discovered == (db_path,)
    assert result.context_expanded

    view = orchestrator.get_context(session_id)
    assert view is not None
    discovered = [item for item in view.files if item.path == db_path]
    assert len(discovered) == 1
    assert discovered[0].layer is Layer.DISCOVERED
    assert discovered[0].added_in_round == 1


def test_round_budget_forces_stop(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)
    session_id = _start(orchestrator, _repo(tmp_path), max_rounds=2)

    orchestrator.submit_round(
        session_id, "verifier", VERIFIER_ROUND_ONE, issues_raised=ROUND_ONE_ISSUES
    )
    result = orchestrator.submit_round(session_id, "critic", "SEC-01 VALID. COR-01 INVALID.")
    assert result is not None
    assert not result.convergence.is_converged
    assert result.status is SessionStatus.FORCED_STOP
    assert result.next_role is NextRole.COMPLETE
    assert orchestrator.submit_round(session_id, "verifier", "SECURITY, no issues") is None


def test_invalid_requests_leave_storage_untouched(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)
    session_id = _start(orchestrator, _repo(tmp_path))

    with capture_logs() as logs:
        assert orchestrator.submit_round(session_id, "judge", "hello") is None
        assert (
            orchestrator.submit_round(
                session_id,
                "verifier",
                "SEC-01",
                issues_raised=[issue_report("SEC-01", severity="BLOCKER")],
            )
            is None
        )
        assert orchestrator.get_issues(session_id, "everything") is None
        assert orchestrator.end_session(session_id, "MAYBE") is None

    reasons = [entry["reason"] for entry in _events(logs, "round_rejected")]
    assert reasons == ["unknown_role", "invalid_issue"]
    assert _events(logs, "issue_filter_rejected")
    assert _events(logs, "verdict_rejected")
    assert orchestrator.store.load(session_id)[1] == 1


def test_round_that_fails_validation_is_rejected_without_writing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    orchestrator = _orchestrator(tmp_path)
    session_id = _start(orchestrator, _repo(tmp_path))
    monkeypatch.setattr(models, "_MAX_BLOB", 32)

    with capture_logs() as logs:
        result = orchestrator.submit_round(session_id, "verifier", "SECURITY " * 16)

    assert result is None
    failed = _events(logs, "round_failed")
    assert failed[0]["round_number"] == 1
    assert "Round." in failed[0]["error"]
    assert session_id not in orchestrator.cache
    assert orchestrator.store.revision(session_id) == 1


def test_strict_mode_rejects_non_compliant_rounds(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    strict = _orchestrator(tmp_path, role_policy=RolePolicy(strict_mode=True))
    session_id = _start(strict, repo)

    with capture_logs() as logs:
        assert strict.submit_round(session_id, "critic", "VALID because it holds") is None
    rejected = _events(logs, "round_rejected")[0]
    assert rejected["reason"] == "role_compliance"
    assert rejected["violations"] == ["ALT001"]

    advisory = SessionOrchestrator(strict.store)
    result = advisory.submit_round(session_id, "critic", "VALID because it holds")
    assert result is not None
    assert not result.compliance.is_compliant


_OPERATIONS: tuple[tuple[str, Callable[[SessionOrchestrator, str], object]], ...] = (
    ("get_context", lambda orch, sid: orch.get_context(sid)),
    ("submit_round", lambda orch, sid: orch.submit_round(sid, "verifier", "text")),
    ("get_issues", lambda orch, sid: orch.get_issues(sid)),
    ("checkpoint", lambda orch, sid: orch.checkpoint(sid)),
    ("rollback", lambda orch, sid: orch.rollback(sid, 0)),
    ("end_session", lambda orch, sid: orch.end_session(sid, "PASS")),
    ("ripple_effect", lambda orch, sid: orch.ripple_effect(sid, "src/auth/token.py")),
    ("mediator_summary", lambda orch, sid: orch.mediator_summary(sid)),
)


@pytest.mark.parametrize(
    ("operation", "call"), _OPERATIONS, ids=[name for name, _ in _OPERATIONS]
)
def test_every_operation_validates_session_ids(
    tmp_path: Path, operation: str, call: Callable[[SessionOrchestrator, str], object]
) -> None:
    orchestrator = _orchestrator(tmp_path)

    with capture_logs() as logs:
        assert call(orchestrator, "../../etc/passwd") is None
        assert call(orchestrator, "2026-10-17_unknown_000000") is None

    rejected = _events(logs, "session_id_rejected")
    assert [entry["operation"] for entry in rejected] == [operation]
    assert _events(logs, "session_not_found")[0]["operation"] == operation
    assert not (tmp_path / "etc").exists()


def test_cached_session_is_refreshed_after_another_writer(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    reader = _orchestrator(tmp_path)
    writer = _orchestrator(tmp_path)
    session_id = _start(reader, repo)
    first_view = reader.get_context(session_id)
    assert first_view is not None and first_view.current_round == 0

    assert writer.submit_round(
        session_id, "verifier", VERIFIER_ROUND_ONE, issues_raised=ROUND_ONE_ISSUES
    )

    view = reader.get_context(session_id)
    assert view is not None
    assert view.current_round == reader.store.load(session_id)[0].current_round == 1
    assert view.next_role is NextRole.CRITIC
    issues = reader.get_issues(session_id)
    assert issues is not None and [issue.id for issue in issues] == ["SEC-01", "COR-01"]

    continued = reader.submit_round(session_id, "critic", CRITIC_ROUND_TWO)
    assert continued is not None
    assert continued.round_number == 2


def test_write_racing_another_writer_gets_a_conflict_then_succeeds_on_retry(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    repo = _repo(tmp_path)
    first = _orchestrator(tmp_path)
    second = _orchestrator(tmp_path)
    session_id = _start(first, repo)
    original_save = second.store.save

    def _save_after_competing_write(session: Any, *, expected_revision: int | None = None) -> int:
        monkeypatch.setattr(second.store, "save", original_save)
        assert first.submit_round(
            session_id, "verifier", VERIFIER_ROUND_ONE, issues_raised=ROUND_ONE_ISSUES
        )
        return original_save(session, expected_revision=expected_revision)

    monkeypatch.setattr(second.store, "save", _save_after_competing_write)

    with capture_logs() as logs:
        assert second.submit_round(session_id, "verifier", VERIFIER_ROUND_THREE) is None
    assert _events(logs, "session_conflict")[0]["expected"] == 1
    assert session_id not in second.cache

    retried = second.submit_round(session_id, "critic", CRITIC_ROUND_TWO)
    assert retried is not None
    assert retried.round_number == 2
    assert first.store.load(session_id)[1] == 3



def test_checkpoint_and_rollback_round_trip(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)
    session_id = _start(orchestrator, _repo(tmp_path))

    orchestrator.submit_round(
        session_id, "verifier", VERIFIER_ROUND_ONE, issues_raised=ROUND_ONE_ISSUES
    )
    orchestrator.submit_round(session_id, "critic", CRITIC_ROUND_TWO, issues_resolved=["SEC-01"])
    orchestrator.submit_round(
        session_id,
        "verifier",
        "SECURITY review found REL-01 [MEDIUM] at src/auth/login.py:5\n```python\nlogin(u)\n```",
        issues_raised=[issue_report("REL-01", severity="MEDIUM", category="RELIABILITY")],
    )

    manual = orchestrator.checkpoint(session_id)
    assert manual is not None and manual.round_number == 3

    summary = orchestrator.end_session(session_id, Verdict.FAIL)
    assert summary is not None

    restored = orchestrator.rollback(session_id, 2)
    assert restored is not None
    assert restored.to_dict() == {
        "session_id": session_id,
        "restored_to_round": 2,
        "issues_restored": 2,
    }

    session, _ = orchestrator.store.load(session_id)
    assert session.current_round == 2
    assert session.status is SessionStatus.VERIFYING
    assert session.verdict is None
    assert [(issue.id, issue.status) for issue in session.issues] == [
        ("SEC-01", IssueStatus.RESOLVED),
        ("COR-01", IssueStatus.RAISED),
    ]
    assert [item.round_number for item in session.checkpoints] == [2]

    with capture_logs() as logs:
        assert orchestrator.rollback(session_id, 1) is None
    assert _events(logs, "rollback_unavailable")[0]["to_round"] == 1


def test_end_session_summarizes_and_closes(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)
    session_id = _start(orchestrator, _repo(tmp_path))
    orchestrator.submit_round(
        session_id, "verifier", VERIFIER_ROUND_ONE, issues_raised=ROUND_ONE_ISSUES
    )

    summary = orchestrator.end_session(session_id, "CONDITIONAL")
    assert summary is not None
    payload = summary.to_dict()
    assert payload["verdict"] == "CONDITIONAL"
    assert payload["status"] == "converged"
    assert payload["rounds"] == 1
    assert payload["total_issues"] == 2
    assert payload["unresolved_issues"] == 2
    assert payload["by_severity"]["CRITICAL"] == {"total": 1, "resolved": 0, "unresolved": 1}
    assert payload["by_severity"]["MEDIUM"] == {"total": 0, "resolved": 0, "unresolved": 0}
    assert session_id not in orchestrator.cache

    issues = orchestrator.get_issues(session_id, "unresolved")
    assert issues is not None
    assert {issue.status for issue in issues} == {IssueStatus.UNRESOLVED}
    critical = orchestrator.get_issues(session_id, "critical")
    assert critical is not None and [issue.id for issue in critical] == ["SEC-01"]


def test_ripple_effect_resolves_relative_paths(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    orchestrator = _orchestrator(tmp_path)
    session_id = _start(orchestrator, repo)

    effect = orchestrator.ripple_effect(session_id, "src/auth/token.py")
    assert effect is not None
    assert effect.changed_file == str(repo / "src" / "auth" / "token.py")
    login = str(repo / "src" / "auth" / "login.py")
    assert [item.path for item in effect.affected_files] == [login]

    with capture_logs() as logs:
        assert orchestrator.ripple_effect(session_id, "src/nowhere.py") is None
    assert _events(logs, "ripple_target_unknown")


def test_mediator_summary(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)
    session_id = _start(orchestrator, _repo(tmp_path))
    orchestrator.submit_round(
        session_id, "verifier", VERIFIER_ROUND_ONE, issues_raised=ROUND_ONE_ISSUES
    )

    summary = orchestrator.mediator_summary(session_id)
    assert summary is not None
    assert summary["coverage"] == {
        "total_files": 2,
        "verified_files": 2,
        "coverage_rate": "100.0%",
        "unverified_critical": 0,
        "unverified_critical_files": [],
    }
    assert summary["graph_stats"]["cycles"] == []
    assert set(summary) == {"graph_stats", "coverage", "interventions"}


def test_from_config_wires_policies(tmp_path: Path) -> None:
    config = {
        "session": {"max_rounds": 3, "auto_checkpoint_interval": 1},
        "storage": {"sessions_dir": str(tmp_path / "sessions")},
        "roles": {"strict_mode": True},
    }
    orchestrator = SessionOrchestrator.from_config(config)
    assert orchestrator.store.root == tmp_path / "sessions"

    result = orchestrator.start_session("src/auth", "", _repo(tmp_path))
    assert result is not None
    assert result.max_rounds == 3

    first = orchestrator.submit_round(
        result.session_id, "verifier", VERIFIER_ROUND_ONE, issues_raised=ROUND_ONE_ISSUES
    )
    assert first is not None
    session, _ = orchestrator.store.load(result.session_id)
    assert [item.round_number for item in session.checkpoints] == [1]
