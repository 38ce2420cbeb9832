"""
crossexam — end-to-end smoke test

File: tests/smoke/test_crossexam_end_to_end.py
Last updated: 2026-10-17

Purpose
- Run whole review sessions through a config-built orchestrator over a temporary repository.
- Reload state from disk between steps the way separate CLI invocations would.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from crossexam.config.schema import default_config
from crossexam.control_plane import SessionOrchestrator
from crossexam.domain.models import IssueStatus, Layer, NextRole, SessionStatus

LOGIN = "from . import token\n\n\ndef login(user):\n    return token.issue(user)\n"
TOKEN = "def issue(user):\n    return user\n"
DB = "def query(sql):\n    return sql\n"


def _seed_repo(root: Path) -> Path:
    files = {
        "src/auth/login.py": LOGIN,
        "src/auth/token.py": TOKEN,
        "src/db.py": DB,
        "src/cache.py": "CACHE = {}\n",
    }
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root.resolve()


def _orchestrator(tmp_path: Path, **session: Any) -> SessionOrchestrator:
    config = default_config()
    config["storage"]["sessions_dir"] = str(tmp_path / "sessions")
    config["session"].update(session)
    return SessionOrchestrator.from_config(config)


def _issue(issue_id: str, severity: str, category: str, location: str) -> dict[str, object]:
    return {
        "id": issue_id,
        "category": category,
        "severity": severity,
        "summary": f"{category.lower()} finding {issue_id}",
        "location": location,
    }


@pytest.mark.smoke
def test_review_session_converges_and_survives_reload(tmp_path: Path) -> None:
    repo = _seed_repo(tmp_path / "repo")
    started = _orchestrator(tmp_path).start_session("src/auth", "harden login", repo)
    assert started is not None
    session_id = started.session_id

    first = _orchestrator(tmp_path).submit_round(
        session_id,
        "verifier",
        "SECURITY pass.\n"
        "SEC-01 [CRITICAL] raw token at src/auth/token.py:2\n"
        "```python\nreturn user\n```\n",
        issues_raised=[_issue("SEC-01", "CRITICAL", "SECURITY", "src/auth/token.py:2")],
    )
    assert first is not None and first.next_role is NextRole.CRITIC

    second = _orchestrator(tmp_path).submit_round(
        session_id,
        "critic",
        "SEC-01: VALID because the token is returned unchanged.",
        issues_resolved=["SEC-01"],
    )
    assert second is not None and second.status is SessionStatus.CONVERGING

    third = _orchestrator(tmp_path).submit_round(
        session_id, "verifier", "SECURITY re-check of src/auth/token.py:2, no issues remain."
    )
    assert third is not None
    assert third.convergence.is_converged
    assert third.status is SessionStatus.CONVERGED
    assert third.next_role is NextRole.COMPLETE

    reader = _orchestrator(tmp_path)
    summary = reader.end_session(session_id, "PASS")
    assert summary is not None
    assert summary.to_dict()["resolved_issues"] == 1

    document = json.loads(reader.store.document_path(session_id).read_text(encoding="utf-8"))
    assert document["session"]["verdict"] == "PASS"
    assert [item["role"] for item in document["session"]["rounds"]] == [
        "verifier",
        "critic",
        "verifier",
    ]


@pytest.mark.smoke
def test_rollback_then_resume(tmp_path: Path) -> None:
    repo = _seed_repo(tmp_path / "repo")
    orchestrator = _orchestrator(tmp_path, auto_checkpoint_interval=1)
    started = orchestrator.start_session("src/auth", "", repo)
    assert started is not None
    session_id = started.session_id

    orchestrator.submit_round(
        session_id,
        "verifier",
        "SEC-01 [HIGH] SECURITY issue at src/auth/login.py:5",
        issues_raised=[_issue("SEC-01", "HIGH", "SECURITY", "src/auth/login.py:5")],
    )
    orchestrator.submit_round(session_id, "critic", "SEC-01: INVALID, the value is hashed.")
    orchestrator.submit_round(
        session_id,
        "verifier",
        "PRF-01 [LOW] PERFORMANCE issue at src/auth/token.py:1",
        issues_raised=[_issue("PRF-01", "LOW", "PERFORMANCE", "src/auth/token.py:1")],
    )

    restored = _orchestrator(tmp_path).rollback(session_id, 1)
    assert restored is not None
    assert restored.issues_restored == 1

    view = orchestrator.get_context(session_id)
    assert view is not None
    assert view.current_round == 1
    assert view.status is SessionStatus.VERIFYING
    assert view.next_role is NextRole.CRITIC

    resumed = orchestrator.submit_round(session_id, "critic", "SEC-01: VALID, confirmed.")
    assert resumed is not None
    assert resumed.round_number == 2
    issues = orchestrator.get_issues(session_id, "all")
    assert issues is not None
    assert [(issue.id, issue.status) for issue in issues] == [("SEC-01", IssueStatus.RAISED)]


@pytest.mark.smoke
def test_discovered_files_are_added_once(tmp_path: Path) -> None:
    repo = _seed_repo(tmp_path / "repo")
    orchestrator = _orchestrator(tmp_path, max_rounds=8)
    started = orchestrator.start_session("src/auth", "", repo)
    assert started is not None
    session_id = started.session_id
    db_path = str(repo / "src" / "db.py")

    sec = _issue("SEC-01", "HIGH", "SECURITY", "src/auth/login.py:5")
    rel = _issue("REL-01", "MEDIUM", "RELIABILITY", "src/db.py:2")
    rounds = [
        ("verifier", "SEC-01 [HIGH] SECURITY issue at src/auth/login.py:5", [sec]),
        ("critic", "SEC-01: VALID, confirmed.", []),
        ("verifier", "REL-01 [MEDIUM] RELIABILITY issue at src/db.py:2", [rel]),
        ("critic", "REL-01: PARTIAL, only on retries.", []),
        ("verifier", "Re-read src/db.py:2 for RELIABILITY, nothing further.", []),
    ]
    discovered: list[tuple[str, ...]] = []
    for role, output, raised in rounds:
        result = orchestrator.submit_round(session_id, role, output, issues_raised=raised)
        assert result is not None
        discovered.append(result.new_files_discovered)

    assert discovered[2] == (db_path,)
    assert discovered[4] == ()

    view = orchestrator.get_context(session_id)
    assert view is not None
    matches = [item for item in view.files if item.path == db_path]
    assert len(matches) == 1
    assert matches[0].layer is Layer.DISCOVERED
    assert matches[0].added_in_round == 3
