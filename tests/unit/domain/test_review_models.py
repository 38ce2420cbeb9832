"""Unit tests for review domain models: validation and canonical serialization."""

from __future__ import annotations

import json

import pytest

from crossexam.domain.models import (
    Checkpoint,
    FileContext,
    Issue,
    IssueStatus,
    Layer,
    Role,
    Session,
    SessionStatus,
    Severity,
    Verdict,
)

from .. import FIXED_NOW, issue_report, make_context, make_issue, make_round, make_session


def test_issue_from_report_starts_raised() -> None:
    issue = Issue.from_report(
        issue_report("SEC-01", severity="CRITICAL", summary="  SQL injection  "),
        raised_by=Role.VERIFIER,
        raised_in_round=1,
    )
    assert issue.status is IssueStatus.RAISED
    assert issue.severity is Severity.CRITICAL
    assert issue.summary == "SQL injection"
    assert issue.raised_by is Role.VERIFIER
    assert issue.resolved_in_round is None


def test_issue_from_report_optional_fields_default_empty() -> None:
    issue = Issue.from_report(
        {"id": "COR-02", "category": "CORRECTNESS", "severity": "LOW", "summary": "off by one"},
        raised_by=Role.VERIFIER,
        raised_in_round=3,
    )
    assert issue.location == ""
    assert issue.description == ""
    assert issue.evidence == ""


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"id": "SEC-01", "category": "SECURITY", "severity": "HIGH"}, "missing required"),
        ({**issue_report("SEC-01"), "severity": "BLOCKER"}, "invalid value 'BLOCKER'"),
        ({**issue_report("SEC-01"), "category": "STYLE"}, "invalid value 'STYLE'"),
        ({**issue_report("SEC-01"), "status": "RESOLVED"}, "unexpected fields"),
        ({**issue_report("SEC-01"), "summary": "   "}, "at least 1"),
    ],
)
def test_issue_from_report_rejects_malformed_payloads(
    payload: dict[str, object], message: str
) -> None:
    with pytest.raises(ValueError, match=message):
        Issue.from_report(payload, raised_by=Role.VERIFIER, raised_in_round=1)


def test_file_context_layer_and_round_must_agree() -> None:
    with pytest.raises(ValueError, match="base files have no discovery round"):
        FileContext(path="/repo/a.py", content="", layer=Layer.BASE, added_in_round=2)
    with pytest.raises(ValueError, match="discovered files require a discovery round"):
        FileContext(path="/repo/a.py", content="", layer=Layer.DISCOVERED)


def test_verification_context_never_replaces_a_recorded_path() -> None:
    context = make_context({"/repo/src/auth/login.py": "original"})
    replacement = FileContext(
        path="/repo/src/auth/login.py",
        content="changed",
        layer=Layer.DISCOVERED,
        added_in_round=3,
    )
    assert context.add(replacement) is False
    stored = context.files["/repo/src/auth/login.py"]
    assert stored.content == "original"
    assert stored.layer is Layer.BASE
    assert "/repo/src/auth/login.py" in context
    assert len(context) == 1


def test_session_requires_current_round_to_match_rounds() -> None:
    with pytest.raises(ValueError, match="current_round"):
        Session(
            id="2026-10-17_src-auth_abc123",
            target="src/auth",
            requirements="",
            working_dir="/repo",
            context=make_context(),
            current_round=2,
            rounds=[make_round(1)],
        )


def test_session_requires_contiguous_round_numbers() -> None:
    with pytest.raises(ValueError, match="expected 2, got 3"):
        Session(
            id="2026-10-17_src-auth_abc123",
            target="src/auth",
            requirements="",
            working_dir="/repo",
            context=make_context(),
            current_round=2,
            rounds=[make_round(1), make_round(3)],
        )


def test_session_rejects_unsafe_id() -> None:
    with pytest.raises(ValueError, match="Session.id"):
        make_session(session_id="../escape")


def test_session_rejects_duplicate_issue_ids() -> None:
    with pytest.raises(ValueError, match="duplicate"):
        make_session(issues=[make_issue("SEC-01"), make_issue("SEC-01")])


def test_session_round_trips_through_canonical_json() -> None:
    context = make_context({"/repo/src/auth/login.py": "import db\n"})
    context.add(
        FileContext(
            path="/repo/src/db.py",
            content="def query():\n    pass\n",
            layer=Layer.DISCOVERED,
            added_in_round=1,
        )
    )
    issue = make_issue("SEC-01", severity=Severity.CRITICAL)
    session = make_session(
        context=context,
        rounds=[make_round(1, output="SEC-01 at src/auth/login.py:12", issues_raised=["SEC-01"])],
        issues=[issue],
        status=SessionStatus.VERIFYING,
    )
    session.checkpoints.append(
        Checkpoint(
            round_number=1,
            context_files=context.paths(),
            issues_snapshot=(make_issue("SEC-01", severity=Severity.CRITICAL),),
            timestamp=FIXED_NOW,
        )
    )
    session.verdict = Verdict.CONDITIONAL

    encoded = session.to_json()
    restored = Session.from_json(encoded)

    assert restored == session
    assert json.loads(encoded)["context"]["files"]["/repo/src/db.py"]["added_in_round"] == 1
    assert restored.context.files["/repo/src/db.py"].layer is Layer.DISCOVERED


def test_enum_helpers() -> None:
    assert Role.VERIFIER.opposite is Role.CRITIC
    assert Role.CRITIC.opposite is Role.VERIFIER
    assert SessionStatus.FORCED_STOP.is_terminal
    assert SessionStatus.CONVERGED.is_terminal
    assert not SessionStatus.CONVERGING.is_terminal
    assert Severity.CRITICAL.rank > Severity.HIGH.rank > Severity.MEDIUM.rank > Severity.LOW.rank
