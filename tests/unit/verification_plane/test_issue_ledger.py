"""Unit tests for the issue ledger and round log views."""

from __future__ import annotations

import pytest

from crossexam.domain.models import Issue, IssueFilter, IssueStatus, Role, Round, Severity
from crossexam.verification_plane.issue_ledger import IssueLedger, summarize_issues
from crossexam.verification_plane.round_log import RoundLog

from .. import make_issue, make_round

try:
    from hypothesis import given, settings
    from hypothesis import strategies as st
except ModuleNotFoundError:
    _HYPOTHESIS_AVAILABLE = False
else:
    _HYPOTHESIS_AVAILABLE = True


def test_upsert_replaces_entries_in_place() -> None:
    issues = [make_issue("SEC-01"), make_issue("COR-01", severity=Severity.LOW)]
    ledger = IssueLedger(issues)

    assert ledger.upsert(make_issue("SEC-01", severity=Severity.CRITICAL, summary="worse")) is False
    assert ledger.upsert(make_issue("REL-01")) is True

    assert [issue.id for issue in issues] == ["SEC-01", "COR-01", "REL-01"]
    assert issues[0].severity is Severity.CRITICAL
    assert issues[0].summary == "worse"


def test_resolve_and_challenge_only_touch_known_ids() -> None:
    ledger = IssueLedger([make_issue("SEC-01"), make_issue("SEC-02")])

    assert ledger.resolve("SEC-01", round_number=2, resolution="parameterized") is True
    assert ledger.resolve("NOPE-1", round_number=2) is False
    assert ledger.challenge("SEC-02", round_number=2) is True
    assert ledger.challenge("SEC-02", round_number=4) is False
    assert ledger.challenge("SEC-01", round_number=4) is False

    resolved = ledger.get("SEC-01")
    challenged = ledger.get("SEC-02")
    assert resolved is not None and challenged is not None
    assert resolved.status is IssueStatus.RESOLVED
    assert resolved.resolved_in_round == 2
    assert resolved.resolution == "parameterized"
    assert challenged.status is IssueStatus.CHALLENGED
    assert challenged.challenged_in_round == 2


def test_mark_unresolved_closes_open_issues() -> None:
    ledger = IssueLedger(
        [
            make_issue("SEC-01"),
            make_issue("SEC-02", status=IssueStatus.CHALLENGED),
            make_issue("SEC-03", status=IssueStatus.RESOLVED),
        ]
    )
    assert ledger.mark_unresolved() == 2
    assert [issue.status for issue in ledger] == [
        IssueStatus.UNRESOLVED,
        IssueStatus.UNRESOLVED,
        IssueStatus.RESOLVED,
    ]


def test_filters() -> None:
    ledger = IssueLedger(
        [
            make_issue("SEC-01", severity=Severity.CRITICAL),
            make_issue("SEC-02", severity=Severity.CRITICAL, status=IssueStatus.RESOLVED),
            make_issue("COR-01", severity=Severity.MEDIUM),
        ]
    )
    assert [issue.id for issue in ledger.filter(IssueFilter.ALL)] == ["SEC-01", "SEC-02", "COR-01"]
    assert [issue.id for issue in ledger.filter("unresolved")] == ["SEC-01", "COR-01"]
    assert [issue.id for issue in ledger.filter(IssueFilter.CRITICAL)] == ["SEC-01", "SEC-02"]
    with pytest.raises(ValueError):
        ledger.filter("everything")


def test_snapshot_does_not_alias_live_issues() -> None:
    issues = [make_issue("SEC-01")]
    ledger = IssueLedger(issues)
    snapshot = ledger.snapshot()

    ledger.resolve("SEC-01", round_number=3)
    assert snapshot[0].status is IssueStatus.RAISED

    ledger.replace_all(snapshot)
    assert issues[0].status is IssueStatus.RAISED
    assert issues[0] is not snapshot[0]


def test_summary_always_has_every_key() -> None:
    summary = summarize_issues(
        [
            make_issue("SEC-01", severity=Severity.CRITICAL),
            make_issue("SEC-02", severity=Severity.CRITICAL, status=IssueStatus.RESOLVED),
        ]
    )
    assert summary.total == 2
    assert summary.unresolved == 1
    assert summary.critical_unresolved == 1
    assert summary.by_severity == {"CRITICAL": 2, "HIGH": 0, "MEDIUM": 0, "LOW": 0}
    assert summary.by_status["RESOLVED"] == 1
    assert summary.to_dict()["by_status"]["UNRESOLVED"] == 0


def test_round_log_appends_contiguously() -> None:
    rounds = [make_round(1)]
    log = RoundLog(rounds)
    assert log.next_number == 2

    with pytest.raises(ValueError, match="expected round 2, got 3"):
        log.append(make_round(3))

    log.append(make_round(2))
    assert [entry.number for entry in rounds] == [1, 2]


def test_round_log_queries() -> None:
    log = RoundLog(
        [
            make_round(1, issues_raised=["SEC-01"]),
            make_round(2),
            make_round(3),
        ]
    )
    last_critic = log.last(Role.CRITIC)
    assert last_critic is not None and last_critic.number == 2
    last = log.last()
    assert last is not None and last.number == 3
    assert [entry.number for entry in log.recent(2)] == [2, 3]
    assert log.recent(0) == ()
    assert log.trailing_quiet_rounds() == 2


def test_round_log_truncate() -> None:
    rounds = [make_round(1), make_round(2), make_round(3)]
    log = RoundLog(rounds)
    assert log.truncate(1) == 2
    assert [entry.number for entry in rounds] == [1]
    assert log.truncate(5) == 0
    with pytest.raises(ValueError):
        log.truncate(-1)


if _HYPOTHESIS_AVAILABLE:

    @settings(max_examples=25, derandomize=True, deadline=None)
    @given(ids=st.lists(st.sampled_from(["SEC-01", "SEC-02", "COR-01", "PRF-09"]), max_size=12))
    def test_upsert_is_idempotent_per_id(ids: list[str]) -> None:
        issues: list[Issue] = []
        ledger = IssueLedger(issues)
        for issue_id in ids:
            ledger.upsert(make_issue(issue_id))
        for issue_id in ids:
            ledger.upsert(make_issue(issue_id))
        assert sorted(issue.id for issue in issues) == sorted(set(ids))

    @settings(max_examples=25, derandomize=True, deadline=None)
    @given(count=st.integers(min_value=0, max_value=15))
    def test_round_numbers_stay_contiguous(count: int) -> None:
        rounds: list[Round] = []
        log = RoundLog(rounds)
        for _ in range(count):
            log.append(make_round(log.next_number))
        assert [entry.number for entry in rounds] == list(range(1, count + 1))

else:

    def test_upsert_is_idempotent_per_id() -> None:
        pytest.skip("hypothesis is not installed")

    def test_round_numbers_stay_contiguous() -> None:
        pytest.skip("hypothesis is not installed")
