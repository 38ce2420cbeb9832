"""
crossexam — unit tests for the layered verification context

File: tests/unit/knowledge_plane/test_context_layers.py
Last updated: 2026-10-17

Purpose
- Validate base collection, discovery of referenced files, and the summary
  handed to the acting role.

What this test file should cover
- Directory and extension exclusions, size/binary/encoding skips.
- Discovery layering: a path is recorded once with its first discovery round.
- Working-directory confinement for discovered references.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from structlog.testing import capture_logs

from crossexam.domain.models import FileContext, Layer
from crossexam.knowledge_plane.context_store import (
    ContextLimits,
    ContextStore,
    reference_in_context,
    render_context_summary,
    resolve_target,
)

from .. import write_tree

if TYPE_CHECKING:
    from pathlib import Path


def _repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    write_tree(
        root,
        {
            "src/auth/login.py": (
                "import os\nfrom . import token\n\ndef login():\n    return token.issue()\n"
            ),
            "src/auth/token.py": "def issue():\n    return 't'\n",
            "src/auth/README.md": "# notes\n",
            "src/auth/node_modules/dep/index.js": "module.exports = 1\n",
            "src/db.py": "def query(sql):\n    return sql\n",
            "src/cache.py": "CACHE = {}\n",
        },
    )
    (root / "src" / "auth" / "blob.py").write_bytes(b"\x00\x01binary")
    (root / "src" / "auth" / "latin.py").write_bytes(b"name = '\xe9'\n")
    return root


def test_collect_base_walks_code_files_and_skips_noise(tmp_path: Path) -> None:
    root = _repo(tmp_path)
    context = ContextStore().collect_base("src/auth", root, requirements="security review")

    auth = (root / "src" / "auth").resolve()
    assert context.paths() == (str(auth / "login.py"), str(auth / "token.py"))
    assert all(item.layer is Layer.BASE for item in context.files.values())
    assert all(item.added_in_round is None for item in context.files.values())
    assert context.requirements == "security review"


def test_collect_base_records_dependencies(tmp_path: Path) -> None:
    root = _repo(tmp_path)
    context = ContextStore().collect_base("src/auth", root)

    login = context.files[str((root / "src" / "auth" / "login.py").resolve())]
    assert "os" in login.dependencies
    assert str((root / "src" / "auth" / "token.py").resolve()) in login.dependencies


def test_collect_base_accepts_a_single_file(tmp_path: Path) -> None:
    root = _repo(tmp_path)
    context = ContextStore().collect_base("src/db.py", root)
    assert context.paths() == (str((root / "src" / "db.py").resolve()),)


def test_missing_target_yields_empty_context(tmp_path: Path) -> None:
    root = _repo(tmp_path)
    with capture_logs() as logs:
        context = ContextStore().collect_base("src/ghost", root)

    assert len(context) == 0
    assert any(entry["event"] == "context_target_missing" for entry in logs)


def test_oversize_files_are_skipped(tmp_path: Path) -> None:
    root = _repo(tmp_path)
    store = ContextStore(ContextLimits(max_file_bytes=30))
    with capture_logs() as logs:
        context = store.collect_base("src/auth", root)

    assert context.paths() == (str((root / "src" / "auth" / "token.py").resolve()),)
    reasons = {entry.get("reason") for entry in logs if entry["event"] == "context_file_skipped"}
    assert "too_large" in reasons


def test_discover_adds_referenced_files_once(tmp_path: Path) -> None:
    root = _repo(tmp_path)
    store = ContextStore()
    context = store.collect_base("src/auth", root)
    db_path = str((root / "src" / "db.py").resolve())

    added = store.discover(
        context, "SEC-01: unsanitized input reaches src/db.py:2", working_dir=root, round_number=3
    )
    assert added == (db_path,)
    assert context.files[db_path].layer is Layer.DISCOVERED
    assert context.files[db_path].added_in_round == 3

    again = store.discover(
        context, "still about src/db.py:1 and src/db.py:2", working_dir=root, round_number=5
    )
    assert again == ()
    assert context.files[db_path].added_in_round == 3
    assert list(context.paths()).count(db_path) == 1


def test_discover_ignores_missing_and_known_references(tmp_path: Path) -> None:
    root = _repo(tmp_path)
    store = ContextStore()
    context = store.collect_base("src/auth", root)

    text = "see src/auth/login.py:4 and ghost/absent.py:9"
    assert store.find_new_references(context, text) == ("ghost/absent.py",)
    assert store.discover(context, text, working_dir=root, round_number=1) == ()
    assert len(context) == 2


def test_discover_is_confined_to_working_dir(tmp_path: Path) -> None:
    root = _repo(tmp_path)
    (tmp_path / "outside.py").write_text("SECRET = 1\n", encoding="utf-8")
    text = "compare with ../outside.py:1"

    confined = ContextStore()
    context = confined.collect_base("src/auth", root)
    assert confined.discover(context, text, working_dir=root, round_number=1) == ()

    relaxed = ContextStore(ContextLimits(restrict_to_working_dir=False))
    context = relaxed.collect_base("src/auth", root)
    added = relaxed.discover(context, text, working_dir=root, round_number=1)
    assert added == (str((tmp_path / "outside.py").resolve()),)


def test_analyze_tolerates_unparseable_and_unknown_files() -> None:
    store = ContextStore()
    broken = FileContext(path="/repo/broken.py", content="def broken(:\n")
    unknown = FileContext(path="/repo/main.go", content="package main\n")
    assert store.analyze(broken) is None
    assert store.analyze(unknown) is None


def test_reference_matching_by_suffix() -> None:
    paths = ("/repo/src/db.py", "/repo/src/auth/login.py")
    assert reference_in_context("src/db.py", paths)
    assert reference_in_context("/repo/src/auth/login.py", paths)
    assert not reference_in_context("src/cache.py", paths)


def test_resolve_target_keeps_absolute_paths(tmp_path: Path) -> None:
    absolute = tmp_path / "x.py"
    assert resolve_target(str(absolute), "/elsewhere") == absolute.resolve()
    assert resolve_target("x.py", tmp_path) == absolute.resolve()


def test_context_summary_lists_both_layers(tmp_path: Path) -> None:
    root = _repo(tmp_path)
    store = ContextStore()
    context = store.collect_base("src/auth", root, requirements="security review")

    before = render_context_summary(context)
    assert before.startswith("## Verification Context")
    assert "**Target**: src/auth" in before
    assert "**Requirements**: security review" in before
    assert "(none yet)" in before

    store.discover(context, "src/db.py:1", working_dir=root, round_number=2)
    after = render_context_summary(context)
    db_path = str((root / "src" / "db.py").resolve())
    assert f"- {db_path} (discovered in round 2)" in after
    assert "(none yet)" not in after
