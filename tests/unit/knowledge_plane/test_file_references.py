"""Unit tests for round-output reference extraction and dependency adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from crossexam.knowledge_plane.references import (
    AdapterParseError,
    PythonImportAdapter,
    RegexReferenceExtractor,
    ScriptImportAdapter,
    adapter_for_path,
    default_adapters,
    extract_mentioned_files,
    is_plausible_file_reference,
)

from .. import write_tree

if TYPE_CHECKING:
    from pathlib import Path


def test_extracts_path_line_mentions() -> None:
    found = RegexReferenceExtractor().extract("SEC-01 at src/db/query.ts:42 is injectable")
    assert "src/db/query.ts" in found


def test_extracts_fenced_block_paths() -> None:
    text = "Evidence:\n```ts src/auth/session.ts\nconst token = req.query.t\n```"
    assert "src/auth/session.ts" in RegexReferenceExtractor().extract(text)


def test_extracts_import_and_require_specifiers() -> None:
    text = "import { query } from './db/client.js'\nconst cfg = require('../config/index.js')"
    found = RegexReferenceExtractor().extract(text)
    assert "./db/client.js" in found
    assert "../config/index.js" in found


def test_extracts_file_keyword_mentions() -> None:
    found = RegexReferenceExtractor().extract("See file: `lib/crypto.py` for the hashing code")
    assert "lib/crypto.py" in found


def test_extraction_is_ordered_and_deduplicated() -> None:
    text = "src/a.py:1 then src/b.py:2 then src/a.py:9"
    found = RegexReferenceExtractor().extract(text)
    assert found.index("src/a.py") < found.index("src/b.py")
    assert found.count("src/a.py") == 1


@pytest.mark.parametrize(
    "candidate",
    [
        "https://example.com/a.js",
        "node_modules/lodash/index.js",
        "package.json",
        ".env.local",
        ".git/config.txt",
        "ab",
        "README",
        "x" * 201 + ".py",
        "yarn.lock",
        "poetry.lock",
        "frontend/package-lock.json",
        "pnpm-lock.yaml",
        "Cargo.lock",
    ],
)
def test_implausible_references_are_rejected(candidate: str) -> None:
    assert not is_plausible_file_reference(candidate)


def test_vendored_and_manifest_references_are_not_extracted() -> None:
    text = "require('node_modules/lodash/lodash.js') and require('package.json')"
    assert RegexReferenceExtractor().extract(text) == ()


def test_lockfile_mentions_are_not_extracted() -> None:
    text = "see yarn.lock:3 and poetry.lock:1, then src/app.py:8"
    assert RegexReferenceExtractor().extract(text) == ("src/app.py",)


def test_long_path_like_tokens_are_scanned_in_linear_time() -> None:
    blob = "QUJD" * 10_000 + ".py:1"
    text = f"payload {blob} near src/app.py:8 and `{blob}`"

    assert RegexReferenceExtractor().extract(text) == ("src/app.py",)
    mentions = {item.path: item.lines for item in extract_mentioned_files(text)}
    assert mentions == {"src/app.py": (8,)}


def test_mentioned_files_collect_line_numbers() -> None:
    text = (
        "Problem in src/db.py:10 and src/db.py:4. "
        "Also auth.ts (line 7) and `util/helpers.py` without a line."
    )
    mentions = {item.path: item.lines for item in extract_mentioned_files(text)}
    assert mentions["src/db.py"] == (4, 10)
    assert mentions["auth.ts"] == (7,)
    assert mentions["util/helpers.py"] == ()


def test_python_adapter_reports_imports_and_calls(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "pkg/__init__.py": "",
            "pkg/db.py": "def query():\n    return 1\n",
            "pkg/service.py": (
                "import os\n"
                "from pkg import db\n"
                "from . import db as local_db\n"
                "from .db import query\n\n"
                "def handler():\n"
                "    return query() + local_db.query()\n"
            ),
        },
    )
    path = tmp_path / "pkg" / "service.py"
    analysis = PythonImportAdapter().analyze(source=path.read_text(encoding="utf-8"), path=path)

    assert analysis.language == "python_ast"
    assert "os" in analysis.dependencies
    assert "pkg" in analysis.dependencies
    assert "pkg.db" in analysis.dependencies
    assert str(tmp_path / "pkg" / "db.py") in analysis.dependencies
    handler = next(item for item in analysis.functions if item.name == "handler")
    assert "query" in handler.calls


def test_python_adapter_raises_on_syntax_error(tmp_path: Path) -> None:
    with pytest.raises(AdapterParseError, match="SyntaxError at line 1"):
        PythonImportAdapter().analyze(source="def broken(:\n", path=tmp_path / "bad.py")


def test_script_adapter_resolves_relative_specifiers(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "src/db.ts": "export function query() { return 1 }\n",
            "src/api.ts": (
                "import { query } from './db'\n"
                "import express from 'express'\n"
                "export function listUsers(req) {\n"
                "  return query(req.id)\n"
                "}\n"
            ),
        },
    )
    path = tmp_path / "src" / "api.ts"
    analysis = ScriptImportAdapter().analyze(source=path.read_text(encoding="utf-8"), path=path)

    assert str(tmp_path / "src" / "db.ts") in analysis.dependencies
    assert "express" in analysis.dependencies
    list_users = next(item for item in analysis.functions if item.name == "listUsers")
    assert "query" in list_users.calls


def test_adapter_for_path_dispatches_by_suffix(tmp_path: Path) -> None:
    adapters = default_adapters()
    assert adapter_for_path(tmp_path / "a.py", adapters).name == "python_ast"
    assert adapter_for_path(tmp_path / "a.TSX", adapters).name == "script_regex"
    assert adapter_for_path(tmp_path / "a.go", adapters) is None
