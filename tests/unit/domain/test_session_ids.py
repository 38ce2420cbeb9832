"""Unit tests for session id generation and validation."""

from __future__ import annotations

import pytest

from crossexam.domain import ids

from .. import FIXED_NOW

try:
    from hypothesis import given, settings
    from hypothesis import strategies as st
except ModuleNotFoundError:
    _HYPOTHESIS_AVAILABLE = False
else:
    _HYPOTHESIS_AVAILABLE = True


def _first_char(alphabet: str) -> str:
    return alphabet[0]


def test_generate_session_id_layout() -> None:
    session_id = ids.generate_session_id("src/auth", now=FIXED_NOW, choice=_first_char)
    assert session_id == "2026-10-17_src-auth_000000"
    assert ids.is_valid_session_id(session_id)


def test_generate_session_id_truncates_slug_to_thirty_chars() -> None:
    session_id = ids.generate_session_id("x" * 80, now=FIXED_NOW, choice=_first_char)
    date, slug, suffix = session_id.split("_")
    assert date == "2026-10-17"
    assert slug == "x" * 30
    assert len(suffix) == 6


def test_generated_suffix_uses_base36_alphabet() -> None:
    session_id = ids.generate_session_id("lib/db.py", now=FIXED_NOW)
    suffix = session_id.rsplit("_", 1)[1]
    assert len(suffix) == 6
    assert all(char in ids.BASE36_ALPHABET for char in suffix)
    assert "lib-db-py" in session_id


@pytest.mark.parametrize(
    ("candidate", "message"),
    [
        ("", "must not be empty"),
        ("../../etc/passwd", "'..'"),
        ("a..b", "'..'"),
        ("nested/session", "may only contain"),
        ("with space", "may only contain"),
        ("x" * 101, "<= 100 characters"),
    ],
)
def test_validate_session_id_rejects_unsafe_values(candidate: str, message: str) -> None:
    with pytest.raises(ids.InvalidSessionIdError, match=message):
        ids.validate_session_id(candidate)
    assert not ids.is_valid_session_id(candidate)


def test_validate_session_id_rejects_non_strings() -> None:
    with pytest.raises(ids.InvalidSessionIdError, match="must be a string"):
        ids.validate_session_id(42)


def test_validate_session_id_accepts_boundary_length() -> None:
    candidate = "a" * ids.SESSION_ID_MAX_LENGTH
    assert ids.validate_session_id(candidate) == candidate


if _HYPOTHESIS_AVAILABLE:

    @settings(max_examples=25, derandomize=True, deadline=None)
    @given(target=st.text(max_size=120))
    def test_generated_ids_always_validate(target: str) -> None:
        session_id = ids.generate_session_id(target, now=FIXED_NOW)
        assert ids.is_valid_session_id(session_id)
        assert len(session_id) <= ids.SESSION_ID_MAX_LENGTH

    @settings(max_examples=25, derandomize=True, deadline=None)
    @given(
        prefix=st.text(alphabet="abc-_", max_size=10),
        bad=st.sampled_from(["/", "\\", ".", " ", "\x00", "%"]),
    )
    def test_ids_with_path_characters_are_rejected(prefix: str, bad: str) -> None:
        assert not ids.is_valid_session_id(prefix + bad + "x")

else:

    def test_generated_ids_always_validate() -> None:
        pytest.skip("hypothesis is not installed")

    def test_ids_with_path_characters_are_rejected() -> None:
        pytest.skip("hypothesis is not installed")
