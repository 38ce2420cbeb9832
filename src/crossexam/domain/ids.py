"""Session identifier generation and validation."""

from __future__ import annotations

import re
import secrets
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Final

SESSION_ID_MAX_LENGTH: Final[int] = 100
SESSION_ID_SLUG_LENGTH: Final[int] = 30
SESSION_ID_SUFFIX_LENGTH: Final[int] = 6
BASE36_ALPHABET: Final[str] = "0123456789abcdefghijklmnopqrstuvwxyz"

_SESSION_ID_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_-]+$")
_SLUG_UNSAFE_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9]")

_RandChoice = Callable[[str], str]

__all__ = [
    "BASE36_ALPHABET",
    "SESSION_ID_MAX_LENGTH",
    "InvalidSessionIdError",
    "generate_session_id",
    "is_valid_session_id",
    "validate_session_id",
]


class InvalidSessionIdError(ValueError):
    """Raised when a session id could be used to escape the sessions directory."""


def generate_session_id(
    target: str,
    *,
    now: datetime | None = None,
    choice: _RandChoice | None = None,
) -> str:
    """Build ``{YYYY-MM-DD}_{target slug}_{6 base36 chars}``.

    The slug replaces every non-alphanumeric character of ``target`` with ``-``
    and keeps the first 30 characters, so ids stay readable in a directory listing.
    """
    moment = now if now is not None else datetime.now(tz=UTC)
    pick = choice if choice is not None else secrets.choice
    slug = _SLUG_UNSAFE_RE.sub("-", target)[:SESSION_ID_SLUG_LENGTH]
    suffix = "".join(pick(BASE36_ALPHABET) for _ in range(SESSION_ID_SUFFIX_LENGTH))
    session_id = f"{moment.strftime('%Y-%m-%d')}_{slug}_{suffix}"
    validate_session_id(session_id)
    return session_id


def validate_session_id(session_id: object) -> str:
    """Validate a session id and raise ``InvalidSessionIdError`` on failure."""
    if not isinstance(session_id, str):
        raise InvalidSessionIdError(
            f"session id must be a string, got {type(session_id).__name__}"
        )
    if not session_id:
        raise InvalidSessionIdError("session id must not be empty")
    if len(session_id) > SESSION_ID_MAX_LENGTH:
        raise InvalidSessionIdError(
            f"session id must be <= {SESSION_ID_MAX_LENGTH} characters, got {len(session_id)}"
        )
    if ".." in session_id:
        raise InvalidSessionIdError("session id must not contain '..'")
    if not _SESSION_ID_RE.fullmatch(session_id):
        raise InvalidSessionIdError(
            "session id may only contain letters, digits, '-' and '_'"
        )
    return session_id


def is_valid_session_id(session_id: object) -> bool:
    try:
        validate_session_id(session_id)
    except InvalidSessionIdError:
        return False
    return True
