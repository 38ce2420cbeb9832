"""
crossexam — session document store

File: src/crossexam/persistence/session_store.py
Last updated: 2026-10-17

Purpose
- Durable, whole-document storage for review sessions.

What should be included in this file
- One directory per session id holding ``session.json``.
- A versioned envelope with a monotonically increasing ``revision``.
- Schema-on-read validation through ``Session.from_dict``.

Functional requirements
- Session ids are validated before any path is derived from them.
- Writes are atomic; a stale ``expected_revision`` raises ``SessionConflictError``.
- Malformed documents raise ``MalformedSessionError`` and are never partially repaired.

Non-functional requirements
- Standard library JSON only; documents stay human-readable and diffable.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

import structlog

from crossexam.constants import SESSION_DOCUMENT_NAME, SESSION_DOCUMENT_SCHEMA_VERSION
from crossexam.domain import ids
from crossexam.domain.models import Session
from crossexam.utils.fs import atomic_write, ensure_directory

_ENVELOPE_KEYS: Final[frozenset[str]] = frozenset({"schema_version", "revision", "session"})


class SessionStoreError(RuntimeError):
    """Base class for session persistence errors."""


class SessionNotFoundError(SessionStoreError):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"session not found: {session_id}")


class MalformedSessionError(SessionStoreError):
    """Stored document failed structural validation."""

    def __init__(self, session_id: str, reason: str) -> None:
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"malformed session document {session_id}: {reason}")


class SessionConflictError(SessionStoreError):
    """Stored revision moved since the caller read the session."""

    def __init__(self, session_id: str, *, expected: int, actual: int) -> None:
        self.session_id = session_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"session {session_id} revision conflict: expected {expected}, found {actual}"
        )


class SessionStore:
    """Filesystem-backed store of session documents under ``sessions_dir``."""

    def __init__(self, sessions_dir: str | Path, *, logger: Any | None = None) -> None:
        self._root = Path(sessions_dir).expanduser()
        self._log = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def root(self) -> Path:
        return self._root

    def document_path(self, session_id: str) -> Path:
        """Path of the session document; raises ``InvalidSessionIdError`` first."""

        valid_id = ids.validate_session_id(session_id)
        return self._root / valid_id / SESSION_DOCUMENT_NAME

    def exists(self, session_id: str) -> bool:
        return self.document_path(session_id).is_file()

    def revision(self, session_id: str) -> int | None:
        """Stored revision without decoding the session; ``None`` when absent."""

        return self._current_revision(session_id, self.document_path(session_id))

    def load(self, session_id: str) -> tuple[Session, int]:
        """Return the stored session and the revision it was read at."""

        path = self.document_path(session_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise SessionNotFoundError(session_id) from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise MalformedSessionError(session_id, f"unreadable: {exc}") from exc

        envelope = _parse_envelope(session_id, raw)
        try:
            session = Session.from_dict(envelope["session"])
        except (ValueError, TypeError, KeyError) as exc:
            raise MalformedSessionError(session_id, str(exc)) from exc
        if session.id != session_id:
            raise MalformedSessionError(
                session_id, f"document belongs to session {session.id!r}"
            )
        return session, envelope["revision"]

    def save(self, session: Session, *, expected_revision: int | None = None) -> int:
        """Write ``session`` and return its new revision.

        ``expected_revision`` of ``None`` means the caller has not read the
        document (creation); a document must then not exist yet.
        """

        path = self.document_path(session.id)
        current = self._current_revision(session.id, path)
        if expected_revision is None and current is not None:
            raise SessionConflictError(session.id, expected=0, actual=current)
        if expected_revision is not None and current != expected_revision:
            raise SessionConflictError(
                session.id, expected=expected_revision, actual=current if current is not None else 0
            )

        revision = (current or 0) + 1
        envelope = {
            "schema_version": SESSION_DOCUMENT_SCHEMA_VERSION,
            "revision": revision,
            "session": session.to_dict(),
        }
        ensure_directory(path.parent)
        document = json.dumps(envelope, indent=2, sort_keys=True, ensure_ascii=False)
        atomic_write(path, document + "\n")
        self._log.debug("session_saved", session_id=session.id, revision=revision)
        return revision

    def list_session_ids(self) -> list[str]:
        if not self._root.is_dir():
            return []
        found: list[str] = []
        for entry in self._root.iterdir():
            if not entry.is_dir() or not ids.is_valid_session_id(entry.name):
                continue
            if (entry / SESSION_DOCUMENT_NAME).is_file():
                found.append(entry.name)
        return sorted(found)

    def _current_revision(self, session_id: str, path: Path) -> int | None:
        if not path.is_file():
            return None
        try:
            raw = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise MalformedSessionError(session_id, f"unreadable: {exc}") from exc
        return _parse_envelope(session_id, raw)["revision"]


def _parse_envelope(session_id: str, raw: str) -> dict[str, Any]:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedSessionError(session_id, f"invalid JSON: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise MalformedSessionError(session_id, "document root must be an object")

    keys = set(payload)
    if keys != _ENVELOPE_KEYS:
        missing = sorted(_ENVELOPE_KEYS - keys)
        unknown = sorted(keys - _ENVELOPE_KEYS)
        raise MalformedSessionError(session_id, f"envelope missing={missing} unknown={unknown}")

    version = payload["schema_version"]
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise MalformedSessionError(session_id, "schema_version must be a positive integer")
    if version > SESSION_DOCUMENT_SCHEMA_VERSION:
        raise MalformedSessionError(
            session_id,
            f"schema_version {version} is newer than supported {SESSION_DOCUMENT_SCHEMA_VERSION}",
        )
    revision = payload["revision"]
    if isinstance(revision, bool) or not isinstance(revision, int) or revision < 1:
        raise MalformedSessionError(session_id, "revision must be a positive integer")
    if not isinstance(payload["session"], Mapping):
        raise MalformedSessionError(session_id, "session must be an object")
    return dict(payload)


__all__ = [
    "MalformedSessionError",
    "SessionConflictError",
    "SessionNotFoundError",
    "SessionStore",
    "SessionStoreError",
]
