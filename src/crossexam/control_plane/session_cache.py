"""Same-process session cache; storage stays the source of truth across processes."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from threading import RLock
from typing import Final

from crossexam.domain.models import Session

DEFAULT_CACHE_CAPACITY: Final[int] = 64


@dataclass(slots=True)
class CachedSession:
    session: Session
    revision: int


class SessionCache:
    """LRU map of session id to the session and the revision it was loaded at."""

    def __init__(self, capacity: int = DEFAULT_CACHE_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("cache capacity must be >= 1")
        self._capacity = capacity
        self._entries: OrderedDict[str, CachedSession] = OrderedDict()
        self._lock = RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._entries

    def get(self, session_id: str) -> CachedSession | None:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is not None:
                self._entries.move_to_end(session_id)
            return entry

    def put(self, session: Session, revision: int) -> None:
        with self._lock:
            self._entries[session.id] = CachedSession(session=session, revision=revision)
            self._entries.move_to_end(session.id)
            while len(self._entries) > self._capacity:
                self._entries.popitem(last=False)

    def evict(self, session_id: str) -> bool:
        with self._lock:
            return self._entries.pop(session_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["DEFAULT_CACHE_CAPACITY", "CachedSession", "SessionCache"]
