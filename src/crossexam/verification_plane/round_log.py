"""Append-only round log over a session's round list."""

from __future__ import annotations

from collections.abc import Iterator

from crossexam.domain.models import Role, Round


class RoundLog:
    """Round numbers are 1-based and contiguous; entries are never edited."""

    __slots__ = ("_rounds",)

    def __init__(self, rounds: list[Round]) -> None:
        self._rounds = rounds

    def __len__(self) -> int:
        return len(self._rounds)

    def __iter__(self) -> Iterator[Round]:
        return iter(tuple(self._rounds))

    @property
    def next_number(self) -> int:
        return len(self._rounds) + 1

    def append(self, entry: Round) -> None:
        if entry.number != self.next_number:
            raise ValueError(f"expected round {self.next_number}, got {entry.number}")
        self._rounds.append(entry)

    def truncate(self, to_round: int) -> int:
        """Drop rounds after ``to_round``; return how many were removed."""

        if to_round < 0:
            raise ValueError("to_round must be >= 0")
        removed = max(len(self._rounds) - to_round, 0)
        del self._rounds[to_round:]
        return removed

    def last(self, role: Role | None = None) -> Round | None:
        for entry in reversed(self._rounds):
            if role is None or entry.role is role:
                return entry
        return None

    def recent(self, count: int) -> tuple[Round, ...]:
        if count <= 0:
            return ()
        return tuple(self._rounds[-count:])

    def trailing_quiet_rounds(self) -> int:
        """Length of the most recent run of rounds that raised no issues."""

        quiet = 0
        for entry in reversed(self._rounds):
            if entry.issues_raised:
                break
            quiet += 1
        return quiet


__all__ = ["RoundLog"]
