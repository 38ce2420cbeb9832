"""
crossexam — checkpoint manager.

File: src/crossexam/verification_plane/checkpoints.py
Last updated: 2026-10-17

Purpose
- Snapshot the issue ledger and context file list at round boundaries and
  restore them on rollback.

Functional requirements
- Automatic checkpoints every ``interval`` rounds plus on-demand checkpoints.
- Rollback truncates the round log, replaces the issue ledger with a copy of
  the snapshot, and forces the session back to ``verifying``.
- Context files are never removed on rollback.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog

from crossexam.constants import DEFAULT_AUTO_CHECKPOINT_INTERVAL
from crossexam.domain.models import Checkpoint, Session, SessionStatus
from crossexam.verification_plane.issue_ledger import IssueLedger
from crossexam.verification_plane.round_log import RoundLog


class CheckpointNotFoundError(LookupError):
    """Raised when no eligible checkpoint exists for the requested round."""

    def __init__(self, session_id: str, round_number: int) -> None:
        self.session_id = session_id
        self.round_number = round_number
        super().__init__(f"no eligible checkpoint at round {round_number} for {session_id}")


class CheckpointManager:
    def __init__(
        self,
        interval: int = DEFAULT_AUTO_CHECKPOINT_INTERVAL,
        *,
        logger: Any | None = None,
    ) -> None:
        if interval < 1:
            raise ValueError("checkpoint interval must be >= 1")
        self._interval = interval
        self._log = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def interval(self) -> int:
        return self._interval

    def is_due(self, round_number: int) -> bool:
        return round_number > 0 and round_number % self._interval == 0

    def create(self, session: Session, *, now: datetime | None = None) -> Checkpoint:
        """Snapshot ``session`` at its current round and append the checkpoint."""

        kwargs: dict[str, Any] = {}
        if now is not None:
            kwargs["timestamp"] = now
        checkpoint = Checkpoint(
            round_number=session.current_round,
            context_files=session.context.paths(),
            issues_snapshot=IssueLedger(session.issues).snapshot(),
            can_rollback_to=True,
            **kwargs,
        )
        session.checkpoints.append(checkpoint)
        self._log.info(
            "checkpoint_created",
            session_id=session.id,
            round_number=checkpoint.round_number,
            issues=len(checkpoint.issues_snapshot),
        )
        return checkpoint

    def find(self, session: Session, round_number: int) -> Checkpoint:
        """Latest eligible checkpoint taken at ``round_number``."""

        for checkpoint in reversed(session.checkpoints):
            if checkpoint.round_number == round_number and checkpoint.can_rollback_to:
                return checkpoint
        raise CheckpointNotFoundError(session.id, round_number)

    def rollback(self, session: Session, to_round: int) -> Checkpoint:
        checkpoint = self.find(session, to_round)
        if to_round > session.current_round:
            raise CheckpointNotFoundError(session.id, to_round)

        removed = RoundLog(session.rounds).truncate(to_round)
        IssueLedger(session.issues).replace_all(checkpoint.issues_snapshot)
        session.current_round = to_round
        session.status = SessionStatus.VERIFYING
        session.checkpoints[:] = [
            item for item in session.checkpoints if item.round_number <= to_round
        ]
        self._log.info(
            "session_rolled_back",
            session_id=session.id,
            to_round=to_round,
            rounds_removed=removed,
        )
        return checkpoint


__all__ = ["CheckpointManager", "CheckpointNotFoundError"]
