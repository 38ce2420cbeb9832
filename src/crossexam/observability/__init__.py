"""Public observability primitives: structured logging setup and redaction."""

from crossexam.observability.logging import (
    configure_logging,
    redact_event_dict,
    reset_logging,
    session_log_scope,
)

__all__ = [
    "configure_logging",
    "redact_event_dict",
    "reset_logging",
    "session_log_scope",
]
