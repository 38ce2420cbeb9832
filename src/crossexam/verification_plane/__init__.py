"""
crossexam — verification plane

File: src/crossexam/verification_plane/__init__.py
Last updated: 2026-10-17

Purpose
- Session bookkeeping and review heuristics: issue ledger, round log,
  checkpoints, convergence, arbiter, mediator and role compliance.

Functional requirements
- Everything here mutates or reads a ``Session`` in memory; persistence is
  the orchestrator's job.
"""

from crossexam.verification_plane.arbiter import (
    ArbiterIntervention,
    ArbiterInterventionType,
    ArbiterPolicy,
    check_for_intervention,
)
from crossexam.verification_plane.checkpoints import CheckpointManager, CheckpointNotFoundError
from crossexam.verification_plane.convergence import (
    CONVERGED_REASON,
    IN_PROGRESS_REASON,
    CategoryCoverage,
    ConvergencePolicy,
    ConvergenceStatus,
    evaluate_convergence,
)
from crossexam.verification_plane.issue_ledger import (
    IssueLedger,
    IssueSummary,
    copy_issues,
    summarize_issues,
)
from crossexam.verification_plane.mediator import (
    InterventionSeverity,
    InterventionType,
    Mediator,
    MediatorIntervention,
    MediatorPolicy,
    MissedDependency,
    MissedPriority,
)
from crossexam.verification_plane.roles import (
    ComplianceSeverity,
    RoleComplianceResult,
    RolePolicy,
    RoleViolation,
    RoleWarning,
    check_role_compliance,
    expected_role,
)
from crossexam.verification_plane.round_log import RoundLog

__all__ = [
    "CONVERGED_REASON",
    "IN_PROGRESS_REASON",
    "ArbiterIntervention",
    "ArbiterInterventionType",
    "ArbiterPolicy",
    "CategoryCoverage",
    "CheckpointManager",
    "CheckpointNotFoundError",
    "ComplianceSeverity",
    "ConvergencePolicy",
    "ConvergenceStatus",
    "InterventionSeverity",
    "InterventionType",
    "IssueLedger",
    "IssueSummary",
    "Mediator",
    "MediatorIntervention",
    "MediatorPolicy",
    "MissedDependency",
    "MissedPriority",
    "RoleComplianceResult",
    "RolePolicy",
    "RoleViolation",
    "RoleWarning",
    "RoundLog",
    "check_for_intervention",
    "check_role_compliance",
    "copy_issues",
    "evaluate_convergence",
    "expected_role",
    "summarize_issues",
]
