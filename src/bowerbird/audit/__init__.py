"""Vault audit and repair."""

from bowerbird.audit.detection import AuditEngine, AuditReport, run_audit
from bowerbird.audit.fix import (
    Decision,
    FixPrompter,
    FixProposal,
    FixStatus,
    FixSummary,
    InteractiveUnavailableError,
    RepairPipeline,
    run_auto_fix,
    run_interactive_fix,
)
from bowerbird.audit.types import (
    AuditIssue,
    AuditOptions,
    AuditSummary,
    IssueCode,
    Severity,
    parse_issue_code,
)

__all__ = [
    "AuditEngine",
    "AuditIssue",
    "AuditOptions",
    "AuditReport",
    "AuditSummary",
    "Decision",
    "FixPrompter",
    "FixProposal",
    "FixStatus",
    "FixSummary",
    "InteractiveUnavailableError",
    "IssueCode",
    "RepairPipeline",
    "Severity",
    "parse_issue_code",
    "run_audit",
    "run_auto_fix",
    "run_interactive_fix",
]
