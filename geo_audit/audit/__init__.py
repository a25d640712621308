"""
Audit orchestration, scoring and assembly.

Public entry points:
    run_audit: Validate a payload, run the audit, return a response dict
    execute_audit: Async core returning an AuditRecord, raises on errors
"""

from .assembler import AuditRecord, ResultAssembler
from .orchestrator import AuditOrchestrator, OrchestrationResult
from .scoring import AuditSummary, compute_summary
from .service import execute_audit, run_audit, run_audit_async

__all__ = [
    "AuditOrchestrator",
    "AuditRecord",
    "AuditSummary",
    "OrchestrationResult",
    "ResultAssembler",
    "compute_summary",
    "execute_audit",
    "run_audit",
    "run_audit_async",
]
