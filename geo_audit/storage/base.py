"""
Storage collaborator interface.

The audit core only knows this protocol. A store receives the assembled
record after scoring and may raise freely; the assembler treats every
storage failure as non-fatal.
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from geo_audit.audit.assembler import AuditRecord


@runtime_checkable
class AuditStore(Protocol):
    def save_audit(self, record: "AuditRecord") -> str:
        """Persist one audit record and return its stored identifier."""
        ...

    def save_citations(self, audit_id: str, rows: Sequence[dict[str, Any]]) -> int:
        """Persist flat citation rows for a stored audit; return rows written."""
        ...
