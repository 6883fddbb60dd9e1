"""Domain entities."""

from .audit_entry import AuditEntry, AuditFilter, AuditOperation
from .relationship import RelationshipDirection, RelationshipEdge, RelationshipGraph

__all__ = [
    "AuditEntry",
    "AuditFilter",
    "AuditOperation",
    "RelationshipDirection",
    "RelationshipEdge",
    "RelationshipGraph",
]
