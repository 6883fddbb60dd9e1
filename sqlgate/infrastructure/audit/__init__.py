"""Audit trail writing and retrieval."""

from .logger import AuditLogger, fingerprint, parse_audit_filter
from .storage import AUDIT_TABLE, AuditStorage

__all__ = ["AUDIT_TABLE", "AuditLogger", "AuditStorage", "fingerprint", "parse_audit_filter"]
