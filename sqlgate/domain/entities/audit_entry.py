"""
Audit Entry Entity

Immutable record of one attempted data access operation and its outcome.
"""

# Standard library imports
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class AuditOperation(Enum):
    """Operation kinds stored in the audit trail."""

    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    BATCH_INSERT = "BATCH_INSERT"
    BATCH_UPDATE = "BATCH_UPDATE"
    BATCH_DELETE = "BATCH_DELETE"

    @property
    def is_batch(self) -> bool:
        return self.value.startswith("BATCH_")


@dataclass(frozen=True)
class AuditEntry:
    """
    One audit trail row.

    Entries are created by the audit logger only. ``changes`` holds the
    before/after summary; ``query_hash`` is a SHA-256 fingerprint used for
    duplicate detection.
    """

    operation: AuditOperation
    table_name: str
    success: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    record_id: str | None = None
    user_id: str | None = None
    client_info: Mapping[str, Any] | None = None
    changes: Mapping[str, Any] | None = None
    error_message: str | None = None
    execution_time_ms: int | None = None
    query_hash: str | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "operation": self.operation.value,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "user_id": self.user_id,
            "client_info": dict(self.client_info) if self.client_info is not None else None,
            "changes": dict(self.changes) if self.changes is not None else None,
            "success": self.success,
            "error_message": self.error_message,
            "execution_time_ms": self.execution_time_ms,
            "query_hash": self.query_hash,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AuditEntry":
        return cls(
            id=row.get("id"),
            timestamp=row["timestamp"],
            operation=AuditOperation(row["operation"]),
            table_name=row["table_name"],
            record_id=row.get("record_id"),
            user_id=row.get("user_id"),
            client_info=row.get("client_info"),
            changes=row.get("changes"),
            success=row["success"],
            error_message=row.get("error_message"),
            execution_time_ms=row.get("execution_time_ms"),
            query_hash=row.get("query_hash"),
        )


@dataclass(frozen=True)
class AuditFilter:
    """Criteria for audit trail retrieval. Unset fields do not filter."""

    start_time: datetime | None = None
    end_time: datetime | None = None
    table_name: str | None = None
    operation: AuditOperation | None = None
    user_id: str | None = None
    success: bool | None = None
