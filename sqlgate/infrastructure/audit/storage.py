"""
Audit Storage

Persistence and retrieval of audit trail rows in the ``audit_logs`` table.

Writes go through a dedicated adapter so audit inserts never share a
connection or transaction with the operation being audited.
"""

# Standard library imports
import logging
from typing import Any

# Third-party imports
from psycopg.types.json import Jsonb

# Local imports
from sqlgate.domain.entities.audit_entry import AuditEntry, AuditFilter, AuditOperation
from sqlgate.infrastructure.database.adapter import PostgreSQLAdapter

logger = logging.getLogger(__name__)

AUDIT_TABLE = "audit_logs"
TOP_TABLES_LIMIT = 20

_COLUMNS = (
    "id",
    "timestamp",
    "operation",
    "table_name",
    "record_id",
    "user_id",
    "client_info",
    "changes",
    "success",
    "error_message",
    "execution_time_ms",
    "query_hash",
)

_OPERATIONS_SQL = ", ".join(f"'{operation.value}'" for operation in AuditOperation)

SCHEMA_STATEMENTS = (
    f"""
    CREATE TABLE IF NOT EXISTS {AUDIT_TABLE} (
        id BIGSERIAL PRIMARY KEY,
        timestamp TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        operation VARCHAR(50) NOT NULL CHECK (operation IN ({_OPERATIONS_SQL})),
        table_name VARCHAR(255) NOT NULL,
        record_id VARCHAR(255),
        user_id VARCHAR(255),
        client_info JSONB,
        changes JSONB,
        success BOOLEAN NOT NULL DEFAULT TRUE,
        error_message TEXT,
        execution_time_ms INTEGER,
        query_hash VARCHAR(64)
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_audit_logs_timestamp ON {AUDIT_TABLE} (timestamp DESC)",
    f"CREATE INDEX IF NOT EXISTS idx_audit_logs_table_name ON {AUDIT_TABLE} (table_name)",
    f"CREATE INDEX IF NOT EXISTS idx_audit_logs_user_id ON {AUDIT_TABLE} (user_id)",
    f"CREATE INDEX IF NOT EXISTS idx_audit_logs_operation ON {AUDIT_TABLE} (operation)",
    f"CREATE INDEX IF NOT EXISTS idx_audit_logs_success ON {AUDIT_TABLE} (success)",
)


def build_filter_clause(audit_filter: AuditFilter | None) -> tuple[str, list[Any]]:
    """
    Translate an AuditFilter into a WHERE clause and its parameters.

    Returns:
        ``("", [])`` when nothing is filtered, otherwise ``("WHERE ...", params)``
    """
    if audit_filter is None:
        return "", []

    conditions: list[str] = []
    params: list[Any] = []
    if audit_filter.start_time is not None:
        conditions.append("timestamp >= %s")
        params.append(audit_filter.start_time)
    if audit_filter.end_time is not None:
        conditions.append("timestamp <= %s")
        params.append(audit_filter.end_time)
    if audit_filter.table_name is not None:
        conditions.append("table_name = %s")
        params.append(audit_filter.table_name)
    if audit_filter.operation is not None:
        conditions.append("operation = %s")
        params.append(audit_filter.operation.value)
    if audit_filter.user_id is not None:
        conditions.append("user_id = %s")
        params.append(audit_filter.user_id)
    if audit_filter.success is not None:
        conditions.append("success = %s")
        params.append(audit_filter.success)

    if not conditions:
        return "", []
    return "WHERE " + " AND ".join(conditions), params


def _jsonb(value: Any) -> Jsonb | None:
    return Jsonb(dict(value)) if value is not None else None


class AuditStorage:
    """PostgreSQL-backed audit trail."""

    def __init__(self, adapter: PostgreSQLAdapter) -> None:
        self._adapter = adapter

    @property
    def adapter(self) -> PostgreSQLAdapter:
        return self._adapter

    async def ensure_schema(self) -> None:
        """Create the audit table and its indexes if they do not exist."""
        async with self._adapter.transaction() as session:
            for statement in SCHEMA_STATEMENTS:
                await session.execute_query(statement)
        logger.info(f"Audit schema ensured for table '{AUDIT_TABLE}'")

    async def store(self, entry: AuditEntry) -> int | None:
        """
        Insert one audit row.

        Returns:
            Generated row id
        """
        query = f"""
            INSERT INTO {AUDIT_TABLE} (
                timestamp, operation, table_name, record_id, user_id,
                client_info, changes, success, error_message,
                execution_time_ms, query_hash
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
        """
        return await self._adapter.fetch_value(
            query,
            entry.timestamp,
            entry.operation.value,
            entry.table_name,
            entry.record_id,
            entry.user_id,
            _jsonb(entry.client_info),
            _jsonb(entry.changes),
            entry.success,
            entry.error_message,
            entry.execution_time_ms,
            entry.query_hash,
        )

    async def query(
        self, audit_filter: AuditFilter | None = None, limit: int = 100, offset: int = 0
    ) -> list[AuditEntry]:
        """
        Retrieve audit rows, newest first.

        Args:
            audit_filter: Criteria; unset fields do not filter
            limit: Page size (already validated by the caller)
            offset: Rows to skip

        Returns:
            Matching entries ordered by timestamp descending
        """
        where, params = build_filter_clause(audit_filter)
        query = (
            f"SELECT {', '.join(_COLUMNS)} FROM {AUDIT_TABLE} {where} "
            f"ORDER BY timestamp DESC LIMIT %s OFFSET %s"
        )
        rows = await self._adapter.fetch_all(query, *params, limit, offset)
        return [AuditEntry.from_row(row) for row in rows]

    async def summary(self, audit_filter: AuditFilter | None = None) -> dict[str, Any]:
        """
        Aggregate statistics over the audit rows matching ``audit_filter``.

        Returns:
            Dict with ``summary``, ``by_operation`` and ``by_table`` (top 20)
        """
        where, params = build_filter_clause(audit_filter)

        totals = await self._adapter.fetch_one(
            f"""
            SELECT
                COUNT(*) AS total,
                COUNT(*) FILTER (WHERE success = TRUE) AS successful,
                COUNT(*) FILTER (WHERE success = FALSE) AS failed,
                COUNT(DISTINCT table_name) AS tables_accessed,
                COUNT(DISTINCT user_id) AS unique_users,
                AVG(execution_time_ms) AS avg_execution_time_ms,
                MAX(execution_time_ms) AS max_execution_time_ms,
                MIN(timestamp) AS first_timestamp,
                MAX(timestamp) AS last_timestamp
            FROM {AUDIT_TABLE} {where}
            """,
            *params,
        )
        by_operation = await self._adapter.fetch_all(
            f"""
            SELECT
                operation,
                COUNT(*) AS count,
                COUNT(*) FILTER (WHERE success = TRUE) AS successful,
                COUNT(*) FILTER (WHERE success = FALSE) AS failed,
                AVG(execution_time_ms) AS avg_execution_time_ms
            FROM {AUDIT_TABLE} {where}
            GROUP BY operation
            ORDER BY count DESC
            """,
            *params,
        )
        by_table = await self._adapter.fetch_all(
            f"""
            SELECT
                table_name,
                COUNT(*) AS count,
                COUNT(*) FILTER (WHERE success = TRUE) AS successful,
                COUNT(*) FILTER (WHERE success = FALSE) AS failed
            FROM {AUDIT_TABLE} {where}
            GROUP BY table_name
            ORDER BY count DESC
            LIMIT %s
            """,
            *params,
            TOP_TABLES_LIMIT,
        )

        totals = totals or {}
        total = int(totals.get("total") or 0)
        successful = int(totals.get("successful") or 0)
        avg_time = totals.get("avg_execution_time_ms")

        return {
            "summary": {
                "total": total,
                "successful": successful,
                "failed": int(totals.get("failed") or 0),
                "success_rate": round(successful / total * 100, 2) if total else 0.0,
                "tables_accessed": int(totals.get("tables_accessed") or 0),
                "unique_users": int(totals.get("unique_users") or 0),
                "avg_execution_time_ms": (
                    round(float(avg_time), 2) if avg_time is not None else None
                ),
                "max_execution_time_ms": totals.get("max_execution_time_ms"),
                "first_timestamp": totals.get("first_timestamp"),
                "last_timestamp": totals.get("last_timestamp"),
            },
            "by_operation": [
                {
                    "operation": row["operation"],
                    "count": int(row["count"]),
                    "successful": int(row["successful"]),
                    "failed": int(row["failed"]),
                    "avg_execution_time_ms": (
                        round(float(row["avg_execution_time_ms"]), 2)
                        if row.get("avg_execution_time_ms") is not None
                        else None
                    ),
                }
                for row in by_operation
            ],
            "by_table": [
                {
                    "table_name": row["table_name"],
                    "count": int(row["count"]),
                    "successful": int(row["successful"]),
                    "failed": int(row["failed"]),
                }
                for row in by_table
            ],
        }
