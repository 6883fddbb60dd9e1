"""
Audit Logger

Records every data access attempt in the audit trail without slowing down or
failing the operation being audited.

``log_operation`` builds the entry synchronously and hands the insert to a
background task. A failed insert is logged at ERROR and counted; it is never
raised to the caller. ``drain()`` waits for outstanding writes and is used at
shutdown and in tests.
"""

# Standard library imports
import asyncio
import hashlib
import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from typing import Any

# Local imports
from sqlgate.application.interfaces.exceptions import InvalidRequestError
from sqlgate.domain.entities.audit_entry import AuditEntry, AuditFilter, AuditOperation

from .storage import AUDIT_TABLE, AuditStorage

logger = logging.getLogger(__name__)


def _json_safe(value: Any) -> Any:
    """Round-trip through JSON so timestamps, decimals and UUIDs become strings."""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str, sort_keys=True))


def fingerprint(
    operation: str,
    table: str,
    where: Any = None,
    data: Any = None,
) -> str:
    """
    SHA-256 over the canonical JSON of the operation, table, filter and data.

    Equal requests produce equal fingerprints regardless of key order.
    """
    material = {"operation": operation, "table": table, "where": where, "data": data}
    try:
        canonical = json.dumps(material, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        # Mixed-type keys cannot be sorted.
        canonical = repr(material)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _parse_timestamp(value: Any, name: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidRequestError(f"{name} must be an ISO 8601 timestamp") from e
    raise InvalidRequestError(f"{name} must be an ISO 8601 timestamp")


def parse_audit_filter(
    start_time: Any = None,
    end_time: Any = None,
    table_name: str | None = None,
    operation: Any = None,
    user_id: str | None = None,
    success: bool | None = None,
) -> AuditFilter:
    """
    Build an AuditFilter from caller-supplied values.

    Raises:
        InvalidRequestError: On unparsable timestamps, unknown operations or
            a non-boolean ``success``
    """
    parsed_operation: AuditOperation | None = None
    if operation is not None:
        if isinstance(operation, AuditOperation):
            parsed_operation = operation
        else:
            try:
                parsed_operation = AuditOperation(str(operation).upper())
            except ValueError as e:
                raise InvalidRequestError(f"Unknown audit operation: {operation}") from e

    if success is not None and not isinstance(success, bool):
        raise InvalidRequestError("success must be a boolean")

    return AuditFilter(
        start_time=_parse_timestamp(start_time, "start_time"),
        end_time=_parse_timestamp(end_time, "end_time"),
        table_name=table_name,
        operation=parsed_operation,
        user_id=user_id,
        success=success,
    )


class AuditLogger:
    """
    Background audit trail writer and reader.

    Operations on the audit table itself are never recorded, which keeps
    audit reads from feeding back into the trail.
    """

    def __init__(
        self,
        storage: AuditStorage,
        enabled: bool = True,
        per_record: bool = False,
    ) -> None:
        """
        Initialize audit logger.

        Args:
            storage: Audit persistence
            enabled: When False, nothing is written
            per_record: Default granularity for batches, updates and deletes;
                one entry per affected record instead of one summary entry
        """
        self._storage = storage
        self._enabled = enabled
        self._per_record = per_record
        self._pending: set[asyncio.Task[None]] = set()

        self._queued = 0
        self._written = 0
        self._failed = 0
        self._skipped = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def storage(self) -> AuditStorage:
        return self._storage

    def log_operation(
        self,
        operation: AuditOperation,
        table: str,
        success: bool,
        *,
        record_id: Any = None,
        user_id: str | None = None,
        client_info: Mapping[str, Any] | None = None,
        changes: Mapping[str, Any] | None = None,
        error_message: str | None = None,
        execution_time_ms: int | None = None,
        query_hash: str | None = None,
    ) -> None:
        """
        Schedule one audit entry for writing.

        Returns immediately; the write happens on a background task.
        """
        if not self._enabled or table == AUDIT_TABLE:
            self._skipped += 1
            return

        try:
            entry = AuditEntry(
                operation=operation,
                table_name=table,
                success=success,
                record_id=str(record_id) if record_id is not None else None,
                user_id=str(user_id) if user_id is not None else None,
                client_info=_json_safe(dict(client_info)) if client_info else None,
                changes=_json_safe(dict(changes)) if changes is not None else None,
                error_message=error_message,
                execution_time_ms=execution_time_ms,
                query_hash=query_hash,
            )
        except (TypeError, ValueError) as e:
            self._failed += 1
            logger.error(f"Audit entry for {operation.value} on '{table}' could not be built: {e}")
            return
        self._schedule(entry)

    def log_batch(
        self,
        operation: AuditOperation,
        table: str,
        success: bool,
        record_ids: Iterable[Any] = (),
        *,
        changes: Mapping[str, Any] | None = None,
        per_record: bool | None = None,
        **kwargs: Any,
    ) -> None:
        """
        Audit a batch as one summary entry, or one entry per record when
        per-record auditing is on and the batch succeeded.

        Args:
            per_record: Overrides the logger-wide granularity for this call
        """
        ids = list(record_ids)
        if self._wants_per_record(per_record) and success and ids:
            for record_id in ids:
                self.log_operation(operation, table, success, record_id=record_id, **kwargs)
            return

        summary = dict(changes or {})
        summary.setdefault("count", len(ids))
        if ids:
            summary.setdefault("ids", ids)
        self.log_operation(operation, table, success, changes=summary, **kwargs)

    def log_records(
        self,
        operation: AuditOperation,
        table: str,
        success: bool,
        record_ids: Sequence[Any] = (),
        *,
        changes: Mapping[str, Any] | None = None,
        record_changes: Sequence[Mapping[str, Any] | None] = (),
        per_record: bool | None = None,
        **kwargs: Any,
    ) -> None:
        """
        Audit an update or delete that may have touched several rows.

        With per-record granularity a successful call writes one entry per
        affected primary key, each carrying the matching ``record_changes``
        item. Otherwise one entry is written, keyed by the record id only
        when exactly one row was affected.

        Args:
            record_ids: Primary keys of the affected rows
            changes: Changes for the single-entry form
            record_changes: Per-row changes, aligned with ``record_ids``
            per_record: Overrides the logger-wide granularity for this call
        """
        ids = list(record_ids)
        if self._wants_per_record(per_record) and success and ids:
            for index, record_id in enumerate(ids):
                self.log_operation(
                    operation,
                    table,
                    success,
                    record_id=record_id,
                    changes=record_changes[index] if index < len(record_changes) else None,
                    **kwargs,
                )
            return

        self.log_operation(
            operation,
            table,
            success,
            record_id=ids[0] if len(ids) == 1 else None,
            changes=changes,
            **kwargs,
        )

    def _wants_per_record(self, per_record: bool | None) -> bool:
        return self._per_record if per_record is None else per_record

    def _schedule(self, entry: AuditEntry) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._failed += 1
            logger.error(
                f"Audit entry for {entry.operation.value} on '{entry.table_name}' dropped: "
                f"no running event loop"
            )
            return

        task = loop.create_task(self._write(entry))
        self._queued += 1
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, entry: AuditEntry) -> None:
        try:
            await self._storage.store(entry)
            self._written += 1
        except Exception as e:
            # Audit failures never propagate to the audited operation.
            self._failed += 1
            logger.error(
                f"Failed to write audit entry for {entry.operation.value} on "
                f"'{entry.table_name}': {type(e).__name__}: {e}"
            )

    async def drain(self) -> None:
        """Wait until every scheduled audit write has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def get_metrics(self) -> dict[str, Any]:
        return {
            "enabled": self._enabled,
            "per_record": self._per_record,
            "queued": self._queued,
            "written": self._written,
            "failed": self._failed,
            "skipped": self._skipped,
            "pending": len(self._pending),
        }

    async def query_audit_logs(
        self, audit_filter: AuditFilter | None = None, limit: int = 100, offset: int = 0
    ) -> list[dict[str, Any]]:
        """
        Retrieve audit entries, newest first.

        Raises:
            StoreError: If the audit store cannot be read
        """
        entries = await self._storage.query(audit_filter, limit, offset)
        return [entry.to_dict() for entry in entries]

    async def get_audit_summary(self, audit_filter: AuditFilter | None = None) -> dict[str, Any]:
        """Aggregate statistics for the entries matching ``audit_filter``."""
        return await self._storage.summary(audit_filter)
