"""
Data Access Service

The public entry point of the engine. Every operation runs the same
pipeline: security validation, access control, data validation for
mutations, SQL generation, execution, and an audit entry for the outcome
whether it succeeded or failed.

Single mutations run inside one transaction so their validation lookups and
the write see the same snapshot and share the statement timeout. Batches go
through the TransactionManager and are all-or-nothing.
"""

# Standard library imports
import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

# Local imports
from sqlgate.application.interfaces.exceptions import DataAccessError
from sqlgate.domain.entities.audit_entry import AuditOperation
from sqlgate.domain.value_objects.requests import AccessOperation
from sqlgate.infrastructure.audit.logger import AuditLogger, fingerprint, parse_audit_filter
from sqlgate.infrastructure.audit.storage import AUDIT_TABLE, AuditStorage
from sqlgate.infrastructure.config import EngineConfig, load_registry
from sqlgate.infrastructure.database.adapter import PostgreSQLAdapter, Record
from sqlgate.infrastructure.database.connection import DatabaseConfig, DatabaseConnection
from sqlgate.infrastructure.database.error_mapper import StoreErrorMapper
from sqlgate.infrastructure.database.query_builder import QueryBuilder
from sqlgate.infrastructure.monitoring.logging import actor_context
from sqlgate.infrastructure.schema.cache import SchemaCache
from sqlgate.infrastructure.schema.introspection import SchemaIntrospector
from sqlgate.infrastructure.schema.relationship_mapper import RelationshipMapper
from sqlgate.infrastructure.security.access_control import AccessControl, AccessPolicy
from sqlgate.infrastructure.security.schema_registry import SchemaRegistry
from sqlgate.infrastructure.security.security_validator import SecurityValidator
from sqlgate.infrastructure.transactions.transaction_manager import TransactionManager
from sqlgate.infrastructure.validation.data_validator import DataValidator

logger = logging.getLogger(__name__)

AUDIT_POOL_MAX_SIZE = 4
MAX_AUDITED_NAME_LENGTH = 255
UNFINISHED_MESSAGE = "Operation cancelled before completion"
UNEXPECTED_ERROR_MESSAGE = "Internal error while processing the request"


@dataclass
class _Outcome:
    """Result of one pipeline run plus what the audit entry should record."""

    result: dict[str, Any]
    record_id: Any = None
    record_ids: Sequence[Any] = ()
    record_changes: Sequence[dict[str, Any]] = ()
    changes: dict[str, Any] | None = None


def _table_label(table: Any) -> str:
    return str(table)[:MAX_AUDITED_NAME_LENGTH] if table is not None else ""


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class DataAccessService:
    """
    Secure, whitelist-driven access to the relational store.

    Results are plain dicts. Errors are DataAccessError subclasses whose
    ``to_dict()`` is safe to hand to callers.
    """

    def __init__(
        self,
        adapter: PostgreSQLAdapter,
        config: EngineConfig | None = None,
        registry: SchemaRegistry | None = None,
        policy: AccessPolicy | None = None,
        audit_adapter: PostgreSQLAdapter | None = None,
        connections: Sequence[DatabaseConnection] = (),
    ) -> None:
        """
        Wire the engine components around an adapter.

        Args:
            adapter: Adapter for data statements
            config: Engine settings; defaults apply when None
            registry: Table whitelist; the built-in registry when None
            policy: Access policy; the built-in policy when None
            audit_adapter: Separate adapter for audit writes; ``adapter`` when None
            connections: Pools owned by this service, closed by ``close()``
        """
        self._config = config or EngineConfig()
        self._registry = registry or SchemaRegistry.default()
        self._policy = policy or AccessPolicy.default()
        self._adapter = adapter
        self._connections = tuple(connections)

        self._error_mapper = StoreErrorMapper(self._registry)
        self._security = SecurityValidator(self._registry, max_limit=self._config.max_limit)
        self._access = AccessControl(self._policy)
        self._query_builder = QueryBuilder(self._registry)
        self._data_validator = DataValidator(self._registry, self._query_builder)
        self._transactions = TransactionManager(
            adapter,
            self._security,
            self._query_builder,
            self._data_validator,
            max_batch_size=self._config.max_batch_size,
            statement_timeout_ms=self._config.statement_timeout_ms,
        )
        self._audit = AuditLogger(
            AuditStorage(audit_adapter or adapter),
            enabled=self._config.audit_enabled,
            per_record=self._config.per_record_audit,
        )
        self._cache = SchemaCache(ttl_seconds=self._config.schema_cache_ttl_seconds)
        self._introspector = SchemaIntrospector(adapter, self._security, self._cache)
        self._relationships = RelationshipMapper(adapter, self._security, self._cache)

    @classmethod
    async def create(
        cls,
        config: EngineConfig | None = None,
        database_config: DatabaseConfig | None = None,
        audit_database_config: DatabaseConfig | None = None,
        ensure_audit_schema: bool = False,
    ) -> "DataAccessService":
        """
        Build a service from configuration, opening its connection pools.

        The audit trail gets its own small pool so audit writes never compete
        with, or run inside, the transactions they describe.

        Raises:
            ConfigurationError: If settings or the registry file are invalid
            StoreUnavailableError: If the database cannot be reached
        """
        config = config or EngineConfig.from_env()
        database_config = database_config or DatabaseConfig.from_env()
        registry, policy = load_registry(config)
        error_mapper = StoreErrorMapper(registry)

        connection = DatabaseConnection(database_config)
        pool = await connection.connect()

        audit_connection = DatabaseConnection(
            audit_database_config
            or replace(
                database_config,
                min_pool_size=1,
                max_pool_size=max(1, min(AUDIT_POOL_MAX_SIZE, database_config.max_pool_size)),
            )
        )
        try:
            audit_pool = await audit_connection.connect()
        except DataAccessError:
            await connection.disconnect()
            raise

        adapter = PostgreSQLAdapter(pool, error_mapper, config.statement_timeout_ms)
        audit_adapter = PostgreSQLAdapter(audit_pool, error_mapper, config.statement_timeout_ms)
        service = cls(
            adapter,
            config=config,
            registry=registry,
            policy=policy,
            audit_adapter=audit_adapter,
            connections=(connection, audit_connection),
        )
        if ensure_audit_schema:
            await service.audit_logger.storage.ensure_schema()

        logger.info(
            f"Data access service ready: {len(registry)} whitelisted tables, "
            f"audit {'enabled' if config.audit_enabled else 'disabled'}"
        )
        return service

    async def close(self) -> None:
        """Wait for outstanding audit writes, then close owned pools."""
        await self._audit.drain()
        for connection in self._connections:
            await connection.disconnect()

    async def __aenter__(self) -> "DataAccessService":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit

    @property
    def transaction_manager(self) -> TransactionManager:
        return self._transactions

    @property
    def schema_cache(self) -> SchemaCache:
        return self._cache

    # =============================================
    # Pipeline
    # =============================================

    async def _run(
        self,
        operation: AuditOperation,
        table: Any,
        work: Callable[[], Awaitable[_Outcome]],
        *,
        actor: str | None,
        client_info: Mapping[str, Any] | None,
        where: Any = None,
        data: Any = None,
        audited: bool = True,
        per_record: bool | None = None,
    ) -> dict[str, Any]:
        label = _table_label(table)
        start = time.perf_counter()
        audit_context: dict[str, Any] = {
            "actor": actor,
            "client_info": client_info,
            "where": where,
            "data": data,
            "per_record": per_record,
        }

        with actor_context(actor):
            try:
                outcome = await work()
            except DataAccessError as e:
                error = self._error_mapper.contextualize(e, label, operation.value)
                if audited:
                    self._record(
                        operation, label, False, start, error_message=error.message, **audit_context
                    )
                if error is e:
                    raise
                raise error from e
            except BaseException as e:
                # Cancellation and unclassified errors still leave a failed entry.
                if isinstance(e, asyncio.CancelledError):
                    message = UNFINISHED_MESSAGE
                    logger.warning(f"{operation.value} on '{label}' was cancelled")
                else:
                    message = UNEXPECTED_ERROR_MESSAGE
                    logger.error(
                        f"{operation.value} on '{label}' failed unexpectedly: "
                        f"{type(e).__name__}: {e}"
                    )
                if audited:
                    self._record(
                        operation, label, False, start, error_message=message, **audit_context
                    )
                raise

            if audited:
                self._record(operation, label, True, start, outcome=outcome, **audit_context)
            logger.debug(f"{operation.value} on '{label}' completed in {_elapsed_ms(start)} ms")
            return outcome.result

    def _record(
        self,
        operation: AuditOperation,
        table: str,
        success: bool,
        start: float,
        *,
        actor: str | None,
        client_info: Mapping[str, Any] | None,
        where: Any,
        data: Any,
        per_record: bool | None = None,
        outcome: _Outcome | None = None,
        error_message: str | None = None,
    ) -> None:
        common: dict[str, Any] = {
            "user_id": actor,
            "client_info": client_info,
            "execution_time_ms": _elapsed_ms(start),
            "query_hash": fingerprint(operation.value, table, where, data),
        }
        if operation.is_batch:
            self._audit.log_batch(
                operation,
                table,
                success,
                outcome.record_ids if outcome else (),
                changes=outcome.changes if outcome else None,
                per_record=per_record,
                error_message=error_message,
                **common,
            )
            return
        if operation in (AuditOperation.UPDATE, AuditOperation.DELETE):
            self._audit.log_records(
                operation,
                table,
                success,
                outcome.record_ids if outcome else (),
                changes=outcome.changes if outcome else None,
                record_changes=outcome.record_changes if outcome else (),
                per_record=per_record,
                error_message=error_message,
                **common,
            )
            return
        self._audit.log_operation(
            operation,
            table,
            success,
            record_id=outcome.record_id if outcome else None,
            changes=outcome.changes if outcome else None,
            error_message=error_message,
            **common,
        )

    def _primary_key_of(self, table: str, records: Sequence[Record]) -> Any:
        keys = self._keyed_records(table, records)
        return keys[0][0] if len(records) == 1 and keys else None

    def _keyed_records(self, table: str, records: Sequence[Record]) -> list[tuple[Any, Record]]:
        """``(primary key, row)`` pairs for the rows that carry their key."""
        descriptor = self._registry.get(table)
        if descriptor is None or descriptor.primary_key is None:
            return []
        return [
            (record[descriptor.primary_key], record)
            for record in records
            if record.get(descriptor.primary_key) is not None
        ]

    def _check_mutation(self, table: Any, operation: AccessOperation, verb: str) -> str:
        name = self._security.validate_table(table)
        self._security.validate_not_read_only(name, verb)
        self._access.validate_table_access(name, operation)
        return name

    def _resolve_soft_delete(self, table: str, soft_delete: bool | None) -> bool:
        requested = self._config.soft_delete_default if soft_delete is None else soft_delete
        return bool(requested) and self._security.supports_soft_delete(table)

    # =============================================
    # Reads
    # =============================================

    async def query(
        self,
        table: Any,
        columns: Sequence[str] | None = None,
        where: Mapping[str, Any] | None = None,
        order_by: Sequence[Any] | None = None,
        limit: Any = None,
        offset: Any = None,
        *,
        actor: str | None = None,
        client_info: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Select rows from a whitelisted table.

        Args:
            table: Table name
            columns: Columns to return; every whitelisted column when omitted
            where: Filter mapping of column to literal, None, list or operator
            order_by: Column names or ``{"column", "direction"}`` items
            limit: Page size in [1, max_limit]
            offset: Rows to skip, at least 0

        Returns:
            ``{"records", "count", "total_count"}``; ``total_count`` counts
            every matching row when paginating, otherwise equals ``count``

        Raises:
            InvalidIdentifierError, NotWhitelistedError: On bad names
            AccessDeniedError: If reading the table is not granted
            InvalidRequestError: On malformed filters or pagination
            StoreError: If the store rejects the statement
        """

        async def work() -> _Outcome:
            spec = self._security.validate_query(table, columns, where, order_by, limit, offset)
            self._access.validate_table_access(spec.table, AccessOperation.READ)

            select = self._query_builder.build_select(spec)
            records = await self._adapter.fetch_all(select.text, *select.params)

            total_count = len(records)
            if spec.limit is not None or spec.offset is not None:
                count_query = self._query_builder.build_count(spec.table, spec.filter)
                counted = await self._adapter.fetch_value(count_query.text, *count_query.params)
                total_count = int(counted or 0)

            return _Outcome(
                result={"records": records, "count": len(records), "total_count": total_count},
                changes={"count": len(records)},
            )

        return await self._run(
            AuditOperation.READ,
            table,
            work,
            actor=actor,
            client_info=client_info,
            where=where,
            audited=self._config.audit_reads,
        )

    # =============================================
    # Single mutations
    # =============================================

    async def insert(
        self,
        table: Any,
        data: Mapping[str, Any],
        *,
        actor: str | None = None,
        client_info: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Insert one record.

        Returns:
            ``{"record": inserted_row}``

        Raises:
            ReadOnlyViolationError: If the table is read-only
            AccessDeniedError: If inserting is not granted
            ValidationFailedError: With every failing field
            DuplicateKeyError, ForeignKeyViolationError, NotNullViolationError:
                If the store rejects the row
        """

        async def work() -> _Outcome:
            name = self._check_mutation(table, AccessOperation.INSERT, "insert")
            payload = self._security.validate_data(name, data)
            record = await self._transactions.execute_transaction(
                lambda session: self._transactions.insert_record(session, payload)
            )
            return _Outcome(
                result={"record": record},
                record_id=self._primary_key_of(name, [record]),
                changes={"after": record},
            )

        return await self._run(
            AuditOperation.CREATE, table, work, actor=actor, client_info=client_info, data=data
        )

    async def update(
        self,
        table: Any,
        data: Mapping[str, Any],
        where: Mapping[str, Any],
        *,
        actor: str | None = None,
        client_info: Mapping[str, Any] | None = None,
        per_record: bool | None = None,
    ) -> dict[str, Any]:
        """
        Update every row matching ``where``.

        A filter that matches nothing is not an error.

        Args:
            per_record: Audit one entry per updated row instead of one
                summary entry. Defaults to the engine setting.

        Returns:
            ``{"records": updated_rows, "count": n}``

        Raises:
            MissingFilterError: If ``where`` is empty
            ValidationFailedError: With every failing field
        """

        async def work() -> _Outcome:
            name = self._check_mutation(table, AccessOperation.UPDATE, "update")
            expression = self._security.validate_where_clause(name, where, "UPDATE")
            payload = self._security.validate_data(name, data)
            records = await self._transactions.execute_transaction(
                lambda session: self._transactions.update_records(session, payload, expression)
            )
            fields = dict(payload.data)
            keyed = self._keyed_records(name, records)
            return _Outcome(
                result={"records": records, "count": len(records)},
                record_ids=[key for key, _ in keyed],
                record_changes=[{"fields": fields, "after": record} for _, record in keyed],
                changes={"fields": fields, "after": records},
            )

        return await self._run(
            AuditOperation.UPDATE,
            table,
            work,
            actor=actor,
            client_info=client_info,
            per_record=per_record,
            where=where,
            data=data,
        )

    async def delete(
        self,
        table: Any,
        where: Mapping[str, Any],
        soft_delete: bool | None = None,
        *,
        actor: str | None = None,
        client_info: Mapping[str, Any] | None = None,
        per_record: bool | None = None,
    ) -> dict[str, Any]:
        """
        Delete every row matching ``where``.

        Args:
            soft_delete: Stamp ``deleted_at`` instead of removing rows. Falls
                back to a hard delete on tables without soft-delete support.
                Defaults to the engine setting.
            per_record: Audit one entry per affected row. Defaults to the
                engine setting.

        Returns:
            ``{"records": affected_rows, "count": n, "soft_delete": bool}``

        Raises:
            MissingFilterError: If ``where`` is empty
            ForeignKeyViolationError: If other rows still reference a deleted row
        """

        async def work() -> _Outcome:
            name = self._check_mutation(table, AccessOperation.DELETE, "delete")
            expression = self._security.validate_where_clause(name, where, "DELETE")
            use_soft_delete = self._resolve_soft_delete(name, soft_delete)
            records = await self._transactions.execute_transaction(
                lambda session: self._transactions.delete_records(
                    session, name, expression, use_soft_delete
                )
            )
            keyed = self._keyed_records(name, records)
            return _Outcome(
                result={"records": records, "count": len(records), "soft_delete": use_soft_delete},
                record_ids=[key for key, _ in keyed],
                record_changes=[
                    {"before": record, "soft_delete": use_soft_delete} for _, record in keyed
                ],
                changes={"before": records, "soft_delete": use_soft_delete},
            )

        return await self._run(
            AuditOperation.DELETE,
            table,
            work,
            actor=actor,
            client_info=client_info,
            where=where,
            per_record=per_record,
        )

    # =============================================
    # Batches
    # =============================================

    async def batch_insert(
        self,
        table: Any,
        records: Sequence[Mapping[str, Any]],
        *,
        actor: str | None = None,
        client_info: Mapping[str, Any] | None = None,
        per_record: bool | None = None,
    ) -> dict[str, Any]:
        """
        Insert all records in one transaction, or none of them.

        Returns:
            ``{"count", "ids", "records"}``

        Raises:
            BatchSizeExceededError: If the batch is empty or too large
            ValidationFailedError: Item errors prefixed ``"item <n>: "``
        """

        async def work() -> _Outcome:
            name = self._check_mutation(table, AccessOperation.INSERT, "insert")
            batch = await self._transactions.batch_insert(name, records)
            return _Outcome(
                result={
                    "count": batch.count,
                    "ids": list(batch.ids),
                    "records": list(batch.records),
                },
                record_ids=batch.ids,
                changes={"count": batch.count},
            )

        return await self._run(
            AuditOperation.BATCH_INSERT,
            table,
            work,
            actor=actor,
            client_info=client_info,
            per_record=per_record,
            data=records,
        )

    async def batch_update(
        self,
        table: Any,
        updates: Sequence[Mapping[str, Any]],
        *,
        actor: str | None = None,
        client_info: Mapping[str, Any] | None = None,
        per_record: bool | None = None,
    ) -> dict[str, Any]:
        """
        Apply ``{"where": ..., "data": ...}`` items in one transaction.

        Returns:
            ``{"count", "records"}``
        """

        async def work() -> _Outcome:
            name = self._check_mutation(table, AccessOperation.UPDATE, "update")
            batch = await self._transactions.batch_update(name, updates)
            return _Outcome(
                result={"count": batch.count, "records": list(batch.records)},
                record_ids=batch.ids,
                changes={"count": batch.count, "per_item": list(batch.per_item_counts)},
            )

        return await self._run(
            AuditOperation.BATCH_UPDATE,
            table,
            work,
            actor=actor,
            client_info=client_info,
            per_record=per_record,
            data=updates,
        )

    async def batch_delete(
        self,
        table: Any,
        conditions: Sequence[Mapping[str, Any]],
        soft_delete: bool | None = None,
        *,
        actor: str | None = None,
        client_info: Mapping[str, Any] | None = None,
        per_record: bool | None = None,
    ) -> dict[str, Any]:
        """
        Delete rows matched by each filter in one transaction.

        Returns:
            ``{"count", "records", "soft_delete"}``
        """

        async def work() -> _Outcome:
            name = self._check_mutation(table, AccessOperation.DELETE, "delete")
            batch = await self._transactions.batch_delete(
                name, conditions, soft_delete=self._resolve_soft_delete(name, soft_delete)
            )
            return _Outcome(
                result={
                    "count": batch.count,
                    "records": list(batch.records),
                    "soft_delete": batch.soft_delete,
                },
                record_ids=batch.ids,
                changes={"count": batch.count, "soft_delete": batch.soft_delete},
            )

        return await self._run(
            AuditOperation.BATCH_DELETE,
            table,
            work,
            actor=actor,
            client_info=client_info,
            per_record=per_record,
            where=conditions,
        )

    # =============================================
    # Schema discovery
    # =============================================

    async def _discover(
        self, table: Any, operation: str, work: Callable[[], Awaitable[Any]]
    ) -> Any:
        try:
            return await work()
        except DataAccessError as e:
            error = self._error_mapper.contextualize(e, _table_label(table) or None, operation)
            if error is e:
                raise
            raise error from e

    def _check_read(self, table: Any) -> str:
        name = self._security.validate_table(table)
        self._access.validate_table_access(name, AccessOperation.READ)
        return name

    async def get_schema(self, table: Any, refresh_cache: bool = False) -> dict[str, Any]:
        """Columns, grouped constraints and indexes of a whitelisted table."""

        async def work() -> dict[str, Any]:
            return await self._introspector.get_schema(self._check_read(table), refresh_cache)

        return await self._discover(table, "GET_SCHEMA", work)

    async def list_tables(
        self, pattern: str | None = None, include_system: bool = False
    ) -> dict[str, Any]:
        """Readable whitelisted tables with column counts, sizes and flags."""

        async def work() -> dict[str, Any]:
            listing = await self._introspector.list_tables(pattern, include_system)
            tables = [table for table in listing["tables"] if self._access.can_read(table["name"])]
            return {"tables": tables, "count": len(tables)}

        return await self._discover(None, "LIST_TABLES", work)

    async def list_columns(self, table: Any, include_metadata: bool = False) -> dict[str, Any]:
        """Whitelisted column names, or full column metadata."""

        async def work() -> dict[str, Any]:
            return await self._introspector.list_columns(self._check_read(table), include_metadata)

        return await self._discover(table, "LIST_COLUMNS", work)

    async def get_relationships(
        self, table: Any, depth: int = 1, refresh_cache: bool = False
    ) -> dict[str, Any]:
        """Parents and children of a table, up to ``depth`` (1 to 3) hops."""

        async def work() -> dict[str, Any]:
            return await self._relationships.get_relationships(
                self._check_read(table), depth, refresh_cache
            )

        return await self._discover(table, "GET_RELATIONSHIPS", work)

    async def get_relationship_graph(self, table: Any, depth: int = 1) -> dict[str, Any]:
        """``{"center", "nodes", "edges"}`` view of the relationships around a table."""

        async def work() -> dict[str, Any]:
            return await self._relationships.get_relationship_graph(self._check_read(table), depth)

        return await self._discover(table, "GET_RELATIONSHIPS", work)

    async def find_path(
        self, from_table: Any, to_table: Any, max_depth: int = 3
    ) -> list[str] | None:
        """Shortest foreign key path between two tables, or None."""

        async def work() -> list[str] | None:
            return await self._relationships.find_path(
                self._check_read(from_table), self._check_read(to_table), max_depth
            )

        return await self._discover(from_table, "FIND_PATH", work)

    # =============================================
    # Audit trail
    # =============================================

    async def query_audit_logs(
        self,
        start_time: Any = None,
        end_time: Any = None,
        table_name: str | None = None,
        operation: Any = None,
        user_id: str | None = None,
        success: bool | None = None,
        limit: Any = None,
        offset: Any = None,
    ) -> dict[str, Any]:
        """
        Audit entries matching the filters, newest first.

        Returns:
            ``{"logs", "count", "limit", "offset"}``

        Raises:
            AccessDeniedError: If reading the audit table is not granted
            InvalidRequestError: On malformed filters or pagination
        """

        async def work() -> dict[str, Any]:
            self._check_read(AUDIT_TABLE)
            audit_filter = parse_audit_filter(
                start_time, end_time, table_name, operation, user_id, success
            )
            page_limit, page_offset = self._security.validate_pagination(
                self._config.default_audit_page_size if limit is None else limit,
                0 if offset is None else offset,
            )
            logs = await self._audit.query_audit_logs(audit_filter, page_limit, page_offset)
            return {"logs": logs, "count": len(logs), "limit": page_limit, "offset": page_offset}

        return await self._discover(AUDIT_TABLE, "QUERY_AUDIT_LOGS", work)

    async def get_audit_summary(
        self,
        start_time: Any = None,
        end_time: Any = None,
        table_name: str | None = None,
        operation: Any = None,
        user_id: str | None = None,
        success: bool | None = None,
    ) -> dict[str, Any]:
        """``{"summary", "by_operation", "by_table"}`` for the matching entries."""

        async def work() -> dict[str, Any]:
            self._check_read(AUDIT_TABLE)
            audit_filter = parse_audit_filter(
                start_time, end_time, table_name, operation, user_id, success
            )
            return await self._audit.get_audit_summary(audit_filter)

        return await self._discover(AUDIT_TABLE, "GET_AUDIT_SUMMARY", work)

    # =============================================
    # Diagnostics
    # =============================================

    async def health_check(self) -> bool:
        return await self._adapter.health_check()

    def get_metrics(self) -> dict[str, Any]:
        return {"audit": self._audit.get_metrics(), "schema_cache": self._cache.get_stats()}
