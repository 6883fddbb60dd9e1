"""
Transaction Manager

Runs work inside a single all-or-nothing transaction and implements the
batch insert/update/delete operations on top of it.

Each batch item goes through the security validator, the data validator and
the query builder before it is executed. The first failing item aborts the
transaction, so either every item is applied or none is.
"""

# Standard library imports
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

# Local imports
from sqlgate.application.interfaces.exceptions import (
    BatchSizeExceededError,
    DataAccessError,
    InvalidRequestError,
    ValidationFailedError,
)
from sqlgate.domain.value_objects.filters import FilterExpression
from sqlgate.domain.value_objects.requests import MutationPayload, UpdateItem
from sqlgate.infrastructure.database.adapter import PostgreSQLAdapter, Record, TransactionSession
from sqlgate.infrastructure.database.error_mapper import is_retryable_error as _is_retryable
from sqlgate.infrastructure.database.query_builder import QueryBuilder
from sqlgate.infrastructure.security.security_validator import SecurityValidator
from sqlgate.infrastructure.validation.data_validator import INSERT, UPDATE, DataValidator

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 1000


@dataclass(frozen=True)
class BatchResult:
    """Outcome of a committed batch."""

    operation: str
    table: str
    count: int
    records: tuple[Record, ...] = ()
    ids: tuple[Any, ...] = ()
    soft_delete: bool = False
    per_item_counts: tuple[int, ...] = field(default=(), repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "table": self.table,
            "count": self.count,
            "ids": list(self.ids),
            "records": list(self.records),
        }


class TransactionManager:
    """
    Transaction and batch execution over a PostgreSQLAdapter.

    The manager never retries on its own; callers use ``is_retryable_error``
    to decide whether resubmitting a failed batch makes sense.
    """

    def __init__(
        self,
        adapter: PostgreSQLAdapter,
        security_validator: SecurityValidator,
        query_builder: QueryBuilder,
        data_validator: DataValidator,
        max_batch_size: int = MAX_BATCH_SIZE,
        statement_timeout_ms: int | None = None,
    ) -> None:
        self._adapter = adapter
        self._security = security_validator
        self._query_builder = query_builder
        self._data_validator = data_validator
        self._max_batch_size = max_batch_size
        self._statement_timeout_ms = statement_timeout_ms

    async def execute_transaction(
        self,
        work: Callable[[TransactionSession], Awaitable[T]],
        timeout_ms: int | None = None,
    ) -> T:
        """
        Execute ``work`` within one transaction.

        Args:
            work: Async callable receiving the transaction session
            timeout_ms: Statement timeout; defaults to the manager's setting

        Returns:
            Result of ``work``

        Raises:
            DataAccessError: If ``work`` or the commit fails; nothing is applied
        """
        try:
            async with self._adapter.transaction(
                timeout_ms or self._statement_timeout_ms
            ) as session:
                result = await work(session)
            logger.debug("Transaction operation completed successfully")
            return result
        except DataAccessError as e:
            logger.warning(f"Transaction rolled back: {type(e).__name__}: {e.message}")
            raise

    def validate_batch_size(self, size: int) -> None:
        """
        Raises:
            BatchSizeExceededError: If ``size`` is outside [1, max_batch_size]
        """
        if not MIN_BATCH_SIZE <= size <= self._max_batch_size:
            raise BatchSizeExceededError(size, MIN_BATCH_SIZE, self._max_batch_size)

    @staticmethod
    def is_retryable_error(error: BaseException) -> bool:
        """True for serialization failures, deadlocks and connection loss."""
        return _is_retryable(error)

    # =============================================
    # Item operations (run inside a session)
    # =============================================

    async def insert_record(
        self, session: TransactionSession, payload: MutationPayload, error_prefix: str = ""
    ) -> Record:
        await self._data_validator.validate(session, payload, INSERT, error_prefix=error_prefix)
        query = self._query_builder.build_insert(payload)
        record = await session.fetch_one(query.text, *query.params)
        return record or {}

    async def update_records(
        self,
        session: TransactionSession,
        payload: MutationPayload,
        expression: FilterExpression,
        error_prefix: str = "",
    ) -> list[Record]:
        await self._data_validator.validate(
            session, payload, UPDATE, exclude=expression, error_prefix=error_prefix
        )
        query = self._query_builder.build_update(payload, expression)
        return await session.fetch_all(query.text, *query.params)

    async def delete_records(
        self,
        session: TransactionSession,
        table: str,
        expression: FilterExpression,
        soft_delete: bool,
    ) -> list[Record]:
        if soft_delete:
            query = self._query_builder.build_soft_delete(table, expression)
        else:
            query = self._query_builder.build_delete(table, expression)
        return await session.fetch_all(query.text, *query.params)

    # =============================================
    # Batches
    # =============================================

    def _ids(self, table: str, records: Sequence[Record]) -> tuple[Any, ...]:
        descriptor = self._security.descriptor(table)
        if descriptor.primary_key is None:
            return ()
        return tuple(record.get(descriptor.primary_key) for record in records)

    def _check_items(self, items: Any, kind: str) -> list[Any]:
        if isinstance(items, (str, bytes, Mapping)) or not isinstance(items, Sequence):
            raise InvalidRequestError(f"{kind} must be a list")
        self.validate_batch_size(len(items))
        return list(items)

    def _prevalidate(
        self, table: str, payloads: Sequence[MutationPayload], operation: str
    ) -> None:
        # Local checks for every item first, so one round trip reports them all.
        descriptor = self._security.descriptor(table)
        errors: list[str] = []
        for index, payload in enumerate(payloads):
            result = self._data_validator.validate_fields(descriptor, payload, operation)
            errors.extend(f"item {index}: {error}" for error in result.errors)
        if errors:
            raise ValidationFailedError(errors, table=table, operation=f"BATCH_{operation.upper()}")

    async def batch_insert(self, table: str, records: Sequence[Mapping[str, Any]]) -> BatchResult:
        """
        Insert every record or none.

        Args:
            table: Target table
            records: Field mappings, 1 to max_batch_size of them

        Returns:
            BatchResult with the inserted rows and their primary keys

        Raises:
            BatchSizeExceededError: If the batch is empty or too large
            ValidationFailedError: If any record is invalid (nothing is written)
            StoreError: If the store rejects any record (nothing is written)
        """
        items = self._check_items(records, "records")
        payloads = [self._security.validate_data(table, record) for record in items]
        self._prevalidate(table, payloads, INSERT)

        async def work(session: TransactionSession) -> list[Record]:
            inserted: list[Record] = []
            for index, payload in enumerate(payloads):
                inserted.append(
                    await self.insert_record(session, payload, error_prefix=f"item {index}: ")
                )
            return inserted

        inserted = await self.execute_transaction(work)
        logger.info(f"Batch insert into '{table}' committed: {len(inserted)} records")
        return BatchResult(
            operation="BATCH_INSERT",
            table=table,
            count=len(inserted),
            records=tuple(inserted),
            ids=self._ids(table, inserted),
        )

    async def batch_update(self, table: str, updates: Sequence[Mapping[str, Any]]) -> BatchResult:
        """
        Apply every ``{"where": ..., "data": ...}`` item or none.

        An item whose filter matches no rows is not an error; it simply
        contributes zero updated records.
        """
        items = self._check_items(updates, "updates")
        parsed: list[UpdateItem] = []
        for index, item in enumerate(items):
            if not isinstance(item, Mapping):
                raise InvalidRequestError(f"item {index}: update must be an object", table=table)
            expression = self._security.validate_where_clause(
                table, item.get("where"), "BATCH_UPDATE"
            )
            payload = self._security.validate_data(table, item.get("data"))
            parsed.append(UpdateItem(filter=expression, payload=payload))
        self._prevalidate(table, [item.payload for item in parsed], UPDATE)

        async def work(session: TransactionSession) -> tuple[list[Record], list[int]]:
            updated: list[Record] = []
            counts: list[int] = []
            for index, item in enumerate(parsed):
                rows = await self.update_records(
                    session, item.payload, item.filter, error_prefix=f"item {index}: "
                )
                updated.extend(rows)
                counts.append(len(rows))
            return updated, counts

        updated, counts = await self.execute_transaction(work)
        logger.info(f"Batch update on '{table}' committed: {len(updated)} records")
        return BatchResult(
            operation="BATCH_UPDATE",
            table=table,
            count=len(updated),
            records=tuple(updated),
            ids=self._ids(table, updated),
            per_item_counts=tuple(counts),
        )

    async def batch_delete(
        self,
        table: str,
        conditions: Sequence[Mapping[str, Any]],
        soft_delete: bool = False,
    ) -> BatchResult:
        """
        Delete rows matched by every filter, or none.

        Args:
            table: Target table
            conditions: One filter mapping per item
            soft_delete: Stamp ``deleted_at`` instead of removing rows; ignored
                for tables that are not soft-delete-capable
        """
        items = self._check_items(conditions, "conditions")
        expressions = [
            self._security.validate_where_clause(table, condition, "BATCH_DELETE")
            for condition in items
        ]
        use_soft_delete = soft_delete and self._security.supports_soft_delete(table)

        async def work(session: TransactionSession) -> tuple[list[Record], list[int]]:
            deleted: list[Record] = []
            counts: list[int] = []
            for expression in expressions:
                rows = await self.delete_records(session, table, expression, use_soft_delete)
                deleted.extend(rows)
                counts.append(len(rows))
            return deleted, counts

        deleted, counts = await self.execute_transaction(work)
        logger.info(
            f"Batch {'soft ' if use_soft_delete else ''}delete on '{table}' committed: "
            f"{len(deleted)} records"
        )
        return BatchResult(
            operation="BATCH_DELETE",
            table=table,
            count=len(deleted),
            records=tuple(deleted),
            ids=self._ids(table, deleted),
            soft_delete=use_soft_delete,
            per_item_counts=tuple(counts),
        )
