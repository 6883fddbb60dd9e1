"""
Store Error Mapper

Classifies psycopg errors by SQLSTATE into the StoreError hierarchy and
produces sanitized, caller-safe messages. Query text, bound values and
non-whitelisted schema names never appear in a mapped error.
"""

# Standard library imports
import builtins
import logging
import re
from collections.abc import Mapping

# Third-party imports
import psycopg

# Local imports
from sqlgate.application.interfaces.exceptions import (
    CheckViolationError,
    DataAccessError,
    DeadlockError,
    DuplicateKeyError,
    ForeignKeyViolationError,
    NotNullViolationError,
    SerializationFailureError,
    StatementTimeoutError,
    StoreError,
    StoreUnavailableError,
)
from sqlgate.infrastructure.security.schema_registry import SchemaRegistry

logger = logging.getLogger(__name__)

_KEY_DETAIL = re.compile(r"Key \(([a-z_, ]+)\)=")

SQLSTATE_MAPPINGS: Mapping[str, tuple[type[StoreError], str]] = {
    "23505": (
        DuplicateKeyError,
        "Duplicate key violation - a record with this unique value already exists",
    ),
    "23503": (ForeignKeyViolationError, "Foreign key violation - referenced record does not exist"),
    "23502": (NotNullViolationError, "Not null violation - required field is missing"),
    "23514": (
        CheckViolationError,
        "Check constraint violation - data does not meet validation rules",
    ),
    "40001": (
        SerializationFailureError,
        "Serialization failure - transaction conflict detected, please retry",
    ),
    "40P01": (DeadlockError, "Deadlock detected - transaction was aborted to resolve deadlock"),
    "57014": (StatementTimeoutError, "Transaction timeout - operation exceeded time limit"),
    "08006": (StoreUnavailableError, "Connection failure - database connection was lost"),
    "08003": (
        StoreUnavailableError,
        "Connection does not exist - connection was closed unexpectedly",
    ),
    "53300": (StoreUnavailableError, "Too many connections - connection pool exhausted"),
}

RETRYABLE_SQLSTATES = frozenset(
    code for code, (error_class, _) in SQLSTATE_MAPPINGS.items() if error_class.retryable
)


class StoreErrorMapper:
    """Maps driver exceptions to StoreErrors with sanitized messages."""

    def __init__(self, registry: SchemaRegistry | None = None) -> None:
        self._registry = registry

    def _whitelisted_columns(self, table: str | None, columns: list[str]) -> list[str]:
        if self._registry is None or table is None:
            return []
        descriptor = self._registry.get(table)
        if descriptor is None or not all(descriptor.has_column(column) for column in columns):
            return []
        return columns

    def _affected_columns(self, error: psycopg.Error, table: str | None) -> list[str]:
        diag = error.diag
        columns: list[str] = []
        if diag.column_name:
            columns = [diag.column_name]
        elif diag.message_detail:
            match = _KEY_DETAIL.search(diag.message_detail)
            if match:
                columns = [part.strip() for part in match.group(1).split(",")]
        # The error may name a column of another table; only report our own.
        if diag.table_name and diag.table_name != table:
            return []
        return self._whitelisted_columns(table, columns)

    def map(
        self,
        error: BaseException,
        table: str | None = None,
        operation: str | None = None,
    ) -> DataAccessError:
        """
        Map a driver exception to a DataAccessError.

        Errors that are already DataAccessErrors pass through with context bound.
        """
        if isinstance(error, DataAccessError):
            return error.bind(table, operation)

        if isinstance(error, builtins.TimeoutError):
            return StatementTimeoutError(
                "Operation exceeded time limit", table=table, operation=operation, cause=error
            )

        if not isinstance(error, psycopg.Error):
            return StoreError(
                "Database operation failed", table=table, operation=operation, cause=error
            )

        sqlstate = error.sqlstate
        error_class, message = SQLSTATE_MAPPINGS.get(sqlstate or "", (None, None))

        if error_class is None:
            if isinstance(error, psycopg.OperationalError) and (
                sqlstate is None or sqlstate.startswith("08")
            ):
                error_class, message = StoreUnavailableError, "Database connection failed"
            else:
                error_class, message = StoreError, "Database operation failed"

        if error_class is ForeignKeyViolationError and (operation or "").upper() in (
            "DELETE",
            "BATCH_DELETE",
        ):
            message = "Foreign key violation - record is still referenced by other records"

        columns = self._affected_columns(error, table)
        if columns:
            message = f"{message} (columns: {', '.join(columns)})"

        logger.debug(f"Mapped SQLSTATE {sqlstate} on '{table}' to {error_class.__name__}")
        return error_class(
            message, table=table, operation=operation, sqlstate=sqlstate, cause=error
        )

    def contextualize(
        self, error: DataAccessError, table: str | None, operation: str | None
    ) -> DataAccessError:
        """
        Re-classify a store error once the table and operation are known.

        Errors mapped deep in the adapter lack that context, which decides the
        foreign key message and which affected columns may be named.
        """
        if isinstance(error, StoreError) and isinstance(error.cause, psycopg.Error):
            return self.map(error.cause, table, operation)
        return error.bind(table, operation)


def is_retryable_error(error: BaseException) -> bool:
    """
    True when resubmitting the same work may succeed.

    Serialization failures, deadlocks and connection loss are retryable;
    constraint violations are not.
    """
    if isinstance(error, StoreError):
        return error.retryable
    if isinstance(error, psycopg.Error):
        return (error.sqlstate or "") in RETRYABLE_SQLSTATES
    return False
