"""
Data Access Exception Definitions

Defines the exceptions the data access engine may raise.
Following clean architecture principles - these are application-level exceptions.

Two families exist:
- Local rejections (identifier, whitelist, access, validation, request shape)
  are raised before any statement reaches the store.
- Store errors wrap failures reported by the database and carry a
  ``retryable`` flag so callers can decide whether resubmitting makes sense.
"""

# Standard library imports
from typing import Any


class DataAccessError(Exception):
    """Base exception for data access operations."""

    code = "DB_500_ERROR"

    def __init__(
        self,
        message: str,
        table: str | None = None,
        operation: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.table = table
        self.operation = operation
        self.cause = cause

    def bind(self, table: str | None = None, operation: str | None = None) -> "DataAccessError":
        """Attach table/operation context if not already present."""
        if self.table is None:
            self.table = table
        if self.operation is None:
            self.operation = operation
        return self

    def to_dict(self) -> dict[str, Any]:
        """Caller-visible error payload."""
        payload: dict[str, Any] = {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
        }
        if self.table is not None:
            payload["table"] = self.table
        if self.operation is not None:
            payload["operation"] = self.operation
        return payload


class ConfigurationError(DataAccessError):
    """Raised when the registry, policy or connection settings are invalid."""

    code = "DB_500_CONFIGURATION"


class InvalidIdentifierError(DataAccessError):
    """Raised when a table or column name is empty or malformed."""

    code = "DB_400_INVALID_IDENTIFIER"

    def __init__(self, identifier: Any, kind: str = "identifier", table: str | None = None) -> None:
        super().__init__(
            f"Invalid {kind} name format: {identifier!r}. "
            "Only lowercase letters and underscores allowed.",
            table=table,
        )
        self.identifier = identifier
        self.kind = kind


class NotWhitelistedError(DataAccessError):
    """Raised when a table or column is absent from the registry."""

    code = "DB_403_NOT_WHITELISTED"

    def __init__(self, identifier: str, kind: str = "table", table: str | None = None) -> None:
        if kind == "column" and table:
            message = f"Column '{identifier}' is not whitelisted for table '{table}'"
        else:
            message = f"Table '{identifier}' is not whitelisted"
        super().__init__(message, table=table)
        self.identifier = identifier
        self.kind = kind


class ReadOnlyViolationError(DataAccessError):
    """Raised when a mutation targets a read-only table."""

    code = "DB_403_READ_ONLY"

    def __init__(self, table: str, verb: str = "modify") -> None:
        super().__init__(
            f"Cannot {verb} table '{table}': table is read-only", table=table, operation=verb
        )
        self.verb = verb


class AccessDeniedError(DataAccessError):
    """Raised when the access policy does not allow an operation on a table."""

    code = "DB_403_ACCESS_DENIED"

    def __init__(self, operation: str, table: str, reason: str | None = None) -> None:
        self.reason = reason or f"{operation} access to table '{table}' is not permitted"
        super().__init__(f"Access denied: {self.reason}", table=table, operation=operation)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["reason"] = self.reason
        return payload


class ValidationFailedError(DataAccessError):
    """Raised when a mutation payload fails validation.

    Carries every field-level problem found, not only the first one.
    """

    code = "DB_400_VALIDATION_FAILED"

    def __init__(
        self,
        errors: list[str],
        table: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(
            f"Validation failed: {'; '.join(errors)}", table=table, operation=operation
        )
        self.errors = list(errors)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = list(self.errors)
        return payload


class InvalidRequestError(DataAccessError):
    """Raised when a request is structurally malformed (bad types, empty payload)."""

    code = "DB_400_INVALID_REQUEST"


class MissingFilterError(DataAccessError):
    """Raised when an update or delete is attempted without a filter."""

    code = "DB_400_MISSING_FILTER"

    def __init__(self, operation: str, table: str | None = None) -> None:
        super().__init__(
            f"{operation} requires a non-empty filter", table=table, operation=operation
        )


class BatchSizeExceededError(DataAccessError):
    """Raised when a batch is empty or larger than the configured maximum."""

    code = "DB_400_BATCH_SIZE"

    def __init__(self, size: int, minimum: int = 1, maximum: int = 1000) -> None:
        super().__init__(f"Batch size must be between {minimum} and {maximum}, got {size}")
        self.size = size
        self.minimum = minimum
        self.maximum = maximum


class UnsupportedOperatorError(DataAccessError):
    """Raised when a filter uses an operator the query builder does not know."""

    code = "DB_400_UNSUPPORTED_OPERATOR"

    def __init__(self, operator: str, column: str | None = None) -> None:
        location = f" on column '{column}'" if column else ""
        super().__init__(f"Unsupported filter operator '{operator}'{location}")
        self.operator = operator
        self.column = column


class EmptyMembershipSetError(DataAccessError):
    """Raised when a membership filter is given an empty list."""

    code = "DB_400_EMPTY_MEMBERSHIP"

    def __init__(self, column: str) -> None:
        super().__init__(f"Membership filter on column '{column}' cannot be empty")
        self.column = column


class StoreError(DataAccessError):
    """Base exception for failures reported by the database."""

    code = "DB_500_STORE_ERROR"
    retryable = False

    def __init__(
        self,
        message: str = "Database operation failed",
        table: str | None = None,
        operation: str | None = None,
        sqlstate: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, table=table, operation=operation, cause=cause)
        self.sqlstate = sqlstate

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["retryable"] = self.retryable
        return payload


class DuplicateKeyError(StoreError):
    """Raised when a unique constraint is violated."""

    code = "DB_409_DUPLICATE_KEY"


class ForeignKeyViolationError(StoreError):
    """Raised when a foreign key constraint is violated."""

    code = "DB_409_FOREIGN_KEY"


class NotNullViolationError(StoreError):
    """Raised when a required column receives NULL."""

    code = "DB_400_NOT_NULL"


class CheckViolationError(StoreError):
    """Raised when a check constraint rejects a value."""

    code = "DB_400_CHECK"


class SerializationFailureError(StoreError):
    """Raised when a transaction could not be serialized with concurrent writers."""

    code = "DB_409_SERIALIZATION"
    retryable = True


class DeadlockError(StoreError):
    """Raised when the store aborts a transaction to break a deadlock."""

    code = "DB_409_DEADLOCK"
    retryable = True


class StatementTimeoutError(StoreError):
    """Raised when a statement exceeds the configured timeout."""

    code = "DB_504_TIMEOUT"

    def __init__(
        self,
        message: str = "Query timeout exceeded",
        timeout_ms: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.timeout_ms = timeout_ms


class StoreUnavailableError(StoreError):
    """Raised when the database cannot be reached or refuses connections."""

    code = "DB_503_UNAVAILABLE"
    retryable = True
