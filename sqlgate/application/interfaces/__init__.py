"""
Application Interfaces

Exception contracts shared by the data access engine and its callers.
"""

from .exceptions import (
    AccessDeniedError,
    BatchSizeExceededError,
    CheckViolationError,
    ConfigurationError,
    DataAccessError,
    DeadlockError,
    DuplicateKeyError,
    EmptyMembershipSetError,
    ForeignKeyViolationError,
    InvalidIdentifierError,
    InvalidRequestError,
    MissingFilterError,
    NotNullViolationError,
    NotWhitelistedError,
    ReadOnlyViolationError,
    SerializationFailureError,
    StatementTimeoutError,
    StoreError,
    StoreUnavailableError,
    UnsupportedOperatorError,
    ValidationFailedError,
)

__all__ = [
    "AccessDeniedError",
    "BatchSizeExceededError",
    "CheckViolationError",
    "ConfigurationError",
    "DataAccessError",
    "DeadlockError",
    "DuplicateKeyError",
    "EmptyMembershipSetError",
    "ForeignKeyViolationError",
    "InvalidIdentifierError",
    "InvalidRequestError",
    "MissingFilterError",
    "NotNullViolationError",
    "NotWhitelistedError",
    "ReadOnlyViolationError",
    "SerializationFailureError",
    "StatementTimeoutError",
    "StoreError",
    "StoreUnavailableError",
    "UnsupportedOperatorError",
    "ValidationFailedError",
]
