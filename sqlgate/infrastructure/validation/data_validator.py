"""
Data Validator

Schema-typed validation of insert/update payloads before they are written.

Checks run in two stages:
- Local checks against the table descriptor: required fields, null into
  required columns, type families, maximum length and name-based format
  rules (email, URL, non-negative identifiers and counts).
- Store checks, run only for fields that passed the local stage: referenced
  foreign key rows must exist, and values of unique columns must not already
  be taken by another row.

All problems are collected and raised together as one ValidationFailedError.
"""

# Standard library imports
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import urlparse
from uuid import UUID

# Local imports
from sqlgate.application.interfaces.exceptions import ValidationFailedError
from sqlgate.domain.value_objects.filters import FilterExpression
from sqlgate.domain.value_objects.requests import MutationPayload
from sqlgate.domain.value_objects.schema import ColumnDescriptor, DataType, TableDescriptor
from sqlgate.infrastructure.database.adapter import QueryExecutor
from sqlgate.infrastructure.database.query_builder import QueryBuilder
from sqlgate.infrastructure.security.schema_registry import SchemaRegistry

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_INTEGER_STRING = re.compile(r"-?\d+")

INSERT = "insert"
UPDATE = "update"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and _INTEGER_STRING.fullmatch(value) is not None


def _is_numeric(value: Any) -> bool:
    if _is_number(value):
        return True
    if isinstance(value, str):
        try:
            Decimal(value)
        except InvalidOperation:
            return False
        return True
    return False


def _is_date(value: Any) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    if not isinstance(value, str):
        return False
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def _is_uuid(value: Any) -> bool:
    if isinstance(value, UUID):
        return True
    if not isinstance(value, str):
        return False
    try:
        UUID(value)
    except ValueError:
        return False
    return True


_TYPE_CHECKS: dict[DataType, tuple[Callable[[Any], bool], str]] = {
    DataType.INTEGER: (_is_integer, "an integer"),
    DataType.NUMERIC: (_is_numeric, "a number"),
    DataType.BOOLEAN: (lambda value: isinstance(value, bool), "a boolean"),
    DataType.TEXT: (lambda value: isinstance(value, str), "a string"),
    DataType.DATE: (_is_date, "a valid date"),
    DataType.TIMESTAMP: (_is_date, "a valid date/timestamp"),
    DataType.JSON: (lambda value: isinstance(value, (dict, list)), "a JSON object or array"),
    DataType.ARRAY: (lambda value: isinstance(value, (list, tuple)), "an array"),
    DataType.UUID: (_is_uuid, "a valid UUID"),
}


def _is_valid_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc)


COUNTER_SUFFIXES = ("_id", "count", "_number")
_NUMERIC_TYPES = (DataType.INTEGER, DataType.NUMERIC)


def _is_counter_name(name: str) -> bool:
    return name.endswith(COUNTER_SUFFIXES)


@dataclass
class ValidationResult:
    """Accumulated field errors for one payload."""

    errors: list[str] = field(default_factory=list)
    failed_fields: set[str] = field(default_factory=set)

    @property
    def valid(self) -> bool:
        return not self.errors

    def add(self, column: str, message: str) -> None:
        self.errors.append(f"{column}: {message}")
        self.failed_fields.add(column)


class DataValidator:
    """
    Validates mutation payloads against the registry and the store.

    Store checks go through the executor they are given, so inside a
    transaction they see the transaction's own uncommitted writes.
    """

    def __init__(self, registry: SchemaRegistry, query_builder: QueryBuilder) -> None:
        self._registry = registry
        self._query_builder = query_builder

    def check_value(self, column: ColumnDescriptor, value: Any) -> str | None:
        """Type, length and format check for one non-null value."""
        check, expected = _TYPE_CHECKS[column.data_type]
        if not check(value):
            return f"must be {expected}, got {type(value).__name__}"

        if column.max_length is not None and isinstance(value, str):
            if len(value) > column.max_length:
                return f"exceeds maximum length of {column.max_length} characters"

        name = column.name
        if isinstance(value, str):
            if name.endswith("email") and not EMAIL_PATTERN.fullmatch(value):
                return "must be a valid email address"
            if name.endswith("url") and not _is_valid_url(value):
                return "must be a valid URL"

        if _is_counter_name(name):
            # Numeric strings only count as numbers for numeric columns.
            numeric_column = column.data_type in _NUMERIC_TYPES
            number = int(value) if numeric_column and _is_integer(value) else value
            if _is_number(number) and number < 0:
                return "must be a non-negative number"
        return None

    def validate_fields(
        self, descriptor: TableDescriptor, payload: MutationPayload, operation: str = INSERT
    ) -> ValidationResult:
        """
        Run the local checks.

        Args:
            descriptor: Target table
            payload: Fields to write
            operation: ``"insert"`` or ``"update"``; required-field presence
                is only enforced on insert

        Returns:
            ValidationResult with every local problem found
        """
        result = ValidationResult()

        for name, value in payload.data.items():
            column = descriptor.column(name)
            if column is None:
                result.add(name, f"unknown column for table '{descriptor.name}'")
                continue
            if value is None:
                if column.required:
                    result.add(name, "cannot be null")
                continue
            message = self.check_value(column, value)
            if message:
                result.add(name, message)

        if operation == INSERT:
            for column in descriptor.required_columns():
                if column.name not in payload.data:
                    result.add(column.name, "missing required field")

        return result

    async def check_foreign_keys(
        self,
        executor: QueryExecutor,
        descriptor: TableDescriptor,
        payload: MutationPayload,
        result: ValidationResult,
    ) -> None:
        """Ensure every referenced row exists."""
        for column in descriptor.foreign_keys():
            value = payload.data.get(column.name)
            if value is None or column.name in result.failed_fields:
                continue
            reference = column.references
            assert reference is not None
            if reference.table not in self._registry:
                logger.debug(
                    f"Skipping foreign key check for {descriptor.name}.{column.name}: "
                    f"target table is not whitelisted"
                )
                continue

            query = self._query_builder.build_exists(reference.table, reference.column, value)
            exists = await executor.fetch_value(query.text, *query.params)
            if not exists:
                result.add(
                    column.name, f"referenced {reference.table} record {value!r} does not exist"
                )

    async def check_unique(
        self,
        executor: QueryExecutor,
        descriptor: TableDescriptor,
        payload: MutationPayload,
        result: ValidationResult,
        exclude: FilterExpression | None = None,
    ) -> None:
        """Ensure unique column values are not taken by rows outside ``exclude``."""
        for column in descriptor.unique_columns():
            value = payload.data.get(column.name)
            if value is None or column.name in result.failed_fields:
                continue

            query = self._query_builder.build_unique_check(
                descriptor.name, column.name, value, exclude
            )
            count = await executor.fetch_value(query.text, *query.params)
            if count:
                result.add(column.name, "value already exists")

    async def validate(
        self,
        executor: QueryExecutor,
        payload: MutationPayload,
        operation: str = INSERT,
        exclude: FilterExpression | None = None,
        error_prefix: str = "",
    ) -> None:
        """
        Run local and store checks, raising once with every problem found.

        Args:
            executor: Adapter or transaction session used for store checks
            payload: Validated field names and values
            operation: ``"insert"`` or ``"update"``
            exclude: On update, the filter selecting the rows being updated
            error_prefix: Prepended to each message, e.g. ``"item 3: "``

        Raises:
            ValidationFailedError: If any check fails
        """
        descriptor = self._registry.get(payload.table)
        assert descriptor is not None

        result = self.validate_fields(descriptor, payload, operation)
        await self.check_foreign_keys(executor, descriptor, payload, result)
        await self.check_unique(executor, descriptor, payload, result, exclude)

        if not result.valid:
            errors = [f"{error_prefix}{error}" for error in result.errors]
            logger.warning(
                f"Validation failed for {operation} on '{descriptor.name}': {len(errors)} error(s)"
            )
            raise ValidationFailedError(errors, table=descriptor.name, operation=operation.upper())
