"""
Security Validator

Single gate for every caller-supplied identifier. Table and column names
cannot be bound as query parameters, so each one is checked against the
strict identifier pattern and the schema registry before any SQL is built.

The validator is pure: it never touches the database and has no mutable state.
"""

# Standard library imports
import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

# Local imports
from sqlgate.application.interfaces.exceptions import (
    InvalidIdentifierError,
    InvalidRequestError,
    MissingFilterError,
    NotWhitelistedError,
    ReadOnlyViolationError,
)
from sqlgate.domain.value_objects.filters import OPERATOR_PREFIX, FilterExpression
from sqlgate.domain.value_objects.requests import (
    MutationPayload,
    OrderBy,
    QuerySpec,
    SortDirection,
)
from sqlgate.domain.value_objects.schema import TableDescriptor

from .filter_parser import parse_filter
from .schema_registry import SchemaRegistry, is_valid_identifier

logger = logging.getLogger(__name__)

MIN_LIMIT = 1
MAX_LIMIT = 1000

_INTEGER_STRING = re.compile(r"\s*-?[0-9]+\s*")


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INTEGER_STRING.fullmatch(value):
        return int(value.strip())
    return None


class SecurityValidator:
    """
    Whitelist-driven validation of tables, columns, filters and pagination.

    Every other component calls into this class before it uses a name that
    came from a caller.
    """

    def __init__(self, registry: SchemaRegistry, max_limit: int = MAX_LIMIT) -> None:
        self._registry = registry
        self._max_limit = max_limit

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    def validate_table(self, table: Any) -> str:
        """
        Validate a table name.

        Returns:
            The canonical table name

        Raises:
            InvalidIdentifierError: If empty or not matching ``^[a-z_]+$``
            NotWhitelistedError: If the table is not in the registry
        """
        if not is_valid_identifier(table):
            raise InvalidIdentifierError(table, kind="table")
        if table not in self._registry:
            raise NotWhitelistedError(table, kind="table")
        return table

    def descriptor(self, table: Any) -> TableDescriptor:
        """Validate ``table`` and return its descriptor."""
        descriptor = self._registry.get(self.validate_table(table))
        assert descriptor is not None
        return descriptor

    def validate_columns(self, table: Any, columns: str | Iterable[Any]) -> tuple[str, ...]:
        """
        Validate column names for a table.

        Raises:
            InvalidIdentifierError: On a malformed column name
            NotWhitelistedError: If the table or any column is not whitelisted
        """
        descriptor = self.descriptor(table)
        column_list = [columns] if isinstance(columns, str) else list(columns)
        for column in column_list:
            if not is_valid_identifier(column):
                raise InvalidIdentifierError(column, kind="column", table=descriptor.name)
            if not descriptor.has_column(column):
                raise NotWhitelistedError(column, kind="column", table=descriptor.name)
        return tuple(column_list)

    def validate_not_read_only(self, table: Any, verb: str = "modify") -> None:
        descriptor = self.descriptor(table)
        if descriptor.read_only:
            logger.warning(f"Rejected {verb} on read-only table '{descriptor.name}'")
            raise ReadOnlyViolationError(descriptor.name, verb)

    def supports_soft_delete(self, table: Any) -> bool:
        return self.descriptor(table).soft_delete_capable

    def _column_keys(self, mapping: Mapping[str, Any]) -> list[str]:
        # Keys carrying the operator prefix are clause modifiers, not columns.
        return [
            key
            for key in mapping
            if not (isinstance(key, str) and key.startswith(OPERATOR_PREFIX))
        ]

    def validate_filter(self, table: Any, where: Mapping[str, Any] | None) -> FilterExpression:
        """Validate and parse an optional filter. An absent filter is allowed."""
        if where is None:
            return FilterExpression()
        if not isinstance(where, Mapping):
            raise InvalidRequestError("WHERE clause must be an object", table=table)
        self.validate_columns(table, self._column_keys(where))
        return parse_filter(where)

    def validate_where_clause(
        self, table: Any, where: Mapping[str, Any] | None, operation: str = "UPDATE"
    ) -> FilterExpression:
        """
        Validate a filter that must be present, as for update and delete.

        Raises:
            MissingFilterError: If the filter is absent or has no column keys
        """
        name = self.validate_table(table)
        if where is not None and not isinstance(where, Mapping):
            raise InvalidRequestError("WHERE clause must be an object", table=name)
        if not where or not self._column_keys(where):
            raise MissingFilterError(operation, table=name)
        return self.validate_filter(name, where)

    def validate_data(self, table: Any, data: Mapping[str, Any] | None) -> MutationPayload:
        """
        Validate the field names of an insert/update payload.

        Raises:
            InvalidRequestError: If ``data`` is not a non-empty object
        """
        name = self.validate_table(table)
        if not isinstance(data, Mapping) or not data:
            raise InvalidRequestError("Data must be a non-empty object", table=name)
        fields = self._column_keys(data)
        if not fields:
            raise InvalidRequestError("Data object must contain at least one field", table=name)
        self.validate_columns(name, fields)
        return MutationPayload(table=name, data={key: data[key] for key in fields})

    def validate_order_by(
        self, table: Any, order_by: Sequence[Any] | None
    ) -> tuple[OrderBy, ...]:
        """
        Validate sort keys.

        Items may be ``{"column": ..., "direction": ...}`` mappings or bare
        column names. Direction is case-insensitive and defaults to ASC.
        """
        if not order_by:
            return ()
        if isinstance(order_by, (str, Mapping)) or not isinstance(order_by, Sequence):
            raise InvalidRequestError("order_by must be a list", table=table)

        validated: list[OrderBy] = []
        for item in order_by:
            if isinstance(item, str):
                column, raw_direction = item, None
            elif isinstance(item, Mapping) and item.get("column"):
                column, raw_direction = item["column"], item.get("direction")
            else:
                raise InvalidRequestError(
                    "Each order_by item must have a column property", table=table
                )
            self.validate_columns(table, [column])

            direction_name = str(raw_direction or SortDirection.ASC.value).upper()
            try:
                direction = SortDirection(direction_name)
            except ValueError:
                raise InvalidRequestError(
                    f"Invalid sort direction: {direction_name}. Must be ASC or DESC.",
                    table=table,
                ) from None
            validated.append(OrderBy(column=column, direction=direction))
        return tuple(validated)

    def validate_pagination(
        self, limit: Any = None, offset: Any = None
    ) -> tuple[int | None, int | None]:
        """
        Validate pagination parameters.

        Returns:
            ``(limit, offset)`` with None where not given

        Raises:
            InvalidRequestError: If limit is outside [1, max] or offset < 0
        """
        validated_limit = None
        validated_offset = None
        if limit is not None:
            validated_limit = _as_int(limit)
            if validated_limit is None or not MIN_LIMIT <= validated_limit <= self._max_limit:
                raise InvalidRequestError(
                    f"Limit must be between {MIN_LIMIT} and {self._max_limit}"
                )
        if offset is not None:
            validated_offset = _as_int(offset)
            if validated_offset is None or validated_offset < 0:
                raise InvalidRequestError("Offset must be a non-negative integer")
        return validated_limit, validated_offset

    def validate_query(
        self,
        table: Any,
        columns: Iterable[Any] | None = None,
        where: Mapping[str, Any] | None = None,
        order_by: Sequence[Any] | None = None,
        limit: Any = None,
        offset: Any = None,
    ) -> QuerySpec:
        """Validate every part of a select request and return the QuerySpec."""
        name = self.validate_table(table)
        projection = self.validate_columns(name, columns) if columns else None
        expression = self.validate_filter(name, where)
        sort_keys = self.validate_order_by(name, order_by)
        validated_limit, validated_offset = self.validate_pagination(limit, offset)
        return QuerySpec(
            table=name,
            columns=projection,
            filter=expression,
            order_by=sort_keys,
            limit=validated_limit,
            offset=validated_offset,
        )
