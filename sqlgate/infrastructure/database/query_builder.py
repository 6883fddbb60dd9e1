"""
Parameterized SQL Query Builder - Translates validated requests into SQL.

This module turns validated QuerySpecs, MutationPayloads and FilterExpressions
into ``(text, params)`` pairs for psycopg.

Key Security Features:
- All values are bound as parameters (never concatenated)
- Identifiers come only from the schema registry and are re-checked against
  the identifier pattern, then double-quoted
- Built queries are immutable

Usage Examples:
    builder = QueryBuilder(registry)

    # SELECT with filter, ordering and pagination
    query = builder.build_select(spec)

    # Soft delete on a soft-delete-capable table
    query = builder.build_soft_delete("books", filter_expression)

    await adapter.fetch_all(query.text, *query.params)
"""

import logging
from collections.abc import Iterator, Mapping, Sequence
from enum import Enum
from typing import Any

from psycopg.types.json import Jsonb

from sqlgate.application.interfaces.exceptions import (
    InvalidIdentifierError,
    InvalidRequestError,
    MissingFilterError,
    NotWhitelistedError,
    UnsupportedOperatorError,
)
from sqlgate.domain.value_objects.filters import (
    Condition,
    FilterExpression,
    FilterOperator,
    Literal,
    Membership,
    Null,
    Operator,
)
from sqlgate.domain.value_objects.requests import MutationPayload, QuerySpec
from sqlgate.domain.value_objects.schema import (
    DELETED_AT_COLUMN,
    UPDATED_AT_COLUMN,
    DataType,
    TableDescriptor,
)
from sqlgate.infrastructure.security.schema_registry import SchemaRegistry, is_valid_identifier

logger = logging.getLogger(__name__)


class QueryType(Enum):
    """Enumeration of supported query types."""

    SELECT = "SELECT"
    COUNT = "COUNT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SOFT_DELETE = "SOFT_DELETE"
    EXISTS = "EXISTS"


_COMPARISONS: Mapping[FilterOperator, str] = {
    FilterOperator.EQ: "=",
    FilterOperator.NE: "<>",
    FilterOperator.GT: ">",
    FilterOperator.GTE: ">=",
    FilterOperator.LT: "<",
    FilterOperator.LTE: "<=",
    FilterOperator.LIKE: "LIKE",
    FilterOperator.ILIKE: "ILIKE",
}


class BuiltQuery:
    """
    Result of query building containing the SQL and parameters.

    The text and parameters can only be used together and cannot be changed
    after creation.
    """

    __slots__ = ("text", "params", "query_type", "_frozen")

    def __init__(self, text: str, params: Sequence[Any], query_type: QueryType) -> None:
        self.text = text
        self.params = tuple(params)
        self.query_type = query_type
        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after creation."""
        if getattr(self, "_frozen", False):
            raise AttributeError("BuiltQuery is immutable after creation")
        super().__setattr__(name, value)

    def __iter__(self) -> Iterator[Any]:
        return iter((self.text, self.params))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BuiltQuery):
            return NotImplemented
        return self.text == other.text and self.params == other.params

    def __hash__(self) -> int:
        return hash(self.text)

    def __repr__(self) -> str:
        return f"BuiltQuery(text={self.text!r}, params={len(self.params)} bound)"


def quote_identifier(identifier: str) -> str:
    """
    Quote a validated identifier.

    Raises:
        InvalidIdentifierError: If the identifier does not match the strict pattern
    """
    if not is_valid_identifier(identifier):
        raise InvalidIdentifierError(identifier)
    return f'"{identifier}"'


class QueryBuilder:
    """
    Stateless translator from validated requests to parameterized SQL.

    Every method is pure: same input, same ``BuiltQuery``. The registry is
    only consulted for table metadata (timestamp columns, JSON columns).
    """

    def __init__(self, registry: SchemaRegistry) -> None:
        self._registry = registry

    def _descriptor(self, table: str) -> TableDescriptor:
        descriptor = self._registry.get(table)
        if descriptor is None:
            raise NotWhitelistedError(str(table), kind="table")
        return descriptor

    # =============================================
    # Filters
    # =============================================

    def _condition(self, condition: Condition) -> tuple[str, list[Any]]:
        column = quote_identifier(condition.column)
        if isinstance(condition, Literal):
            return f"{column} = %s", [condition.value]
        if isinstance(condition, Null):
            return f"{column} IS NULL", []
        if isinstance(condition, Membership):
            return f"{column} = ANY(%s)", [list(condition.values)]
        if isinstance(condition, Operator):
            if condition.kind is FilterOperator.NULL:
                return f"{column} IS {'' if condition.value else 'NOT '}NULL", []
            if condition.kind is FilterOperator.IN:
                return f"{column} = ANY(%s)", [list(condition.value)]
            symbol = _COMPARISONS.get(condition.kind)
            if symbol is None:
                raise UnsupportedOperatorError(condition.kind.value, condition.column)
            return f"{column} {symbol} %s", [condition.value]
        raise UnsupportedOperatorError(type(condition).__name__)

    def build_where(self, expression: FilterExpression) -> tuple[str, list[Any]]:
        """
        Translate a filter into an AND-joined WHERE body (without the keyword).

        Returns:
            ``("", [])`` for an empty filter
        """
        clauses: list[str] = []
        params: list[Any] = []
        for condition in expression:
            clause, values = self._condition(condition)
            clauses.append(clause)
            params.extend(values)
        return " AND ".join(clauses), params

    def _projection(
        self, descriptor: TableDescriptor, columns: Sequence[str] | None = None
    ) -> str:
        # Only whitelisted columns are ever selected or returned.
        return ", ".join(quote_identifier(column) for column in columns or descriptor.column_names)

    def _adapt_value(self, descriptor: TableDescriptor, column: str, value: Any) -> Any:
        spec = descriptor.column(column)
        if (
            spec is not None
            and spec.data_type is DataType.JSON
            and isinstance(value, (Mapping, list))
        ):
            return Jsonb(value)
        return value

    # =============================================
    # Statements
    # =============================================

    def build_select(self, spec: QuerySpec) -> BuiltQuery:
        descriptor = self._descriptor(spec.table)
        projection = self._projection(descriptor, spec.columns)
        sql = f"SELECT {projection} FROM {quote_identifier(descriptor.name)}"
        params: list[Any] = []

        where, where_params = self.build_where(spec.filter)
        if where:
            sql += f" WHERE {where}"
            params.extend(where_params)

        if spec.order_by:
            sql += " ORDER BY " + ", ".join(
                f"{quote_identifier(order.column)} {order.direction.value}"
                for order in spec.order_by
            )

        if spec.limit is not None:
            sql += " LIMIT %s"
            params.append(spec.limit)
        if spec.offset is not None:
            sql += " OFFSET %s"
            params.append(spec.offset)

        return BuiltQuery(sql, params, QueryType.SELECT)

    def build_count(self, table: str, expression: FilterExpression | None = None) -> BuiltQuery:
        descriptor = self._descriptor(table)
        sql = f"SELECT COUNT(*) AS count FROM {quote_identifier(descriptor.name)}"
        where, params = self.build_where(expression or FilterExpression())
        if where:
            sql += f" WHERE {where}"
        return BuiltQuery(sql, params, QueryType.COUNT)

    def build_insert(self, payload: MutationPayload) -> BuiltQuery:
        descriptor = self._descriptor(payload.table)
        if not payload.data:
            raise InvalidRequestError("Insert requires at least one field", table=payload.table)

        columns = list(payload.data)
        column_list = ", ".join(quote_identifier(column) for column in columns)
        placeholders = ", ".join(["%s"] * len(columns))
        params = [self._adapt_value(descriptor, column, payload.data[column]) for column in columns]

        sql = (
            f"INSERT INTO {quote_identifier(descriptor.name)} ({column_list}) "
            f"VALUES ({placeholders}) RETURNING {self._projection(descriptor)}"
        )
        return BuiltQuery(sql, params, QueryType.INSERT)

    def build_update(self, payload: MutationPayload, expression: FilterExpression) -> BuiltQuery:
        """
        Build an UPDATE ... RETURNING the whitelisted columns.

        ``updated_at`` is set to CURRENT_TIMESTAMP when the table has that
        column and the payload does not set it explicitly.

        Raises:
            MissingFilterError: If ``expression`` is empty
        """
        descriptor = self._descriptor(payload.table)
        if not expression:
            raise MissingFilterError("UPDATE", table=descriptor.name)
        if not payload.data:
            raise InvalidRequestError("Update requires at least one field", table=payload.table)

        assignments = [f"{quote_identifier(column)} = %s" for column in payload.data]
        params = [
            self._adapt_value(descriptor, column, value) for column, value in payload.data.items()
        ]
        if descriptor.has_updated_at and UPDATED_AT_COLUMN not in payload.data:
            assignments.append(f"{quote_identifier(UPDATED_AT_COLUMN)} = CURRENT_TIMESTAMP")

        where, where_params = self.build_where(expression)
        params.extend(where_params)

        sql = (
            f"UPDATE {quote_identifier(descriptor.name)} SET {', '.join(assignments)} "
            f"WHERE {where} RETURNING {self._projection(descriptor)}"
        )
        return BuiltQuery(sql, params, QueryType.UPDATE)

    def build_delete(self, table: str, expression: FilterExpression) -> BuiltQuery:
        """Build a hard DELETE ... RETURNING the whitelisted columns."""
        descriptor = self._descriptor(table)
        if not expression:
            raise MissingFilterError("DELETE", table=descriptor.name)

        where, params = self.build_where(expression)
        sql = (
            f"DELETE FROM {quote_identifier(descriptor.name)} WHERE {where} "
            f"RETURNING {self._projection(descriptor)}"
        )
        return BuiltQuery(sql, params, QueryType.DELETE)

    def build_soft_delete(self, table: str, expression: FilterExpression) -> BuiltQuery:
        """
        Build a soft delete: stamp ``deleted_at`` on rows not already deleted.

        Raises:
            InvalidRequestError: If the table is not soft-delete-capable
            MissingFilterError: If ``expression`` is empty
        """
        descriptor = self._descriptor(table)
        if not descriptor.soft_delete_capable:
            raise InvalidRequestError(
                f"Table '{descriptor.name}' does not support soft delete", table=descriptor.name
            )
        if not expression:
            raise MissingFilterError("DELETE", table=descriptor.name)

        assignments = [f"{quote_identifier(DELETED_AT_COLUMN)} = CURRENT_TIMESTAMP"]
        if descriptor.has_updated_at:
            assignments.append(f"{quote_identifier(UPDATED_AT_COLUMN)} = CURRENT_TIMESTAMP")

        where, params = self.build_where(expression)
        sql = (
            f"UPDATE {quote_identifier(descriptor.name)} SET {', '.join(assignments)} "
            f"WHERE {where} AND {quote_identifier(DELETED_AT_COLUMN)} IS NULL "
            f"RETURNING {self._projection(descriptor)}"
        )
        return BuiltQuery(sql, params, QueryType.SOFT_DELETE)

    def build_exists(self, table: str, column: str, value: Any) -> BuiltQuery:
        """Existence check used for foreign key pre-validation."""
        descriptor = self._descriptor(table)
        sql = (
            f"SELECT EXISTS(SELECT 1 FROM {quote_identifier(descriptor.name)} "
            f"WHERE {quote_identifier(column)} = %s) AS found"
        )
        return BuiltQuery(sql, [value], QueryType.EXISTS)

    def build_unique_check(
        self,
        table: str,
        column: str,
        value: Any,
        exclude: FilterExpression | None = None,
    ) -> BuiltQuery:
        """
        Count rows holding ``value`` in ``column``, ignoring rows matched by ``exclude``.

        On update ``exclude`` is the update filter, so the rows being updated
        never conflict with themselves.
        """
        descriptor = self._descriptor(table)
        sql = (
            f"SELECT COUNT(*) AS count FROM {quote_identifier(descriptor.name)} "
            f"WHERE {quote_identifier(column)} = %s"
        )
        params: list[Any] = [value]
        if exclude:
            where, where_params = self.build_where(exclude)
            sql += f" AND NOT COALESCE(({where}), FALSE)"
            params.extend(where_params)
        return BuiltQuery(sql, params, QueryType.COUNT)
