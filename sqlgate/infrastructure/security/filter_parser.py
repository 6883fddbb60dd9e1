"""
Filter Parser

Turns a caller filter mapping into a FilterExpression. Parsing happens once,
inside the security validator, after every key has been checked against the
registry.

Accepted forms::

    {"name": "Jane"}                       equality
    {"deleted_at": None}                   IS NULL
    {"id": [1, 2, 3]}                      = ANY(...)
    {"age": {"op": "gte", "value": 18}}    single operator
    {"age": {"$gte": 18, "$lt": 65}}       several operators, AND-combined
"""

# Standard library imports
from collections.abc import Mapping
from typing import Any

# Local imports
from sqlgate.application.interfaces.exceptions import (
    EmptyMembershipSetError,
    InvalidRequestError,
    UnsupportedOperatorError,
)
from sqlgate.domain.value_objects.filters import (
    OPERATOR_PREFIX,
    Condition,
    FilterExpression,
    FilterOperator,
    Literal,
    Membership,
    Null,
    Operator,
)

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def _resolve_operator(token: Any, column: str) -> FilterOperator:
    if not isinstance(token, str):
        raise UnsupportedOperatorError(repr(token), column)
    try:
        return FilterOperator.from_token(token)
    except ValueError:
        raise UnsupportedOperatorError(token, column) from None


def _membership(column: str, values: Any) -> Membership:
    if not isinstance(values, _SEQUENCE_TYPES):
        raise InvalidRequestError(f"Membership filter on column '{column}' requires a list")
    if not values:
        raise EmptyMembershipSetError(column)
    return Membership(column, tuple(values))


def _operator_condition(column: str, kind: FilterOperator, value: Any) -> Condition:
    if kind is FilterOperator.IN:
        return _membership(column, value)
    if kind is FilterOperator.EQ:
        return Null(column) if value is None else Literal(column, value)
    if kind is FilterOperator.NULL:
        return Operator(column, kind, True if value is None else bool(value))
    if kind is FilterOperator.NE and value is None:
        return Operator(column, FilterOperator.NULL, False)
    if value is None:
        raise InvalidRequestError(f"Operator '{kind.value}' on column '{column}' requires a value")
    if isinstance(value, (Mapping, *_SEQUENCE_TYPES)):
        raise InvalidRequestError(f"Operator '{kind.value}' on column '{column}' requires a scalar")
    if kind in (FilterOperator.LIKE, FilterOperator.ILIKE) and not isinstance(value, str):
        raise InvalidRequestError(f"Pattern for column '{column}' must be a string")
    return Operator(column, kind, value)


def _parse_operator_object(column: str, spec: Mapping[str, Any]) -> list[Condition]:
    if not spec:
        raise InvalidRequestError(f"Operator object for column '{column}' is empty")

    if "op" in spec:
        extra = set(spec) - {"op", "value"}
        if extra:
            raise UnsupportedOperatorError(sorted(extra)[0], column)
        kind = _resolve_operator(spec["op"], column)
        return [_operator_condition(column, kind, spec.get("value"))]

    conditions: list[Condition] = []
    for token, value in spec.items():
        if not isinstance(token, str) or not token.startswith(OPERATOR_PREFIX):
            raise UnsupportedOperatorError(str(token), column)
        conditions.append(_operator_condition(column, _resolve_operator(token, column), value))
    return conditions


def parse_filter(where: Mapping[str, Any] | None) -> FilterExpression:
    """
    Parse a caller filter mapping into a FilterExpression.

    Args:
        where: Column to value / operator object mapping, or None

    Returns:
        Parsed filter; empty when ``where`` is None or empty

    Raises:
        UnsupportedOperatorError: If an unknown operator or a top-level
            ``$`` key is used
        EmptyMembershipSetError: If a membership list is empty
        InvalidRequestError: If an operator object is malformed
    """
    if where is None:
        return FilterExpression()
    if not isinstance(where, Mapping):
        raise InvalidRequestError("Filter must be an object")

    conditions: list[Condition] = []
    for column, value in where.items():
        if column.startswith(OPERATOR_PREFIX):
            # No clause-level modifiers are defined.
            raise UnsupportedOperatorError(column)
        if value is None:
            conditions.append(Null(column))
        elif isinstance(value, _SEQUENCE_TYPES):
            conditions.append(_membership(column, value))
        elif isinstance(value, Mapping):
            conditions.extend(_parse_operator_object(column, value))
        else:
            conditions.append(Literal(column, value))
    return FilterExpression(tuple(conditions))
