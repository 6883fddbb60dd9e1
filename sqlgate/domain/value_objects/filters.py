"""
Filter Expression Value Objects

A parsed filter is a tuple of tagged conditions:

- ``Literal(column, value)``        -> ``column = %s``
- ``Null(column)``                  -> ``column IS NULL``
- ``Membership(column, values)``    -> ``column = ANY(%s)``
- ``Operator(column, kind, value)`` -> one comparison, pattern or null-check

Downstream code (query builder, data validator) pattern-matches on these
types and never looks at the raw caller mapping again.
"""

# Standard library imports
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

OPERATOR_PREFIX = "$"


class FilterOperator(Enum):
    """Operators accepted inside an operator object."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    IN = "in"
    NULL = "null"

    @classmethod
    def from_token(cls, token: str) -> "FilterOperator":
        """Resolve ``"gt"`` or ``"$gt"`` style tokens. Raises ValueError if unknown."""
        name = token[1:] if token.startswith(OPERATOR_PREFIX) else token
        return cls(name.lower())


@dataclass(frozen=True)
class Literal:
    column: str
    value: Any


@dataclass(frozen=True)
class Null:
    column: str


@dataclass(frozen=True)
class Membership:
    column: str
    values: tuple[Any, ...]


@dataclass(frozen=True)
class Operator:
    column: str
    kind: FilterOperator
    value: Any = None


Condition = Union[Literal, Null, Membership, Operator]


@dataclass(frozen=True)
class FilterExpression:
    """An AND-combined sequence of parsed conditions."""

    conditions: tuple[Condition, ...] = ()

    def __iter__(self) -> Iterator[Condition]:
        return iter(self.conditions)

    def __len__(self) -> int:
        return len(self.conditions)

    def __bool__(self) -> bool:
        return bool(self.conditions)

    @property
    def columns(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for condition in self.conditions:
            seen.setdefault(condition.column, None)
        return tuple(seen)

    def equality_value(self, column: str) -> Any:
        """Value of a plain equality condition on ``column``, if there is one."""
        for condition in self.conditions:
            if isinstance(condition, Literal) and condition.column == column:
                return condition.value
        return None
