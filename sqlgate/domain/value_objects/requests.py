"""
Request Value Objects

Validated, immutable request shapes handed from the security validator to the
query builder and the transaction manager.
"""

# Standard library imports
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

# Local imports
from .filters import FilterExpression


class SortDirection(Enum):
    ASC = "ASC"
    DESC = "DESC"


class AccessOperation(Enum):
    """Operations governed by the access policy."""

    READ = "READ"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class OrderBy:
    column: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class QuerySpec:
    """A validated select request."""

    table: str
    columns: tuple[str, ...] | None = None
    filter: FilterExpression = field(default_factory=FilterExpression)
    order_by: tuple[OrderBy, ...] = ()
    limit: int | None = None
    offset: int | None = None


def _freeze(data: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(data))


@dataclass(frozen=True)
class MutationPayload:
    """Field values for an insert or update, checked against the registry."""

    table: str
    data: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", _freeze(self.data))

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(self.data)


@dataclass(frozen=True)
class UpdateItem:
    """One element of a batch update: which rows, and what to set on them."""

    filter: FilterExpression
    payload: MutationPayload
