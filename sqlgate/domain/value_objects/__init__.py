"""Domain value objects."""

from .filters import (
    Condition,
    FilterExpression,
    FilterOperator,
    Literal,
    Membership,
    Null,
    Operator,
)
from .requests import (
    AccessOperation,
    MutationPayload,
    OrderBy,
    QuerySpec,
    SortDirection,
    UpdateItem,
)
from .schema import ColumnDescriptor, DataType, ForeignKey, TableDescriptor

__all__ = [
    "AccessOperation",
    "ColumnDescriptor",
    "Condition",
    "DataType",
    "FilterExpression",
    "FilterOperator",
    "ForeignKey",
    "Literal",
    "Membership",
    "MutationPayload",
    "Null",
    "Operator",
    "OrderBy",
    "QuerySpec",
    "SortDirection",
    "TableDescriptor",
    "UpdateItem",
]
