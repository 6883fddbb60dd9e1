"""
Schema Descriptor Value Objects

Immutable descriptions of the tables and columns the engine is allowed to touch.
A descriptor set is built once at startup and never changes afterwards.
"""

# Standard library imports
from dataclasses import dataclass, field
from enum import Enum

DELETED_AT_COLUMN = "deleted_at"
UPDATED_AT_COLUMN = "updated_at"

# Columns the store fills in; callers never have to supply them.
SERVER_MANAGED_COLUMNS = frozenset({"id", "created_at", "updated_at"})


class DataType(Enum):
    """Column type families understood by the data validator."""

    INTEGER = "integer"
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    TEXT = "text"
    DATE = "date"
    TIMESTAMP = "timestamp"
    JSON = "json"
    ARRAY = "array"
    UUID = "uuid"

    @classmethod
    def from_string(cls, value: str) -> "DataType":
        """Resolve a type name, accepting common PostgreSQL aliases."""
        normalized = value.strip().lower()
        aliases = {
            "int": cls.INTEGER,
            "serial": cls.INTEGER,
            "bigint": cls.INTEGER,
            "smallint": cls.INTEGER,
            "decimal": cls.NUMERIC,
            "float": cls.NUMERIC,
            "real": cls.NUMERIC,
            "bool": cls.BOOLEAN,
            "varchar": cls.TEXT,
            "string": cls.TEXT,
            "jsonb": cls.JSON,
            "datetime": cls.TIMESTAMP,
        }
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


@dataclass(frozen=True)
class ForeignKey:
    """Reference from a column to a column of another table."""

    table: str
    column: str = "id"


@dataclass(frozen=True)
class ColumnDescriptor:
    """A single whitelisted column."""

    name: str
    data_type: DataType = DataType.TEXT
    required: bool = False
    unique: bool = False
    max_length: int | None = None
    references: ForeignKey | None = None


@dataclass(frozen=True)
class TableDescriptor:
    """A whitelisted table and the columns that may be referenced on it."""

    name: str
    columns: tuple[ColumnDescriptor, ...]
    primary_key: str | None = "id"
    read_only: bool = False
    soft_delete_capable: bool = False
    _index: dict[str, ColumnDescriptor] = field(
        init=False, repr=False, compare=False, hash=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "_index", {column.name: column for column in self.columns})

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    def has_column(self, name: str) -> bool:
        return name in self._index

    def column(self, name: str) -> ColumnDescriptor | None:
        return self._index.get(name)

    def required_columns(self) -> list[ColumnDescriptor]:
        """Columns a caller must supply on insert."""
        return [
            column
            for column in self.columns
            if column.required and column.name not in SERVER_MANAGED_COLUMNS
        ]

    def unique_columns(self) -> list[ColumnDescriptor]:
        return [column for column in self.columns if column.unique]

    def foreign_keys(self) -> list[ColumnDescriptor]:
        return [column for column in self.columns if column.references is not None]

    @property
    def has_updated_at(self) -> bool:
        return UPDATED_AT_COLUMN in self._index

    @property
    def has_deleted_at(self) -> bool:
        return DELETED_AT_COLUMN in self._index

