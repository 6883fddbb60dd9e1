"""
Schema Registry

The explicit whitelist of tables and columns the engine may reference, plus
the read-only and soft-delete-capable flags per table.

The registry is built once at process start, either from the built-in default
table set or from a mapping loaded out of a YAML file, and is immutable from
then on. Changing it requires a restart.
"""

# Standard library imports
import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

# Local imports
from sqlgate.application.interfaces.exceptions import ConfigurationError
from sqlgate.domain.value_objects.schema import (
    DELETED_AT_COLUMN,
    ColumnDescriptor,
    DataType,
    ForeignKey,
    TableDescriptor,
)

logger = logging.getLogger(__name__)

IDENTIFIER_PATTERN = re.compile(r"[a-z_]+")
MAX_IDENTIFIER_LENGTH = 63


def is_valid_identifier(name: Any) -> bool:
    return (
        isinstance(name, str)
        and 0 < len(name) <= MAX_IDENTIFIER_LENGTH
        and IDENTIFIER_PATTERN.fullmatch(name) is not None
    )


class SchemaRegistry:
    """Read-only collection of TableDescriptors keyed by table name."""

    def __init__(self, tables: Iterable[TableDescriptor]) -> None:
        indexed: dict[str, TableDescriptor] = {}
        for table in tables:
            self._check_descriptor(table)
            if table.name in indexed:
                raise ConfigurationError(f"Table '{table.name}' is declared twice")
            indexed[table.name] = table
        self._tables: Mapping[str, TableDescriptor] = MappingProxyType(indexed)
        logger.debug(f"Schema registry loaded with {len(indexed)} tables")

    @staticmethod
    def _check_descriptor(table: TableDescriptor) -> None:
        if not is_valid_identifier(table.name):
            raise ConfigurationError(f"Invalid table name in registry: {table.name!r}")
        seen: set[str] = set()
        for column in table.columns:
            if not is_valid_identifier(column.name):
                raise ConfigurationError(
                    f"Invalid column name in registry: {table.name}.{column.name!r}"
                )
            if column.name in seen:
                raise ConfigurationError(f"Column '{table.name}.{column.name}' is declared twice")
            seen.add(column.name)
        if table.primary_key is not None and table.primary_key not in seen:
            raise ConfigurationError(
                f"Primary key '{table.primary_key}' is not a column of '{table.name}'"
            )
        if table.soft_delete_capable and DELETED_AT_COLUMN not in seen:
            raise ConfigurationError(
                f"Soft-delete table '{table.name}' must declare a '{DELETED_AT_COLUMN}' column"
            )

    def __contains__(self, table: object) -> bool:
        return table in self._tables

    def __iter__(self) -> Iterator[TableDescriptor]:
        return iter(self._tables.values())

    def __len__(self) -> int:
        return len(self._tables)

    def get(self, table: str) -> TableDescriptor | None:
        return self._tables.get(table)

    @property
    def table_names(self) -> tuple[str, ...]:
        return tuple(sorted(self._tables))

    def is_read_only(self, table: str) -> bool:
        descriptor = self._tables.get(table)
        return descriptor is not None and descriptor.read_only

    def supports_soft_delete(self, table: str) -> bool:
        descriptor = self._tables.get(table)
        return descriptor is not None and descriptor.soft_delete_capable

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SchemaRegistry":
        """
        Build a registry from a ``{table: {columns: ..., ...}}`` mapping.

        Column entries may be a bare type name (``bio: text``) or a mapping
        with ``type``, ``required``, ``unique``, ``max_length`` and
        ``references`` (``"authors.id"`` or ``"authors"``).

        Raises:
            ConfigurationError: If the mapping is malformed
        """
        if not isinstance(data, Mapping) or not data:
            raise ConfigurationError("Registry must map table names to table definitions")
        tables = [_table_from_mapping(name, spec or {}) for name, spec in data.items()]
        return cls(tables)

    @classmethod
    def default(cls) -> "SchemaRegistry":
        return cls(DEFAULT_TABLES)


def _parse_reference(raw: Any, where: str) -> ForeignKey:
    if not isinstance(raw, str) or not raw:
        raise ConfigurationError(f"Invalid reference for {where}: {raw!r}")
    table, _, column = raw.partition(".")
    return ForeignKey(table=table, column=column or "id")


def _column_from_mapping(table: str, name: str, spec: Any) -> ColumnDescriptor:
    where = f"{table}.{name}"
    if spec is None:
        spec = {}
    elif isinstance(spec, str):
        spec = {"type": spec}
    elif not isinstance(spec, Mapping):
        raise ConfigurationError(f"Invalid column definition for {where}")

    try:
        data_type = DataType.from_string(spec.get("type", "text"))
    except ValueError as e:
        raise ConfigurationError(f"Unknown type for {where}: {spec.get('type')!r}") from e

    references = spec.get("references")
    return ColumnDescriptor(
        name=name,
        data_type=data_type,
        required=bool(spec.get("required", False)),
        unique=bool(spec.get("unique", False)),
        max_length=spec.get("max_length"),
        references=_parse_reference(references, where) if references else None,
    )


def _table_from_mapping(name: str, spec: Mapping[str, Any]) -> TableDescriptor:
    raw_columns = spec.get("columns")
    if isinstance(raw_columns, list):
        raw_columns = {column: None for column in raw_columns}
    if not isinstance(raw_columns, Mapping) or not raw_columns:
        raise ConfigurationError(f"Table '{name}' must declare at least one column")

    return TableDescriptor(
        name=name,
        columns=tuple(
            _column_from_mapping(name, column, column_spec)
            for column, column_spec in raw_columns.items()
        ),
        primary_key=spec.get("primary_key", "id" if "id" in raw_columns else None),
        read_only=bool(spec.get("read_only", False)),
        soft_delete_capable=bool(spec.get("soft_delete", False)),
    )


# =============================================
# Built-in table set
# =============================================

_INT = DataType.INTEGER
_TS = DataType.TIMESTAMP


def _c(name: str, data_type: DataType = DataType.TEXT, **kwargs: Any) -> ColumnDescriptor:
    return ColumnDescriptor(name=name, data_type=data_type, **kwargs)


def _fk(name: str, table: str, required: bool = False) -> ColumnDescriptor:
    return ColumnDescriptor(
        name=name, data_type=_INT, required=required, references=ForeignKey(table)
    )


def _id() -> ColumnDescriptor:
    return _c("id", _INT)


def _stamps(*extra: str) -> tuple[ColumnDescriptor, ...]:
    return tuple(_c(name, _TS) for name in ("created_at", "updated_at", *extra))


def _table(
    name: str,
    *cols: ColumnDescriptor,
    read_only: bool = False,
    soft_delete: bool = False,
    primary_key: str | None = "id",
) -> TableDescriptor:
    return TableDescriptor(
        name=name,
        columns=cols,
        primary_key=primary_key,
        read_only=read_only,
        soft_delete_capable=soft_delete,
    )


DEFAULT_TABLES: tuple[TableDescriptor, ...] = (
    # Core entities
    _table(
        "authors",
        _id(),
        _c("name", required=True, max_length=255),
        _c("email", unique=True, max_length=255),
        _c("bio"),
        *_stamps(),
    ),
    _table(
        "series",
        _id(),
        _c("title", required=True, max_length=255),
        _fk("author_id", "authors", required=True),
        _c("description"),
        _c("start_year", _INT),
        _c("status", max_length=50),
        *_stamps(),
    ),
    _table(
        "books",
        _id(),
        _fk("series_id", "series"),
        _c("title", required=True, max_length=255),
        _fk("author_id", "authors"),
        _c("description"),
        _c("publication_year", _INT),
        _c("status", max_length=50),
        _c("book_order", _INT),
        *_stamps("deleted_at"),
        soft_delete=True,
    ),
    _table(
        "chapters",
        _id(),
        _fk("book_id", "books", required=True),
        _c("chapter_number", _INT, required=True),
        _c("title", max_length=255),
        _c("content"),
        _c("word_count", _INT),
        _c("status", max_length=50),
        *_stamps("deleted_at"),
        soft_delete=True,
    ),
    _table(
        "scenes",
        _id(),
        _fk("chapter_id", "chapters", required=True),
        _c("scene_number", _INT),
        _c("title", max_length=255),
        _c("content"),
        _c("word_count", _INT),
        _fk("pov_character_id", "characters"),
        _fk("location_id", "locations"),
        *_stamps("deleted_at"),
        soft_delete=True,
    ),
    # Character management
    _table(
        "characters",
        _id(),
        _fk("series_id", "series", required=True),
        _c("name", required=True, max_length=255),
        _c("role", max_length=100),
        _c("description"),
        _c("appearance"),
        _c("personality"),
        _c("backstory"),
        _c("goals"),
        *_stamps("deleted_at"),
        soft_delete=True,
    ),
    _table(
        "character_arcs",
        _id(),
        _fk("character_id", "characters", required=True),
        _fk("book_id", "books"),
        _c("arc_type", max_length=100),
        _c("description"),
        _c("starting_state"),
        _c("ending_state"),
        *_stamps(),
    ),
    _table(
        "character_relationships",
        _id(),
        _fk("character_id", "characters", required=True),
        _fk("related_character_id", "characters", required=True),
        _c("relationship_type", max_length=100),
        _c("description"),
        _c("status", max_length=50),
        *_stamps(),
    ),
    _table(
        "character_timeline_events",
        _id(),
        _fk("character_id", "characters", required=True),
        _c("event_date", DataType.DATE),
        _c("event_type", max_length=100),
        _c("description"),
        _fk("chapter_id", "chapters"),
        *_stamps(),
    ),
    _table(
        "character_knowledge",
        _id(),
        _fk("character_id", "characters", required=True),
        _c("knowledge_type", max_length=100),
        _c("description"),
        _fk("acquired_chapter_id", "chapters"),
        *_stamps(),
    ),
    # World building
    _table(
        "locations",
        _id(),
        _fk("series_id", "series", required=True),
        _c("name", required=True, max_length=255),
        _c("type", max_length=100),
        _c("description"),
        _fk("parent_location_id", "locations"),
        *_stamps("deleted_at"),
        soft_delete=True,
    ),
    _table(
        "world_elements",
        _id(),
        _fk("series_id", "series", required=True),
        _c("element_type", max_length=100),
        _c("name", required=True, max_length=255),
        _c("description"),
        *_stamps("deleted_at"),
        soft_delete=True,
    ),
    _table(
        "organizations",
        _id(),
        _fk("series_id", "series", required=True),
        _c("name", required=True, max_length=255),
        _c("type", max_length=100),
        _c("description"),
        *_stamps("deleted_at"),
        soft_delete=True,
    ),
    # Plot and story elements
    _table(
        "plot_threads",
        _id(),
        _fk("series_id", "series", required=True),
        _fk("book_id", "books"),
        _c("thread_type", max_length=100),
        _c("title", required=True, max_length=255),
        _c("description"),
        _c("status", max_length=50),
        _c("resolution"),
        *_stamps("deleted_at"),
        soft_delete=True,
    ),
    _table(
        "tropes",
        _id(),
        _c("trope_name", required=True, max_length=255),
        _c("category", max_length=100),
        _c("description"),
        *_stamps(),
    ),
    # Metadata and lookup tables
    _table(
        "genres",
        _id(),
        _c("genre_name", required=True, unique=True, max_length=50),
        _c("description"),
        _fk("parent_genre_id", "genres"),
        read_only=True,
    ),
    _table(
        "lookup_values",
        _id(),
        _c("lookup_type", required=True, max_length=100),
        _c("value", required=True, max_length=255),
        _c("display_order", _INT),
        _c("is_active", DataType.BOOLEAN),
        read_only=True,
    ),
    # Junction tables
    _table(
        "series_genres",
        _fk("series_id", "series", required=True),
        _fk("genre_id", "genres", required=True),
        primary_key=None,
    ),
    _table(
        "book_genres",
        _fk("book_id", "books", required=True),
        _fk("genre_id", "genres", required=True),
        primary_key=None,
    ),
    _table(
        "book_tropes",
        _fk("book_id", "books", required=True),
        _fk("trope_id", "tropes", required=True),
        _c("prominence", max_length=50),
        primary_key=None,
    ),
    _table(
        "character_scenes",
        _fk("character_id", "characters", required=True),
        _fk("scene_id", "scenes", required=True),
        _c("role", max_length=100),
        primary_key=None,
    ),
    # Sessions and exports
    _table(
        "writing_sessions",
        _id(),
        _fk("book_id", "books"),
        _fk("chapter_id", "chapters"),
        _c("session_date", DataType.DATE),
        _c("words_written", _INT),
        _c("notes"),
        _c("created_at", _TS),
    ),
    _table(
        "exports",
        _id(),
        _fk("book_id", "books", required=True),
        _c("export_format", required=True, max_length=50),
        _c("file_path", max_length=1024),
        _c("status", max_length=50),
        *_stamps(),
    ),
    # Audit trail, written only by the audit logger
    _table(
        "audit_logs",
        _id(),
        _c("timestamp", _TS),
        _c("operation", max_length=50),
        _c("table_name", max_length=255),
        _c("record_id", max_length=255),
        _c("user_id", max_length=255),
        _c("client_info", DataType.JSON),
        _c("changes", DataType.JSON),
        _c("success", DataType.BOOLEAN),
        _c("error_message"),
        _c("execution_time_ms", _INT),
        _c("query_hash", max_length=64),
        read_only=True,
    ),
    _table(
        "migrations",
        _id(),
        _c("filename", required=True, max_length=255),
        _c("run_on", _TS),
        read_only=True,
    ),
)
