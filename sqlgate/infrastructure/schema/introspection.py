"""
Schema Introspection

Read-only catalog queries describing whitelisted tables: columns,
constraints, indexes, sizes. Everything returned is filtered through the
schema registry, so columns and tables outside the whitelist never appear.
"""

# Standard library imports
import logging
from typing import Any

# Local imports
from sqlgate.application.interfaces.exceptions import InvalidRequestError
from sqlgate.domain.value_objects.schema import TableDescriptor
from sqlgate.infrastructure.database.adapter import QueryExecutor, Record
from sqlgate.infrastructure.security.security_validator import SecurityValidator

from .cache import SchemaCache

logger = logging.getLogger(__name__)

COLUMNS_QUERY = """
    SELECT
        c.column_name,
        c.data_type,
        c.udt_name,
        c.is_nullable,
        c.column_default,
        c.character_maximum_length,
        c.numeric_precision,
        c.numeric_scale
    FROM information_schema.columns c
    WHERE c.table_schema = 'public'
        AND c.table_name = %s
    ORDER BY c.ordinal_position
"""

CONSTRAINTS_QUERY = """
    SELECT
        tc.constraint_name,
        tc.constraint_type,
        kcu.column_name,
        ccu.table_name AS referenced_table,
        ccu.column_name AS referenced_column
    FROM information_schema.table_constraints tc
    LEFT JOIN information_schema.key_column_usage kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    LEFT JOIN information_schema.constraint_column_usage ccu
        ON tc.constraint_type = 'FOREIGN KEY'
        AND ccu.constraint_name = tc.constraint_name
        AND ccu.table_schema = tc.table_schema
    WHERE tc.table_schema = 'public'
        AND tc.table_name = %s
    ORDER BY tc.constraint_type, tc.constraint_name, kcu.ordinal_position
"""

INDEXES_QUERY = """
    SELECT
        i.relname AS index_name,
        a.attname AS column_name,
        ix.indisunique AS is_unique,
        ix.indisprimary AS is_primary,
        am.amname AS index_type
    FROM pg_class t
    JOIN pg_index ix ON t.oid = ix.indrelid
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = ANY(ix.indkey)
    JOIN pg_am am ON i.relam = am.oid
    WHERE t.relkind = 'r'
        AND t.relname = %s
        AND t.relnamespace = (SELECT oid FROM pg_namespace WHERE nspname = 'public')
    ORDER BY i.relname, a.attnum
"""

TABLES_QUERY = """
    SELECT
        t.table_name,
        t.table_type,
        ARRAY(
            SELECT c.column_name::text FROM information_schema.columns c
            WHERE c.table_schema = t.table_schema AND c.table_name = t.table_name
        ) AS column_names,
        pg_catalog.pg_relation_size(
            (SELECT pc.oid FROM pg_catalog.pg_class pc
             JOIN pg_catalog.pg_namespace n ON n.oid = pc.relnamespace
             WHERE pc.relname = t.table_name AND n.nspname = t.table_schema)
        ) AS size_bytes
    FROM information_schema.tables t
    WHERE t.table_schema = 'public'
"""

_CONSTRAINT_GROUPS = {
    "PRIMARY KEY": "primary_key",
    "FOREIGN KEY": "foreign_keys",
    "UNIQUE": "unique",
    "CHECK": "check",
}


def _format_column(row: Record) -> dict[str, Any]:
    return {
        "name": row["column_name"],
        "data_type": row["data_type"],
        "udt_name": row.get("udt_name"),
        "nullable": row.get("is_nullable") == "YES",
        "default": row.get("column_default"),
        "max_length": row.get("character_maximum_length"),
        "numeric_precision": row.get("numeric_precision"),
        "numeric_scale": row.get("numeric_scale"),
    }


class SchemaIntrospector:
    """Cached catalog lookups for whitelisted tables."""

    def __init__(
        self,
        executor: QueryExecutor,
        security_validator: SecurityValidator,
        cache: SchemaCache,
    ) -> None:
        self._executor = executor
        self._security = security_validator
        self._cache = cache

    async def _catalog_columns(self, descriptor: TableDescriptor) -> list[Record]:
        rows = await self._executor.fetch_all(COLUMNS_QUERY, descriptor.name)
        if not rows:
            raise InvalidRequestError(
                f"Table '{descriptor.name}' not found in database", table=descriptor.name
            )
        return [row for row in rows if descriptor.has_column(row["column_name"])]

    def _group_constraints(
        self, descriptor: TableDescriptor, rows: list[Record]
    ) -> dict[str, list[dict[str, Any]]]:
        grouped: dict[str, dict[str, dict[str, Any]]] = {
            group: {} for group in _CONSTRAINT_GROUPS.values()
        }

        for row in rows:
            group = _CONSTRAINT_GROUPS.get(row["constraint_type"])
            if group is None:
                continue
            column = row.get("column_name")
            if column is not None and not descriptor.has_column(column):
                continue
            if group == "foreign_keys":
                referenced = row.get("referenced_table")
                if referenced is None or referenced not in self._security.registry:
                    continue

            name = row["constraint_name"]
            constraint = grouped[group].setdefault(name, {"name": name, "columns": []})
            if column is not None and column not in constraint["columns"]:
                constraint["columns"].append(column)
            if group == "foreign_keys":
                constraint["referenced_table"] = row["referenced_table"]
                constraint["referenced_column"] = row.get("referenced_column")

        return {group: list(constraints.values()) for group, constraints in grouped.items()}

    def _group_indexes(
        self, descriptor: TableDescriptor, rows: list[Record]
    ) -> list[dict[str, Any]]:
        indexes: dict[str, dict[str, Any]] = {}
        hidden: set[str] = set()
        for row in rows:
            name = row["index_name"]
            if not descriptor.has_column(row["column_name"]):
                hidden.add(name)
                continue
            index = indexes.setdefault(
                name,
                {
                    "name": name,
                    "columns": [],
                    "unique": bool(row["is_unique"]),
                    "primary": bool(row["is_primary"]),
                    "type": row.get("index_type"),
                },
            )
            index["columns"].append(row["column_name"])
        # An index touching any non-whitelisted column is omitted entirely.
        return [index for name, index in indexes.items() if name not in hidden]

    async def get_schema(self, table: str, refresh_cache: bool = False) -> dict[str, Any]:
        """
        Columns, constraints and indexes of a whitelisted table.

        Args:
            table: Whitelisted table name
            refresh_cache: Bypass and replace the cached result

        Returns:
            ``{"table", "columns", "constraints", "indexes", "cached"}``

        Raises:
            InvalidIdentifierError: If ``table`` is malformed
            NotWhitelistedError: If ``table`` is not whitelisted
            InvalidRequestError: If the table does not exist in the store
        """
        self._security.validate_table(table)
        descriptor = self._security.descriptor(table)

        key = SchemaCache.generate_key("schema", table)
        if not refresh_cache:
            cached = self._cache.get(key)
            if cached is not None:
                return {**cached, "cached": True}

        columns = await self._catalog_columns(descriptor)
        constraints = await self._executor.fetch_all(CONSTRAINTS_QUERY, table)
        indexes = await self._executor.fetch_all(INDEXES_QUERY, table)

        schema = {
            "table": table,
            "read_only": descriptor.read_only,
            "soft_delete": descriptor.soft_delete_capable,
            "columns": [_format_column(row) for row in columns],
            "constraints": self._group_constraints(descriptor, constraints),
            "indexes": self._group_indexes(descriptor, indexes),
        }
        self._cache.set(key, schema)
        return {**schema, "cached": False}

    async def list_tables(
        self, pattern: str | None = None, include_system: bool = False
    ) -> dict[str, Any]:
        """
        Whitelisted tables present in the store.

        Args:
            pattern: SQL LIKE pattern on the table name, bound as a parameter
            include_system: Also scan ``pg_*`` and ``sql_*`` names

        Returns:
            ``{"tables": [...], "count": n}``
        """
        if pattern is not None and not isinstance(pattern, str):
            raise InvalidRequestError("pattern must be a string")

        key = SchemaCache.generate_key(
            "tables", "*", {"pattern": pattern, "include_system": include_system}
        )
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        query = TABLES_QUERY
        params: list[Any] = []
        if pattern:
            query += " AND t.table_name LIKE %s"
            params.append(pattern)
        if not include_system:
            query += " AND t.table_name NOT LIKE 'pg\\_%%' AND t.table_name NOT LIKE 'sql\\_%%'"
        query += " ORDER BY t.table_name"

        rows = await self._executor.fetch_all(query, *params)
        registry = self._security.registry

        tables = []
        for row in rows:
            descriptor = registry.get(row["table_name"])
            if descriptor is None:
                continue
            visible = [
                name for name in row.get("column_names") or [] if descriptor.has_column(name)
            ]
            tables.append(
                {
                    "name": descriptor.name,
                    "type": row.get("table_type"),
                    "column_count": len(visible),
                    "size_bytes": int(row.get("size_bytes") or 0),
                    "read_only": descriptor.read_only,
                    "soft_delete": descriptor.soft_delete_capable,
                }
            )

        result = {"tables": tables, "count": len(tables)}
        self._cache.set(key, result)
        logger.debug(f"Listed {len(tables)} whitelisted tables of {len(rows)} scanned")
        return result

    async def list_columns(self, table: str, include_metadata: bool = False) -> dict[str, Any]:
        """
        Column names of a whitelisted table, or full metadata when requested.

        Returns:
            ``{"table", "columns", "count"}``
        """
        self._security.validate_table(table)
        descriptor = self._security.descriptor(table)

        key = SchemaCache.generate_key("columns", table, {"include_metadata": include_metadata})
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        rows = await self._catalog_columns(descriptor)
        columns: list[Any]
        if include_metadata:
            columns = [_format_column(row) for row in rows]
        else:
            columns = [row["column_name"] for row in rows]

        result = {"table": table, "columns": columns, "count": len(columns)}
        self._cache.set(key, result)
        return result

    def invalidate(self, table: str | None = None) -> int:
        """Drop cached results for ``table``, or everything when None."""
        if table is None:
            return self._cache.invalidate_pattern(r".")
        return self._cache.invalidate_pattern(rf"^[a-z]+:{table}(:|$)")
