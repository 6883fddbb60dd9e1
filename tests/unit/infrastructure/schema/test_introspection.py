"""
Unit tests for schema introspection.

Tests that catalog results are filtered through the whitelist, cached, and
that missing tables are reported.
"""

# Standard library imports
from unittest.mock import AsyncMock

# Third-party imports
import pytest

# Local imports
from sqlgate.application.interfaces.exceptions import InvalidRequestError, NotWhitelistedError
from sqlgate.infrastructure.database.adapter import QueryExecutor
from sqlgate.infrastructure.schema.cache import SchemaCache
from sqlgate.infrastructure.schema.introspection import (
    COLUMNS_QUERY,
    CONSTRAINTS_QUERY,
    INDEXES_QUERY,
    SchemaIntrospector,
)


def column_row(name, data_type="text", nullable="YES", **extra):
    row = {
        "column_name": name,
        "data_type": data_type,
        "udt_name": data_type,
        "is_nullable": nullable,
        "column_default": None,
        "character_maximum_length": None,
        "numeric_precision": None,
        "numeric_scale": None,
    }
    row.update(extra)
    return row


AUTHOR_COLUMNS = [
    column_row("id", "integer", "NO", column_default="nextval('authors_id_seq'::regclass)"),
    column_row("name", "character varying", "NO", character_maximum_length=255),
    column_row("email", "character varying", character_maximum_length=255),
    column_row("password_hash"),
    column_row("bio"),
]

AUTHOR_CONSTRAINTS = [
    {
        "constraint_name": "authors_pkey",
        "constraint_type": "PRIMARY KEY",
        "column_name": "id",
        "referenced_table": None,
        "referenced_column": None,
    },
    {
        "constraint_name": "authors_email_key",
        "constraint_type": "UNIQUE",
        "column_name": "email",
        "referenced_table": None,
        "referenced_column": None,
    },
    {
        "constraint_name": "authors_account_fkey",
        "constraint_type": "FOREIGN KEY",
        "column_name": "id",
        "referenced_table": "users",
        "referenced_column": "author_id",
    },
    {
        "constraint_name": "authors_password_check",
        "constraint_type": "CHECK",
        "column_name": "password_hash",
        "referenced_table": None,
        "referenced_column": None,
    },
]

AUTHOR_INDEXES = [
    {
        "index_name": "authors_pkey",
        "column_name": "id",
        "is_unique": True,
        "is_primary": True,
        "index_type": "btree",
    },
    {
        "index_name": "authors_email_key",
        "column_name": "email",
        "is_unique": True,
        "is_primary": False,
        "index_type": "btree",
    },
    {
        "index_name": "idx_authors_name_password",
        "column_name": "name",
        "is_unique": False,
        "is_primary": False,
        "index_type": "btree",
    },
    {
        "index_name": "idx_authors_name_password",
        "column_name": "password_hash",
        "is_unique": False,
        "is_primary": False,
        "index_type": "btree",
    },
]

TABLE_ROWS = [
    {
        "table_name": "authors",
        "table_type": "BASE TABLE",
        "column_names": ["id", "name", "email", "password_hash", "bio"],
        "size_bytes": 8192,
    },
    {
        "table_name": "users",
        "table_type": "BASE TABLE",
        "column_names": ["id", "password"],
        "size_bytes": 16384,
    },
    {
        "table_name": "genres",
        "table_type": "BASE TABLE",
        "column_names": ["id", "genre_name"],
        "size_bytes": None,
    },
]


async def catalog(query, *args):
    if query is COLUMNS_QUERY:
        return AUTHOR_COLUMNS if args[0] == "authors" else []
    if query is CONSTRAINTS_QUERY:
        return AUTHOR_CONSTRAINTS
    if query is INDEXES_QUERY:
        return AUTHOR_INDEXES
    return TABLE_ROWS


@pytest.fixture
def executor():
    executor = AsyncMock(spec=QueryExecutor)
    executor.fetch_all.side_effect = catalog
    return executor


@pytest.fixture
def introspector(executor, security_validator):
    return SchemaIntrospector(executor, security_validator, SchemaCache())


@pytest.mark.unit
class TestGetSchema:
    """Test table descriptions."""

    @pytest.mark.asyncio
    async def test_filters_non_whitelisted_columns(self, introspector):
        schema = await introspector.get_schema("authors")

        assert schema["table"] == "authors"
        assert schema["cached"] is False
        assert [column["name"] for column in schema["columns"]] == ["id", "name", "email", "bio"]
        assert schema["columns"][1] == {
            "name": "name",
            "data_type": "character varying",
            "udt_name": "character varying",
            "nullable": False,
            "default": None,
            "max_length": 255,
            "numeric_precision": None,
            "numeric_scale": None,
        }

    @pytest.mark.asyncio
    async def test_constraints_filtered(self, introspector):
        constraints = (await introspector.get_schema("authors"))["constraints"]

        assert constraints["primary_key"] == [{"name": "authors_pkey", "columns": ["id"]}]
        assert constraints["unique"] == [{"name": "authors_email_key", "columns": ["email"]}]
        assert constraints["foreign_keys"] == []
        assert constraints["check"] == []

    @pytest.mark.asyncio
    async def test_indexes_on_hidden_columns_omitted(self, introspector):
        indexes = (await introspector.get_schema("authors"))["indexes"]

        assert [index["name"] for index in indexes] == ["authors_pkey", "authors_email_key"]
        assert indexes[0]["primary"] is True

    @pytest.mark.asyncio
    async def test_cached(self, introspector, executor):
        await introspector.get_schema("authors")
        second = await introspector.get_schema("authors")

        assert second["cached"] is True
        assert executor.fetch_all.await_count == 3

    @pytest.mark.asyncio
    async def test_refresh(self, introspector, executor):
        await introspector.get_schema("authors")
        refreshed = await introspector.get_schema("authors", refresh_cache=True)

        assert refreshed["cached"] is False
        assert executor.fetch_all.await_count == 6

    @pytest.mark.asyncio
    async def test_missing_from_store(self, introspector):
        with pytest.raises(InvalidRequestError) as exc_info:
            await introspector.get_schema("books")
        assert exc_info.value.message == "Table 'books' not found in database"

    @pytest.mark.asyncio
    async def test_not_whitelisted(self, introspector, executor):
        with pytest.raises(NotWhitelistedError):
            await introspector.get_schema("users")
        executor.fetch_all.assert_not_awaited()


@pytest.mark.unit
class TestListing:
    """Test table and column listings."""

    @pytest.mark.asyncio
    async def test_list_tables(self, introspector, executor):
        result = await introspector.list_tables()

        assert result["count"] == 2
        assert result["tables"][0] == {
            "name": "authors",
            "type": "BASE TABLE",
            "column_count": 4,
            "size_bytes": 8192,
            "read_only": False,
            "soft_delete": False,
        }
        assert result["tables"][1]["name"] == "genres"
        assert result["tables"][1]["read_only"] is True
        assert result["tables"][1]["size_bytes"] == 0

        query = executor.fetch_all.await_args.args[0]
        assert "NOT LIKE 'pg\\_%%'" in query
        assert query.endswith("ORDER BY t.table_name")

    @pytest.mark.asyncio
    async def test_list_tables_pattern(self, introspector, executor):
        await introspector.list_tables(pattern="auth%", include_system=True)

        query, *params = executor.fetch_all.await_args.args
        assert "t.table_name LIKE %s" in query
        assert "pg\\_" not in query
        assert params == ["auth%"]

    @pytest.mark.asyncio
    async def test_list_tables_cached_per_arguments(self, introspector, executor):
        await introspector.list_tables()
        await introspector.list_tables()
        await introspector.list_tables(pattern="a%")

        assert executor.fetch_all.await_count == 2

    @pytest.mark.asyncio
    async def test_list_tables_pattern_type(self, introspector):
        with pytest.raises(InvalidRequestError):
            await introspector.list_tables(pattern=5)

    @pytest.mark.asyncio
    async def test_list_columns(self, introspector):
        result = await introspector.list_columns("authors")
        assert result == {"table": "authors", "columns": ["id", "name", "email", "bio"], "count": 4}

    @pytest.mark.asyncio
    async def test_list_columns_metadata(self, introspector):
        result = await introspector.list_columns("authors", include_metadata=True)
        assert result["columns"][0]["name"] == "id"
        assert result["columns"][0]["nullable"] is False


@pytest.mark.unit
class TestInvalidate:
    """Test cache invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate_table(self, introspector, executor):
        await introspector.get_schema("authors")
        await introspector.list_columns("authors")
        await introspector.list_tables()

        assert introspector.invalidate("authors") == 2
        assert introspector.invalidate() == 1
