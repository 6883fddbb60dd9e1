"""
Unit tests for the PostgreSQL database adapter.

Tests pooled query execution, transaction sessions, error mapping and
health checks against a mocked psycopg3 pool.
"""

# Standard library imports
import builtins
from unittest.mock import AsyncMock, MagicMock

# Third-party imports
import psycopg
import pytest
from psycopg import AsyncConnection
from psycopg import errors as pg_errors
from psycopg_pool import AsyncConnectionPool

# Local imports
from sqlgate.application.interfaces.exceptions import (
    DuplicateKeyError,
    InvalidRequestError,
    StatementTimeoutError,
    StoreError,
    StoreUnavailableError,
)
from sqlgate.infrastructure.database.adapter import PostgreSQLAdapter, TransactionSession


@pytest.fixture
def mock_pool():
    """Mock async connection pool."""
    pool = AsyncMock(spec=AsyncConnectionPool)
    pool.max_size = 10
    pool.min_size = 2
    pool.closed = False
    pool.get_stats = MagicMock(
        return_value={"pool_size": 3, "pool_available": 2, "requests_waiting": 0}
    )
    return pool


@pytest.fixture
def mock_connection():
    """Mock async database connection."""
    connection = AsyncMock(spec=AsyncConnection)
    connection.closed = False
    connection.transaction.return_value.__aenter__ = AsyncMock(return_value=None)
    connection.transaction.return_value.__aexit__ = AsyncMock(return_value=None)
    return connection


@pytest.fixture
def mock_cursor():
    """Mock database cursor."""
    cursor = AsyncMock()
    cursor.execute = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.fetchall = AsyncMock(return_value=[])
    cursor.rowcount = 1
    cursor.__aenter__ = AsyncMock(return_value=cursor)
    cursor.__aexit__ = AsyncMock(return_value=None)
    return cursor


@pytest.fixture
def wired_pool(mock_pool, mock_connection, mock_cursor):
    """Pool whose connections hand out ``mock_cursor``."""
    mock_pool.connection.return_value.__aenter__ = AsyncMock(return_value=mock_connection)
    mock_pool.connection.return_value.__aexit__ = AsyncMock(return_value=None)
    mock_connection.cursor.return_value = mock_cursor
    return mock_pool


@pytest.fixture
def adapter(mock_pool):
    """PostgreSQL adapter with mocked pool."""
    return PostgreSQLAdapter(mock_pool, statement_timeout_ms=5000)


@pytest.mark.unit
class TestAdapterInitialization:
    """Test adapter initialization and properties."""

    def test_properties(self, adapter, mock_pool):
        assert adapter.pool is mock_pool
        assert adapter.statement_timeout_ms == 5000

    def test_string_representation(self, adapter):
        assert str(adapter) == "PostgreSQLAdapter(Pool(max_size=10))"

    @pytest.mark.asyncio
    async def test_connection_info(self, adapter):
        info = await adapter.get_connection_info()
        assert info["max_size"] == 10
        assert info["pool_available"] == 2
        assert info["pool_status"] == "active"


@pytest.mark.unit
class TestConnectionManagement:
    """Test connection acquisition."""

    @pytest.mark.asyncio
    async def test_acquire_connection_from_pool(self, adapter, wired_pool, mock_connection):
        async with adapter.acquire_connection() as conn:
            assert conn is mock_connection
        wired_pool.connection.assert_called_once()

    @pytest.mark.asyncio
    async def test_acquire_connection_operational_error(self, adapter, mock_pool):
        mock_pool.connection.side_effect = psycopg.OperationalError("Connection failed")

        with pytest.raises(StoreUnavailableError):
            async with adapter.acquire_connection():
                pass

    @pytest.mark.asyncio
    async def test_acquire_connection_timeout(self, adapter, mock_pool):
        mock_pool.connection.side_effect = builtins.TimeoutError("Timeout")

        with pytest.raises(StatementTimeoutError):
            async with adapter.acquire_connection():
                pass


@pytest.mark.unit
class TestQueryExecution:
    """Test the pooled query helpers."""

    @pytest.mark.asyncio
    async def test_execute_query_success(self, adapter, wired_pool, mock_cursor):
        mock_cursor.rowcount = 5

        result = await adapter.execute_query('UPDATE "books" SET "status" = %s', "done")

        assert result == 5
        mock_cursor.execute.assert_called_once_with('UPDATE "books" SET "status" = %s', ("done",))

    @pytest.mark.asyncio
    async def test_parameters_always_passed(self, adapter, wired_pool, mock_cursor):
        await adapter.execute_query("SELECT 1")
        mock_cursor.execute.assert_called_once_with("SELECT 1", ())

    @pytest.mark.asyncio
    async def test_fetch_one(self, adapter, wired_pool, mock_cursor):
        mock_cursor.fetchone.return_value = {"id": 1, "title": "Dune"}

        result = await adapter.fetch_one('SELECT "id", "title" FROM "books" WHERE "id" = %s', 1)

        assert result == {"id": 1, "title": "Dune"}

    @pytest.mark.asyncio
    async def test_fetch_all(self, adapter, wired_pool, mock_cursor):
        mock_cursor.fetchall.return_value = [{"id": 1}, {"id": 2}]

        result = await adapter.fetch_all('SELECT "id" FROM "books"')

        assert result == [{"id": 1}, {"id": 2}]

    @pytest.mark.asyncio
    async def test_fetch_value(self, adapter, wired_pool, mock_cursor):
        mock_cursor.fetchone.return_value = {"count": 42}
        assert await adapter.fetch_value('SELECT COUNT(*) AS count FROM "books"') == 42

        mock_cursor.fetchone.return_value = None
        assert await adapter.fetch_value('SELECT COUNT(*) AS count FROM "books"') is None

    @pytest.mark.asyncio
    async def test_unique_violation_mapped(self, adapter, wired_pool, mock_cursor):
        mock_cursor.execute.side_effect = pg_errors.UniqueViolation("duplicate key value")

        with pytest.raises(DuplicateKeyError) as exc_info:
            await adapter.fetch_one('INSERT INTO "authors" ("email") VALUES (%s)', "a@b.co")

        assert "a@b.co" not in exc_info.value.message
        assert isinstance(exc_info.value.cause, pg_errors.UniqueViolation)

    @pytest.mark.asyncio
    async def test_query_timeout_mapped(self, adapter, wired_pool, mock_cursor):
        mock_cursor.execute.side_effect = pg_errors.QueryCanceled("canceling statement")

        with pytest.raises(StatementTimeoutError):
            await adapter.fetch_all('SELECT "id" FROM "books"')

    @pytest.mark.asyncio
    async def test_unclassified_error(self, adapter, wired_pool, mock_cursor):
        mock_cursor.execute.side_effect = pg_errors.UndefinedTable("relation does not exist")

        with pytest.raises(StoreError) as exc_info:
            await adapter.execute_query('SELECT 1 FROM "missing"')

        assert exc_info.value.message == "Database operation failed"

    @pytest.mark.asyncio
    async def test_data_access_error_not_rewrapped(self, adapter, wired_pool, mock_cursor):
        mock_cursor.execute.side_effect = InvalidRequestError("bad request")

        with pytest.raises(InvalidRequestError):
            await adapter.fetch_all("SELECT 1")


@pytest.mark.unit
class TestTransactions:
    """Test transaction sessions."""

    @pytest.mark.asyncio
    async def test_transaction_sets_timeout_and_yields_session(
        self, adapter, wired_pool, mock_connection, mock_cursor
    ):
        async with adapter.transaction() as session:
            assert isinstance(session, TransactionSession)
            await session.execute_query('DELETE FROM "books" WHERE "id" = %s', 3)

        mock_connection.transaction.assert_called_once()
        first_call = mock_cursor.execute.call_args_list[0]
        assert first_call.args == ("SELECT set_config('statement_timeout', %s, true)", ("5000",))
        assert mock_cursor.execute.call_args_list[1].args[1] == (3,)

    @pytest.mark.asyncio
    async def test_transaction_custom_timeout(self, adapter, wired_pool, mock_cursor):
        async with adapter.transaction(timeout_ms=250):
            pass

        assert mock_cursor.execute.call_args_list[0].args[1] == ("250",)

    @pytest.mark.asyncio
    async def test_transaction_rolls_back_on_error(self, adapter, wired_pool, mock_connection):
        with pytest.raises(InvalidRequestError):
            async with adapter.transaction():
                raise InvalidRequestError("abort")

        exit_args = mock_connection.transaction.return_value.__aexit__.call_args.args
        assert exit_args[0] is InvalidRequestError

    @pytest.mark.asyncio
    async def test_session_errors_are_mapped(self, adapter, wired_pool, mock_cursor):
        with pytest.raises(DuplicateKeyError):
            async with adapter.transaction() as session:
                mock_cursor.execute.side_effect = pg_errors.UniqueViolation("duplicate")
                await session.fetch_one('INSERT INTO "authors" ("name") VALUES (%s)', "Jane")

    @pytest.mark.asyncio
    async def test_commit_failure_is_mapped(self, adapter, wired_pool, mock_connection):
        mock_connection.transaction.return_value.__aexit__.side_effect = (
            pg_errors.SerializationFailure("could not serialize access")
        )

        with pytest.raises(StoreError) as exc_info:
            async with adapter.transaction():
                pass

        assert exc_info.value.retryable


@pytest.mark.unit
class TestHealthCheck:
    """Test health checks."""

    @pytest.mark.asyncio
    async def test_healthy(self, adapter, wired_pool, mock_cursor):
        mock_cursor.fetchone.return_value = {"?column?": 1}
        assert await adapter.health_check() is True

    @pytest.mark.asyncio
    async def test_unhealthy(self, adapter, mock_pool):
        mock_pool.connection.side_effect = psycopg.OperationalError("down")
        assert await adapter.health_check() is False
