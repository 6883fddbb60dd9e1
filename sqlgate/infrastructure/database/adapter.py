"""
PostgreSQL Database Adapter

Provides async database operations using psycopg3.
Handles connection management, query execution, and error classification.

Statements outside a transaction borrow a pooled connection for their own
duration. ``transaction()`` pins one connection for the lifetime of a
transaction and hands out a TransactionSession bound to it, so the adapter
itself holds no per-request state and can be shared by concurrent callers.
"""

# Standard library imports
import builtins
import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

# Third-party imports
import psycopg
from psycopg import AsyncConnection
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

# Local imports
from sqlgate.application.interfaces.exceptions import DataAccessError

from .error_mapper import StoreErrorMapper

logger = logging.getLogger(__name__)

DEFAULT_STATEMENT_TIMEOUT_MS = 30000

Record = dict[str, Any]


class QueryExecutor:
    """
    Shared query execution for pooled and pinned connections.

    Subclasses provide ``_connection()``; every method maps driver errors to
    the StoreError hierarchy before they leave this class.
    """

    def __init__(self, error_mapper: StoreErrorMapper) -> None:
        self._error_mapper = error_mapper

    def _connection(self) -> Any:
        raise NotImplementedError

    def _map_error(self, error: BaseException, action: str, query: str) -> DataAccessError:
        logger.error(f"{action} failed: {type(error).__name__}: {error} | Query: {query[:100]}...")
        return self._error_mapper.map(error)

    async def execute_query(self, query: str, *args: Any) -> int:
        """
        Execute a SQL statement that doesn't return data.

        Returns:
            Number of affected rows

        Raises:
            StoreError: If execution fails
        """
        try:
            async with self._connection() as conn, conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(query, args)
                logger.debug(f"Query executed: {query[:100]}... | Rows: {cur.rowcount}")
                return cur.rowcount
        except DataAccessError:
            raise
        except (psycopg.Error, builtins.TimeoutError) as e:
            raise self._map_error(e, "Query execution", query) from e

    async def fetch_one(self, query: str, *args: Any) -> Record | None:
        """
        Fetch a single record.

        Returns:
            Record if found, None otherwise

        Raises:
            StoreError: If execution fails
        """
        try:
            async with self._connection() as conn, conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(query, args)
                result = await cur.fetchone()
                logger.debug(f"Fetch one query: {query[:100]}... | Found: {result is not None}")
                return result
        except DataAccessError:
            raise
        except (psycopg.Error, builtins.TimeoutError) as e:
            raise self._map_error(e, "Fetch one", query) from e

    async def fetch_all(self, query: str, *args: Any) -> list[Record]:
        """
        Fetch all records.

        Raises:
            StoreError: If execution fails
        """
        try:
            async with self._connection() as conn, conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(query, args)
                result = await cur.fetchall()
                logger.debug(f"Fetch all query: {query[:100]}... | Count: {len(result)}")
                return result
        except DataAccessError:
            raise
        except (psycopg.Error, builtins.TimeoutError) as e:
            raise self._map_error(e, "Fetch all", query) from e

    async def fetch_value(self, query: str, *args: Any) -> Any:
        """Fetch the first column of the first row, or None."""
        record = await self.fetch_one(query, *args)
        if not record:
            return None
        return next(iter(record.values()))


class TransactionSession(QueryExecutor):
    """Executes statements on the single connection of an open transaction."""

    def __init__(self, connection: AsyncConnection, error_mapper: StoreErrorMapper) -> None:
        super().__init__(error_mapper)
        self._conn = connection

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[AsyncConnection]:
        yield self._conn

    async def set_statement_timeout(self, timeout_ms: int) -> None:
        """Limit every statement of this transaction to ``timeout_ms``."""
        await self.execute_query(
            "SELECT set_config('statement_timeout', %s, true)", str(int(timeout_ms))
        )


class PostgreSQLAdapter(QueryExecutor):
    """
    PostgreSQL database adapter using psycopg3.

    Provides high-level database operations with error handling,
    connection management, and transaction support.
    """

    def __init__(
        self,
        pool: AsyncConnectionPool,
        error_mapper: StoreErrorMapper | None = None,
        statement_timeout_ms: int = DEFAULT_STATEMENT_TIMEOUT_MS,
    ) -> None:
        """
        Initialize adapter with connection pool.

        Args:
            pool: psycopg3 async connection pool
            error_mapper: Driver error classifier
            statement_timeout_ms: Default per-transaction statement timeout
        """
        super().__init__(error_mapper or StoreErrorMapper())
        self._pool = pool
        self._statement_timeout_ms = statement_timeout_ms

    @property
    def pool(self) -> AsyncConnectionPool:
        """Get the connection pool."""
        return self._pool

    @property
    def statement_timeout_ms(self) -> int:
        return self._statement_timeout_ms

    @asynccontextmanager
    async def acquire_connection(self) -> AsyncGenerator[AsyncConnection, None]:
        """
        Acquire a database connection from the pool.

        Yields:
            Database connection

        Raises:
            StoreUnavailableError: If connection cannot be acquired
        """
        try:
            async with self._pool.connection() as connection:
                yield connection
        except DataAccessError:
            raise
        except (psycopg.Error, builtins.TimeoutError) as e:
            logger.error(f"Failed to acquire connection: {type(e).__name__}: {e}")
            raise self._error_mapper.map(e) from e

    def _connection(self) -> Any:
        return self.acquire_connection()

    @asynccontextmanager
    async def transaction(
        self, timeout_ms: int | None = None
    ) -> AsyncGenerator[TransactionSession, None]:
        """
        Open a transaction on one pooled connection.

        Commits when the block exits normally and rolls back when it raises.
        Nothing done inside the block is visible to other sessions until the
        commit succeeds.

        Args:
            timeout_ms: Statement timeout for this transaction

        Yields:
            Session bound to the transaction's connection

        Raises:
            StoreError: If begin, commit or any statement fails
        """
        async with self.acquire_connection() as conn:
            try:
                async with conn.transaction():
                    session = TransactionSession(conn, self._error_mapper)
                    await session.set_statement_timeout(timeout_ms or self._statement_timeout_ms)
                    logger.debug("Transaction started")
                    yield session
                logger.debug("Transaction committed")
            except DataAccessError:
                logger.debug("Transaction rolled back")
                raise
            except (psycopg.Error, builtins.TimeoutError) as e:
                logger.error(f"Transaction failed: {type(e).__name__}: {e}")
                raise self._error_mapper.map(e) from e

    async def health_check(self) -> bool:
        """
        Perform a health check on the database connection.

        Returns:
            True if database is healthy, False otherwise
        """
        try:
            await self.fetch_one("SELECT 1")
            return True
        except DataAccessError as e:
            logger.error(f"Health check failed: {e}")
            return False

    async def get_connection_info(self) -> dict[str, Any]:
        """
        Get information about the connection pool.

        Returns:
            Dictionary with connection pool statistics
        """
        stats = self._pool.get_stats()
        return {
            "max_size": self._pool.max_size,
            "min_size": self._pool.min_size,
            "pool_size": stats.get("pool_size"),
            "pool_available": stats.get("pool_available"),
            "requests_waiting": stats.get("requests_waiting"),
            "pool_status": "active" if not self._pool.closed else "closed",
        }

    def __str__(self) -> str:
        """String representation of the adapter."""
        return f"PostgreSQLAdapter(Pool(max_size={self._pool.max_size}))"
