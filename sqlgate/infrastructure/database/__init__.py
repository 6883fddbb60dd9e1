"""
Database Infrastructure Module

PostgreSQL access for the data access engine using psycopg3: pooled
connections, transaction sessions, SQL generation and error classification.
"""

from .adapter import PostgreSQLAdapter, TransactionSession
from .connection import DatabaseConfig, DatabaseConnection
from .error_mapper import StoreErrorMapper, is_retryable_error
from .query_builder import BuiltQuery, QueryBuilder

__all__ = [
    "BuiltQuery",
    "DatabaseConfig",
    "DatabaseConnection",
    "PostgreSQLAdapter",
    "QueryBuilder",
    "StoreErrorMapper",
    "TransactionSession",
    "is_retryable_error",
]
