"""Global pytest configuration and fixtures."""

# Standard library imports
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

# Third-party imports
import pytest
from dotenv import load_dotenv

# Local imports
from sqlgate.infrastructure.config import EngineConfig
from sqlgate.infrastructure.database.adapter import PostgreSQLAdapter, TransactionSession
from sqlgate.infrastructure.database.query_builder import QueryBuilder
from sqlgate.infrastructure.security.access_control import AccessControl, AccessPolicy
from sqlgate.infrastructure.security.schema_registry import SchemaRegistry
from sqlgate.infrastructure.security.security_validator import SecurityValidator
from sqlgate.infrastructure.validation.data_validator import DataValidator

# Load test environment variables
test_env_path = Path(__file__).parent.parent / ".env.test"
if test_env_path.exists():
    load_dotenv(test_env_path, override=True)


def store_lookup(query: str, *args: Any) -> Any:
    """Default answer for validation lookups: referenced rows exist, values are free."""
    if "EXISTS" in query:
        return True
    if "COUNT(*)" in query:
        return 0
    return None


@pytest.fixture
def registry() -> SchemaRegistry:
    """Built-in table whitelist."""
    return SchemaRegistry.default()


@pytest.fixture
def policy() -> AccessPolicy:
    """Built-in access policy."""
    return AccessPolicy.default()


@pytest.fixture
def security_validator(registry: SchemaRegistry) -> SecurityValidator:
    return SecurityValidator(registry)


@pytest.fixture
def access_control(policy: AccessPolicy) -> AccessControl:
    return AccessControl(policy)


@pytest.fixture
def query_builder(registry: SchemaRegistry) -> QueryBuilder:
    return QueryBuilder(registry)


@pytest.fixture
def data_validator(registry: SchemaRegistry, query_builder: QueryBuilder) -> DataValidator:
    return DataValidator(registry, query_builder)


@pytest.fixture
def engine_config() -> EngineConfig:
    """Engine settings with audit of reads switched on."""
    return EngineConfig(audit_reads=True)


@pytest.fixture
def mock_session() -> AsyncMock:
    """Mock transaction session whose validation lookups all pass."""
    session = AsyncMock(spec=TransactionSession)
    session.fetch_all.return_value = []
    session.fetch_one.return_value = None
    session.fetch_value.side_effect = store_lookup
    session.execute_query.return_value = 0
    return session


@pytest.fixture
def mock_adapter(mock_session: AsyncMock) -> AsyncMock:
    """Mock adapter whose ``transaction()`` yields ``mock_session``."""
    adapter = AsyncMock(spec=PostgreSQLAdapter)
    adapter.fetch_all.return_value = []
    adapter.fetch_one.return_value = None
    adapter.fetch_value.side_effect = store_lookup
    adapter.execute_query.return_value = 0
    adapter.health_check.return_value = True

    @asynccontextmanager
    async def transaction(timeout_ms: int | None = None):
        yield mock_session

    adapter.transaction = MagicMock(side_effect=transaction)
    return adapter


@pytest.fixture
def mock_audit_adapter() -> AsyncMock:
    """Separate mock adapter receiving audit writes."""
    adapter = AsyncMock(spec=PostgreSQLAdapter)
    adapter.fetch_value.return_value = 1
    adapter.fetch_all.return_value = []
    adapter.fetch_one.return_value = None
    return adapter
