"""
Unit tests for engine configuration.

Tests environment parsing, registry file loading and policy derivation.
"""

# Standard library imports
import textwrap

# Third-party imports
import pytest

# Local imports
from sqlgate.application.interfaces.exceptions import ConfigurationError
from sqlgate.domain.value_objects.requests import AccessOperation
from sqlgate.infrastructure.config import (
    EngineConfig,
    derive_policy,
    load_registry,
    load_registry_file,
    parse_registry_document,
)
from sqlgate.infrastructure.security.schema_registry import SchemaRegistry

REGISTRY_YAML = textwrap.dedent(
    """
    tables:
      notes:
        columns:
          id: serial
          body: {type: text, required: true}
          deleted_at: timestamp
        soft_delete: true
      tags:
        columns: [id, name]
        read_only: true
    access:
      grants:
        notes: [READ, INSERT]
        tags: [READ]
      restricted: [users]
    """
)

ENV_NAMES = (
    "SQLGATE_STATEMENT_TIMEOUT_MS",
    "SQLGATE_MAX_BATCH_SIZE",
    "SQLGATE_MAX_LIMIT",
    "SQLGATE_AUDIT_PAGE_SIZE",
    "SQLGATE_SCHEMA_CACHE_TTL",
    "SQLGATE_SOFT_DELETE_DEFAULT",
    "SQLGATE_AUDIT_ENABLED",
    "SQLGATE_AUDIT_READS",
    "SQLGATE_PER_RECORD_AUDIT",
    "SQLGATE_REGISTRY_FILE",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Empty SQLGATE_* environment and no ``.env`` file to discover."""
    for name in ENV_NAMES:
        # setenv first so values loaded from .env files are undone too
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


@pytest.mark.unit
class TestEngineConfig:
    """Test engine settings."""

    def test_defaults(self):
        config = EngineConfig()
        assert config.statement_timeout_ms == 30000
        assert config.max_batch_size == 1000
        assert config.soft_delete_default is True
        assert config.audit_reads is False

    def test_page_size_cannot_exceed_limit(self):
        with pytest.raises(ConfigurationError):
            EngineConfig(max_limit=50, default_audit_page_size=100)

    def test_from_env(self, clean_env, tmp_path):
        clean_env.setenv("SQLGATE_STATEMENT_TIMEOUT_MS", "1500")
        clean_env.setenv("SQLGATE_MAX_BATCH_SIZE", "10")
        clean_env.setenv("SQLGATE_AUDIT_READS", "yes")
        clean_env.setenv("SQLGATE_SOFT_DELETE_DEFAULT", "off")
        clean_env.setenv("SQLGATE_SCHEMA_CACHE_TTL", "0")

        config = EngineConfig.from_env(str(tmp_path / "missing.env"))

        assert config.statement_timeout_ms == 1500
        assert config.max_batch_size == 10
        assert config.audit_reads is True
        assert config.soft_delete_default is False
        assert config.schema_cache_ttl_seconds == 0
        assert config.registry_file is None

    def test_from_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / "engine.env"
        env_file.write_text("SQLGATE_MAX_LIMIT=200\nSQLGATE_PER_RECORD_AUDIT=true\n")

        config = EngineConfig.from_env(str(env_file))

        assert config.max_limit == 200
        assert config.per_record_audit is True

    @pytest.mark.parametrize(
        "name, value",
        [
            ("SQLGATE_MAX_BATCH_SIZE", "lots"),
            ("SQLGATE_MAX_BATCH_SIZE", "0"),
            ("SQLGATE_AUDIT_ENABLED", "maybe"),
        ],
    )
    def test_from_env_invalid(self, clean_env, tmp_path, name, value):
        clean_env.setenv(name, value)
        with pytest.raises(ConfigurationError):
            EngineConfig.from_env(str(tmp_path / "missing.env"))


@pytest.mark.unit
class TestRegistryLoading:
    """Test the YAML whitelist file."""

    def test_load_registry_file(self, tmp_path):
        path = tmp_path / "registry.yaml"
        path.write_text(REGISTRY_YAML)

        registry, policy = load_registry_file(path)

        assert registry.table_names == ("notes", "tags")
        assert registry.supports_soft_delete("notes")
        assert registry.is_read_only("tags")
        assert policy.is_allowed("notes", "INSERT")
        assert not policy.is_allowed("notes", "DELETE")
        assert policy.is_restricted("users")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_registry_file(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("tables: [unclosed")
        with pytest.raises(ConfigurationError):
            load_registry_file(path)

    def test_document_must_be_mapping(self):
        with pytest.raises(ConfigurationError):
            parse_registry_document(["tables"])

    def test_access_must_be_mapping(self):
        with pytest.raises(ConfigurationError):
            parse_registry_document(
                {"tables": {"notes": {"columns": ["id"]}}, "access": ["READ"]}
            )

    def test_policy_derived_when_access_omitted(self):
        registry, policy = parse_registry_document(
            {
                "tables": {
                    "notes": {"columns": ["id", "body"]},
                    "tags": {"columns": ["id"], "read_only": True},
                }
            }
        )
        assert policy.allowed_operations("notes") == frozenset(AccessOperation)
        assert policy.allowed_operations("tags") == frozenset({AccessOperation.READ})
        assert derive_policy(registry).allowed_operations("notes") == frozenset(AccessOperation)

    def test_load_registry_defaults(self):
        registry, policy = load_registry(EngineConfig())
        assert "books" in registry
        assert len(registry) == len(SchemaRegistry.default())
        assert policy.is_restricted("users")

    def test_load_registry_from_config(self, tmp_path):
        path = tmp_path / "registry.yaml"
        path.write_text(REGISTRY_YAML)
        registry, _ = load_registry(EngineConfig(registry_file=str(path)))
        assert "books" not in registry
        assert "notes" in registry
