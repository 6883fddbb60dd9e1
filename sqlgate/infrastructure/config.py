"""
Configuration Management

Engine settings from ``SQLGATE_*`` environment variables, and the table
whitelist plus access policy from an optional YAML file. Everything loaded
here is immutable for the lifetime of the engine.
"""

# Standard library imports
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

# Third-party imports
import yaml
from dotenv import load_dotenv

# Local imports
from sqlgate.application.interfaces.exceptions import ConfigurationError
from sqlgate.domain.value_objects.requests import AccessOperation
from sqlgate.infrastructure.security.access_control import AccessPolicy
from sqlgate.infrastructure.security.schema_registry import SchemaRegistry

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}")
    return value


@dataclass(frozen=True)
class EngineConfig:
    """Engine-wide settings."""

    statement_timeout_ms: int = 30000
    max_batch_size: int = 1000
    max_limit: int = 1000
    default_audit_page_size: int = 100
    schema_cache_ttl_seconds: int = 300
    soft_delete_default: bool = True
    audit_enabled: bool = True
    audit_reads: bool = False
    per_record_audit: bool = False
    registry_file: str | None = None

    def __post_init__(self) -> None:
        if self.default_audit_page_size > self.max_limit:
            raise ConfigurationError("default_audit_page_size cannot exceed max_limit")

    @classmethod
    def from_env(cls, env_file: str | None = None) -> "EngineConfig":
        """
        Load settings from the environment, reading a ``.env`` file first.

        Args:
            env_file: Explicit ``.env`` path; the default search is used when None

        Raises:
            ConfigurationError: If a variable has an invalid value
        """
        load_dotenv(env_file)
        return cls(
            statement_timeout_ms=_env_int("SQLGATE_STATEMENT_TIMEOUT_MS", 30000),
            max_batch_size=_env_int("SQLGATE_MAX_BATCH_SIZE", 1000),
            max_limit=_env_int("SQLGATE_MAX_LIMIT", 1000),
            default_audit_page_size=_env_int("SQLGATE_AUDIT_PAGE_SIZE", 100),
            schema_cache_ttl_seconds=_env_int("SQLGATE_SCHEMA_CACHE_TTL", 300, minimum=0),
            soft_delete_default=_env_bool("SQLGATE_SOFT_DELETE_DEFAULT", True),
            audit_enabled=_env_bool("SQLGATE_AUDIT_ENABLED", True),
            audit_reads=_env_bool("SQLGATE_AUDIT_READS", False),
            per_record_audit=_env_bool("SQLGATE_PER_RECORD_AUDIT", False),
            registry_file=os.getenv("SQLGATE_REGISTRY_FILE") or None,
        )


def derive_policy(registry: SchemaRegistry) -> AccessPolicy:
    """Read access on every table, full access on tables that are not read-only."""
    grants: dict[str, tuple[AccessOperation, ...]] = {}
    for descriptor in registry:
        if descriptor.read_only:
            grants[descriptor.name] = (AccessOperation.READ,)
        else:
            grants[descriptor.name] = tuple(AccessOperation)
    return AccessPolicy(grants)


def parse_registry_document(document: Any) -> tuple[SchemaRegistry, AccessPolicy]:
    """
    Build the registry and policy from a parsed YAML document.

    Expected shape::

        tables:
          authors:
            columns:
              id: integer
              name: {type: text, required: true, max_length: 255}
        access:
          grants:
            authors: [READ, INSERT, UPDATE]
          restricted: [users]

    When ``access`` is omitted, every table is readable and tables that are
    not read-only are fully writable.
    """
    if not isinstance(document, Mapping):
        raise ConfigurationError("Registry file must contain a mapping")

    registry = SchemaRegistry.from_mapping(document.get("tables") or {})

    access = document.get("access")
    if access is None:
        policy = derive_policy(registry)
    elif isinstance(access, Mapping):
        policy = AccessPolicy.from_mapping(access)
    else:
        raise ConfigurationError("'access' must be a mapping")
    return registry, policy


def load_registry_file(path: str | Path) -> tuple[SchemaRegistry, AccessPolicy]:
    """
    Load the whitelist and access policy from a YAML file.

    Raises:
        ConfigurationError: If the file is missing, unparsable or malformed
    """
    file_path = Path(path)
    try:
        with file_path.open(encoding="utf-8") as handle:
            document = yaml.safe_load(handle)
    except OSError as e:
        raise ConfigurationError(f"Cannot read registry file '{file_path}': {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in registry file '{file_path}': {e}") from e

    registry, policy = parse_registry_document(document)
    logger.info(f"Loaded {len(registry)} whitelisted tables from '{file_path}'")
    return registry, policy


def load_registry(config: EngineConfig) -> tuple[SchemaRegistry, AccessPolicy]:
    """Registry and policy from ``config.registry_file``, or the built-in defaults."""
    if config.registry_file:
        return load_registry_file(config.registry_file)
    return SchemaRegistry.default(), AccessPolicy.default()
