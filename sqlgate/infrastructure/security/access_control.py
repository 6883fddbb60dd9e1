"""
Access Control

Static per-table, per-operation permission matrix. Deny by default: a table
with no explicit grant for an operation is refused, even when the table is
whitelisted and not read-only.
"""

# Standard library imports
import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

# Local imports
from sqlgate.application.interfaces.exceptions import AccessDeniedError, ConfigurationError
from sqlgate.domain.value_objects.requests import AccessOperation

logger = logging.getLogger(__name__)

# Batch and audit operation names fold onto the four governed operations.
_OPERATION_ALIASES: Mapping[str, AccessOperation] = MappingProxyType(
    {
        "READ": AccessOperation.READ,
        "SELECT": AccessOperation.READ,
        "INSERT": AccessOperation.INSERT,
        "CREATE": AccessOperation.INSERT,
        "BATCH_INSERT": AccessOperation.INSERT,
        "UPDATE": AccessOperation.UPDATE,
        "BATCH_UPDATE": AccessOperation.UPDATE,
        "DELETE": AccessOperation.DELETE,
        "BATCH_DELETE": AccessOperation.DELETE,
    }
)


def resolve_operation(operation: AccessOperation | str) -> AccessOperation:
    if isinstance(operation, AccessOperation):
        return operation
    if isinstance(operation, str) and operation.upper() in _OPERATION_ALIASES:
        return _OPERATION_ALIASES[operation.upper()]
    raise ValueError(f"Unknown operation: {operation!r}")


class AccessPolicy:
    """Immutable mapping of (table, operation) to allowed."""

    def __init__(
        self,
        grants: Mapping[str, Iterable[AccessOperation | str]],
        restricted: Iterable[str] = (),
    ) -> None:
        frozen: dict[str, frozenset[AccessOperation]] = {}
        for table, operations in grants.items():
            try:
                frozen[table] = frozenset(resolve_operation(op) for op in operations)
            except ValueError as e:
                raise ConfigurationError(f"Invalid grant for table '{table}': {e}") from e
        self._grants: Mapping[str, frozenset[AccessOperation]] = MappingProxyType(frozen)
        self._restricted = frozenset(restricted)

    def is_restricted(self, table: str) -> bool:
        return table in self._restricted

    def is_allowed(self, table: str, operation: AccessOperation | str) -> bool:
        if table in self._restricted:
            return False
        return resolve_operation(operation) in self._grants.get(table, frozenset())

    def allowed_operations(self, table: str) -> frozenset[AccessOperation]:
        if table in self._restricted:
            return frozenset()
        return self._grants.get(table, frozenset())

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AccessPolicy":
        """
        Build a policy from ``{"grants": {table: [ops]}, "restricted": [tables]}``.

        Raises:
            ConfigurationError: If the mapping is malformed
        """
        grants = data.get("grants")
        if not isinstance(grants, Mapping):
            raise ConfigurationError("Access policy must define a 'grants' mapping")
        for table, operations in grants.items():
            if isinstance(operations, str) or not isinstance(operations, Iterable):
                raise ConfigurationError(f"Grants for table '{table}' must be a list")
        return cls(grants, data.get("restricted") or ())

    @classmethod
    def default(cls) -> "AccessPolicy":
        all_ops = tuple(AccessOperation)
        read = (AccessOperation.READ,)
        no_delete = (AccessOperation.READ, AccessOperation.INSERT, AccessOperation.UPDATE)

        grants: dict[str, tuple[AccessOperation, ...]] = {
            "authors": no_delete,
            "series": no_delete,
            "tropes": read,
            "genres": read,
            "lookup_values": read,
            "audit_logs": read,
            "migrations": read,
        }
        for table in (
            "books",
            "chapters",
            "scenes",
            "characters",
            "character_arcs",
            "character_relationships",
            "character_timeline_events",
            "character_knowledge",
            "locations",
            "world_elements",
            "organizations",
            "plot_threads",
            "series_genres",
            "book_genres",
            "book_tropes",
            "character_scenes",
            "writing_sessions",
            "exports",
        ):
            grants[table] = all_ops
        return cls(grants, restricted=("users", "auth_tokens", "system_config", "system_settings"))


class AccessControl:
    """Checks the access policy before any statement is built."""

    def __init__(self, policy: AccessPolicy) -> None:
        self._policy = policy

    @property
    def policy(self) -> AccessPolicy:
        return self._policy

    def validate_table_access(self, table: str, operation: AccessOperation | str) -> None:
        """
        Ensure ``operation`` is allowed on ``table``.

        Raises:
            AccessDeniedError: If the policy has no matching grant
        """
        try:
            resolved = resolve_operation(operation)
        except ValueError:
            raise AccessDeniedError(str(operation), table, "Unknown operation") from None

        if self._policy.is_restricted(table):
            reason = "This table is restricted and cannot be accessed"
        elif not self._policy.is_allowed(table, resolved):
            reason = f"{resolved.value} permission denied"
        else:
            return

        logger.warning(f"Access denied: {resolved.value} on '{table}' ({reason})")
        raise AccessDeniedError(resolved.value, table, reason)

    def can_read(self, table: str) -> bool:
        return self._policy.is_allowed(table, AccessOperation.READ)

    def can_write(self, table: str) -> bool:
        return self._policy.is_allowed(table, AccessOperation.INSERT) or self._policy.is_allowed(
            table, AccessOperation.UPDATE
        )

    def can_delete(self, table: str) -> bool:
        return self._policy.is_allowed(table, AccessOperation.DELETE)

    def allowed_operations(self, table: str) -> list[str]:
        return sorted(op.value for op in self._policy.allowed_operations(table))
