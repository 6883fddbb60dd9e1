"""
Security Module

Whitelist registry, identifier validation and access control. Nothing in this
package performs I/O.
"""

from .access_control import AccessControl, AccessPolicy
from .filter_parser import parse_filter
from .schema_registry import SchemaRegistry, is_valid_identifier
from .security_validator import SecurityValidator

__all__ = [
    "AccessControl",
    "AccessPolicy",
    "SchemaRegistry",
    "SecurityValidator",
    "is_valid_identifier",
    "parse_filter",
]
