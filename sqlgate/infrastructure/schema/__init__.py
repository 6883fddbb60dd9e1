"""Schema introspection, relationship discovery and their cache."""

from .cache import SchemaCache
from .introspection import SchemaIntrospector
from .relationship_mapper import RelationshipMapper

__all__ = ["RelationshipMapper", "SchemaCache", "SchemaIntrospector"]
