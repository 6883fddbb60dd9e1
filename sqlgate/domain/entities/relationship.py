"""
Relationship Entities

Foreign key edges discovered from the live catalog. They are derived data:
cached for a while, never persisted.
"""

# Standard library imports
from dataclasses import dataclass
from enum import Enum
from typing import Any


class RelationshipDirection(Enum):
    """Side of the edge, seen from the table being expanded."""

    PARENT = "parent"
    CHILD = "child"


@dataclass(frozen=True)
class RelationshipEdge:
    """
    ``table.column`` references ``referenced_table.referenced_column``.

    ``depth`` is the hop count from the seed table; ``via_table`` names the
    intermediate table through which a multi-hop edge was reached.
    """

    table: str
    column: str
    referenced_table: str
    referenced_column: str
    direction: RelationshipDirection
    depth: int = 1
    via_table: str | None = None
    constraint_name: str | None = None

    @property
    def key(self) -> tuple[str, str, str, str]:
        return (self.table, self.column, self.referenced_table, self.referenced_column)

    def other_end(self, table: str) -> str:
        """The table on the opposite side from ``table``."""
        return self.referenced_table if self.table == table else self.table

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "column": self.column,
            "referenced_table": self.referenced_table,
            "referenced_column": self.referenced_column,
            "direction": self.direction.value,
            "depth": self.depth,
            "via_table": self.via_table,
            "constraint_name": self.constraint_name,
        }


@dataclass(frozen=True)
class RelationshipGraph:
    """Node/edge flattening of a relationship discovery result."""

    center: str
    nodes: tuple[str, ...]
    edges: tuple[RelationshipEdge, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "center": self.center,
            "nodes": [{"id": node, "center": node == self.center} for node in self.nodes],
            "edges": [
                {
                    "source": edge.table,
                    "target": edge.referenced_table,
                    "label": f"{edge.column} -> {edge.referenced_column}",
                    "depth": edge.depth,
                }
                for edge in self.edges
            ],
        }
