"""
Relationship Mapper

Discovers foreign key relationships between whitelisted tables from the live
catalog and walks them breadth-first up to three hops.

Edges whose other end is not whitelisted are dropped, so the result never
reveals the existence of tables callers cannot name.
"""

# Standard library imports
import logging
from collections import deque
from typing import Any

# Local imports
from sqlgate.application.interfaces.exceptions import InvalidRequestError
from sqlgate.domain.entities.relationship import (
    RelationshipDirection,
    RelationshipEdge,
    RelationshipGraph,
)
from sqlgate.infrastructure.database.adapter import QueryExecutor
from sqlgate.infrastructure.security.security_validator import SecurityValidator

from .cache import SchemaCache

logger = logging.getLogger(__name__)

MIN_DEPTH = 1
MAX_DEPTH = 3

PARENTS_QUERY = """
    SELECT
        tc.constraint_name,
        kcu.column_name,
        ccu.table_name AS referenced_table,
        ccu.column_name AS referenced_column
    FROM information_schema.table_constraints AS tc
    JOIN information_schema.key_column_usage AS kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    JOIN information_schema.constraint_column_usage AS ccu
        ON ccu.constraint_name = tc.constraint_name
        AND ccu.table_schema = tc.table_schema
    WHERE tc.constraint_type = 'FOREIGN KEY'
        AND tc.table_name = %s
        AND tc.table_schema = 'public'
    ORDER BY kcu.column_name
"""

CHILDREN_QUERY = """
    SELECT
        tc.constraint_name,
        tc.table_name AS child_table,
        kcu.column_name AS child_column,
        ccu.column_name AS referenced_column
    FROM information_schema.table_constraints AS tc
    JOIN information_schema.key_column_usage AS kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    JOIN information_schema.constraint_column_usage AS ccu
        ON ccu.constraint_name = tc.constraint_name
        AND ccu.table_schema = tc.table_schema
    WHERE tc.constraint_type = 'FOREIGN KEY'
        AND ccu.table_name = %s
        AND tc.table_schema = 'public'
    ORDER BY tc.table_name, kcu.column_name
"""


def validate_depth(depth: Any, name: str = "depth") -> int:
    if isinstance(depth, bool) or not isinstance(depth, int) or not MIN_DEPTH <= depth <= MAX_DEPTH:
        raise InvalidRequestError(f"{name} must be an integer between {MIN_DEPTH} and {MAX_DEPTH}")
    return depth


class RelationshipMapper:
    """Foreign key discovery over whitelisted tables."""

    def __init__(
        self,
        executor: QueryExecutor,
        security_validator: SecurityValidator,
        cache: SchemaCache,
    ) -> None:
        self._executor = executor
        self._security = security_validator
        self._cache = cache

    def _whitelisted(self, table: str) -> bool:
        return table in self._security.registry

    async def direct_edges(self, table: str) -> list[RelationshipEdge]:
        """
        One-hop edges of ``table``: parents first, then children.

        Results are cached per table.
        """
        key = SchemaCache.generate_key("fk", table)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        edges: list[RelationshipEdge] = []
        for row in await self._executor.fetch_all(PARENTS_QUERY, table):
            if not self._whitelisted(row["referenced_table"]):
                continue
            edges.append(
                RelationshipEdge(
                    table=table,
                    column=row["column_name"],
                    referenced_table=row["referenced_table"],
                    referenced_column=row["referenced_column"],
                    direction=RelationshipDirection.PARENT,
                    constraint_name=row["constraint_name"],
                )
            )
        for row in await self._executor.fetch_all(CHILDREN_QUERY, table):
            if not self._whitelisted(row["child_table"]):
                continue
            edges.append(
                RelationshipEdge(
                    table=row["child_table"],
                    column=row["child_column"],
                    referenced_table=table,
                    referenced_column=row["referenced_column"],
                    direction=RelationshipDirection.CHILD,
                    constraint_name=row["constraint_name"],
                )
            )

        self._cache.set(key, edges)
        return edges

    async def discover(self, table: str, depth: int = 1) -> list[RelationshipEdge]:
        """
        Breadth-first expansion from ``table``.

        Each table is expanded at most once. Edges found while expanding a
        table ``n`` hops away carry ``depth=n+1`` and ``via_table`` set to
        that table. Duplicate edges keep their first (shallowest) occurrence.
        """
        self._security.validate_table(table)
        validate_depth(depth)

        visited = {table}
        frontier = [table]
        seen: set[tuple[str, str, str, str]] = set()
        discovered: list[RelationshipEdge] = []

        for level in range(1, depth + 1):
            next_frontier: list[str] = []
            for current in frontier:
                for edge in await self.direct_edges(current):
                    if edge.key in seen:
                        continue
                    seen.add(edge.key)
                    discovered.append(
                        RelationshipEdge(
                            table=edge.table,
                            column=edge.column,
                            referenced_table=edge.referenced_table,
                            referenced_column=edge.referenced_column,
                            direction=edge.direction,
                            depth=level,
                            via_table=current if level > 1 else None,
                            constraint_name=edge.constraint_name,
                        )
                    )
                    neighbor = edge.other_end(current)
                    if neighbor not in visited:
                        visited.add(neighbor)
                        next_frontier.append(neighbor)
            if not next_frontier:
                break
            frontier = next_frontier

        return discovered

    async def get_relationships(
        self, table: str, depth: int = 1, refresh_cache: bool = False
    ) -> dict[str, Any]:
        """
        Parents and children of ``table`` up to ``depth`` hops.

        Args:
            table: Whitelisted table name
            depth: Hops to traverse, 1 to 3
            refresh_cache: Ignore and replace cached results

        Returns:
            ``{"table", "depth", "parents", "children"}``

        Raises:
            InvalidIdentifierError: If ``table`` is malformed
            NotWhitelistedError: If ``table`` is not whitelisted
            InvalidRequestError: If ``depth`` is out of range
        """
        self._security.validate_table(table)
        validate_depth(depth)

        key = SchemaCache.generate_key("relationships", table, {"depth": depth})
        if refresh_cache:
            self._cache.invalidate_pattern(r"^fk:")
        else:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        edges = await self.discover(table, depth)
        result = {
            "table": table,
            "depth": depth,
            "parents": [
                edge.to_dict() for edge in edges if edge.direction is RelationshipDirection.PARENT
            ],
            "children": [
                edge.to_dict() for edge in edges if edge.direction is RelationshipDirection.CHILD
            ],
        }
        self._cache.set(key, result)
        logger.debug(
            f"Relationships for '{table}' at depth {depth}: "
            f"{len(result['parents'])} parents, {len(result['children'])} children"
        )
        return result

    async def get_relationship_graph(self, table: str, depth: int = 1) -> dict[str, Any]:
        """Node/edge view of the relationships around ``table``."""
        edges = await self.discover(table, depth)
        nodes: list[str] = [table]
        for edge in edges:
            for end in (edge.table, edge.referenced_table):
                if end not in nodes:
                    nodes.append(end)
        return RelationshipGraph(center=table, nodes=tuple(nodes), edges=tuple(edges)).to_dict()

    async def find_path(
        self, from_table: str, to_table: str, max_depth: int = MAX_DEPTH
    ) -> list[str] | None:
        """
        Shortest chain of tables linking ``from_table`` to ``to_table``.

        Returns:
            Table names from start to target inclusive, or None when no path
            of at most ``max_depth`` hops exists
        """
        self._security.validate_table(from_table)
        self._security.validate_table(to_table)

        if from_table == to_table:
            return [from_table]
        if isinstance(max_depth, bool) or not isinstance(max_depth, int) or max_depth < 1:
            raise InvalidRequestError("max_depth must be a positive integer")

        visited = {from_table}
        queue: deque[list[str]] = deque([[from_table]])
        while queue:
            path = queue.popleft()
            if len(path) > max_depth:
                continue
            current = path[-1]
            for edge in await self.direct_edges(current):
                neighbor = edge.other_end(current)
                if neighbor == to_table:
                    return [*path, to_table]
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append([*path, neighbor])
        return None
