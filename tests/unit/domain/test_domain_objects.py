"""
Unit tests for domain entities and value objects.

Tests filter expressions, schema descriptors, request payloads, audit
entries and relationship edges.
"""

# Standard library imports
from datetime import UTC, datetime

# Third-party imports
import pytest

# Local imports
from sqlgate.domain.entities.audit_entry import AuditEntry, AuditOperation
from sqlgate.domain.entities.relationship import (
    RelationshipDirection,
    RelationshipEdge,
    RelationshipGraph,
)
from sqlgate.domain.value_objects.filters import (
    FilterExpression,
    FilterOperator,
    Literal,
    Membership,
    Null,
    Operator,
)
from sqlgate.domain.value_objects.requests import MutationPayload
from sqlgate.domain.value_objects.schema import (
    ColumnDescriptor,
    DataType,
    ForeignKey,
    TableDescriptor,
)


@pytest.mark.unit
class TestFilterExpression:
    """Test parsed filter containers."""

    def test_empty(self):
        expression = FilterExpression()
        assert not expression
        assert len(expression) == 0
        assert expression.columns == ()

    def test_columns_deduplicated_in_order(self):
        expression = FilterExpression(
            (
                Operator("year", FilterOperator.GTE, 2000),
                Literal("status", "draft"),
                Operator("year", FilterOperator.LT, 2010),
                Null("deleted_at"),
                Membership("id", (1, 2)),
            )
        )
        assert expression.columns == ("year", "status", "deleted_at", "id")
        assert len(list(expression)) == 5

    def test_equality_value(self):
        expression = FilterExpression((Membership("id", (1,)), Literal("id", 7)))
        assert expression.equality_value("id") == 7
        assert expression.equality_value("status") is None

    @pytest.mark.parametrize("token", ["gt", "$gt", "GT", "$GT"])
    def test_operator_tokens(self, token):
        assert FilterOperator.from_token(token) is FilterOperator.GT

    def test_unknown_operator_token(self):
        with pytest.raises(ValueError):
            FilterOperator.from_token("$regex")


@pytest.mark.unit
class TestSchemaDescriptors:
    """Test table and column descriptors."""

    @pytest.fixture
    def books(self):
        return TableDescriptor(
            name="books",
            columns=[
                ColumnDescriptor("id", DataType.INTEGER, required=True),
                ColumnDescriptor("title", required=True, max_length=255),
                ColumnDescriptor("isbn", unique=True),
                ColumnDescriptor("author_id", DataType.INTEGER, references=ForeignKey("authors")),
                ColumnDescriptor("updated_at", DataType.TIMESTAMP),
                ColumnDescriptor("deleted_at", DataType.TIMESTAMP),
            ],
            soft_delete_capable=True,
        )

    def test_columns_frozen_to_tuple(self, books):
        assert isinstance(books.columns, tuple)
        assert books.column_names[:2] == ("id", "title")

    def test_lookup(self, books):
        assert books.has_column("isbn")
        assert not books.has_column("password")
        assert books.column("title").max_length == 255
        assert books.column("missing") is None

    def test_required_excludes_server_managed(self, books):
        assert [column.name for column in books.required_columns()] == ["title"]

    def test_unique_and_foreign_keys(self, books):
        assert [column.name for column in books.unique_columns()] == ["isbn"]
        [author] = books.foreign_keys()
        assert author.references == ForeignKey("authors", "id")

    def test_timestamps(self, books):
        assert books.has_updated_at
        assert books.has_deleted_at
        bare = TableDescriptor(name="tags", columns=(ColumnDescriptor("id"),))
        assert not bare.has_updated_at
        assert not bare.has_deleted_at

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("serial", DataType.INTEGER),
            ("BIGINT", DataType.INTEGER),
            ("varchar", DataType.TEXT),
            ("jsonb", DataType.JSON),
            (" Timestamp ", DataType.TIMESTAMP),
            ("uuid", DataType.UUID),
        ],
    )
    def test_data_type_from_string(self, name, expected):
        assert DataType.from_string(name) is expected

    def test_unknown_data_type(self):
        with pytest.raises(ValueError):
            DataType.from_string("geometry")


@pytest.mark.unit
class TestMutationPayload:
    """Test payload immutability."""

    def test_data_is_read_only_copy(self):
        source = {"title": "Dune"}
        payload = MutationPayload("books", source)
        source["title"] = "Changed"

        assert payload.data["title"] == "Dune"
        assert payload.fields == ("title",)
        with pytest.raises(TypeError):
            payload.data["title"] = "Other"


@pytest.mark.unit
class TestAuditEntry:
    """Test audit rows."""

    def test_to_dict(self):
        stamp = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)
        entry = AuditEntry(
            AuditOperation.BATCH_DELETE,
            "books",
            True,
            timestamp=stamp,
            changes={"count": 2},
            id=9,
        )

        data = entry.to_dict()

        assert data["id"] == 9
        assert data["operation"] == "BATCH_DELETE"
        assert data["timestamp"] == "2024-05-01T08:00:00+00:00"
        assert data["changes"] == {"count": 2}
        assert data["client_info"] is None

    def test_from_row(self):
        stamp = datetime(2024, 5, 1, tzinfo=UTC)
        entry = AuditEntry.from_row(
            {
                "id": 1,
                "timestamp": stamp,
                "operation": "READ",
                "table_name": "authors",
                "success": False,
                "error_message": "Access denied",
            }
        )
        assert entry.operation is AuditOperation.READ
        assert entry.success is False
        assert entry.record_id is None

    def test_default_timestamp_is_aware(self):
        entry = AuditEntry(AuditOperation.CREATE, "books", True)
        assert entry.timestamp.tzinfo is not None

    def test_batch_flag(self):
        assert AuditOperation.BATCH_UPDATE.is_batch
        assert not AuditOperation.UPDATE.is_batch


@pytest.mark.unit
class TestRelationships:
    """Test relationship edges and graphs."""

    @pytest.fixture
    def edge(self):
        return RelationshipEdge(
            table="chapters",
            column="book_id",
            referenced_table="books",
            referenced_column="id",
            direction=RelationshipDirection.CHILD,
        )

    def test_other_end(self, edge):
        assert edge.other_end("books") == "chapters"
        assert edge.other_end("chapters") == "books"

    def test_key_ignores_depth(self, edge):
        deeper = RelationshipEdge(
            "chapters", "book_id", "books", "id", RelationshipDirection.CHILD, depth=2
        )
        assert deeper.key == edge.key

    def test_graph(self, edge):
        graph = RelationshipGraph(center="books", nodes=("books", "chapters"), edges=(edge,))

        assert graph.to_dict() == {
            "center": "books",
            "nodes": [{"id": "books", "center": True}, {"id": "chapters", "center": False}],
            "edges": [
                {"source": "chapters", "target": "books", "label": "book_id -> id", "depth": 1}
            ],
        }
