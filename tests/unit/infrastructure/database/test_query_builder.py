"""
Unit tests for the parameterized SQL query builder.

Tests that every statement binds values as parameters, quotes only
whitelisted identifiers and returns whitelisted columns.
"""

# Third-party imports
import pytest
from psycopg.types.json import Jsonb

# Local imports
from sqlgate.application.interfaces.exceptions import (
    InvalidIdentifierError,
    InvalidRequestError,
    MissingFilterError,
    NotWhitelistedError,
)
from sqlgate.domain.value_objects.filters import FilterExpression
from sqlgate.domain.value_objects.requests import MutationPayload
from sqlgate.infrastructure.database.query_builder import (
    BuiltQuery,
    QueryType,
    quote_identifier,
)
from sqlgate.infrastructure.security.filter_parser import parse_filter

AUTHOR_COLUMNS = '"id", "name", "email", "bio", "created_at", "updated_at"'


@pytest.mark.unit
class TestBuiltQuery:
    """Test the immutable query result."""

    def test_immutable(self):
        query = BuiltQuery("SELECT 1", [], QueryType.SELECT)
        with pytest.raises(AttributeError):
            query.text = "DROP TABLE books"

    def test_unpacks_to_text_and_params(self):
        text, params = BuiltQuery("SELECT %s", [1], QueryType.SELECT)
        assert text == "SELECT %s"
        assert params == (1,)

    def test_equality(self):
        assert BuiltQuery("SELECT %s", [1], QueryType.SELECT) == BuiltQuery(
            "SELECT %s", (1,), QueryType.SELECT
        )

    def test_repr_hides_values(self):
        assert "secret" not in repr(BuiltQuery("SELECT %s", ["secret"], QueryType.SELECT))

    def test_quote_identifier(self):
        assert quote_identifier("books") == '"books"'
        with pytest.raises(InvalidIdentifierError):
            quote_identifier('books"; DROP TABLE authors; --')


@pytest.mark.unit
class TestSelect:
    """Test SELECT and COUNT generation."""

    def test_select_all_whitelisted_columns(self, security_validator, query_builder):
        spec = security_validator.validate_query("authors")
        query = query_builder.build_select(spec)
        assert query.text == f'SELECT {AUTHOR_COLUMNS} FROM "authors"'
        assert query.params == ()
        assert query.query_type is QueryType.SELECT

    def test_select_full(self, security_validator, query_builder):
        spec = security_validator.validate_query(
            "books",
            columns=["id", "title"],
            where={"status": "draft", "deleted_at": None, "id": [1, 2]},
            order_by=[{"column": "title", "direction": "desc"}],
            limit=10,
            offset=5,
        )
        query = query_builder.build_select(spec)
        assert query.text == (
            'SELECT "id", "title" FROM "books" '
            'WHERE "status" = %s AND "deleted_at" IS NULL AND "id" = ANY(%s) '
            'ORDER BY "title" DESC LIMIT %s OFFSET %s'
        )
        assert query.params == ("draft", [1, 2], 10, 5)

    def test_operators(self, security_validator, query_builder):
        spec = security_validator.validate_query(
            "chapters",
            where={
                "word_count": {"$gte": 100, "$lt": 500},
                "title": {"op": "ilike", "value": "%storm%"},
                "status": {"$ne": "draft"},
                "deleted_at": {"$ne": None},
            },
        )
        query = query_builder.build_select(spec)
        assert query.text.endswith(
            'WHERE "word_count" >= %s AND "word_count" < %s AND "title" ILIKE %s '
            'AND "status" <> %s AND "deleted_at" IS NOT NULL'
        )
        assert query.params == (100, 500, "%storm%", "draft")

    def test_injection_value_is_bound(self, security_validator, query_builder):
        hostile = "x'; DROP TABLE books; --"
        spec = security_validator.validate_query("books", where={"title": hostile})
        query = query_builder.build_select(spec)
        assert hostile not in query.text
        assert query.params == (hostile,)

    def test_count(self, query_builder):
        query = query_builder.build_count("books", parse_filter({"status": "draft"}))
        assert query.text == 'SELECT COUNT(*) AS count FROM "books" WHERE "status" = %s'
        assert query.params == ("draft",)

    def test_count_without_filter(self, query_builder):
        query = query_builder.build_count("books")
        assert query.text == 'SELECT COUNT(*) AS count FROM "books"'

    def test_unknown_table(self, query_builder):
        with pytest.raises(NotWhitelistedError):
            query_builder.build_count("users")


@pytest.mark.unit
class TestMutations:
    """Test INSERT, UPDATE and DELETE generation."""

    def test_insert(self, query_builder):
        query = query_builder.build_insert(
            MutationPayload("authors", {"name": "Jane", "email": "jane@example.com"})
        )
        assert query.text == (
            'INSERT INTO "authors" ("name", "email") VALUES (%s, %s) '
            f"RETURNING {AUTHOR_COLUMNS}"
        )
        assert query.params == ("Jane", "jane@example.com")

    def test_insert_wraps_json(self, query_builder):
        query = query_builder.build_insert(
            MutationPayload("audit_logs", {"operation": "READ", "changes": {"count": 1}})
        )
        assert isinstance(query.params[1], Jsonb)

    def test_insert_empty_payload(self, query_builder):
        with pytest.raises(InvalidRequestError):
            query_builder.build_insert(MutationPayload("authors", {}))

    def test_update_sets_updated_at(self, query_builder):
        query = query_builder.build_update(
            MutationPayload("authors", {"bio": "Writer"}), parse_filter({"id": 7})
        )
        assert query.text == (
            'UPDATE "authors" SET "bio" = %s, "updated_at" = CURRENT_TIMESTAMP '
            f'WHERE "id" = %s RETURNING {AUTHOR_COLUMNS}'
        )
        assert query.params == ("Writer", 7)

    def test_update_explicit_updated_at(self, query_builder):
        query = query_builder.build_update(
            MutationPayload("authors", {"updated_at": "2024-01-01"}), parse_filter({"id": 7})
        )
        assert "CURRENT_TIMESTAMP" not in query.text

    def test_update_table_without_updated_at(self, query_builder):
        query = query_builder.build_update(
            MutationPayload("writing_sessions", {"notes": "ok"}), parse_filter({"id": 1})
        )
        assert "updated_at" not in query.text

    def test_update_requires_filter(self, query_builder):
        with pytest.raises(MissingFilterError):
            query_builder.build_update(MutationPayload("authors", {"bio": "x"}), FilterExpression())

    def test_delete(self, query_builder):
        query = query_builder.build_delete("chapters", parse_filter({"book_id": 3}))
        assert query.text.startswith('DELETE FROM "chapters" WHERE "book_id" = %s RETURNING "id"')
        assert query.params == (3,)
        assert query.query_type is QueryType.DELETE

    def test_delete_requires_filter(self, query_builder):
        with pytest.raises(MissingFilterError):
            query_builder.build_delete("chapters", FilterExpression())

    def test_soft_delete(self, query_builder):
        query = query_builder.build_soft_delete("books", parse_filter({"id": 9}))
        assert query.text.startswith(
            'UPDATE "books" SET "deleted_at" = CURRENT_TIMESTAMP, '
            '"updated_at" = CURRENT_TIMESTAMP WHERE "id" = %s AND "deleted_at" IS NULL '
            'RETURNING "id"'
        )
        assert query.params == (9,)
        assert query.query_type is QueryType.SOFT_DELETE

    def test_soft_delete_unsupported_table(self, query_builder):
        with pytest.raises(InvalidRequestError):
            query_builder.build_soft_delete("authors", parse_filter({"id": 1}))


@pytest.mark.unit
class TestValidationLookups:
    """Test the existence and uniqueness lookups."""

    def test_exists(self, query_builder):
        query = query_builder.build_exists("authors", "id", 5)
        assert query.text == 'SELECT EXISTS(SELECT 1 FROM "authors" WHERE "id" = %s) AS found'
        assert query.params == (5,)

    def test_unique_check(self, query_builder):
        query = query_builder.build_unique_check("authors", "email", "a@b.co")
        assert query.text == 'SELECT COUNT(*) AS count FROM "authors" WHERE "email" = %s'
        assert query.params == ("a@b.co",)

    def test_unique_check_excludes_updated_rows(self, query_builder):
        query = query_builder.build_unique_check(
            "authors", "email", "a@b.co", parse_filter({"id": 4})
        )
        assert query.text.endswith('WHERE "email" = %s AND NOT COALESCE(("id" = %s), FALSE)')
        assert query.params == ("a@b.co", 4)

    def test_same_input_same_query(self, query_builder):
        first = query_builder.build_exists("authors", "id", 5)
        second = query_builder.build_exists("authors", "id", 5)
        assert first == second
