"""Tests for the shared safety checks."""

import pytest

from copilot.infra.error_handler import (
    ConfirmationRequired,
    ImpactLimitExceeded,
    InvalidArguments,
    InvalidIdentifier,
    MissingPredicate,
    ProtectedObject,
    SqlExecutionError,
    UnsafeOperation,
)
from copilot.services import safety


class TestIdentifiers:

    @pytest.mark.parametrize("name", ["users", "user_profiles", "_private", "Table1", "1legacy"])
    def test_existing_names_allowed(self, name):
        assert safety.validate_identifier(name) == name

    @pytest.mark.parametrize("name", ["", None, "users;drop", "a b", 'x"y', "schema.table"])
    def test_existing_names_rejected(self, name):
        with pytest.raises(InvalidIdentifier):
            safety.validate_identifier(name, "table")

    def test_new_names_must_not_start_with_digit(self):
        with pytest.raises(InvalidIdentifier):
            safety.validate_new_identifier("1invalid", "column")
        assert safety.validate_new_identifier("_valid1", "column") == "_valid1"


class TestPredicates:

    @pytest.mark.parametrize("where", [None, "", "   "])
    def test_missing_predicate(self, where):
        with pytest.raises(MissingPredicate):
            safety.require_predicate(where, "delete")

    def test_all_rows_form_is_accepted(self):
        assert safety.require_predicate(" 1=1 ", "update") == "1=1"

    @pytest.mark.parametrize("where", ["id = 1; DROP TABLE users", "id = 1 -- and more", "id = 1 /* x */"])
    def test_separators_and_comments_rejected(self, where):
        with pytest.raises(UnsafeOperation):
            safety.require_predicate(where, "delete")

    def test_limit_bounds(self):
        assert safety.validate_limit(None) == 1000
        assert safety.validate_limit(10000) == 10000
        with pytest.raises(InvalidArguments):
            safety.validate_limit(0)
        with pytest.raises(InvalidArguments):
            safety.validate_limit(10001)


class TestProtectedObjects:

    @pytest.mark.parametrize("schema", ["auth", "storage", "pg_catalog", "information_schema", "pg_temp_1", "AUTH"])
    def test_protected_schemas(self, schema):
        with pytest.raises(ProtectedObject):
            safety.ensure_not_protected(schema, "users", "drop")

    def test_pg_prefixed_tables(self):
        with pytest.raises(ProtectedObject):
            safety.ensure_not_protected("public", "pg_stat_statements", "drop")

    def test_public_schema_allowed(self):
        safety.ensure_not_protected("public", "users", "drop")


class TestReadOnly:

    @pytest.mark.parametrize("sql", [
        "SELECT * FROM users",
        "select created_at, updated_at from events",
        "SELECT * FROM users WHERE deleted_flag = false;",
    ])
    def test_select_allowed(self, sql):
        assert safety.ensure_read_only(sql).lower().startswith("select")

    @pytest.mark.parametrize("sql", [
        "DELETE FROM users",
        "WITH x AS (DELETE FROM users RETURNING *) SELECT * FROM x",
        "SELECT * FROM users; DROP TABLE users",
        "SELECT pg_sleep(1) FROM users WHERE id IN (SELECT id FROM x) AND 1=1 OR update",
        "select 1 where exists (select 1) and begin",
        "",
    ])
    def test_unsafe_rejected(self, sql):
        with pytest.raises(UnsafeOperation):
            safety.ensure_read_only(sql)

    def test_trailing_semicolon_is_removed(self):
        assert safety.ensure_read_only("SELECT 1;") == "SELECT 1"


class TestRendering:

    @pytest.mark.parametrize("value,expected", [
        (None, "NULL"),
        (True, "TRUE"),
        (False, "FALSE"),
        (42, "42"),
        (1.5, "1.5"),
        ("it's", "'it''s'"),
        ([], "'{}'"),
        ([1, "a"], "ARRAY[1, 'a']"),
        ({"k": "v"}, "'{\"k\": \"v\"}'"),
    ])
    def test_render_value(self, value, expected):
        assert safety.render_value(value) == expected

    def test_qualified_name(self):
        assert safety.qualified_name("public", "users") == '"public"."users"'


class TestImpactEstimation:

    @pytest.mark.asyncio
    async def test_count_within_threshold(self, gateway, tool_context):
        gateway.on("affected_count", [{"affected_count": 100}])

        affected = await safety.estimate_impact(
            tool_context, "public", "users", "id > 0", limit=1000,
            confirmed=False, confirm_flag="confirmMassDelete", operation="delete",
        )

        assert affected == 100
        assert gateway.calls == ['SELECT COUNT(*) AS affected_count FROM "public"."users" WHERE id > 0']

    @pytest.mark.asyncio
    async def test_confirmation_required_above_threshold(self, gateway, tool_context):
        gateway.on("affected_count", [{"affected_count": 101}])

        with pytest.raises(ConfirmationRequired) as exc_info:
            await safety.estimate_impact(
                tool_context, "public", "users", "id > 0", limit=1000,
                confirmed=False, confirm_flag="confirmMassUpdate", operation="update",
            )

        assert "confirmMassUpdate=true" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_limit_checked_before_confirmation(self, gateway, tool_context):
        gateway.on("affected_count", [{"affected_count": 600}])

        with pytest.raises(ImpactLimitExceeded):
            await safety.estimate_impact(
                tool_context, "public", "users", "1=1", limit=500,
                confirmed=True, confirm_flag="confirmMassDelete", operation="delete",
            )


class TestDatabaseErrors:

    @pytest.mark.parametrize("message,kind", [
        ('insert or update on table "orders" violates foreign key constraint', "foreign_key"),
        ('duplicate key value violates unique constraint "users_email_key"', "unique"),
        ('null value in column "email" violates not-null constraint', "not_null"),
        ('new row violates check constraint "price_positive"', "check"),
        ('invalid input syntax for type integer: "abc"', "invalid_input"),
        ('syntax error at or near "FROM"', "syntax"),
        ('relation "todos" already exists', "already_exists"),
        ('cannot drop column owner_id of table todos because other objects depend on it', "dependent_objects"),
        ("something else entirely", None),
    ])
    def test_classification(self, message, kind):
        assert safety.classify_database_error(message) == kind

    def test_failure_result_names_table(self):
        result = safety.database_failure(
            "insert", "public", "users", SqlExecutionError('null value in column "email" violates not-null constraint')
        )

        assert result.success is False
        assert result.error.startswith("Insert failed: Required field missing on public.users")
        assert result.details["table"] == "public.users"
        assert result.details["constraint"] == "not_null"
