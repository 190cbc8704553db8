"""Tests for the database tools, dispatched through the default registry."""

import json

import pytest

from copilot.infra.error_handler import SqlExecutionError
from copilot.services.tool_registry import get_default_registry


async def call(name, arguments, context):
    return await get_default_registry().dispatch(name, json.dumps(arguments), context)


class TestRunSql:
    """Read-only query tool."""

    @pytest.mark.asyncio
    async def test_rejects_drop_without_reaching_gateway(self, gateway, tool_context):
        result = await call("run_sql", {"sql": "DROP TABLE users"}, tool_context)

        assert result.success is False
        assert result.details["code"] == "unsafe_operation"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_rejects_select_with_second_statement(self, gateway, tool_context):
        result = await call("run_sql", {"sql": "SELECT 1; DELETE FROM users"}, tool_context)

        assert result.success is False
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_column_names_containing_keywords_are_allowed(self, gateway, tool_context):
        gateway.on("from users", [{"id": 1, "created_at": "2024-01-01"}])

        result = await call("run_sql", {"sql": "SELECT id, created_at FROM users;"}, tool_context)

        assert result.success is True
        assert result.data == {"rows": [{"id": 1, "created_at": "2024-01-01"}], "rowCount": 1}
        assert gateway.calls == ["SELECT id, created_at FROM users"]

    @pytest.mark.asyncio
    async def test_gateway_rejection_becomes_failed_result(self, gateway, tool_context):
        gateway.on("from missing", SqlExecutionError('relation "missing" does not exist', status_code=400))

        result = await call("run_sql", {"sql": "SELECT * FROM missing"}, tool_context)

        assert result.success is False
        assert result.details["code"] == "sql_error"
        assert "does not exist" in result.error


class TestListTables:

    @pytest.mark.asyncio
    async def test_lists_tables_with_schema_stats(self, gateway, tool_context):
        gateway.on("from pg_tables", [
            {"schema_name": "public", "table_name": "users"},
            {"schema_name": "public", "table_name": "orders"},
        ])
        gateway.on("from pg_views", [{"schema_name": "public", "table_name": "active_users", "table_type": "VIEW"}])

        result = await call("list_tables", {"schema": "public", "includeViews": True}, tool_context)

        assert result.success is True
        assert result.data["totalTables"] == 2
        assert result.data["totalViews"] == 1
        assert result.data["schemaStats"] == {"public": {"tables": 2, "views": 1}}
        assert [row["table_type"] for row in result.data["tables"]] == ["TABLE", "TABLE", "VIEW"]

    @pytest.mark.asyncio
    async def test_views_not_queried_by_default(self, gateway, tool_context):
        result = await call("list_tables", {}, tool_context)

        assert result.success is True
        assert result.data["schemaFilter"] == "all"
        assert gateway.statements("pg_views") == []


class TestCreateTable:

    @pytest.mark.asyncio
    async def test_rejects_column_starting_with_digit_before_ddl(self, gateway, tool_context):
        result = await call(
            "create_table",
            {"name": "todos", "columns": [{"name": "1invalid", "type": "text"}]},
            tool_context,
        )

        assert result.success is False
        assert result.details["code"] == "invalid_identifier"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_rejects_duplicate_columns(self, gateway, tool_context):
        result = await call(
            "create_table",
            {"name": "todos", "columns": [{"name": "id", "type": "int"}, {"name": "id", "type": "text"}]},
            tool_context,
        )

        assert result.success is False
        assert result.details["code"] == "invalid_arguments"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_creates_table_and_enables_rls(self, gateway, tool_context):
        result = await call(
            "create_table",
            {
                "name": "todos",
                "columns": [
                    {"name": "id", "type": "uuid", "primaryKey": True, "defaultValue": "gen_random_uuid()"},
                    {"name": "title", "type": "text", "nullable": False},
                    {"name": "created_at", "type": "timestamptz", "defaultValue": "now()"},
                ],
            },
            tool_context,
        )

        assert result.success is True
        assert result.data["columnsCreated"] == 3
        assert result.data["rlsEnabled"] is True
        create_sql = gateway.calls[0]
        assert create_sql.startswith('CREATE TABLE "public"."todos"')
        assert '"id" uuid DEFAULT gen_random_uuid() PRIMARY KEY' in create_sql
        assert '"title" text NOT NULL' in create_sql
        assert gateway.calls[1] == 'ALTER TABLE "public"."todos" ENABLE ROW LEVEL SECURITY;'

    @pytest.mark.asyncio
    async def test_rejects_type_with_statement_separator(self, gateway, tool_context):
        result = await call(
            "create_table",
            {"name": "todos", "columns": [{"name": "id", "type": "int); DROP TABLE users; --"}]},
            tool_context,
        )

        assert result.success is False
        assert result.details["code"] == "unsafe_operation"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_null_options_fall_back_to_defaults(self, gateway, tool_context):
        result = await call(
            "create_table",
            {"name": "todos", "schema": None, "enableRls": None, "columns": [{"name": "id", "type": "int"}]},
            tool_context,
        )

        assert result.success is True
        assert result.data["tableName"] == "public.todos"
        assert result.data["rlsEnabled"] is True
        assert gateway.calls[1] == 'ALTER TABLE "public"."todos" ENABLE ROW LEVEL SECURITY;'


class TestDropTable:

    @pytest.mark.asyncio
    async def test_protected_schema_is_refused(self, gateway, tool_context):
        result = await call("drop_table", {"name": "users", "schema": "auth", "cascade": True}, tool_context)

        assert result.success is False
        assert result.details["code"] == "protected_object"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_missing_table(self, gateway, tool_context):
        gateway.on("select exists", [{"exists": False}])

        result = await call("drop_table", {"name": "ghosts"}, tool_context)

        assert result.success is False
        assert "does not exist" in result.error
        assert gateway.statements("drop table") == []

    @pytest.mark.asyncio
    async def test_drop_reports_rows_and_dependency_warnings(self, gateway, tool_context):
        gateway.on("select exists", [{"exists": True}])
        gateway.on("as row_count", [{"row_count": "3"}])
        gateway.on("foreign key", [{
            "referencing_schema": "public",
            "referencing_table": "orders",
            "referencing_column": "user_id",
            "delete_rule": "NO ACTION",
        }])

        result = await call("drop_table", {"name": "users"}, tool_context)

        assert result.success is True
        assert result.data["rowsDeleted"] == 3
        assert result.data["warnings"] == ["public.orders.user_id references this table with ON DELETE NO ACTION"]
        assert gateway.calls[-1] == 'DROP TABLE "public"."users";'


class TestDeleteTableRows:

    @pytest.mark.asyncio
    async def test_empty_where_is_refused_without_gateway_call(self, gateway, tool_context):
        result = await call("delete_table_rows", {"table": "users", "where": ""}, tool_context)

        assert result.success is False
        assert result.details["code"] == "missing_predicate"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_mass_delete_requires_confirmation(self, gateway, tool_context):
        gateway.on("affected_count", [{"affected_count": 150}])

        result = await call("delete_table_rows", {"table": "users", "where": "active = false"}, tool_context)

        assert result.success is False
        assert result.details["code"] == "confirmation_required"
        assert result.details["affected_rows"] == 150
        assert result.details["confirm_flag"] == "confirmMassDelete"
        assert gateway.statements("delete from") == []

    @pytest.mark.asyncio
    async def test_confirmed_mass_delete(self, gateway, tool_context):
        gateway.on("affected_count", [{"affected_count": "150"}])

        result = await call(
            "delete_table_rows",
            {"table": "users", "where": "active = false", "confirmMassDelete": True},
            tool_context,
        )

        assert result.success is True
        assert result.data["rowCount"] == 150
        assert result.data["summary"]["massDeleteConfirmed"] is True
        assert gateway.statements("delete from") == ['DELETE FROM "public"."users" WHERE active = false']

    @pytest.mark.asyncio
    async def test_count_above_limit_is_refused_even_when_confirmed(self, gateway, tool_context):
        gateway.on("affected_count", [{"affected_count": 2000}])

        result = await call(
            "delete_table_rows",
            {"table": "users", "where": "1=1", "confirmMassDelete": True},
            tool_context,
        )

        assert result.success is False
        assert result.details["code"] == "impact_limit_exceeded"
        assert gateway.statements("delete from") == []

    @pytest.mark.asyncio
    async def test_limit_out_of_range(self, gateway, tool_context):
        result = await call("delete_table_rows", {"table": "users", "where": "id = 1", "limit": 20000}, tool_context)

        assert result.success is False
        assert result.details["code"] == "invalid_arguments"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_zero_matching_rows_is_a_no_op(self, gateway, tool_context):
        gateway.on("affected_count", [{"affected_count": 0}])

        result = await call("delete_table_rows", {"table": "users", "where": "id = -1"}, tool_context)

        assert result.success is True
        assert result.data["rowCount"] == 0
        assert gateway.statements("delete from") == []

    @pytest.mark.asyncio
    async def test_foreign_key_violation_is_explained(self, gateway, tool_context):
        gateway.on("affected_count", [{"affected_count": 1}])
        gateway.on(
            "delete from",
            SqlExecutionError('update or delete on table "users" violates foreign key constraint "orders_user_id_fkey"'),
        )

        result = await call("delete_table_rows", {"table": "users", "where": "id = 1"}, tool_context)

        assert result.success is False
        assert result.details["constraint"] == "foreign_key"
        assert result.error.startswith("Delete failed: Foreign key constraint violation on public.users")


class TestInsertAndUpdate:

    @pytest.mark.asyncio
    async def test_insert_renders_literals(self, gateway, tool_context):
        gateway.on("information_schema.columns", [
            {"column_name": "id"},
            {"column_name": "name"},
            {"column_name": "active"},
            {"column_name": "tags"},
        ])
        gateway.on("insert into", [{"id": 1, "name": "O'Brien"}])

        result = await call(
            "insert_table_row",
            {"table": "people", "data": {"name": "O'Brien", "active": True, "tags": ["a", "b"]}},
            tool_context,
        )

        assert result.success is True
        assert result.data["rowCount"] == 1
        assert result.data["query"] == (
            'INSERT INTO "public"."people" ("name", "active", "tags") '
            "VALUES ('O''Brien', TRUE, ARRAY['a', 'b']) RETURNING *"
        )

    @pytest.mark.asyncio
    async def test_insert_unknown_column(self, gateway, tool_context):
        gateway.on("information_schema.columns", [{"column_name": "id"}, {"column_name": "email"}])

        result = await call("insert_table_row", {"table": "people", "data": {"nickname": "x"}}, tool_context)

        assert result.success is False
        assert result.details["code"] == "invalid_arguments"
        assert result.details["invalid_columns"] == ["nickname"]
        assert gateway.statements("insert into") == []

    @pytest.mark.asyncio
    async def test_insert_duplicate_key_suggests_on_conflict(self, gateway, tool_context):
        gateway.on("information_schema.columns", [{"column_name": "email"}])
        gateway.on("insert into", SqlExecutionError('duplicate key value violates unique constraint "people_email_key"'))

        result = await call("insert_table_row", {"table": "people", "data": {"email": "a@b.c"}}, tool_context)

        assert result.success is False
        assert result.details["constraint"] == "unique"
        assert "onConflict" in result.error

    @pytest.mark.asyncio
    async def test_upsert_targets_primary_key(self, gateway, tool_context):
        gateway.on("information_schema.columns", [{"column_name": "id"}, {"column_name": "name"}])
        gateway.on("key_column_usage", [
            {"constraint_name": "people_pkey", "constraint_type": "PRIMARY KEY", "column_name": "id"},
        ])
        gateway.on("insert into", [{"id": 1, "name": "x"}])

        result = await call(
            "insert_table_row",
            {"table": "people", "data": {"id": 1, "name": "x"}, "onConflict": "update"},
            tool_context,
        )

        assert result.success is True
        assert result.data["query"] == (
            'INSERT INTO "public"."people" ("id", "name") VALUES (1, \'x\') '
            'ON CONFLICT ("id") DO UPDATE SET "name" = EXCLUDED."name" RETURNING *'
        )

    @pytest.mark.asyncio
    async def test_upsert_falls_back_to_unique_constraint_in_row(self, gateway, tool_context):
        gateway.on("information_schema.columns", [{"column_name": "id"}, {"column_name": "email"}, {"column_name": "name"}])
        gateway.on("key_column_usage", [
            {"constraint_name": "people_pkey", "constraint_type": "PRIMARY KEY", "column_name": "id"},
            {"constraint_name": "people_email_key", "constraint_type": "UNIQUE", "column_name": "email"},
        ])
        gateway.on("insert into", [{"id": 3, "email": "a@b.c", "name": "Ada"}])

        result = await call(
            "insert_table_row",
            {"table": "people", "data": {"email": "a@b.c", "name": "Ada"}, "onConflict": "update"},
            tool_context,
        )

        assert result.success is True
        assert 'ON CONFLICT ("email") DO UPDATE SET "name" = EXCLUDED."name"' in result.data["query"]

    @pytest.mark.asyncio
    async def test_upsert_without_usable_key_is_refused(self, gateway, tool_context):
        gateway.on("information_schema.columns", [{"column_name": "id"}, {"column_name": "name"}])

        result = await call(
            "insert_table_row",
            {"table": "people", "data": {"name": "x"}, "onConflict": "update"},
            tool_context,
        )

        assert result.success is False
        assert result.details["code"] == "invalid_arguments"
        assert gateway.statements("insert into") == []

    @pytest.mark.asyncio
    async def test_update_without_where(self, gateway, tool_context):
        result = await call(
            "update_table_row",
            {"table": "people", "data": {"name": "x"}, "where": "   "},
            tool_context,
        )

        assert result.success is False
        assert result.details["code"] == "missing_predicate"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_update_applies_set_clause(self, gateway, tool_context):
        gateway.on("information_schema.columns", [{"column_name": "id"}, {"column_name": "name"}])
        gateway.on("affected_count", [{"affected_count": 1}])
        gateway.on("update \"public\"", [{"id": 7, "name": "New"}])

        result = await call(
            "update_table_row",
            {"table": "people", "data": {"name": "New"}, "where": "id = 7"},
            tool_context,
        )

        assert result.success is True
        assert result.data["rowCount"] == 1
        assert result.data["query"] == 'UPDATE "public"."people" SET "name" = \'New\' WHERE id = 7 RETURNING *'


class TestManageRlsPolicies:

    @pytest.mark.asyncio
    async def test_disable_rls_requires_force(self, gateway, tool_context):
        result = await call("manage_rls_policies", {"action": "disable_rls", "table": "todos"}, tool_context)

        assert result.success is False
        assert result.details["code"] == "confirmation_required"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_create_policy_from_template(self, gateway, tool_context):
        result = await call(
            "manage_rls_policies",
            {
                "action": "create_policy",
                "table": "todos",
                "policyName": "todos_owner",
                "command": "SELECT",
                "template": "user_based",
                "templateParams": {"user_column": "owner_id"},
            },
            tool_context,
        )

        assert result.success is True
        assert gateway.calls == [
            'CREATE POLICY "todos_owner" ON "public"."todos" AS PERMISSIVE FOR SELECT USING (auth.uid() = owner_id)'
        ]

    @pytest.mark.asyncio
    async def test_update_policy_is_atomic(self, gateway, tool_context):
        gateway.on("from pg_policies", [{"policyname": "todos_owner", "qual": "(auth.uid() = owner_id)", "with_check": None}])

        result = await call(
            "manage_rls_policies",
            {"action": "update_policy", "table": "todos", "policyName": "todos_owner", "newPolicyName": "todos_read"},
            tool_context,
        )

        assert result.success is True
        statement = gateway.calls[-1]
        assert statement.startswith('BEGIN; DROP POLICY "todos_owner" ON "public"."todos"; CREATE POLICY "todos_read"')
        assert statement.endswith("COMMIT;")

    @pytest.mark.asyncio
    async def test_update_policy_keeps_command_roles_and_type(self, gateway, tool_context):
        gateway.on("from pg_policies", [{
            "policyname": "todos_owner",
            "qual": "(auth.uid() = user_id)",
            "with_check": None,
            "cmd": "SELECT",
            "roles": "{authenticated}",
            "permissive": "RESTRICTIVE",
        }])

        result = await call(
            "manage_rls_policies",
            {
                "action": "update_policy",
                "table": "todos",
                "policyName": "todos_owner",
                "definition": "auth.uid() = owner_id",
            },
            tool_context,
        )

        assert result.success is True
        assert gateway.calls[-1] == (
            'BEGIN; DROP POLICY "todos_owner" ON "public"."todos"; '
            'CREATE POLICY "todos_owner" ON "public"."todos" AS RESTRICTIVE FOR SELECT TO "authenticated" '
            "USING (auth.uid() = owner_id); COMMIT;"
        )

    @pytest.mark.asyncio
    async def test_update_policy_overrides_only_what_is_given(self, gateway, tool_context):
        gateway.on("from pg_policies", [{
            "policyname": "todos_owner",
            "qual": "(auth.uid() = user_id)",
            "with_check": None,
            "cmd": "SELECT",
            "roles": ["public"],
            "permissive": "RESTRICTIVE",
        }])

        result = await call(
            "manage_rls_policies",
            {"action": "update_policy", "table": "todos", "policyName": "todos_owner", "command": "UPDATE"},
            tool_context,
        )

        assert result.success is True
        assert result.data["roles"] == []
        assert "AS RESTRICTIVE FOR UPDATE USING ((auth.uid() = user_id))" in gateway.calls[-1]

    @pytest.mark.asyncio
    async def test_templates_listed_without_gateway(self, gateway, tool_context):
        result = await call("manage_rls_policies", {"action": "get_policy_templates"}, tool_context)

        assert result.success is True
        assert set(result.data["templates"]) == {"user_based", "role_based", "team_based", "public_read", "owner_only"}
        assert gateway.calls == []


class TestInspectTableSchema:

    @pytest.mark.asyncio
    async def test_unknown_table(self, gateway, tool_context):
        result = await call("inspect_table_schema", {"table": "ghosts"}, tool_context)

        assert result.success is False
        assert "not found" in result.error


class TestGetSchema:

    @pytest.mark.asyncio
    async def test_collects_columns_constraints_and_indexes(self, gateway, tool_context):
        gateway.on("from information_schema.columns", [{"column_name": "id", "data_type": "integer"}])
        gateway.on("information_schema.table_constraints", [{"constraint_name": "users_pkey", "constraint_type": "PRIMARY KEY"}])

        result = await call("get_schema", {"table": "users"}, tool_context)

        assert result.success is True
        assert result.data["table"] == "public.users"
        assert result.data["columns"][0]["column_name"] == "id"
        assert result.data["constraints"][0]["constraint_type"] == "PRIMARY KEY"
        assert result.data["indexes"] == []
        assert len(gateway.calls) == 3

    @pytest.mark.asyncio
    async def test_missing_table(self, gateway, tool_context):
        result = await call("get_schema", {"table": "ghosts"}, tool_context)

        assert result.success is False


class TestReadTableData:

    @pytest.mark.asyncio
    async def test_builds_paginated_select(self, gateway, tool_context):
        gateway.on("as total_count", [{"total_count": "42"}])
        gateway.on('from "public"."users" where', [{"id": 1, "name": "Ada"}])

        result = await call(
            "read_table_data",
            {
                "table": "users",
                "columns": ["id", "name"],
                "where": "active = true",
                "orderBy": "id DESC",
                "limit": 10,
                "includeCount": True,
            },
            tool_context,
        )

        assert result.success is True
        assert result.data["query"] == (
            'SELECT "id", "name" FROM "public"."users" WHERE active = true ORDER BY id DESC LIMIT 10 OFFSET 0'
        )
        assert result.data["totalCount"] == 42
        assert result.data["hasMore"] is False

    @pytest.mark.asyncio
    async def test_limit_above_maximum(self, gateway, tool_context):
        result = await call("read_table_data", {"table": "users", "limit": 5000}, tool_context)

        assert result.success is False
        assert result.details["code"] == "invalid_arguments"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_order_by_cannot_end_statement(self, gateway, tool_context):
        result = await call("read_table_data", {"table": "users", "orderBy": "id; DROP TABLE users"}, tool_context)

        assert result.success is False
        assert result.details["code"] == "unsafe_operation"
        assert gateway.calls == []


class TestManageTableStructure:

    @pytest.mark.asyncio
    async def test_drop_column_requires_force(self, gateway, tool_context):
        result = await call(
            "manage_table_structure",
            {"action": "drop_column", "table": "todos", "columnName": "legacy"},
            tool_context,
        )

        assert result.success is False
        assert result.details["code"] == "confirmation_required"
        assert result.details["confirm_flag"] == "force"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_forced_drop_column_with_cascade(self, gateway, tool_context):
        result = await call(
            "manage_table_structure",
            {"action": "drop_column", "table": "todos", "columnName": "legacy", "force": True, "cascade": True},
            tool_context,
        )

        assert result.success is True
        assert gateway.calls == ['ALTER TABLE "public"."todos" DROP COLUMN "legacy" CASCADE']

    @pytest.mark.asyncio
    async def test_add_column(self, gateway, tool_context):
        result = await call(
            "manage_table_structure",
            {
                "action": "add_column",
                "table": "todos",
                "columnName": "due_at",
                "columnType": "timestamptz",
                "columnNullable": False,
                "columnDefault": "now()",
            },
            tool_context,
        )

        assert result.success is True
        assert result.data["query"] == 'ALTER TABLE "public"."todos" ADD COLUMN "due_at" timestamptz NOT NULL DEFAULT now()'

    @pytest.mark.asyncio
    async def test_modify_column_combines_alterations(self, gateway, tool_context):
        result = await call(
            "manage_table_structure",
            {"action": "modify_column", "table": "todos", "columnName": "title", "columnType": "varchar(200)", "columnDefault": ""},
            tool_context,
        )

        assert result.success is True
        assert gateway.calls == [
            'ALTER TABLE "public"."todos" ALTER COLUMN "title" TYPE varchar(200), ALTER COLUMN "title" DROP DEFAULT'
        ]

    @pytest.mark.asyncio
    async def test_modify_column_needs_a_change(self, gateway, tool_context):
        result = await call(
            "manage_table_structure",
            {"action": "modify_column", "table": "todos", "columnName": "title"},
            tool_context,
        )

        assert result.success is False
        assert result.details["code"] == "invalid_arguments"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_add_unique_gin_index(self, gateway, tool_context):
        result = await call(
            "manage_table_structure",
            {
                "action": "add_index",
                "table": "todos",
                "indexName": "todos_tags_idx",
                "indexColumns": ["tags"],
                "indexType": "gin",
                "unique": True,
            },
            tool_context,
        )

        assert result.success is True
        assert gateway.calls == ['CREATE UNIQUE INDEX "todos_tags_idx" ON "public"."todos" USING GIN ("tags")']

    @pytest.mark.asyncio
    async def test_protected_schema_is_refused(self, gateway, tool_context):
        result = await call(
            "manage_table_structure",
            {"action": "add_column", "schema": "auth", "table": "users", "columnName": "x", "columnType": "text"},
            tool_context,
        )

        assert result.success is False
        assert result.details["code"] == "protected_object"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_constraint_definition_cannot_end_statement(self, gateway, tool_context):
        result = await call(
            "manage_table_structure",
            {
                "action": "add_constraint",
                "table": "todos",
                "constraintName": "title_len",
                "constraintDefinition": "CHECK (length(title) > 0); DROP TABLE todos",
            },
            tool_context,
        )

        assert result.success is False
        assert result.details["code"] == "unsafe_operation"
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_existing_constraint_is_explained(self, gateway, tool_context):
        gateway.on("add constraint", SqlExecutionError('constraint "title_len" for relation "todos" already exists'))

        result = await call(
            "manage_table_structure",
            {
                "action": "add_constraint",
                "table": "todos",
                "constraintName": "title_len",
                "constraintDefinition": "CHECK (length(title) > 0)",
            },
            tool_context,
        )

        assert result.success is False
        assert result.details["constraint"] == "already_exists"
        assert result.error.startswith("Alter failed: An object with that name already exists")
