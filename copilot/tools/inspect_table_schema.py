"""Full structural view of a table: columns, constraints, indexes, policies, relationships, stats."""

import asyncio
from typing import Any, Dict

from copilot.models.tool import ToolContext, ToolDefinition, ToolParameter, ToolResult
from copilot.services.safety import execute_sql, quote_literal, validate_identifier


TABLE_INFO_SQL = """
    SELECT t.table_name, t.table_schema, t.table_type, obj_description(c.oid) AS table_comment
    FROM information_schema.tables t
    LEFT JOIN pg_namespace n ON n.nspname = t.table_schema
    LEFT JOIN pg_class c ON c.relname = t.table_name AND c.relnamespace = n.oid
    WHERE t.table_schema = {schema} AND t.table_name = {table}
"""

COLUMNS_SQL = """
    SELECT
      c.column_name,
      c.character_maximum_length,
      c.numeric_precision,
      c.numeric_scale,
      c.is_nullable,
      c.column_default,
      c.ordinal_position,
      col_description(pgc.oid, c.ordinal_position) AS column_comment,
      CASE WHEN c.data_type = 'USER-DEFINED' THEN c.udt_name ELSE c.data_type END AS full_data_type
    FROM information_schema.columns c
    LEFT JOIN pg_namespace pgn ON pgn.nspname = c.table_schema
    LEFT JOIN pg_class pgc ON pgc.relname = c.table_name AND pgc.relnamespace = pgn.oid
    WHERE c.table_schema = {schema} AND c.table_name = {table}
    ORDER BY c.ordinal_position
"""

CONSTRAINTS_SQL = """
    SELECT
      tc.constraint_name,
      tc.constraint_type,
      kcu.column_name,
      tc.is_deferrable,
      tc.initially_deferred,
      rc.update_rule,
      rc.delete_rule,
      ccu.table_schema AS foreign_table_schema,
      ccu.table_name AS foreign_table_name,
      ccu.column_name AS foreign_column_name
    FROM information_schema.table_constraints tc
    LEFT JOIN information_schema.key_column_usage kcu
      ON tc.constraint_name = kcu.constraint_name AND tc.table_schema = kcu.table_schema
    LEFT JOIN information_schema.referential_constraints rc
      ON tc.constraint_name = rc.constraint_name AND tc.table_schema = rc.constraint_schema
    LEFT JOIN information_schema.constraint_column_usage ccu
      ON rc.unique_constraint_name = ccu.constraint_name AND rc.unique_constraint_schema = ccu.constraint_schema
    WHERE tc.table_schema = {schema} AND tc.table_name = {table}
    ORDER BY tc.constraint_type, tc.constraint_name
"""

INDEXES_SQL = """
    SELECT i.indexname AS index_name, i.indexdef AS index_definition, i.tablespace
    FROM pg_indexes i
    WHERE i.schemaname = {schema} AND i.tablename = {table}
    ORDER BY i.indexname
"""

POLICIES_SQL = """
    SELECT policyname, permissive, roles, cmd, qual, with_check
    FROM pg_policies
    WHERE schemaname = {schema} AND tablename = {table}
    ORDER BY policyname
"""

RLS_STATUS_SQL = """
    SELECT c.relrowsecurity AS rls_enabled, c.relforcerowsecurity AS rls_forced
    FROM pg_class c
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE n.nspname = {schema} AND c.relname = {table}
"""

OUTGOING_FK_SQL = """
    SELECT
      kcu.column_name AS local_column,
      ccu.table_schema AS foreign_schema,
      ccu.table_name AS foreign_table,
      ccu.column_name AS foreign_column,
      tc.constraint_name,
      rc.update_rule,
      rc.delete_rule
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu ON tc.constraint_name = kcu.constraint_name
    JOIN information_schema.constraint_column_usage ccu ON tc.constraint_name = ccu.constraint_name
    JOIN information_schema.referential_constraints rc ON tc.constraint_name = rc.constraint_name
    WHERE tc.constraint_type = 'FOREIGN KEY' AND tc.table_schema = {schema} AND tc.table_name = {table}
"""

INCOMING_FK_SQL = """
    SELECT
      tc.table_schema AS referencing_schema,
      tc.table_name AS referencing_table,
      kcu.column_name AS referencing_column,
      ccu.column_name AS local_column,
      tc.constraint_name,
      rc.update_rule,
      rc.delete_rule
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu ON tc.constraint_name = kcu.constraint_name
    JOIN information_schema.constraint_column_usage ccu ON tc.constraint_name = ccu.constraint_name
    JOIN information_schema.referential_constraints rc ON tc.constraint_name = rc.constraint_name
    WHERE tc.constraint_type = 'FOREIGN KEY' AND ccu.table_schema = {schema} AND ccu.table_name = {table}
"""

COLUMN_STATS_SQL = """
    SELECT attname AS column_name, n_distinct, correlation, null_frac, avg_width
    FROM pg_stats
    WHERE schemaname = {schema} AND tablename = {table}
"""

SIZE_SQL = """
    SELECT
      pg_size_pretty(pg_total_relation_size({regclass}::regclass)) AS table_size,
      pg_size_pretty(pg_relation_size({regclass}::regclass)) AS table_size_without_indexes,
      (SELECT COUNT(*) FROM {qualified}) AS estimated_row_count
"""


async def execute(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    schema = validate_identifier(args["schema"], "schema")
    table = validate_identifier(args["table"], "table")
    params = {"schema": quote_literal(schema), "table": quote_literal(table)}

    async def query(sql: str):
        return await execute_sql(sql.format(**params), context)

    table_rows, columns = await asyncio.gather(query(TABLE_INFO_SQL), query(COLUMNS_SQL))
    if not table_rows:
        return ToolResult.fail(f"Table \"{schema}\".\"{table}\" not found", details={"table": f"{schema}.{table}"})

    info = table_rows[0]
    result: Dict[str, Any] = {
        "schema": schema,
        "name": table,
        "type": info.get("table_type"),
        "comment": info.get("table_comment"),
        "columns": [
            {
                "name": col.get("column_name"),
                "type": col.get("full_data_type"),
                "nullable": col.get("is_nullable") == "YES",
                "default": col.get("column_default"),
                "maxLength": col.get("character_maximum_length"),
                "precision": col.get("numeric_precision"),
                "scale": col.get("numeric_scale"),
                "position": col.get("ordinal_position"),
                "comment": col.get("column_comment"),
            }
            for col in columns
        ],
    }

    if args["includeConstraints"]:
        result["constraints"] = await query(CONSTRAINTS_SQL)

    if args["includeIndexes"]:
        result["indexes"] = await query(INDEXES_SQL)

    if args["includePolicies"]:
        policies, rls = await asyncio.gather(query(POLICIES_SQL), query(RLS_STATUS_SQL))
        result["policies"] = policies
        if rls:
            result["rls_enabled"] = rls[0].get("rls_enabled")
            result["rls_forced"] = rls[0].get("rls_forced")

    if args["includeRelationships"]:
        outgoing, incoming = await asyncio.gather(query(OUTGOING_FK_SQL), query(INCOMING_FK_SQL))
        result["relationships"] = {"outgoing": outgoing, "incoming": incoming}

    if args["includeStats"]:
        size_sql = SIZE_SQL.format(
            regclass=quote_literal(f'"{schema}"."{table}"'),
            qualified=f'"{schema}"."{table}"',
        )
        column_stats, size = await asyncio.gather(query(COLUMN_STATS_SQL), execute_sql(size_sql, context))
        result["statistics"] = {
            "size_info": size[0] if size else {},
            "column_stats": column_stats,
        }

    return ToolResult.ok({"table": result})


tool = ToolDefinition(
    name="inspect_table_schema",
    description=(
        "Get comprehensive schema information for a table including columns, constraints, "
        "indexes, policies, and relationships."
    ),
    parameters=[
        ToolParameter(name="schema", type="string", default="public", description='Schema name (e.g., "public", "auth")'),
        ToolParameter(name="table", type="string", required=True, description="Table name to inspect"),
        ToolParameter(name="includeIndexes", type="boolean", default=True, description="Include index information"),
        ToolParameter(name="includePolicies", type="boolean", default=True, description="Include RLS policy information"),
        ToolParameter(name="includeConstraints", type="boolean", default=True, description="Include constraint information"),
        ToolParameter(name="includeRelationships", type="boolean", default=True, description="Include foreign key relationships"),
        ToolParameter(name="includeStats", type="boolean", default=False, description="Include table statistics (row count, size)"),
    ],
    execute=execute,
)
