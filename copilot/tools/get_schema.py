"""Column, constraint and index metadata for one table."""

import asyncio
from typing import Any, Dict

from copilot.models.tool import ToolContext, ToolDefinition, ToolParameter, ToolResult
from copilot.services.safety import execute_sql, quote_literal, validate_identifier


COLUMNS_SQL = """
    SELECT
      column_name,
      data_type,
      is_nullable,
      column_default,
      character_maximum_length,
      numeric_precision,
      numeric_scale,
      ordinal_position
    FROM information_schema.columns
    WHERE table_schema = {schema} AND table_name = {table}
    ORDER BY ordinal_position
"""

CONSTRAINTS_SQL = """
    SELECT
      tc.constraint_name,
      tc.constraint_type,
      kcu.column_name,
      ccu.table_name AS foreign_table_name,
      ccu.column_name AS foreign_column_name
    FROM information_schema.table_constraints tc
    LEFT JOIN information_schema.key_column_usage kcu
      ON tc.constraint_name = kcu.constraint_name
      AND tc.table_schema = kcu.table_schema
    LEFT JOIN information_schema.constraint_column_usage ccu
      ON tc.constraint_name = ccu.constraint_name
      AND tc.table_schema = ccu.table_schema
    WHERE tc.table_schema = {schema} AND tc.table_name = {table}
"""

INDEXES_SQL = """
    SELECT
      i.relname AS index_name,
      a.attname AS column_name,
      ix.indisunique AS is_unique,
      ix.indisprimary AS is_primary
    FROM pg_class t
    JOIN pg_index ix ON t.oid = ix.indrelid
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = ANY(ix.indkey)
    JOIN pg_namespace n ON n.oid = t.relnamespace
    WHERE n.nspname = {schema} AND t.relname = {table}
    ORDER BY i.relname, a.attnum
"""


async def execute(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    schema = validate_identifier(args["schema"], "schema")
    table = validate_identifier(args["table"], "table")
    params = {"schema": quote_literal(schema), "table": quote_literal(table)}

    columns, constraints, indexes = await asyncio.gather(
        execute_sql(COLUMNS_SQL.format(**params), context),
        execute_sql(CONSTRAINTS_SQL.format(**params), context),
        execute_sql(INDEXES_SQL.format(**params), context),
    )

    if not columns:
        return ToolResult.fail(
            f"Table \"{schema}.{table}\" not found or has no columns",
            details={"table": f"{schema}.{table}"},
        )

    return ToolResult.ok({
        "table": f"{schema}.{table}",
        "columns": columns,
        "constraints": constraints,
        "indexes": indexes,
    })


tool = ToolDefinition(
    name="get_schema",
    description=(
        "Get detailed schema information for a specific table including column names, "
        "types, constraints, and other metadata."
    ),
    parameters=[
        ToolParameter(name="table", type="string", required=True, description="The table name to get schema information for"),
        ToolParameter(name="schema", type="string", default="public", description='The schema name (defaults to "public")'),
    ],
    execute=execute,
)
