"""List tables (and optionally views) with per-schema counts."""

from collections import defaultdict
from typing import Any, Dict, Optional

from copilot.models.tool import ToolContext, ToolDefinition, ToolParameter, ToolResult
from copilot.services.safety import execute_sql, quote_literal, validate_identifier


def _tables_sql(schema: Optional[str]) -> str:
    sql = """
        SELECT
          schemaname AS schema_name,
          tablename AS table_name,
          tableowner AS table_owner,
          hasindexes AS has_indexes,
          hasrules AS has_rules,
          hastriggers AS has_triggers,
          rowsecurity AS row_security_enabled
        FROM pg_tables
        WHERE schemaname NOT IN ('information_schema', 'pg_catalog', 'pg_toast')
    """
    if schema:
        sql += f" AND schemaname = {quote_literal(schema)}"
    return sql + " ORDER BY schemaname, tablename"


def _views_sql(schema: Optional[str]) -> str:
    sql = """
        SELECT
          schemaname AS schema_name,
          viewname AS table_name,
          viewowner AS table_owner,
          'VIEW' AS table_type
        FROM pg_views
        WHERE schemaname NOT IN ('information_schema', 'pg_catalog')
    """
    if schema:
        sql += f" AND schemaname = {quote_literal(schema)}"
    return sql + " ORDER BY schemaname, viewname"


async def execute(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    schema = args.get("schema")
    if schema:
        validate_identifier(schema, "schema")
    include_views = bool(args.get("includeViews"))

    tables = [{**row, "table_type": "TABLE"} for row in await execute_sql(_tables_sql(schema), context)]
    views = await execute_sql(_views_sql(schema), context) if include_views else []

    stats: Dict[str, Dict[str, int]] = defaultdict(lambda: {"tables": 0, "views": 0})
    for row in tables:
        stats[row.get("schema_name")]["tables"] += 1
    for row in views:
        stats[row.get("schema_name")]["views"] += 1

    return ToolResult.ok({
        "totalTables": len(tables),
        "totalViews": len(views),
        "schemaFilter": schema or "all",
        "includeViews": include_views,
        "schemaStats": dict(stats),
        "tables": tables + views,
    })


tool = ToolDefinition(
    name="list_tables",
    description="List all tables in the database with their schema information.",
    parameters=[
        ToolParameter(
            name="schema",
            type="string",
            description="Schema name to filter tables (defaults to all schemas except system schemas)",
        ),
        ToolParameter(name="includeViews", type="boolean", default=False, description="Whether to include views (default: false)"),
    ],
    execute=execute,
)
