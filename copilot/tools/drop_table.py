"""Drop a table after protected-namespace, existence and dependency checks."""

import logging
from typing import Any, Dict

from copilot.infra.error_handler import SqlExecutionError
from copilot.models.tool import ToolContext, ToolDefinition, ToolParameter, ToolResult
from copilot.services.safety import (
    as_int,
    database_failure,
    dependency_warnings,
    ensure_not_protected,
    execute_sql,
    find_dependents,
    qualified_name,
    quote_literal,
    validate_identifier,
)

logger = logging.getLogger(__name__)


async def execute(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    name = validate_identifier(args["name"], "table")
    schema = validate_identifier(args["schema"], "schema")
    cascade = bool(args.get("cascade"))
    full_name = f"{schema}.{name}"

    ensure_not_protected(schema, name, "drop")

    exists_sql = (
        "SELECT EXISTS (SELECT FROM information_schema.tables "
        f"WHERE table_schema = {quote_literal(schema)} AND table_name = {quote_literal(name)}) AS exists"
    )
    rows = await execute_sql(exists_sql, context)
    if not rows or not rows[0].get("exists"):
        return ToolResult.fail(f"Table \"{full_name}\" does not exist", details={"table": full_name})

    row_count = 0
    try:
        count_rows = await execute_sql(f"SELECT COUNT(*) AS row_count FROM {qualified_name(schema, name)}", context)
        row_count = as_int(count_rows[0].get("row_count")) if count_rows else 0
    except SqlExecutionError as e:
        logger.warning(f"Could not count rows of {full_name} before drop: {e.message}")

    dependents = await find_dependents(context, schema, name)
    warnings = dependency_warnings(dependents)

    drop_sql = f"DROP TABLE {qualified_name(schema, name)}{' CASCADE' if cascade else ''};"
    try:
        await execute_sql(drop_sql, context)
    except SqlExecutionError as e:
        return database_failure("drop", schema, name, e, sql=drop_sql, dependencies=dependents or None)

    data: Dict[str, Any] = {
        "message": f"Table \"{full_name}\" dropped successfully",
        "tableName": full_name,
        "rowsDeleted": row_count,
        "cascaded": cascade,
        "sql": drop_sql,
    }
    if dependents:
        data["dependencies"] = dependents
    if warnings:
        data["warnings"] = warnings
    return ToolResult.ok(data)


tool = ToolDefinition(
    name="drop_table",
    description=(
        "Drop (delete) a table from the database. This action is irreversible and will "
        "delete all data in the table."
    ),
    parameters=[
        ToolParameter(name="name", type="string", required=True, description="The table name to drop"),
        ToolParameter(name="schema", type="string", default="public", description='The schema name (defaults to "public")'),
        ToolParameter(
            name="cascade",
            type="boolean",
            default=False,
            description="Whether to cascade the drop to dependent objects (default: false)",
        ),
    ],
    execute=execute,
)
