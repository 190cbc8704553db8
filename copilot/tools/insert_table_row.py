"""Insert a single row with column validation and conflict handling."""

from typing import Any, Dict, List

from copilot.infra.error_handler import InvalidArguments, SqlExecutionError
from copilot.models.tool import ToolContext, ToolDefinition, ToolParameter, ToolResult
from copilot.services.safety import (
    database_failure,
    ensure_not_protected,
    execute_sql,
    find_unique_keys,
    qualified_name,
    quote_ident,
    render_value,
    validate_columns,
    validate_identifier,
)


async def _conflict_target(context: ToolContext, schema: str, table: str, columns: List[str]) -> List[str]:
    """
    Pick the key an upsert can infer: the primary key, else the first unique
    constraint whose columns are all present in the row.

    Raises:
        InvalidArguments: If no such key exists
    """
    for key in await find_unique_keys(context, schema, table):
        if all(column in columns for column in key):
            return key
    raise InvalidArguments(
        f"onConflict=\"update\" needs the row to include every column of a primary key or unique "
        f"constraint on \"{schema}\".\"{table}\"",
        details={"schema": schema, "table": table, "columns": columns},
    )


def _conflict_clause(on_conflict: str, columns: List[str], target: List[str]) -> str:
    if on_conflict == "ignore":
        return " ON CONFLICT DO NOTHING"
    if on_conflict == "update":
        conflict_on = ", ".join(quote_ident(col) for col in target)
        updated = [col for col in columns if col not in target]
        if not updated:
            return f" ON CONFLICT ({conflict_on}) DO NOTHING"
        assignments = ", ".join(f"{quote_ident(col)} = EXCLUDED.{quote_ident(col)}" for col in updated)
        return f" ON CONFLICT ({conflict_on}) DO UPDATE SET {assignments}"
    return ""


async def execute(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    schema = validate_identifier(args["schema"], "schema")
    table = validate_identifier(args["table"], "table")
    data = args["data"] or {}
    returning = args["returning"]
    on_conflict = args["onConflict"] or "error"

    if not data:
        raise InvalidArguments("Data object cannot be empty", details={"table": f"{schema}.{table}"})

    ensure_not_protected(schema, table, "insert into")
    columns = list(data.keys())

    try:
        await validate_columns(context, schema, table, columns)
        target = await _conflict_target(context, schema, table, columns) if on_conflict == "update" else []

        insert_sql = (
            f"INSERT INTO {qualified_name(schema, table)} ({', '.join(quote_ident(col) for col in columns)}) "
            f"VALUES ({', '.join(render_value(data[col]) for col in columns)})"
            f"{_conflict_clause(on_conflict, columns, target)}"
            f"{' RETURNING *' if returning else ''}"
        )
        rows = await execute_sql(insert_sql, context)
    except SqlExecutionError as e:
        return database_failure("insert", schema, table, e, data=data)

    return ToolResult.ok({
        "schema": schema,
        "table": table,
        "inserted": rows,
        "rowCount": len(rows),
        "query": insert_sql,
        "columns": columns,
        "summary": {
            "operation": "INSERT",
            "rowsAffected": len(rows),
            "conflictHandling": on_conflict,
            "returningData": returning,
        },
    })


tool = ToolDefinition(
    name="insert_table_row",
    description=(
        "Insert a new row into a database table. Supports single row insertion with "
        "comprehensive validation and error handling."
    ),
    parameters=[
        ToolParameter(name="schema", type="string", default="public", description='Schema name (e.g., "public")'),
        ToolParameter(name="table", type="string", required=True, description="Table name to insert data into"),
        ToolParameter(
            name="data",
            type="object",
            required=True,
            description="Object containing column names as keys and values to insert",
        ),
        ToolParameter(name="returning", type="boolean", default=True, description="Whether to return the inserted row data"),
        ToolParameter(
            name="onConflict",
            type="string",
            enum=["ignore", "update", "error"],
            default="error",
            description=(
                "How to handle conflicts (duplicate keys). \"update\" upserts on the primary key "
                "or a unique constraint whose columns are all present in data"
            ),
        ),
    ],
    execute=execute,
)
