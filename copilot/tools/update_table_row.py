"""Update rows under a mandatory predicate with impact estimation."""

from typing import Any, Dict

from copilot.infra.error_handler import InvalidArguments, SqlExecutionError
from copilot.models.tool import ToolContext, ToolDefinition, ToolParameter, ToolResult
from copilot.services.safety import (
    DEFAULT_IMPACT_LIMIT,
    MASS_OPERATION_THRESHOLD,
    database_failure,
    ensure_not_protected,
    estimate_impact,
    execute_sql,
    qualified_name,
    quote_ident,
    render_value,
    require_predicate,
    validate_columns,
    validate_identifier,
    validate_limit,
)


async def execute(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    schema = validate_identifier(args["schema"], "schema")
    table = validate_identifier(args["table"], "table")
    data = args["data"] or {}
    returning = args["returning"]
    confirmed = bool(args.get("confirmMassUpdate"))

    if not data:
        raise InvalidArguments("Data object cannot be empty", details={"table": f"{schema}.{table}"})
    where = require_predicate(args.get("where"), "update")
    limit = validate_limit(args.get("limit"))
    ensure_not_protected(schema, table, "update")
    columns = list(data.keys())

    try:
        await validate_columns(context, schema, table, columns)
        affected = await estimate_impact(
            context,
            schema,
            table,
            where,
            limit=limit,
            confirmed=confirmed,
            confirm_flag="confirmMassUpdate",
            operation="update",
        )
        if affected == 0:
            return ToolResult.ok({
                "schema": schema,
                "table": table,
                "updated": [],
                "rowCount": 0,
                "whereClause": where,
                "summary": {
                    "operation": "UPDATE",
                    "rowsAffected": 0,
                    "rowsChecked": 0,
                    "safetyLimit": limit,
                    "message": "No rows matched the WHERE condition",
                },
            })

        set_clause = ", ".join(f"{quote_ident(col)} = {render_value(data[col])}" for col in columns)
        update_sql = (
            f"UPDATE {qualified_name(schema, table)} SET {set_clause} WHERE {where}"
            f"{' RETURNING *' if returning else ''}"
        )
        rows = await execute_sql(update_sql, context)
    except SqlExecutionError as e:
        return database_failure("update", schema, table, e, where=where, data=data)

    row_count = len(rows) if returning else affected
    return ToolResult.ok({
        "schema": schema,
        "table": table,
        "updated": rows,
        "rowCount": row_count,
        "query": update_sql,
        "whereClause": where,
        "columns": columns,
        "summary": {
            "operation": "UPDATE",
            "rowsAffected": row_count,
            "rowsChecked": affected,
            "returningData": returning,
            "safetyLimit": limit,
            "massUpdateConfirmed": confirmed and affected > MASS_OPERATION_THRESHOLD,
        },
    })


tool = ToolDefinition(
    name="update_table_row",
    description=(
        "Update existing rows in a database table with a WHERE condition. Supports updating "
        "multiple rows at once with row-count safety checks."
    ),
    parameters=[
        ToolParameter(name="schema", type="string", default="public", description='Schema name (e.g., "public")'),
        ToolParameter(name="table", type="string", required=True, description="Table name to update data in"),
        ToolParameter(
            name="data",
            type="object",
            required=True,
            description="Object containing column names as keys and new values to update",
        ),
        ToolParameter(
            name="where",
            type="string",
            required=True,
            description="WHERE clause to specify which rows to update (e.g., \"id = 123\"). Use \"1=1\" for all rows.",
        ),
        ToolParameter(name="returning", type="boolean", default=True, description="Whether to return the updated row data"),
        ToolParameter(
            name="limit",
            type="integer",
            default=DEFAULT_IMPACT_LIMIT,
            description="Maximum number of rows to update (safety limit, 1-10000)",
        ),
        ToolParameter(
            name="confirmMassUpdate",
            type="boolean",
            default=False,
            description="Required confirmation for operations affecting more than 100 rows",
        ),
    ],
    execute=execute,
)
