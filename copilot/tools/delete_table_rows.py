"""Delete rows under a mandatory predicate with impact estimation."""

from typing import Any, Dict

from copilot.infra.error_handler import SqlExecutionError
from copilot.models.tool import ToolContext, ToolDefinition, ToolParameter, ToolResult
from copilot.services.safety import (
    DEFAULT_IMPACT_LIMIT,
    MASS_OPERATION_THRESHOLD,
    database_failure,
    dependency_warnings,
    ensure_not_protected,
    estimate_impact,
    execute_sql,
    find_dependents,
    qualified_name,
    require_predicate,
    validate_identifier,
    validate_limit,
)


async def execute(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    schema = validate_identifier(args["schema"], "schema")
    table = validate_identifier(args["table"], "table")
    where = require_predicate(args.get("where"), "delete")
    limit = validate_limit(args.get("limit"))
    returning = bool(args.get("returning"))
    confirmed = bool(args.get("confirmMassDelete"))
    ensure_not_protected(schema, table, "delete from")

    try:
        affected = await estimate_impact(
            context,
            schema,
            table,
            where,
            limit=limit,
            confirmed=confirmed,
            confirm_flag="confirmMassDelete",
            operation="delete",
        )
        if affected == 0:
            return ToolResult.ok({
                "schema": schema,
                "table": table,
                "deleted": [],
                "rowCount": 0,
                "whereClause": where,
                "summary": {
                    "operation": "DELETE",
                    "rowsAffected": 0,
                    "rowsChecked": 0,
                    "returningData": returning,
                    "safetyLimit": limit,
                    "message": "No rows matched the WHERE condition",
                },
            })

        dependents = await find_dependents(context, schema, table)
        warnings = dependency_warnings(dependents)

        delete_sql = f"DELETE FROM {qualified_name(schema, table)} WHERE {where}{' RETURNING *' if returning else ''}"
        rows = await execute_sql(delete_sql, context)
    except SqlExecutionError as e:
        return database_failure("delete", schema, table, e, where=where)

    row_count = len(rows) if returning else affected
    data: Dict[str, Any] = {
        "schema": schema,
        "table": table,
        "deleted": rows,
        "rowCount": row_count,
        "query": delete_sql,
        "whereClause": where,
        "summary": {
            "operation": "DELETE",
            "rowsAffected": row_count,
            "rowsChecked": affected,
            "returningData": returning,
            "safetyLimit": limit,
            "hasDependencies": bool(dependents),
            "massDeleteConfirmed": confirmed and affected > MASS_OPERATION_THRESHOLD,
        },
    }
    if dependents:
        data["dependencies"] = dependents
    if warnings:
        data["warnings"] = warnings
    return ToolResult.ok(data)


tool = ToolDefinition(
    name="delete_table_rows",
    description=(
        "Delete rows from a database table with WHERE conditions. Includes safety checks "
        "to prevent accidental mass deletions."
    ),
    parameters=[
        ToolParameter(name="schema", type="string", default="public", description='Schema name (e.g., "public")'),
        ToolParameter(name="table", type="string", required=True, description="Table name to delete data from"),
        ToolParameter(
            name="where",
            type="string",
            required=True,
            description="WHERE clause to specify which rows to delete (e.g., \"id = 123\"). Use \"1=1\" for all rows.",
        ),
        ToolParameter(name="returning", type="boolean", default=False, description="Whether to return the deleted row data"),
        ToolParameter(
            name="limit",
            type="integer",
            default=DEFAULT_IMPACT_LIMIT,
            description="Maximum number of rows to delete (safety limit, 1-10000)",
        ),
        ToolParameter(
            name="confirmMassDelete",
            type="boolean",
            default=False,
            description="Required confirmation for operations affecting more than 100 rows",
        ),
    ],
    execute=execute,
)
