"""Read-only SQL execution."""

from typing import Any, Dict

from copilot.models.tool import ToolContext, ToolDefinition, ToolParameter, ToolResult
from copilot.services.safety import ensure_read_only, execute_sql


async def execute(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    statement = ensure_read_only(args["sql"])
    rows = await execute_sql(statement, context)
    return ToolResult.ok({"rows": rows, "rowCount": len(rows)})


tool = ToolDefinition(
    name="run_sql",
    description="Execute read-only SQL queries safely against the Supabase database. Only SELECT queries are allowed.",
    parameters=[
        ToolParameter(
            name="sql",
            type="string",
            required=True,
            description="The SQL query to execute (must be read-only, SELECT only)",
        ),
    ],
    execute=execute,
)
