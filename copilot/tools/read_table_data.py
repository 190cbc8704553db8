"""Paginated reads from one table."""

from typing import Any, Dict

from copilot.infra.error_handler import InvalidArguments, SqlExecutionError
from copilot.models.tool import ToolContext, ToolDefinition, ToolParameter, ToolResult
from copilot.services.safety import (
    as_int,
    database_failure,
    ensure_clause_fragment,
    execute_sql,
    qualified_name,
    quote_ident,
    validate_identifier,
)

MAX_READ_LIMIT = 1000


async def execute(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    schema = validate_identifier(args["schema"], "schema")
    table = validate_identifier(args["table"], "table")
    limit = args["limit"] if args.get("limit") is not None else 50
    offset = args["offset"] or 0
    where = (args.get("where") or "").strip()
    order_by = (args.get("orderBy") or "").strip()

    if limit <= 0 or limit > MAX_READ_LIMIT:
        raise InvalidArguments(
            f"Limit must be between 1 and {MAX_READ_LIMIT} rows for performance reasons",
            details={"limit": limit},
        )
    if offset < 0:
        raise InvalidArguments("Offset cannot be negative", details={"offset": offset})

    select_clause = "*"
    if args.get("columns"):
        select_clause = ", ".join(quote_ident(validate_identifier(col, "column")) for col in args["columns"])

    sql = f"SELECT {select_clause} FROM {qualified_name(schema, table)}"
    if where:
        sql += f" WHERE {ensure_clause_fragment(where, 'WHERE clause')}"
    if order_by:
        sql += f" ORDER BY {ensure_clause_fragment(order_by, 'ORDER BY clause')}"
    sql += f" LIMIT {limit} OFFSET {offset}"

    try:
        rows = await execute_sql(sql, context)
        total_count = None
        if args.get("includeCount"):
            count_sql = f"SELECT COUNT(*) AS total_count FROM {qualified_name(schema, table)}"
            if where:
                count_sql += f" WHERE {where}"
            count_rows = await execute_sql(count_sql, context)
            total_count = as_int(count_rows[0].get("total_count")) if count_rows else 0
    except SqlExecutionError as e:
        return database_failure("read", schema, table, e, sql=sql)

    return ToolResult.ok({
        "schema": schema,
        "table": table,
        "rows": rows,
        "rowCount": len(rows),
        "totalCount": total_count,
        "query": sql,
        "hasMore": len(rows) == limit,
        "nextOffset": offset + limit,
        "columns": list(rows[0].keys()) if rows else [],
        "summary": {
            "isEmpty": not rows,
            "isPartialResult": len(rows) == limit,
            "rowsReturned": len(rows),
            "queryOffset": offset,
            "queryLimit": limit,
        },
    })


tool = ToolDefinition(
    name="read_table_data",
    description=(
        "Read data from a specific table with optional filtering, pagination, and sorting. "
        "This allows the AI to analyze actual data patterns and content."
    ),
    parameters=[
        ToolParameter(name="schema", type="string", default="public", description='Schema name (e.g., "public", "auth")'),
        ToolParameter(name="table", type="string", required=True, description="Table name to read data from"),
        ToolParameter(name="limit", type="integer", default=50, description="Maximum number of rows to return (default: 50, max: 1000)"),
        ToolParameter(name="offset", type="integer", default=0, description="Number of rows to skip for pagination"),
        ToolParameter(
            name="columns",
            type="array",
            items=ToolParameter(name="column", type="string"),
            description="Specific columns to select (if not provided, selects all)",
        ),
        ToolParameter(
            name="where",
            type="string",
            description="WHERE clause condition (e.g., \"status = 'active'\" or \"created_at > '2024-01-01'\")",
        ),
        ToolParameter(name="orderBy", type="string", description='ORDER BY clause (e.g., "created_at DESC" or "name ASC")'),
        ToolParameter(name="includeCount", type="boolean", default=False, description="Whether to include total row count"),
    ],
    execute=execute,
)
