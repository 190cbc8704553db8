"""Create a table from column definitions, with RLS enabled by default."""

from typing import Any, Dict, List

from copilot.infra.error_handler import InvalidArguments, SqlExecutionError
from copilot.models.tool import ToolContext, ToolDefinition, ToolParameter, ToolResult
from copilot.services.safety import (
    database_failure,
    ensure_clause_fragment,
    ensure_not_protected,
    execute_sql,
    qualified_name,
    quote_ident,
    validate_identifier,
    validate_new_identifier,
)


def _column_definition(column: Dict[str, Any]) -> str:
    definition = f"{quote_ident(column['name'])} {column['type']}"
    if column.get("nullable") is False:
        definition += " NOT NULL"
    if column.get("defaultValue"):
        definition += f" DEFAULT {column['defaultValue']}"
    if column.get("primaryKey"):
        definition += " PRIMARY KEY"
    elif column.get("unique"):
        definition += " UNIQUE"
    return definition


def _validate_columns(columns: List[Dict[str, Any]]) -> None:
    if not columns:
        raise InvalidArguments("At least one column is required", details={"columns": []})
    seen = set()
    for column in columns:
        validate_new_identifier(column["name"], "column")
        if column["name"] in seen:
            raise InvalidArguments(f"Duplicate column name \"{column['name']}\"", details={"column": column["name"]})
        seen.add(column["name"])
        ensure_clause_fragment(column["type"], "Column type")
        if column.get("defaultValue"):
            ensure_clause_fragment(column["defaultValue"], "Column default")


async def execute(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    name = validate_new_identifier(args["name"], "table")
    schema = validate_identifier(args["schema"], "schema")
    columns = args["columns"]
    enable_rls = args["enableRls"]

    _validate_columns(columns)
    ensure_not_protected(schema, name, "create")

    column_defs = ",\n  ".join(_column_definition(column) for column in columns)
    create_sql = f"CREATE TABLE {qualified_name(schema, name)} (\n  {column_defs}\n);"

    try:
        await execute_sql(create_sql, context)
        if enable_rls:
            await execute_sql(f"ALTER TABLE {qualified_name(schema, name)} ENABLE ROW LEVEL SECURITY;", context)
    except SqlExecutionError as e:
        return database_failure("create", schema, name, e, sql=create_sql)

    return ToolResult.ok({
        "message": f"Table \"{schema}.{name}\" created successfully",
        "tableName": f"{schema}.{name}",
        "columnsCreated": len(columns),
        "rlsEnabled": enable_rls,
        "sql": create_sql,
    })


tool = ToolDefinition(
    name="create_table",
    description="Create a new table with specified columns and constraints.",
    parameters=[
        ToolParameter(name="name", type="string", required=True, description="The table name to create"),
        ToolParameter(
            name="columns",
            type="array",
            required=True,
            description="Array of column definitions",
            items=ToolParameter(
                name="column",
                type="object",
                properties=[
                    ToolParameter(name="name", type="string", required=True, description="Column name"),
                    ToolParameter(
                        name="type",
                        type="string",
                        required=True,
                        description="PostgreSQL data type (e.g., text, integer, boolean, uuid, timestamp)",
                    ),
                    ToolParameter(name="nullable", type="boolean", description="Whether the column can be null (default: true)"),
                    ToolParameter(name="defaultValue", type="string", description="Default value for the column"),
                    ToolParameter(name="primaryKey", type="boolean", description="Whether this column is a primary key"),
                    ToolParameter(name="unique", type="boolean", description="Whether this column should be unique"),
                ],
            ),
        ),
        ToolParameter(name="schema", type="string", default="public", description='The schema name (defaults to "public")'),
        ToolParameter(name="enableRls", type="boolean", default=True, description="Whether to enable Row Level Security (default: true)"),
    ],
    execute=execute,
)
