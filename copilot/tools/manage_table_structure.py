"""Alter an existing table: columns, indexes and constraints."""

from typing import Any, Dict, Optional

from copilot.infra.error_handler import ConfirmationRequired, InvalidArguments, SqlExecutionError
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


def _require(value: Optional[Any], message: str) -> Any:
    if not value:
        raise InvalidArguments(message)
    return value


def _cascade(args: Dict[str, Any]) -> str:
    return " CASCADE" if args.get("cascade") else ""


def _add_column(args: Dict[str, Any], schema: str, table: str) -> str:
    column = validate_new_identifier(
        _require(args.get("columnName"), "columnName and columnType are required for add_column"),
        "column",
    )
    column_type = ensure_clause_fragment(
        _require(args.get("columnType"), "columnName and columnType are required for add_column"),
        "Column type",
    )
    definition = f"{quote_ident(column)} {column_type}"
    if args.get("columnNullable") is False:
        definition += " NOT NULL"
    if args.get("columnDefault"):
        definition += f" DEFAULT {ensure_clause_fragment(args['columnDefault'], 'Column default')}"
    return f"ALTER TABLE {qualified_name(schema, table)} ADD COLUMN {definition}"


def _drop_column(args: Dict[str, Any], schema: str, table: str) -> str:
    column = validate_identifier(_require(args.get("columnName"), "columnName is required for drop_column"), "column")
    if not args.get("force"):
        raise ConfirmationRequired(
            f"Dropping column \"{column}\" deletes its data in every row of {schema}.{table}. "
            f"Set force=true to proceed.",
            details={"schema": schema, "table": table, "column": column, "confirm_flag": "force"},
        )
    return f"ALTER TABLE {qualified_name(schema, table)} DROP COLUMN {quote_ident(column)}{_cascade(args)}"


def _modify_column(args: Dict[str, Any], schema: str, table: str) -> str:
    column = quote_ident(
        validate_identifier(_require(args.get("columnName"), "columnName is required for modify_column"), "column")
    )
    alterations = []
    if args.get("columnType"):
        alterations.append(f"ALTER COLUMN {column} TYPE {ensure_clause_fragment(args['columnType'], 'Column type')}")
    if args.get("columnNullable") is not None:
        alterations.append(f"ALTER COLUMN {column} {'DROP NOT NULL' if args['columnNullable'] else 'SET NOT NULL'}")
    if args.get("columnDefault") is not None:
        if args["columnDefault"]:
            alterations.append(
                f"ALTER COLUMN {column} SET DEFAULT {ensure_clause_fragment(args['columnDefault'], 'Column default')}"
            )
        else:
            alterations.append(f"ALTER COLUMN {column} DROP DEFAULT")
    if not alterations:
        raise InvalidArguments(
            "At least one of columnType, columnNullable or columnDefault must be given for modify_column"
        )
    return f"ALTER TABLE {qualified_name(schema, table)} {', '.join(alterations)}"


def _add_index(args: Dict[str, Any], schema: str, table: str) -> str:
    name = validate_new_identifier(
        _require(args.get("indexName"), "indexName and indexColumns are required for add_index"),
        "index",
    )
    columns = _require(args.get("indexColumns"), "indexName and indexColumns are required for add_index")
    column_list = ", ".join(quote_ident(validate_identifier(column, "column")) for column in columns)
    index_type = args.get("indexType") or "btree"
    unique = "UNIQUE " if args.get("unique") else ""
    using = f" USING {index_type.upper()}" if index_type != "btree" else ""
    return f"CREATE {unique}INDEX {quote_ident(name)} ON {qualified_name(schema, table)}{using} ({column_list})"


def _drop_index(args: Dict[str, Any], schema: str, table: str) -> str:
    name = validate_identifier(_require(args.get("indexName"), "indexName is required for drop_index"), "index")
    return f"DROP INDEX {qualified_name(schema, name)}{_cascade(args)}"


def _add_constraint(args: Dict[str, Any], schema: str, table: str) -> str:
    message = "constraintName and constraintDefinition are required for add_constraint"
    name = validate_new_identifier(_require(args.get("constraintName"), message), "constraint")
    definition = ensure_clause_fragment(_require(args.get("constraintDefinition"), message), "Constraint definition")
    return f"ALTER TABLE {qualified_name(schema, table)} ADD CONSTRAINT {quote_ident(name)} {definition}"


def _drop_constraint(args: Dict[str, Any], schema: str, table: str) -> str:
    name = validate_identifier(
        _require(args.get("constraintName"), "constraintName is required for drop_constraint"),
        "constraint",
    )
    return f"ALTER TABLE {qualified_name(schema, table)} DROP CONSTRAINT {quote_ident(name)}{_cascade(args)}"


ACTIONS = {
    "add_column": _add_column,
    "drop_column": _drop_column,
    "modify_column": _modify_column,
    "add_index": _add_index,
    "drop_index": _drop_index,
    "add_constraint": _add_constraint,
    "drop_constraint": _drop_constraint,
}


async def execute(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    schema = validate_identifier(args["schema"], "schema")
    table = validate_identifier(args["table"], "table")
    action = args["action"]
    ensure_not_protected(schema, table, "alter")

    sql = ACTIONS[action](args, schema, table)
    try:
        await execute_sql(sql, context)
    except SqlExecutionError as e:
        return database_failure("alter", schema, table, e, action=action, sql=sql)

    return ToolResult.ok({
        "schema": schema,
        "table": table,
        "action": action,
        "query": sql,
        "summary": {"operation": "DDL", "action": action, "table": f"{schema}.{table}", "executed": True},
    })


tool = ToolDefinition(
    name="manage_table_structure",
    description=(
        "Modify an existing table's structure: add, drop or modify columns, add or drop indexes, "
        "and add or drop constraints. Use create_table to create new tables."
    ),
    parameters=[
        ToolParameter(name="schema", type="string", default="public", description='Schema name (e.g., "public")'),
        ToolParameter(
            name="action",
            type="string",
            required=True,
            enum=list(ACTIONS),
            description="Structural change to perform",
        ),
        ToolParameter(name="table", type="string", required=True, description="Table to modify"),
        ToolParameter(name="columnName", type="string", description="Column name for add/drop/modify column"),
        ToolParameter(
            name="columnType",
            type="string",
            description='PostgreSQL data type for a new or modified column (e.g., "varchar(255)", "jsonb")',
        ),
        ToolParameter(
            name="columnDefault",
            type="string",
            description="Default expression for the column; an empty string drops the default on modify_column",
        ),
        ToolParameter(name="columnNullable", type="boolean", description="Whether the column allows NULL values"),
        ToolParameter(name="indexName", type="string", description="Index name for add_index/drop_index"),
        ToolParameter(
            name="indexColumns",
            type="array",
            items=ToolParameter(name="column", type="string"),
            description="Columns to include in the index",
        ),
        ToolParameter(
            name="indexType",
            type="string",
            enum=["btree", "hash", "gin", "gist"],
            default="btree",
            description="Index method",
        ),
        ToolParameter(name="unique", type="boolean", default=False, description="Create a unique index"),
        ToolParameter(name="constraintName", type="string", description="Constraint name for add/drop constraint"),
        ToolParameter(
            name="constraintDefinition",
            type="string",
            description='Constraint body, e.g. "CHECK (price > 0)" or "UNIQUE (email)"',
        ),
        ToolParameter(
            name="cascade",
            type="boolean",
            default=False,
            description="Use CASCADE for drop operations",
        ),
        ToolParameter(
            name="force",
            type="boolean",
            default=False,
            description="Confirm dropping a column, which deletes its data",
        ),
    ],
    execute=execute,
)
