"""
Safety validation shared by every database tool.

Identifier sanitization, mandatory predicates, impact estimation with
confirmation gating, dependency inspection, protected-namespace and read-only
checks, literal rendering and database error explanation. Tools call these
helpers instead of re-implementing the checks.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from copilot.adapters.sql_gateway import sql_gateway
from copilot.infra.error_handler import (
    ConfirmationRequired,
    ImpactLimitExceeded,
    InvalidArguments,
    InvalidIdentifier,
    MissingPredicate,
    ProtectedObject,
    SqlExecutionError,
    UnsafeOperation,
)
from copilot.models.tool import ToolContext, ToolResult

logger = logging.getLogger(__name__)


IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
NEW_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

MASS_OPERATION_THRESHOLD = 100
DEFAULT_IMPACT_LIMIT = 1000
MAX_IMPACT_LIMIT = 10000

PROTECTED_SCHEMAS = frozenset({
    "auth",
    "storage",
    "realtime",
    "supabase_functions",
    "supabase_migrations",
    "pg_catalog",
    "information_schema",
    "pg_toast",
    "extensions",
    "vault",
})

READ_ONLY_DENYLIST = (
    "drop",
    "delete",
    "insert",
    "update",
    "alter",
    "create",
    "truncate",
    "grant",
    "revoke",
    "commit",
    "rollback",
    "savepoint",
    "begin",
)

# Foreign key rules that make a referenced row undeletable
BLOCKING_DELETE_RULES = frozenset({"RESTRICT", "NO ACTION"})


# ============================================================================
# Identifiers and arguments
# ============================================================================

def validate_identifier(value: Optional[str], kind: str = "identifier") -> str:
    """
    Check that an existing object name only contains letters, digits and underscores.

    Raises:
        InvalidIdentifier: If the name is empty or has other characters
    """
    if not value or not IDENTIFIER_PATTERN.match(value):
        raise InvalidIdentifier(
            f"Invalid {kind} name {value!r}. Names can only contain letters, numbers, and underscores.",
            details={"kind": kind, "value": value},
        )
    return value


def validate_new_identifier(value: Optional[str], kind: str = "identifier") -> str:
    """Like validate_identifier, but the name must also start with a letter or underscore."""
    if not value or not NEW_IDENTIFIER_PATTERN.match(value):
        raise InvalidIdentifier(
            f"Invalid {kind} name {value!r}. Use only letters, numbers, and underscores, "
            f"starting with a letter or underscore.",
            details={"kind": kind, "value": value},
        )
    return value


def require_predicate(where: Optional[str], operation: str) -> str:
    """Reject UPDATE/DELETE without a WHERE clause; ``1=1`` is the explicit all-rows form."""
    if where is None or not where.strip():
        raise MissingPredicate(
            f"WHERE clause is required for {operation.upper()} operations to prevent accidental "
            f"mass changes. Use \"1=1\" to target all rows if intended.",
            details={"operation": operation.upper()},
        )
    return ensure_clause_fragment(where.strip(), "WHERE clause")


def ensure_clause_fragment(fragment: str, kind: str) -> str:
    """Reject free-text clauses that try to end the statement or comment out the rest."""
    if ";" in fragment or "--" in fragment or "/*" in fragment:
        raise UnsafeOperation(
            f"{kind} may not contain statement separators or comments",
            details={"fragment": fragment},
        )
    return fragment


def validate_limit(limit: Optional[int], maximum: int = MAX_IMPACT_LIMIT) -> int:
    if limit is None:
        return DEFAULT_IMPACT_LIMIT
    if limit <= 0 or limit > maximum:
        raise InvalidArguments(
            f"Limit must be between 1 and {maximum} for safety",
            details={"limit": limit},
        )
    return limit


def is_protected_schema(schema: str) -> bool:
    lowered = (schema or "").lower()
    return lowered in PROTECTED_SCHEMAS or lowered.startswith("pg_")


def ensure_not_protected(schema: str, table: Optional[str] = None, operation: str = "modify") -> None:
    """
    Refuse to touch system and auth namespaces.

    Raises:
        ProtectedObject: If the schema (or a ``pg_`` table name) is protected
    """
    full_name = f"{schema}.{table}" if table else schema
    if is_protected_schema(schema) or (table and table.lower().startswith("pg_")):
        raise ProtectedObject(
            f"Cannot {operation} \"{full_name}\" as it belongs to a system or auth namespace. "
            f"This is blocked for safety.",
            details={"schema": schema, "table": table, "operation": operation},
        )


def ensure_read_only(sql: Optional[str]) -> str:
    """
    Validate that SQL text is a single read-only SELECT statement.

    Keywords are matched on word boundaries, so identifiers such as
    ``created_at`` do not trip the ``create`` rule.

    Returns:
        Trimmed statement without a trailing semicolon

    Raises:
        UnsafeOperation: If the statement is not a plain SELECT
    """
    statement = (sql or "").strip().rstrip(";").strip()
    lowered = statement.lower()

    if not lowered.startswith("select"):
        raise UnsafeOperation(
            "Only SELECT queries are allowed for security reasons",
            details={"sql": sql},
        )

    if ";" in statement:
        raise UnsafeOperation(
            "Only a single statement is allowed",
            details={"sql": sql},
        )

    for keyword in READ_ONLY_DENYLIST:
        if re.search(rf"\b{keyword}\b", lowered):
            raise UnsafeOperation(
                f"Query contains potentially dangerous operation: {keyword}",
                details={"sql": sql, "keyword": keyword},
            )

    return statement


# ============================================================================
# SQL rendering
# ============================================================================

def quote_ident(name: str) -> str:
    return f'"{name}"'


def qualified_name(schema: str, table: str) -> str:
    return f"{quote_ident(schema)}.{quote_ident(table)}"


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def render_value(value: Any) -> str:
    """Render a JSON value as a SQL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return quote_literal(value)
    if isinstance(value, (list, tuple)):
        if not value:
            return "'{}'"
        return "ARRAY[" + ", ".join(render_value(item) for item in value) + "]"
    if isinstance(value, dict):
        return quote_literal(json.dumps(value))
    return quote_literal(str(value))


def as_int(value: Any) -> int:
    """COUNT(*) comes back as a number or a numeric string depending on the gateway."""
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


# ============================================================================
# Gateway-backed checks
# ============================================================================

async def execute_sql(sql: str, context: ToolContext) -> List[Dict[str, Any]]:
    return await sql_gateway.execute(sql, context)


async def fetch_column_names(context: ToolContext, schema: str, table: str) -> List[str]:
    sql = (
        "SELECT column_name FROM information_schema.columns "
        f"WHERE table_schema = {quote_literal(schema)} AND table_name = {quote_literal(table)} "
        "ORDER BY ordinal_position"
    )
    rows = await execute_sql(sql, context)
    return [row["column_name"] for row in rows if "column_name" in row]


async def validate_columns(context: ToolContext, schema: str, table: str, columns: List[str]) -> List[str]:
    """
    Check that every column exists on the table.

    Raises:
        InvalidIdentifier: If a column name is malformed
        InvalidArguments: If the table is missing or a column does not exist
    """
    for column in columns:
        validate_identifier(column, "column")

    valid = await fetch_column_names(context, schema, table)
    if not valid:
        raise InvalidArguments(
            f"Table \"{schema}\".\"{table}\" not found or has no accessible columns",
            details={"schema": schema, "table": table},
        )

    unknown = [column for column in columns if column not in valid]
    if unknown:
        raise InvalidArguments(
            f"Invalid columns: {', '.join(unknown)}. Valid columns are: {', '.join(valid)}",
            details={"schema": schema, "table": table, "invalid_columns": unknown},
        )
    return valid


async def estimate_impact(
    context: ToolContext,
    schema: str,
    table: str,
    where: str,
    limit: int,
    confirmed: bool,
    confirm_flag: str,
    operation: str,
) -> int:
    """
    Count the rows a mutation would touch and apply the blast-radius limits.

    Returns:
        Number of matching rows (0 means the caller should short-circuit)

    Raises:
        ImpactLimitExceeded: If more rows match than ``limit``
        ConfirmationRequired: If more than the mass threshold match without confirmation
    """
    count_sql = f"SELECT COUNT(*) AS affected_count FROM {qualified_name(schema, table)} WHERE {where}"
    rows = await execute_sql(count_sql, context)
    affected = as_int(rows[0].get("affected_count")) if rows else 0

    details = {
        "schema": schema,
        "table": table,
        "where": where,
        "affected_rows": affected,
        "limit": limit,
    }

    if affected > limit:
        raise ImpactLimitExceeded(
            f"{operation.capitalize()} would affect {affected} rows, which exceeds the safety limit of {limit}. "
            f"Consider using a more specific WHERE clause or increase the limit parameter.",
            details=details,
        )

    if affected > MASS_OPERATION_THRESHOLD and not confirmed:
        raise ConfirmationRequired(
            f"{operation.capitalize()} would affect {affected} rows (>{MASS_OPERATION_THRESHOLD}). "
            f"This requires confirmation. Set {confirm_flag}=true to proceed.",
            details={**details, "confirm_flag": confirm_flag},
        )

    return affected


async def find_dependents(context: ToolContext, schema: str, table: str) -> List[Dict[str, Any]]:
    """Foreign keys in other tables that reference ``schema.table``."""
    sql = f"""
        SELECT DISTINCT
          tc.table_schema AS referencing_schema,
          tc.table_name AS referencing_table,
          kcu.column_name AS referencing_column,
          rc.delete_rule
        FROM information_schema.table_constraints tc
        JOIN information_schema.key_column_usage kcu
          ON tc.constraint_name = kcu.constraint_name
        JOIN information_schema.constraint_column_usage ccu
          ON tc.constraint_name = ccu.constraint_name
        JOIN information_schema.referential_constraints rc
          ON tc.constraint_name = rc.constraint_name
        WHERE tc.constraint_type = 'FOREIGN KEY'
          AND ccu.table_schema = {quote_literal(schema)}
          AND ccu.table_name = {quote_literal(table)}
    """
    return await execute_sql(sql, context)


async def find_unique_keys(context: ToolContext, schema: str, table: str) -> List[List[str]]:
    """Column lists of the table's primary key and unique constraints, primary key first."""
    sql = f"""
        SELECT tc.constraint_name, tc.constraint_type, kcu.column_name
        FROM information_schema.table_constraints tc
        JOIN information_schema.key_column_usage kcu
          ON tc.constraint_name = kcu.constraint_name
         AND tc.table_schema = kcu.table_schema
        WHERE tc.constraint_type IN ('PRIMARY KEY', 'UNIQUE')
          AND tc.table_schema = {quote_literal(schema)}
          AND tc.table_name = {quote_literal(table)}
        ORDER BY tc.constraint_type, tc.constraint_name, kcu.ordinal_position
    """
    keys: Dict[str, List[str]] = {}
    for row in await execute_sql(sql, context):
        keys.setdefault(row["constraint_name"], []).append(row["column_name"])
    return list(keys.values())


def dependency_warnings(dependents: List[Dict[str, Any]]) -> List[str]:
    warnings = []
    for dep in dependents:
        rule = str(dep.get("delete_rule") or "").upper()
        if rule in BLOCKING_DELETE_RULES:
            warnings.append(
                f"{dep.get('referencing_schema')}.{dep.get('referencing_table')}.{dep.get('referencing_column')} "
                f"references this table with ON DELETE {rule}"
            )
    if warnings:
        logger.warning(f"Foreign key dependencies found: {'; '.join(warnings)}")
    return warnings


# ============================================================================
# Database error explanation
# ============================================================================

def classify_database_error(message: str) -> Optional[str]:
    lowered = (message or "").lower()
    if "foreign key" in lowered:
        return "foreign_key"
    if "duplicate key" in lowered:
        return "unique"
    if "already exists" in lowered:
        return "already_exists"
    if "cannot drop" in lowered or "depend on it" in lowered:
        return "dependent_objects"
    if "not null" in lowered or "null value" in lowered:
        return "not_null"
    if "check constraint" in lowered:
        return "check"
    if "invalid input syntax" in lowered:
        return "invalid_input"
    if "syntax error" in lowered:
        return "syntax"
    if "permission denied" in lowered:
        return "permission"
    if "does not exist" in lowered:
        return "missing_object"
    return None


_EXPLANATIONS = {
    "foreign_key": "Foreign key constraint violation on {table}. {hint}",
    "unique": "Duplicate key violation on {table}. {hint}",
    "already_exists": "An object with that name already exists on {table}. Choose a different name.",
    "dependent_objects": "Other objects depend on the target in {table}. Use cascade=true to remove them as well.",
    "not_null": "Required field missing on {table}. Check that all non-nullable columns have values.",
    "check": "Check constraint violation on {table}. The values do not meet table constraints.",
    "invalid_input": "Invalid data format for {table}. Check that data types match column requirements.",
    "syntax": "Invalid SQL syntax. Check your WHERE clause or expression format.",
    "permission": "Insufficient permissions for this operation on {table}.",
    "missing_object": "The referenced table, column or policy does not exist ({table}).",
}

_HINTS = {
    ("foreign_key", "delete"): "Other records still reference these rows. Delete or update the referencing records first, or use a CASCADE delete rule.",
    ("foreign_key", "drop"): "Other tables depend on it. Drop the dependent objects first or use cascade.",
    ("unique", "insert"): "Consider using the onConflict parameter to handle duplicates.",
}


def explain_database_error(operation: str, table: str, message: str) -> str:
    """Rewrite a gateway error into an actionable message naming the operation and table."""
    kind = classify_database_error(message)
    prefix = f"{operation.capitalize()} failed"
    if kind is None:
        return f"{prefix} on {table}: {message}"
    hint = _HINTS.get((kind, operation.lower()), "Check that referenced records exist." if kind == "foreign_key" else "")
    return f"{prefix}: " + _EXPLANATIONS[kind].format(table=table, hint=hint).strip()


def database_failure(operation: str, schema: str, table: str, error: SqlExecutionError, **details: Any) -> ToolResult:
    """Failed ToolResult for a statement the database rejected."""
    full_name = f"{schema}.{table}"
    logger.info(f"{operation} on {full_name} rejected by database: {error.message}")
    return ToolResult.fail(
        explain_database_error(operation, full_name, error.message),
        details={
            "table": full_name,
            "constraint": classify_database_error(error.message),
            "database_error": error.message,
            **details,
        },
    )
