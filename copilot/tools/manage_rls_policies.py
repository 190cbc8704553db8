"""Row Level Security management: templates, listing, enable/disable and policy CRUD."""

from typing import Any, Callable, Dict, List, Optional

from copilot.infra.error_handler import ConfirmationRequired, InvalidArguments, SqlExecutionError
from copilot.models.tool import ToolContext, ToolDefinition, ToolParameter, ToolResult
from copilot.services.safety import (
    database_failure,
    ensure_clause_fragment,
    ensure_not_protected,
    execute_sql,
    qualified_name,
    quote_ident,
    quote_literal,
    validate_identifier,
    validate_new_identifier,
)


class PolicyTemplate:
    def __init__(
        self,
        name: str,
        description: str,
        example: str,
        params: List[str],
        definition: Callable[[Dict[str, str]], str],
        check: Optional[Callable[[Dict[str, str]], str]] = None,
    ):
        self.name = name
        self.description = description
        self.example = example
        self.params = params
        self.definition = definition
        self.check = check

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "example": self.example,
            "params": self.params,
        }


def _column(params: Dict[str, str], key: str, default: str) -> str:
    return validate_identifier(params.get(key) or default, key)


POLICY_TEMPLATES: Dict[str, PolicyTemplate] = {
    "user_based": PolicyTemplate(
        name="User-based Access",
        description="Users can only access their own records",
        example="auth.uid() = user_id",
        params=["user_column"],
        definition=lambda p: f"auth.uid() = {_column(p, 'user_column', 'user_id')}",
    ),
    "role_based": PolicyTemplate(
        name="Role-based Access",
        description="Access based on user roles",
        example="auth.jwt()->>'role' = 'admin'",
        params=["role_value"],
        definition=lambda p: f"auth.jwt()->>'role' = {quote_literal(p.get('role_value') or 'admin')}",
    ),
    "team_based": PolicyTemplate(
        name="Team-based Access",
        description="Users can access records from their team",
        example="team_id IN (SELECT team_id FROM user_teams WHERE user_id = auth.uid())",
        params=["team_column", "user_teams_table"],
        definition=lambda p: (
            f"{_column(p, 'team_column', 'team_id')} IN (SELECT team_id FROM "
            f"{_column(p, 'user_teams_table', 'user_teams')} WHERE user_id = auth.uid())"
        ),
    ),
    "public_read": PolicyTemplate(
        name="Public Read Access",
        description="Anyone can read, only authenticated users can modify",
        example="true (for SELECT), auth.uid() IS NOT NULL (for others)",
        params=[],
        definition=lambda p: "true",
        check=lambda p: "auth.uid() IS NOT NULL",
    ),
    "owner_only": PolicyTemplate(
        name="Owner Only Access",
        description="Only the record owner can access",
        example="auth.uid() = owner_id",
        params=["owner_column"],
        definition=lambda p: f"auth.uid() = {_column(p, 'owner_column', 'owner_id')}",
    ),
}

WRITE_COMMANDS = ("INSERT", "UPDATE", "ALL")


def _require(value: Optional[str], message: str) -> str:
    if not value:
        raise InvalidArguments(message)
    return value


def _policy_sql(
    name: str,
    schema: str,
    table: str,
    policy_type: str,
    command: str,
    roles: List[str],
    definition: str,
    check: Optional[str],
) -> str:
    roles_clause = f" TO {', '.join(quote_ident(role) for role in roles)}" if roles else ""
    check_clause = f" WITH CHECK ({check})" if check else ""
    return (
        f"CREATE POLICY {quote_ident(name)} ON {qualified_name(schema, table)} "
        f"AS {policy_type} FOR {command}{roles_clause} USING ({definition}){check_clause}"
    )


async def _get_policy(context: ToolContext, schema: str, table: str, name: str) -> Optional[Dict[str, Any]]:
    rows = await execute_sql(
        "SELECT * FROM pg_policies "
        f"WHERE schemaname = {quote_literal(schema)} AND tablename = {quote_literal(table)} "
        f"AND policyname = {quote_literal(name)}",
        context,
    )
    return rows[0] if rows else None


async def _list_policies(args: Dict[str, Any], context: ToolContext, schema: str, table: Optional[str]) -> ToolResult:
    if table:
        policies_sql = (
            f"SELECT * FROM pg_policies WHERE schemaname = {quote_literal(schema)} "
            f"AND tablename = {quote_literal(table)} ORDER BY policyname"
        )
        status_filter = f"c.relname = {quote_literal(table)}"
    else:
        policies_sql = f"SELECT * FROM pg_policies WHERE schemaname = {quote_literal(schema)} ORDER BY tablename, policyname"
        status_filter = "c.relkind = 'r'"
    status_sql = (
        "SELECT c.relname AS table_name, c.relrowsecurity AS rls_enabled, c.relforcerowsecurity AS rls_forced "
        "FROM pg_class c JOIN pg_namespace n ON n.oid = c.relnamespace "
        f"WHERE n.nspname = {quote_literal(schema)} AND {status_filter}"
    )
    policies = await execute_sql(policies_sql, context)
    status = await execute_sql(status_sql, context)
    return ToolResult.ok({
        "schema": schema,
        "table": table or "all",
        "policies": policies,
        "rlsStatus": status,
        "summary": {"policyCount": len(policies), "tablesChecked": len(status)},
    })


async def _toggle_rls(args: Dict[str, Any], context: ToolContext, schema: str, table: Optional[str]) -> ToolResult:
    table = _require(table, "Table name is required for RLS enable/disable operations")
    ensure_not_protected(schema, table, "change RLS on")
    enable = args["action"] == "enable_rls"
    if not enable and not args.get("force"):
        raise ConfirmationRequired(
            f"Disabling RLS exposes every row of {schema}.{table} to any role with table privileges. "
            f"Set force=true to proceed.",
            details={"schema": schema, "table": table, "confirm_flag": "force"},
        )
    verb = "ENABLE" if enable else "DISABLE"
    sql = f"ALTER TABLE {qualified_name(schema, table)} {verb} ROW LEVEL SECURITY"
    await execute_sql(sql, context)
    return ToolResult.ok({
        "schema": schema,
        "table": table,
        "action": verb,
        "query": sql,
        "summary": {"operation": f"RLS_{verb}", "table": f"{schema}.{table}"},
    })


async def _create_policy(args: Dict[str, Any], context: ToolContext, schema: str, table: Optional[str]) -> ToolResult:
    table = _require(table, "Table name and policy name are required for policy creation")
    name = validate_new_identifier(
        _require(args.get("policyName"), "Table name and policy name are required for policy creation"),
        "policy",
    )
    ensure_not_protected(schema, table, "create a policy on")
    command = args["command"] or "ALL"
    roles = [validate_identifier(role, "role") for role in (args.get("roles") or [])]

    definition = args.get("definition")
    check = args.get("check")
    template_key = args.get("template")
    if template_key and template_key != "custom":
        template = POLICY_TEMPLATES[template_key]
        params = args.get("templateParams") or {}
        definition = template.definition(params)
        if template.check is not None and command in WRITE_COMMANDS:
            check = template.check(params)

    definition = ensure_clause_fragment(
        _require(definition, "Policy definition is required (either directly or via template)"),
        "Policy definition",
    )
    if check:
        ensure_clause_fragment(check, "Policy check")

    sql = _policy_sql(name, schema, table, args["policyType"] or "PERMISSIVE", command, roles, definition, check)
    await execute_sql(sql, context)
    return ToolResult.ok({
        "schema": schema,
        "table": table,
        "policyName": name,
        "command": command,
        "roles": roles,
        "definition": definition,
        "check": check,
        "template": template_key,
        "query": sql,
        "summary": {"operation": "CREATE_POLICY", "policy": f"{schema}.{table}.{name}"},
    })


def _current_roles(value: Any) -> List[str]:
    """pg_policies.roles arrives as a list or as a ``{a,b}`` array literal; ``public`` means every role."""
    if isinstance(value, str):
        value = [role.strip().strip('"') for role in value.strip("{}").split(",") if role.strip()]
    roles = list(value or [])
    return [] if roles == ["public"] else roles


async def _update_policy(args: Dict[str, Any], context: ToolContext, schema: str, table: Optional[str]) -> ToolResult:
    table = _require(table, "Table name and policy name are required for policy updates")
    name = validate_identifier(
        _require(args.get("policyName"), "Table name and policy name are required for policy updates"),
        "policy",
    )
    new_name = validate_new_identifier(args["newPolicyName"], "policy") if args.get("newPolicyName") else name
    ensure_not_protected(schema, table, "update a policy on")

    current = await _get_policy(context, schema, table, name)
    if current is None:
        raise InvalidArguments(f"Policy \"{name}\" not found on table \"{schema}\".\"{table}\"")

    # Anything not given is carried over from the current policy
    definition = ensure_clause_fragment(
        _require(args.get("definition") or current.get("qual"), "Policy definition is required"),
        "Policy definition",
    )
    check = args.get("check") or current.get("with_check")
    if check:
        ensure_clause_fragment(check, "Policy check")
    roles = args.get("roles")
    if roles is None:
        roles = _current_roles(current.get("roles"))
    roles = [validate_identifier(role, "role") for role in roles]
    command = args.get("command") or current.get("cmd") or "ALL"
    policy_type = args.get("policyType") or current.get("permissive") or "PERMISSIVE"

    drop_sql = f"DROP POLICY {quote_ident(name)} ON {qualified_name(schema, table)}"
    create_sql = _policy_sql(new_name, schema, table, policy_type, command, roles, definition, check)
    # Drop and recreate in one transaction
    await execute_sql(f"BEGIN; {drop_sql}; {create_sql}; COMMIT;", context)
    return ToolResult.ok({
        "schema": schema,
        "table": table,
        "oldPolicyName": name,
        "newPolicyName": new_name,
        "command": command,
        "roles": roles,
        "policyType": policy_type,
        "definition": definition,
        "check": check,
        "queries": [drop_sql, create_sql],
        "summary": {"operation": "UPDATE_POLICY", "policy": f"{schema}.{table}.{new_name}"},
    })


async def _delete_policy(args: Dict[str, Any], context: ToolContext, schema: str, table: Optional[str]) -> ToolResult:
    table = _require(table, "Table name and policy name are required for policy deletion")
    name = validate_identifier(
        _require(args.get("policyName"), "Table name and policy name are required for policy deletion"),
        "policy",
    )
    ensure_not_protected(schema, table, "delete a policy on")

    if await _get_policy(context, schema, table, name) is None:
        raise InvalidArguments(f"Policy \"{name}\" not found on table \"{schema}\".\"{table}\"")

    sql = f"DROP POLICY {quote_ident(name)} ON {qualified_name(schema, table)}"
    await execute_sql(sql, context)
    return ToolResult.ok({
        "schema": schema,
        "table": table,
        "policyName": name,
        "query": sql,
        "summary": {"operation": "DELETE_POLICY", "policy": f"{schema}.{table}.{name}"},
    })


async def _policy_templates(args: Dict[str, Any], context: ToolContext, schema: str, table: Optional[str]) -> ToolResult:
    return ToolResult.ok({
        "templates": {key: template.describe() for key, template in POLICY_TEMPLATES.items()},
        "usage": "Use the template parameter with templateParams to create policies from templates",
    })


ACTIONS = {
    "get_policy_templates": _policy_templates,
    "list_policies": _list_policies,
    "enable_rls": _toggle_rls,
    "disable_rls": _toggle_rls,
    "create_policy": _create_policy,
    "update_policy": _update_policy,
    "delete_policy": _delete_policy,
}


async def execute(args: Dict[str, Any], context: ToolContext) -> ToolResult:
    schema = validate_identifier(args["schema"], "schema")
    table = validate_identifier(args["table"], "table") if args.get("table") else None
    action = args["action"]
    try:
        return await ACTIONS[action](args, context, schema, table)
    except SqlExecutionError as e:
        return database_failure("policy", schema, table or "*", e, action=action, policy=args.get("policyName"))


tool = ToolDefinition(
    name="manage_rls_policies",
    description=(
        "Row Level Security (RLS) policy management. Create, update, delete, and list RLS "
        "policies, enable or disable RLS, and use predefined policy templates."
    ),
    parameters=[
        ToolParameter(name="schema", type="string", default="public", description='Schema name (e.g., "public")'),
        ToolParameter(
            name="action",
            type="string",
            required=True,
            enum=list(ACTIONS),
            description="Action to perform on RLS policies",
        ),
        ToolParameter(name="table", type="string", description="Table name for policy operations"),
        ToolParameter(name="policyName", type="string", description="Name of the policy (required for create/update/delete)"),
        ToolParameter(
            name="command",
            type="string",
            enum=["SELECT", "INSERT", "UPDATE", "DELETE", "ALL"],
            description="SQL command the policy applies to (create defaults to ALL, update keeps the current one)",
        ),
        ToolParameter(
            name="roles",
            type="array",
            items=ToolParameter(name="role", type="string"),
            description="Database roles the policy applies to (empty = all roles, omitted on update = keep current roles)",
        ),
        ToolParameter(name="definition", type="string", description='USING clause, e.g. "auth.uid() = user_id"'),
        ToolParameter(name="check", type="string", description="WITH CHECK clause for INSERT/UPDATE operations"),
        ToolParameter(
            name="policyType",
            type="string",
            enum=["PERMISSIVE", "RESTRICTIVE"],
            description="Policy type (create defaults to PERMISSIVE, update keeps the current one)",
        ),
        ToolParameter(
            name="template",
            type="string",
            enum=["user_based", "role_based", "team_based", "public_read", "owner_only", "custom"],
            description="Use a predefined policy template",
        ),
        ToolParameter(
            name="templateParams",
            type="object",
            description='Parameters for the template (e.g., {"user_column": "user_id"})',
        ),
        ToolParameter(name="newPolicyName", type="string", description="New policy name for update operations"),
        ToolParameter(
            name="force",
            type="boolean",
            default=False,
            description="Confirm potentially destructive operations such as disabling RLS",
        ),
    ],
    execute=execute,
)
