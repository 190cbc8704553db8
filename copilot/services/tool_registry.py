"""Tool registry: agent-facing schema, execution map and dispatch."""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from copilot.infra.error_handler import (
    InvalidArguments,
    RetryableError,
    SqlExecutionError,
    ToolError,
    UnknownTool,
)
from copilot.models.tool import ToolContext, ToolDefinition, ToolExecutor, ToolParameter, ToolResult

logger = logging.getLogger(__name__)


def parameter_schema(param: ToolParameter) -> Dict[str, Any]:
    """JSON schema fragment for one parameter."""
    schema: Dict[str, Any] = {"type": param.type}
    if param.description:
        schema["description"] = param.description
    if param.enum:
        schema["enum"] = list(param.enum)
    if param.default is not None:
        schema["default"] = param.default
    if param.type == "array" and param.items is not None:
        schema["items"] = parameter_schema(param.items)
    if param.type == "object" and param.properties is not None:
        schema.update(object_schema(param.properties))
    return schema


def object_schema(parameters: List[ToolParameter]) -> Dict[str, Any]:
    return {
        "properties": {param.name: parameter_schema(param) for param in parameters},
        "required": [param.name for param in parameters if param.required],
    }


def build_function_schema(tool: ToolDefinition) -> Dict[str, Any]:
    """
    Convert a ToolDefinition to the Assistants API function tool format.

    Args:
        tool: Tool to describe

    Returns:
        ``{"type": "function", "function": {...}}`` dict
    """
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": {"type": "object", **object_schema(tool.parameters)},
        },
    }


class ToolRegistry:
    """Holds the tools the assistant may call, keyed by unique name."""

    def __init__(self, tools: Optional[Iterable[ToolDefinition]] = None):
        self._tools: Dict[str, ToolDefinition] = {}
        if tools:
            self.register(tools)

    def register(self, tools: Iterable[ToolDefinition]) -> None:
        """
        Add tools to the registry.

        Raises:
            ValueError: If a tool name is already registered or repeated
        """
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Tool '{tool.name}' is already registered")
            self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def schema(self) -> List[Dict[str, Any]]:
        return [build_function_schema(tool) for tool in self._tools.values()]

    def execution_map(self) -> Dict[str, ToolExecutor]:
        return {name: tool.execute for name, tool in self._tools.items()}

    async def dispatch(self, name: str, raw_arguments: Any, context: ToolContext) -> ToolResult:
        """
        Execute one tool call requested by the assistant.

        Never raises: unknown tools, malformed arguments, safety refusals and
        unexpected exceptions all come back as ``ToolResult(success=False)``.

        Args:
            name: Tool name from the pending call
            raw_arguments: JSON text (or an already decoded dict)
            context: Execution context for this turn

        Returns:
            ToolResult
        """
        try:
            tool = self._tools.get(name)
            if tool is None:
                raise UnknownTool(f"Unknown tool: {name}", details={"tool": name, "available": self.names})

            arguments = _decode_arguments(name, raw_arguments)
            parsed = tool.parse_arguments(arguments)
            return await tool.execute(parsed, context)
        except ToolError as e:
            logger.info(f"Tool {name} refused: [{e.code}] {e.message}")
            return ToolResult.fail(e.message, details={"code": e.code, **e.details})
        except SqlExecutionError as e:
            logger.info(f"Tool {name} SQL rejected: {e.message}")
            return ToolResult.fail(e.message, details={"code": "sql_error"})
        except RetryableError as e:
            logger.warning(f"Tool {name} backend error ({e.category.value}): {e.message}")
            return ToolResult.fail(e.message, details={"code": e.category.value})
        except Exception as e:
            logger.error(f"Unexpected error executing tool {name}: {e}", exc_info=True)
            return ToolResult.fail(f"Tool {name} failed: {e}", details={"code": "internal_error"})


def _decode_arguments(name: str, raw_arguments: Any) -> Dict[str, Any]:
    if isinstance(raw_arguments, dict):
        return raw_arguments
    if raw_arguments is None or (isinstance(raw_arguments, str) and not raw_arguments.strip()):
        return {}
    try:
        decoded = json.loads(raw_arguments)
    except (TypeError, ValueError) as e:
        raise InvalidArguments(f"Invalid JSON arguments for tool {name}: {e}", details={"tool": name})
    if not isinstance(decoded, dict):
        raise InvalidArguments(f"Arguments for tool {name} must be a JSON object", details={"tool": name})
    return decoded


_default_registry: Optional[ToolRegistry] = None


def get_default_registry() -> ToolRegistry:
    """Registry populated with every database tool."""
    global _default_registry
    if _default_registry is None:
        from copilot.tools import ALL_TOOLS

        _default_registry = ToolRegistry(ALL_TOOLS)
    return _default_registry
