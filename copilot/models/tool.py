"""Tool contract: parameter schema, definition, execution context and result."""

import json
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, create_model, model_validator

from copilot.infra.error_handler import InvalidArguments


ParameterType = Literal["string", "integer", "number", "boolean", "array", "object"]


class ToolParameter(BaseModel):
    """One declared tool argument.

    ``items`` describes array elements; ``properties`` describes the fields of
    a structured object. An ``object`` without properties is a free-form mapping.
    """
    name: str
    type: ParameterType
    description: str = ""
    required: bool = False
    default: Any = None
    items: Optional["ToolParameter"] = None
    properties: Optional[List["ToolParameter"]] = None
    enum: Optional[List[str]] = None


ToolParameter.model_rebuild()


class ToolContext(BaseModel):
    """Execution environment for one tool call."""
    model_config = ConfigDict(frozen=True)

    project_ref: str = Field(..., description="Project reference the SQL runs against")
    connection_string: str = Field(..., description="Encrypted connection descriptor for the gateway")
    headers: Dict[str, str] = Field(default_factory=dict, description="Forwarded request headers")


class ToolResult(BaseModel):
    """Tagged outcome of a tool call: ``success`` with ``data``, or ``error`` with ``details``."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, details: Optional[Dict[str, Any]] = None) -> "ToolResult":
        return cls(success=False, error=error, details=details or None)

    def serialize(self) -> str:
        """Serialize for submission as a tool output."""
        return json.dumps(self.model_dump(exclude_none=True), default=str)


ToolExecutor = Callable[[Dict[str, Any], ToolContext], Awaitable[ToolResult]]


_PRIMITIVES: Dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
}


def _python_type(param: ToolParameter, owner: str) -> Any:
    """Map a declared parameter to the type used for argument validation."""
    if param.enum:
        return Literal[tuple(param.enum)]
    if param.type in _PRIMITIVES:
        return _PRIMITIVES[param.type]
    if param.type == "array":
        if param.items is None:
            return List[Any]
        return List[_python_type(param.items, f"{owner}_{param.name}")]
    if param.properties is None:
        return Dict[str, Any]
    return build_arguments_model(f"{owner}_{param.name}", param.properties)


class _ToolArguments(BaseModel):
    """Base for generated argument models; unknown keys are ignored."""
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _null_means_default(cls, data: Any) -> Any:
        # An explicit null on an optional argument falls back to its declared default
        if not isinstance(data, dict):
            return data
        optional_aliases = {field.alias for field in cls.model_fields.values() if not field.is_required()}
        return {key: value for key, value in data.items() if value is not None or key not in optional_aliases}


def build_arguments_model(model_name: str, parameters: List[ToolParameter]) -> Type[BaseModel]:
    """Build a pydantic model validating arguments against a parameter list.

    Unknown keys are ignored; optional parameters that are missing or null take
    their declared default.
    """
    fields: Dict[str, Tuple[Any, Any]] = {}
    for param in parameters:
        annotation = _python_type(param, model_name)
        # "schema" and similar names collide with BaseModel attributes
        field_name = f"arg_{param.name}"
        if param.required:
            fields[field_name] = (annotation, Field(..., alias=param.name, description=param.description))
        else:
            fields[field_name] = (
                Optional[annotation],
                Field(param.default, alias=param.name, description=param.description),
            )
    return create_model(
        model_name,
        __base__=_ToolArguments,
        **fields,
    )


class ToolDefinition(BaseModel):
    """A named operation the assistant may request."""
    name: str = Field(..., description="Unique tool name")
    description: str = Field(..., description="Description shown to the assistant")
    parameters: List[ToolParameter] = Field(default_factory=list, description="Declared arguments")
    execute: ToolExecutor = Field(..., exclude=True, description="Async executor (args, context) -> ToolResult")

    _arguments_model: Optional[Type[BaseModel]] = PrivateAttr(default=None)

    def parse_arguments(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate raw arguments and apply defaults.

        Raises:
            InvalidArguments: If the arguments do not match the declared parameters
        """
        if self._arguments_model is None:
            self._arguments_model = build_arguments_model(f"{self.name}_arguments", self.parameters)
        try:
            return self._arguments_model.model_validate(raw).model_dump(by_alias=True)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or '(root)'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidArguments(
                f"Invalid arguments for {self.name}: {problems}",
                details={"tool": self.name},
            )
