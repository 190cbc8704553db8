from .tool import ToolDefinition, ToolParameter, ToolContext, ToolResult
from .assistant import (
    AssistantManagerContext,
    ThreadRecord,
    RunStatus,
    RunSnapshot,
    PendingToolCall,
    ToolOutput,
    ToolCallTrace,
    RunOutcome,
)

__all__ = [
    "ToolDefinition",
    "ToolParameter",
    "ToolContext",
    "ToolResult",
    "AssistantManagerContext",
    "ThreadRecord",
    "RunStatus",
    "RunSnapshot",
    "PendingToolCall",
    "ToolOutput",
    "ToolCallTrace",
    "RunOutcome",
]
