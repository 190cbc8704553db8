"""Assistant conversation models: threads, runs, tool calls and outcomes."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from copilot.models.tool import ToolContext


@dataclass
class AssistantManagerContext:
    """Caller-supplied context for one orchestration call."""
    project_ref: str
    connection_string: str
    user_id: str
    headers: Dict[str, str] = field(default_factory=dict)

    def tool_context(self) -> ToolContext:
        return ToolContext(
            project_ref=self.project_ref,
            connection_string=self.connection_string,
            headers=dict(self.headers or {}),
        )


@dataclass
class ThreadRecord:
    """Mapping of an application user to a backend thread."""
    thread_id: str
    user_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RunStatus(str, Enum):
    """Run states reported by the agent backend."""
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    INCOMPLETE = "incomplete"


TERMINAL_FAILURE_STATES = frozenset({
    RunStatus.FAILED,
    RunStatus.CANCELLED,
    RunStatus.EXPIRED,
    RunStatus.INCOMPLETE,
})


@dataclass(frozen=True)
class PendingToolCall:
    call_id: str
    tool_name: str
    raw_arguments: str


@dataclass(frozen=True)
class ToolOutput:
    call_id: str
    output: str

    def to_submission(self) -> Dict[str, str]:
        return {"tool_call_id": self.call_id, "output": self.output}


@dataclass
class RunSnapshot:
    """One poll of a run."""
    run_id: str
    status: RunStatus
    pending_calls: List[PendingToolCall] = field(default_factory=list)
    last_error: Optional[str] = None


class ToolCallTrace(BaseModel):
    """Per-call record returned alongside the final answer."""
    call_id: str
    tool_name: str
    success: bool
    error: Optional[str] = None
    duration_ms: int = 0


class RunOutcome(BaseModel):
    """Result of driving one user message through a run."""
    thread_id: str
    run_id: str
    response_text: str
    tool_calls: List[ToolCallTrace] = Field(default_factory=list)
