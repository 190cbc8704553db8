"""API request/response models."""

from typing import List, Optional
from pydantic import BaseModel, Field

from copilot.models.assistant import ToolCallTrace


# ============================================================================
# Assistant Models
# ============================================================================

class ChatRequest(BaseModel):
    """Request body for a chat turn. Presence of fields is checked by the route."""
    message: Optional[str] = Field(None, description="User message", example="list my tables")
    projectRef: Optional[str] = Field(None, description="Project reference", example="default")
    connectionString: Optional[str] = Field(None, description="Encrypted connection descriptor")
    userId: Optional[str] = Field(None, description="Application user id")


class ChatResponse(BaseModel):
    """Response model for a completed chat turn."""
    success: bool = True
    response: str = Field(..., description="Final assistant text")
    threadId: str
    toolCalls: List[ToolCallTrace] = Field(default_factory=list, description="Tool calls executed during the turn")
    timestamp: str


class ThreadResponse(BaseModel):
    success: bool = True
    threadId: str
    userId: str
    timestamp: str


class ClearThreadResponse(BaseModel):
    success: bool = True
    message: str = Field(..., example="Thread cleared successfully")
    userId: str
    timestamp: str


class SetupResponse(BaseModel):
    """Response model for assistant setup."""
    success: bool = True
    assistantId: str
    message: str = Field(..., example="Assistant created/updated successfully")
    note: Optional[str] = None
    timestamp: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
