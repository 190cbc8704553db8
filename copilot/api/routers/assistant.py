"""Assistant API router: chat, thread lifecycle and setup."""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from copilot.api.models import ChatRequest, ChatResponse, ClearThreadResponse, ErrorResponse, SetupResponse, ThreadResponse
from copilot.infra.config import config
from copilot.infra.error_handler import (
    AssistantRunFailed,
    OrchestrationError,
    ResponseTimeout,
    RetryableError,
    ThreadCreationFailed,
)
from copilot.models.assistant import AssistantManagerContext
from copilot.services.assistant_manager import AssistantManager, get_assistant_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai/assistant")

MISSING_KEY_ERROR = "No OPENAI_API_KEY set. Create this environment variable to use AI features."

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _forwarded_headers(request: Request) -> Dict[str, str]:
    headers = {}
    if request.headers.get("authorization"):
        headers["Authorization"] = request.headers["authorization"]
    if request.headers.get("cookie"):
        headers["cookie"] = request.headers["cookie"]
    return headers


def _orchestration_error(error: OrchestrationError) -> JSONResponse:
    if isinstance(error, ResponseTimeout):
        return _error(504, error.message)
    return _error(502, error.message)


@router.post(
    "/chat",
    tags=["Assistant"],
    response_model=ChatResponse,
    responses={**ERROR_RESPONSES, 504: {"model": ErrorResponse}},
)
async def chat(
    body: ChatRequest,
    request: Request,
    manager: AssistantManager = Depends(get_assistant_manager),
):
    """Send a message to the assistant on the caller's thread and return its answer."""
    if not config.OPENAI_API_KEY:
        return _error(500, MISSING_KEY_ERROR)

    if not body.message or not body.message.strip():
        return _error(400, "Missing or invalid message in request body")
    if not body.projectRef or not body.connectionString or not body.userId:
        return _error(400, "Missing required fields: projectRef, connectionString, userId")

    context = AssistantManagerContext(
        project_ref=body.projectRef,
        connection_string=body.connectionString,
        user_id=body.userId,
        headers=_forwarded_headers(request),
    )

    try:
        thread_id = await manager.resolve_thread(body.userId)
        outcome = await manager.send_message(thread_id, body.message, context)
    except (ThreadCreationFailed, AssistantRunFailed) as e:
        logger.warning(f"Assistant chat failed for user {body.userId}: {e.message}")
        return _orchestration_error(e)
    except Exception as e:
        logger.error(f"Assistant chat error for user {body.userId}: {e}", exc_info=True)
        return _error(500, "Failed to get assistant response")

    return ChatResponse(
        response=outcome.response_text,
        threadId=outcome.thread_id,
        toolCalls=outcome.tool_calls,
        timestamp=_now(),
    )


@router.get("/thread", tags=["Assistant"], response_model=ThreadResponse, responses=ERROR_RESPONSES)
async def get_thread(
    userId: Optional[str] = Query(None, description="Application user id"),
    manager: AssistantManager = Depends(get_assistant_manager),
):
    """Get or create the conversation thread for a user."""
    if not config.OPENAI_API_KEY:
        return _error(500, MISSING_KEY_ERROR)
    if not userId:
        return _error(400, "Missing or invalid userId parameter")

    try:
        thread_id = await manager.resolve_thread(userId)
    except ThreadCreationFailed as e:
        return _orchestration_error(e)
    except Exception as e:
        logger.error(f"Get thread error for user {userId}: {e}", exc_info=True)
        return _error(500, "Failed to get thread")

    return ThreadResponse(threadId=thread_id, userId=userId, timestamp=_now())


@router.delete("/thread", tags=["Assistant"], response_model=ClearThreadResponse, responses=ERROR_RESPONSES)
async def clear_thread(
    userId: Optional[str] = Query(None, description="Application user id"),
    manager: AssistantManager = Depends(get_assistant_manager),
):
    """Clear a user's thread so the next message starts a fresh conversation."""
    if not config.OPENAI_API_KEY:
        return _error(500, MISSING_KEY_ERROR)
    if not userId:
        return _error(400, "Missing or invalid userId parameter")

    await manager.clear_thread(userId)
    return ClearThreadResponse(message="Thread cleared successfully", userId=userId, timestamp=_now())


@router.post("/setup", tags=["Assistant"], response_model=SetupResponse, responses=ERROR_RESPONSES)
async def setup_assistant(manager: AssistantManager = Depends(get_assistant_manager)):
    """Create or update the backend assistant definition with the current tool schema."""
    if not config.OPENAI_API_KEY:
        return _error(500, MISSING_KEY_ERROR)

    logger.info("Setting up assistant")
    try:
        assistant_id = await manager.setup_agent_definition()
    except RetryableError as e:
        logger.error(f"Assistant setup failed: {e.message}")
        return _error(502, f"Failed to setup assistant: {e.message}")

    note = None
    if assistant_id != config.OPENAI_ASSISTANT_ID:
        note = f"Add OPENAI_ASSISTANT_ID={assistant_id} to your environment variables"
    return SetupResponse(
        assistantId=assistant_id,
        message="Assistant created/updated successfully",
        note=note,
        timestamp=_now(),
    )
