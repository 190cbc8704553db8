"""OpenAI Assistants API adapter (threads, messages, runs, assistants)."""

import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from copilot.infra.config import config
from copilot.infra.error_handler import wrap_backend_error
from copilot.models.assistant import PendingToolCall, RunSnapshot, RunStatus, ToolOutput

logger = logging.getLogger(__name__)


class AssistantBackend:
    """Thin async wrapper over the Assistants API.

    All SDK exceptions are re-raised as classified ``RetryableError`` subclasses
    so callers can decide between retrying and failing fast.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            if not config.OPENAI_API_KEY:
                raise ValueError("OPENAI_API_KEY not configured")
            self._client = AsyncOpenAI(api_key=config.OPENAI_API_KEY)
        return self._client

    async def _call(self, operation: str, coro):
        try:
            return await coro
        except Exception as e:
            wrapped = wrap_backend_error(e)
            logger.debug(f"Assistants API {operation} failed: {wrapped.message}")
            raise wrapped from e

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    async def create_thread(self, metadata: Dict[str, str]) -> str:
        thread = await self._call("threads.create", self.client.beta.threads.create(metadata=metadata))
        return thread.id

    async def retrieve_thread(self, thread_id: str) -> str:
        thread = await self._call("threads.retrieve", self.client.beta.threads.retrieve(thread_id))
        return thread.id

    async def delete_thread(self, thread_id: str) -> None:
        await self._call("threads.delete", self.client.beta.threads.delete(thread_id))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def add_user_message(self, thread_id: str, content: str) -> None:
        await self._call(
            "messages.create",
            self.client.beta.threads.messages.create(thread_id, role="user", content=content),
        )

    async def latest_assistant_text(self, thread_id: str) -> Optional[str]:
        """
        Text of the newest message on the thread if it was written by the assistant.

        Returns:
            Joined text parts ("" when the message has no text), or None when the
            newest message is not an assistant message
        """
        page = await self._call(
            "messages.list",
            self.client.beta.threads.messages.list(thread_id, order="desc", limit=1),
        )
        messages = list(getattr(page, "data", None) or [])
        if not messages or getattr(messages[0], "role", None) != "assistant":
            return None
        return extract_message_text(messages[0])

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def create_run(self, thread_id: str, assistant_id: str, instructions: Optional[str] = None) -> str:
        params: Dict[str, Any] = {"assistant_id": assistant_id}
        if instructions:
            params["instructions"] = instructions
        run = await self._call("runs.create", self.client.beta.threads.runs.create(thread_id, **params))
        return run.id

    async def retrieve_run(self, thread_id: str, run_id: str) -> RunSnapshot:
        run = await self._call(
            "runs.retrieve",
            self.client.beta.threads.runs.retrieve(run_id=run_id, thread_id=thread_id),
        )
        return snapshot_from_run(run)

    async def submit_tool_outputs(self, thread_id: str, run_id: str, outputs: List[ToolOutput]) -> None:
        await self._call(
            "runs.submit_tool_outputs",
            self.client.beta.threads.runs.submit_tool_outputs(
                run_id=run_id,
                thread_id=thread_id,
                tool_outputs=[output.to_submission() for output in outputs],
            ),
        )

    async def cancel_run(self, thread_id: str, run_id: str) -> None:
        await self._call(
            "runs.cancel",
            self.client.beta.threads.runs.cancel(run_id=run_id, thread_id=thread_id),
        )

    # ------------------------------------------------------------------
    # Assistants
    # ------------------------------------------------------------------

    async def find_assistant_by_name(self, name: str) -> Optional[str]:
        page = await self._call("assistants.list", self.client.beta.assistants.list(limit=100, order="desc"))
        for assistant in getattr(page, "data", None) or []:
            if getattr(assistant, "name", None) == name:
                return assistant.id
        return None

    async def create_assistant(self, name: str, instructions: str, model: str, tools: List[Dict[str, Any]]) -> str:
        assistant = await self._call(
            "assistants.create",
            self.client.beta.assistants.create(name=name, instructions=instructions, model=model, tools=tools),
        )
        return assistant.id

    async def update_assistant(
        self,
        assistant_id: str,
        name: str,
        instructions: str,
        model: str,
        tools: List[Dict[str, Any]],
    ) -> str:
        assistant = await self._call(
            "assistants.update",
            self.client.beta.assistants.update(
                assistant_id, name=name, instructions=instructions, model=model, tools=tools
            ),
        )
        return assistant.id


def extract_message_text(message: Any) -> str:
    """Join the text blocks of an assistant message."""
    parts = []
    for block in getattr(message, "content", None) or []:
        if getattr(block, "type", None) != "text":
            continue
        text = getattr(block, "text", None)
        value = getattr(text, "value", None)
        if value:
            parts.append(value)
    return "\n".join(parts)


def snapshot_from_run(run: Any) -> RunSnapshot:
    """Convert an SDK Run object into a RunSnapshot."""
    try:
        status = RunStatus(run.status)
    except ValueError:
        logger.warning(f"Unrecognised run status {run.status!r} for run {run.id}, treating as in_progress")
        status = RunStatus.IN_PROGRESS

    pending: List[PendingToolCall] = []
    required_action = getattr(run, "required_action", None)
    if required_action is not None and getattr(required_action, "type", None) == "submit_tool_outputs":
        for tool_call in required_action.submit_tool_outputs.tool_calls:
            pending.append(PendingToolCall(
                call_id=tool_call.id,
                tool_name=tool_call.function.name,
                raw_arguments=tool_call.function.arguments or "",
            ))

    last_error = getattr(run, "last_error", None)
    return RunSnapshot(
        run_id=run.id,
        status=status,
        pending_calls=pending,
        last_error=getattr(last_error, "message", None) if last_error else None,
    )


assistant_backend = AssistantBackend()
