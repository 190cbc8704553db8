"""Assistant manager: orchestrator entry points used by the HTTP layer."""

import logging
from typing import Optional

from copilot.adapters.openai_assistant import AssistantBackend, assistant_backend
from copilot.infra.config import config
from copilot.infra.error_handler import AssistantRunFailed
from copilot.models.assistant import AssistantManagerContext, RunOutcome
from copilot.services.prompts import ASSISTANT_INSTRUCTIONS, build_run_instructions
from copilot.services.run_driver import RunDriver
from copilot.services.thread_manager import KeyedLocks, ThreadManager
from copilot.services.thread_store import ThreadStore, get_thread_store
from copilot.services.tool_registry import ToolRegistry, get_default_registry

logger = logging.getLogger(__name__)


class AssistantManager:
    """Wires the agent backend, tool registry, thread manager and run driver together."""

    def __init__(
        self,
        backend: AssistantBackend,
        registry: ToolRegistry,
        store: ThreadStore,
        assistant_id: Optional[str] = None,
        run_driver: Optional[RunDriver] = None,
        thread_manager: Optional[ThreadManager] = None,
    ):
        self._backend = backend
        self._registry = registry
        self._assistant_id = assistant_id
        self._locks = KeyedLocks()
        self._threads = thread_manager or ThreadManager(backend, store, locks=self._locks)
        self._driver = run_driver or RunDriver(backend, registry)

    @property
    def assistant_id(self) -> Optional[str]:
        return self._assistant_id

    async def resolve_thread(self, user_id: str) -> str:
        return await self._threads.resolve(user_id)

    async def send_message(self, thread_id: str, message: str, context: AssistantManagerContext) -> RunOutcome:
        """
        Drive one user message through a run on ``thread_id``.

        Turns on the same thread are serialized; different threads run independently.

        Raises:
            AssistantRunFailed: If no assistant is configured or the run failed
            ResponseTimeout: If the run did not finish in time
        """
        if not self._assistant_id:
            raise AssistantRunFailed(
                "Assistant is not configured. Run the setup endpoint or set OPENAI_ASSISTANT_ID.",
                run_status="not_configured",
            )

        async with self._locks.get(f"thread:{thread_id}"):
            return await self._driver.drive(
                thread_id,
                self._assistant_id,
                message,
                context,
                instructions=build_run_instructions(context.project_ref, context.user_id),
            )

    async def chat(self, message: str, context: AssistantManagerContext) -> RunOutcome:
        thread_id = await self.resolve_thread(context.user_id)
        return await self.send_message(thread_id, message, context)

    async def clear_thread(self, user_id: str) -> None:
        """Best-effort reset of the user's thread; never raises."""
        try:
            await self._threads.reset(user_id)
        except Exception as e:
            logger.error(f"Failed to clear thread for user {user_id}: {e}", exc_info=True)

    async def setup_agent_definition(self) -> str:
        """
        Create or update the backend assistant with the current tool schema.

        Updates the configured assistant, else an existing assistant with the
        same name, else creates a new one. The id is remembered for later runs.
        """
        tools = self._registry.schema()
        params = {
            "name": config.ASSISTANT_NAME,
            "instructions": ASSISTANT_INSTRUCTIONS,
            "model": config.OPENAI_MODEL,
            "tools": tools,
        }

        existing_id = self._assistant_id or await self._backend.find_assistant_by_name(config.ASSISTANT_NAME)
        if existing_id:
            assistant_id = await self._backend.update_assistant(existing_id, **params)
            logger.info(f"Updated assistant {assistant_id} with {len(tools)} tools")
        else:
            assistant_id = await self._backend.create_assistant(**params)
            logger.info(
                f"Created new assistant {assistant_id}. Add OPENAI_ASSISTANT_ID={assistant_id} to your environment."
            )

        self._assistant_id = assistant_id
        return assistant_id


_assistant_manager: Optional[AssistantManager] = None


def get_assistant_manager() -> AssistantManager:
    global _assistant_manager
    if _assistant_manager is None:
        _assistant_manager = AssistantManager(
            backend=assistant_backend,
            registry=get_default_registry(),
            store=get_thread_store(),
            assistant_id=config.OPENAI_ASSISTANT_ID,
        )
    return _assistant_manager


def reset_assistant_manager() -> None:
    global _assistant_manager
    _assistant_manager = None
