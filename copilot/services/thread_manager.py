"""Per-user conversation thread lifecycle."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional
from weakref import WeakValueDictionary

from copilot.adapters.openai_assistant import AssistantBackend
from copilot.infra.error_handler import ThreadCreationFailed, retry_with_backoff
from copilot.infra.metrics import threads_created_total
from copilot.logging.event_logger import log_event
from copilot.models.assistant import ThreadRecord
from copilot.services.thread_store import ThreadStore

logger = logging.getLogger(__name__)


class KeyedLocks:
    """One asyncio.Lock per key, dropped once no coroutine holds a reference."""

    def __init__(self):
        self._locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


class ThreadManager:
    """Resolves and resets the backend thread belonging to each user."""

    def __init__(
        self,
        backend: AssistantBackend,
        store: ThreadStore,
        locks: Optional[KeyedLocks] = None,
        max_retries: int = 2,
        retry_delay: float = 0.5,
    ):
        self._backend = backend
        self._store = store
        self._locks = locks or KeyedLocks()
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    async def resolve(self, user_id: str) -> str:
        """
        Return the user's live thread id, creating one when needed.

        A stored mapping is verified against the backend first; if the thread
        is gone (or cannot be retrieved) the mapping is evicted and replaced.

        Raises:
            ThreadCreationFailed: If a new thread could not be created
        """
        async with self._locks.get(f"user:{user_id}"):
            record = await self._store.get(user_id)
            reason = "new"
            if record is not None:
                try:
                    await retry_with_backoff(
                        lambda: self._backend.retrieve_thread(record.thread_id),
                        max_retries=self._max_retries,
                        initial_delay=self._retry_delay,
                    )
                    return record.thread_id
                except Exception as e:
                    logger.warning(
                        f"Thread {record.thread_id} for user {user_id} could not be verified, creating a new one: {e}"
                    )
                    await self._store.delete(user_id)
                    reason = "recovered"

            return await self._create(user_id, reason)

    async def _create(self, user_id: str, reason: str) -> str:
        created_at = datetime.now(timezone.utc)
        metadata = {"userId": user_id, "createdAt": created_at.isoformat()}
        try:
            thread_id = await retry_with_backoff(
                lambda: self._backend.create_thread(metadata),
                max_retries=self._max_retries,
                initial_delay=self._retry_delay,
            )
        except Exception as e:
            logger.error(f"Failed to create thread for user {user_id}: {e}")
            log_event("thread_creation_failed", status="failure", user_id=user_id, payload={"error": str(e)})
            raise ThreadCreationFailed("Failed to create conversation thread") from e

        await self._store.set(ThreadRecord(thread_id=thread_id, user_id=user_id, created_at=created_at))
        threads_created_total.labels(reason=reason).inc()
        log_event("thread_created", user_id=user_id, thread_id=thread_id, payload={"reason": reason})
        return thread_id

    async def reset(self, user_id: str) -> None:
        """
        Forget the user's thread.

        Backend deletion is best-effort; the local mapping is always evicted.
        """
        async with self._locks.get(f"user:{user_id}"):
            record = await self._store.get(user_id)
            try:
                if record is not None:
                    await self._backend.delete_thread(record.thread_id)
                    log_event("thread_deleted", user_id=user_id, thread_id=record.thread_id)
            except Exception as e:
                logger.warning(f"Failed to delete thread {record.thread_id} for user {user_id}: {e}")
            finally:
                await self._store.delete(user_id)
