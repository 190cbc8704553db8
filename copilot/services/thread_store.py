"""User → thread mapping storage (memory, Redis, database)."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional

import redis.asyncio as redis
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from copilot.infra.config import config
from copilot.infra.database import get_db_session
from copilot.models.assistant import ThreadRecord

logger = logging.getLogger(__name__)


class ThreadStore(ABC):
    """Key-value storage of ThreadRecords keyed by user id."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[ThreadRecord]:
        ...

    @abstractmethod
    async def set(self, record: ThreadRecord) -> None:
        ...

    @abstractmethod
    async def delete(self, user_id: str) -> None:
        ...

    async def close(self) -> None:
        return None


class InMemoryThreadStore(ThreadStore):
    """Process-local mapping; lost on restart and not shared between workers."""

    def __init__(self):
        self._records: Dict[str, ThreadRecord] = {}

    async def get(self, user_id: str) -> Optional[ThreadRecord]:
        return self._records.get(user_id)

    async def set(self, record: ThreadRecord) -> None:
        self._records[record.user_id] = record

    async def delete(self, user_id: str) -> None:
        self._records.pop(user_id, None)


def _to_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class RedisThreadStore(ThreadStore):
    """Mapping stored as JSON under ``copilot:thread:{user_id}`` with optional TTL."""

    KEY_PREFIX = "copilot:thread:"

    def __init__(self, client: Optional[redis.Redis] = None, url: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self._client = client
        self._url = url or config.REDIS_URL
        self._ttl = config.THREAD_TTL_SECONDS if ttl_seconds is None else ttl_seconds

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self._url, decode_responses=True)
        return self._client

    def _key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}{user_id}"

    async def get(self, user_id: str) -> Optional[ThreadRecord]:
        raw = await self.client.get(self._key(user_id))
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
            return ThreadRecord(
                thread_id=payload["thread_id"],
                user_id=payload.get("user_id", user_id),
                created_at=_to_datetime(payload["created_at"]),
            )
        except (ValueError, KeyError) as e:
            logger.warning(f"Discarding malformed thread mapping for user {user_id}: {e}")
            await self.client.delete(self._key(user_id))
            return None

    async def set(self, record: ThreadRecord) -> None:
        payload = json.dumps({
            "thread_id": record.thread_id,
            "user_id": record.user_id,
            "created_at": record.created_at.isoformat(),
        })
        if self._ttl and self._ttl > 0:
            await self.client.set(self._key(record.user_id), payload, ex=self._ttl)
        else:
            await self.client.set(self._key(record.user_id), payload)

    async def delete(self, user_id: str) -> None:
        await self.client.delete(self._key(user_id))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class DatabaseThreadStore(ThreadStore):
    """Mapping stored in the ``assistant_threads`` table (see alembic/versions/001)."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    def _get_sync(self, user_id: str) -> Optional[ThreadRecord]:
        with get_db_session(self._session_factory) as session:
            row = session.execute(
                text("""
                    SELECT user_id, thread_id, created_at
                    FROM assistant_threads
                    WHERE user_id = :user_id
                """),
                {"user_id": user_id},
            ).fetchone()
        if row is None:
            return None
        return ThreadRecord(thread_id=row.thread_id, user_id=row.user_id, created_at=_to_datetime(row.created_at))

    def _set_sync(self, record: ThreadRecord) -> None:
        with get_db_session(self._session_factory) as session:
            session.execute(
                text("""
                    INSERT INTO assistant_threads (user_id, thread_id, created_at)
                    VALUES (:user_id, :thread_id, :created_at)
                    ON CONFLICT (user_id) DO UPDATE
                    SET thread_id = excluded.thread_id, created_at = excluded.created_at
                """),
                {
                    "user_id": record.user_id,
                    "thread_id": record.thread_id,
                    "created_at": record.created_at.isoformat(),
                },
            )

    def _delete_sync(self, user_id: str) -> None:
        with get_db_session(self._session_factory) as session:
            session.execute(
                text("DELETE FROM assistant_threads WHERE user_id = :user_id"),
                {"user_id": user_id},
            )

    async def get(self, user_id: str) -> Optional[ThreadRecord]:
        return await asyncio.to_thread(self._get_sync, user_id)

    async def set(self, record: ThreadRecord) -> None:
        await asyncio.to_thread(self._set_sync, record)

    async def delete(self, user_id: str) -> None:
        await asyncio.to_thread(self._delete_sync, user_id)


_thread_store: Optional[ThreadStore] = None


def create_thread_store(kind: Optional[str] = None) -> ThreadStore:
    """
    Build the store selected by ``THREAD_STORE``.

    Raises:
        ValueError: If the store kind is unknown
    """
    kind = (kind or config.THREAD_STORE).lower()
    if kind == "memory":
        return InMemoryThreadStore()
    if kind == "redis":
        return RedisThreadStore()
    if kind == "database":
        return DatabaseThreadStore()
    raise ValueError(f"Unknown THREAD_STORE '{kind}' (expected memory, redis or database)")


def get_thread_store() -> ThreadStore:
    global _thread_store
    if _thread_store is None:
        _thread_store = create_thread_store()
        logger.info(f"Using {type(_thread_store).__name__} for thread mappings")
    return _thread_store


async def close_thread_store() -> None:
    global _thread_store
    if _thread_store is not None:
        await _thread_store.close()
    _thread_store = None
