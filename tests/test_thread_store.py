"""Tests for the thread mapping stores."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from copilot.models.assistant import ThreadRecord
from copilot.services.thread_store import (
    DatabaseThreadStore,
    InMemoryThreadStore,
    RedisThreadStore,
    create_thread_store,
)

CREATED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestInMemoryThreadStore:

    @pytest.mark.asyncio
    async def test_set_get_delete(self):
        store = InMemoryThreadStore()
        await store.set(ThreadRecord(thread_id="thread_1", user_id="u1", created_at=CREATED_AT))

        record = await store.get("u1")
        assert record.thread_id == "thread_1"
        assert await store.get("u2") is None

        await store.delete("u1")
        assert await store.get("u1") is None

        # Deleting a missing mapping is fine
        await store.delete("u1")


class TestRedisThreadStore:

    @pytest.fixture
    def redis_client(self):
        client = AsyncMock()
        client.get = AsyncMock(return_value=None)
        return client

    @pytest.mark.asyncio
    async def test_set_writes_json_with_ttl(self, redis_client):
        store = RedisThreadStore(client=redis_client, ttl_seconds=3600)

        await store.set(ThreadRecord(thread_id="thread_1", user_id="u1", created_at=CREATED_AT))

        key, payload = redis_client.set.call_args.args
        assert key == "copilot:thread:u1"
        assert json.loads(payload) == {
            "thread_id": "thread_1",
            "user_id": "u1",
            "created_at": CREATED_AT.isoformat(),
        }
        assert redis_client.set.call_args.kwargs == {"ex": 3600}

    @pytest.mark.asyncio
    async def test_set_without_ttl(self, redis_client):
        store = RedisThreadStore(client=redis_client, ttl_seconds=0)

        await store.set(ThreadRecord(thread_id="thread_1", user_id="u1", created_at=CREATED_AT))

        assert redis_client.set.call_args.kwargs == {}

    @pytest.mark.asyncio
    async def test_get_decodes_record(self, redis_client):
        redis_client.get.return_value = json.dumps({
            "thread_id": "thread_9",
            "user_id": "u1",
            "created_at": CREATED_AT.isoformat(),
        })
        store = RedisThreadStore(client=redis_client)

        record = await store.get("u1")

        assert record == ThreadRecord(thread_id="thread_9", user_id="u1", created_at=CREATED_AT)
        redis_client.get.assert_awaited_once_with("copilot:thread:u1")

    @pytest.mark.asyncio
    async def test_malformed_value_is_discarded(self, redis_client):
        redis_client.get.return_value = "not-json"
        store = RedisThreadStore(client=redis_client)

        assert await store.get("u1") is None
        redis_client.delete.assert_awaited_once_with("copilot:thread:u1")

    @pytest.mark.asyncio
    async def test_close_releases_client(self, redis_client):
        store = RedisThreadStore(client=redis_client)

        await store.close()

        redis_client.aclose.assert_awaited_once()


class TestDatabaseThreadStore:

    @pytest.fixture
    def session_factory(self):
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        with engine.begin() as conn:
            conn.execute(text("""
                CREATE TABLE assistant_threads (
                    user_id VARCHAR(255) PRIMARY KEY,
                    thread_id VARCHAR(255) NOT NULL,
                    created_at VARCHAR(64) NOT NULL
                )
            """))
        yield sessionmaker(bind=engine)
        engine.dispose()

    @pytest.mark.asyncio
    async def test_round_trip_and_upsert(self, session_factory):
        store = DatabaseThreadStore(session_factory=session_factory)

        await store.set(ThreadRecord(thread_id="thread_1", user_id="u1", created_at=CREATED_AT))
        await store.set(ThreadRecord(thread_id="thread_2", user_id="u1", created_at=CREATED_AT))

        record = await store.get("u1")
        assert record.thread_id == "thread_2"
        assert record.created_at == CREATED_AT

        await store.delete("u1")
        assert await store.get("u1") is None


class TestCreateThreadStore:

    def test_known_kinds(self):
        assert isinstance(create_thread_store("memory"), InMemoryThreadStore)
        assert isinstance(create_thread_store("redis"), RedisThreadStore)
        assert isinstance(create_thread_store("database"), DatabaseThreadStore)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            create_thread_store("etcd")
