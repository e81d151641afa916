"""Unit tests for the gate session stores."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import pytest

from powgate.storage.sessions import DatabaseSessionStore, InMemorySessionStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

FP = b"\x01" * 32
OTHER_FP = b"\x02" * 32
T0 = 10_000
TTL = 1_000


@pytest.fixture(params=["memory", "database"])
def store_factory(request, async_engine: AsyncEngine):
    if request.param == "memory":
        return InMemorySessionStore
    return lambda: DatabaseSessionStore(async_engine)


@pytest.mark.unit
class TestSessionStores:
    async def test_valid_within_ttl(self, store_factory) -> None:
        store = store_factory()
        session = await store.create(FP, uuid.uuid4(), TTL, now_ms=T0)
        assert session.expires_at_ms == T0 + TTL
        assert await store.is_valid(session.id, FP, now_ms=T0 + TTL - 1)

    async def test_invalid_at_and_after_expiry(self, store_factory) -> None:
        store = store_factory()
        session = await store.create(FP, uuid.uuid4(), TTL, now_ms=T0)
        assert not await store.is_valid(session.id, FP, now_ms=T0 + TTL)
        assert not await store.is_valid(session.id, FP, now_ms=T0 + TTL + 1)

    async def test_fingerprint_mismatch_is_invalid(self, store_factory) -> None:
        store = store_factory()
        session = await store.create(FP, uuid.uuid4(), TTL, now_ms=T0)
        assert not await store.is_valid(session.id, OTHER_FP, now_ms=T0 + 1)
        # The owner is unaffected
        assert await store.is_valid(session.id, FP, now_ms=T0 + 1)

    async def test_unknown_session(self, store_factory) -> None:
        store = store_factory()
        assert not await store.is_valid(uuid.uuid4(), FP, now_ms=T0)

    async def test_invalidate_is_idempotent(self, store_factory) -> None:
        store = store_factory()
        session = await store.create(FP, uuid.uuid4(), TTL, now_ms=T0)
        await store.invalidate(session.id)
        await store.invalidate(session.id)
        await store.invalidate(uuid.uuid4())
        assert not await store.is_valid(session.id, FP, now_ms=T0 + 1)

    async def test_purge_expired(self, store_factory) -> None:
        store = store_factory()
        old = await store.create(FP, uuid.uuid4(), TTL, now_ms=T0)
        fresh = await store.create(FP, uuid.uuid4(), TTL * 10, now_ms=T0)

        assert await store.purge_expired(now_ms=T0 + TTL) == 1
        assert not await store.is_valid(old.id, FP, now_ms=T0)
        assert await store.is_valid(fresh.id, FP, now_ms=T0 + TTL)
