"""Gate session storage.

A session is created once per verified solution and is bound to the client
fingerprint that earned it. ``is_valid`` re-checks that binding on every read:
a token presented by a differently fingerprinted client is treated as invalid.
"""

from __future__ import annotations

import hmac
import threading
import uuid
from typing import TYPE_CHECKING, Protocol

import structlog
from sqlalchemy import delete
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from powgate.models.database import PowSessionRecord
from powgate.models.domain import Session, epoch_ms
from powgate.storage.guard import storage_guard

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class SessionStore(Protocol):
    async def create(
        self,
        client_fingerprint: bytes,
        challenge_id: uuid.UUID,
        ttl_ms: int,
        now_ms: int | None = None,
    ) -> Session: ...

    async def is_valid(
        self, session_id: uuid.UUID, client_fingerprint: bytes, now_ms: int | None = None
    ) -> bool: ...

    async def invalidate(self, session_id: uuid.UUID) -> None: ...

    async def purge_expired(self, now_ms: int | None = None) -> int: ...


def _new_session(
    client_fingerprint: bytes, challenge_id: uuid.UUID, ttl_ms: int, created_at_ms: int
) -> Session:
    return Session(
        id=uuid.uuid4(),
        expires_at_ms=created_at_ms + ttl_ms,
        created_at_ms=created_at_ms,
        client_fingerprint=client_fingerprint,
        challenge_id=challenge_id,
    )


def _check(session: Session | None, client_fingerprint: bytes, at_ms: int) -> bool:
    if session is None or session.is_expired(at_ms):
        return False
    if not hmac.compare_digest(session.client_fingerprint, client_fingerprint):
        logger.warning("session_fingerprint_mismatch", session_id=str(session.id))
        return False
    return True


class InMemorySessionStore:
    """Process-local session store."""

    def __init__(self) -> None:
        self._sessions: dict[uuid.UUID, Session] = {}
        self._lock = threading.Lock()

    async def create(
        self,
        client_fingerprint: bytes,
        challenge_id: uuid.UUID,
        ttl_ms: int,
        now_ms: int | None = None,
    ) -> Session:
        created_at = now_ms if now_ms is not None else epoch_ms()
        session = _new_session(client_fingerprint, challenge_id, ttl_ms, created_at)
        with self._lock:
            self._sessions[session.id] = session
        logger.info(
            "session_created", session_id=str(session.id), challenge_id=str(challenge_id)
        )
        return session

    async def is_valid(
        self, session_id: uuid.UUID, client_fingerprint: bytes, now_ms: int | None = None
    ) -> bool:
        at = now_ms if now_ms is not None else epoch_ms()
        with self._lock:
            session = self._sessions.get(session_id)
        return _check(session, client_fingerprint, at)

    async def invalidate(self, session_id: uuid.UUID) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
        logger.info("session_destroyed", session_id=str(session_id))

    async def purge_expired(self, now_ms: int | None = None) -> int:
        at = now_ms if now_ms is not None else epoch_ms()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.is_expired(at)]
            for sid in expired:
                del self._sessions[sid]
        return len(expired)


class DatabaseSessionStore:
    """SQL-backed session store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @storage_guard("session_create")
    async def create(
        self,
        client_fingerprint: bytes,
        challenge_id: uuid.UUID,
        ttl_ms: int,
        now_ms: int | None = None,
    ) -> Session:
        created_at = now_ms if now_ms is not None else epoch_ms()
        session = _new_session(client_fingerprint, challenge_id, ttl_ms, created_at)
        async with AsyncSession(self._engine) as db:
            db.add(
                PowSessionRecord(
                    id=session.id,
                    expires_at_ms=session.expires_at_ms,
                    created_at_ms=session.created_at_ms,
                    client_fingerprint=session.client_fingerprint,
                    challenge_id=session.challenge_id,
                )
            )
            await db.commit()
        logger.info(
            "session_created", session_id=str(session.id), challenge_id=str(challenge_id)
        )
        return session

    @storage_guard("session_lookup")
    async def is_valid(
        self, session_id: uuid.UUID, client_fingerprint: bytes, now_ms: int | None = None
    ) -> bool:
        at = now_ms if now_ms is not None else epoch_ms()
        async with AsyncSession(self._engine) as db:
            result = await db.execute(
                select(PowSessionRecord).where(
                    col(PowSessionRecord.id) == session_id,
                    col(PowSessionRecord.expires_at_ms) > at,
                )
            )
            record = result.scalars().first()
        if record is None:
            return False
        session = Session(
            id=record.id,
            expires_at_ms=record.expires_at_ms,
            created_at_ms=record.created_at_ms,
            client_fingerprint=record.client_fingerprint,
            challenge_id=record.challenge_id,
        )
        return _check(session, client_fingerprint, at)

    @storage_guard("session_invalidate")
    async def invalidate(self, session_id: uuid.UUID) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                delete(PowSessionRecord).where(col(PowSessionRecord.id) == session_id)
            )
        logger.info("session_destroyed", session_id=str(session_id))

    @storage_guard("session_purge")
    async def purge_expired(self, now_ms: int | None = None) -> int:
        at = now_ms if now_ms is not None else epoch_ms()
        async with self._engine.begin() as conn:
            result = await conn.execute(
                delete(PowSessionRecord).where(col(PowSessionRecord.expires_at_ms) <= at)
            )
        return result.rowcount or 0
