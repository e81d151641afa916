"""Challenge storage: issue, atomic consume, expiry sweep.

Challenges are one-time-use. ``consume_if_valid`` looks the record up and
deletes it in the same step, so two submissions racing on one identifier can
never both observe it. Expired records are deleted on the same path and
reported as ``ExpiredChallenge``.
"""

from __future__ import annotations

import secrets
import threading
import uuid
from typing import TYPE_CHECKING, Protocol

import structlog
from sqlalchemy import delete
from sqlmodel import col
from sqlmodel.ext.asyncio.session import AsyncSession

from powgate.core.hashing import PAYLOAD_BYTES
from powgate.exceptions import ExpiredChallenge
from powgate.models.database import PowChallengeRecord
from powgate.models.domain import Challenge, epoch_ms
from powgate.storage.guard import storage_guard

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class ChallengeStore(Protocol):
    async def issue(
        self,
        difficulty_bits: int,
        client_fingerprint: bytes,
        client_ip: str | None,
        ttl_ms: int,
        now_ms: int | None = None,
    ) -> Challenge: ...

    async def consume_if_valid(
        self, challenge_id: uuid.UUID, now_ms: int | None = None
    ) -> Challenge | None: ...

    async def purge_expired(self, now_ms: int | None = None) -> int: ...


def new_challenge(
    difficulty_bits: int,
    client_fingerprint: bytes,
    client_ip: str | None,
    ttl_ms: int,
    issued_at_ms: int,
) -> Challenge:
    """Build a fresh challenge with a random payload and identifier."""
    return Challenge(
        id=uuid.uuid4(),
        payload=secrets.token_bytes(PAYLOAD_BYTES),
        difficulty_bits=difficulty_bits,
        expires_at_ms=issued_at_ms + ttl_ms,
        created_at_ms=issued_at_ms,
        client_fingerprint=client_fingerprint,
        client_ip=client_ip,
    )


class InMemoryChallengeStore:
    """Process-local challenge store guarded by a single lock.

    The lock is held across each lookup-and-delete without awaiting, so the
    store is atomic for both threads and coroutines.
    """

    def __init__(self) -> None:
        self._store: dict[uuid.UUID, Challenge] = {}
        self._lock = threading.Lock()

    async def issue(
        self,
        difficulty_bits: int,
        client_fingerprint: bytes,
        client_ip: str | None,
        ttl_ms: int,
        now_ms: int | None = None,
    ) -> Challenge:
        issued_at = now_ms if now_ms is not None else epoch_ms()
        challenge = new_challenge(difficulty_bits, client_fingerprint, client_ip, ttl_ms, issued_at)
        with self._lock:
            self._store[challenge.id] = challenge
        logger.info(
            "challenge_created",
            challenge_id=str(challenge.id),
            difficulty=difficulty_bits,
        )
        return challenge

    async def consume_if_valid(
        self, challenge_id: uuid.UUID, now_ms: int | None = None
    ) -> Challenge | None:
        at = now_ms if now_ms is not None else epoch_ms()
        with self._lock:
            challenge = self._store.pop(challenge_id, None)
        if challenge is None:
            logger.warning("challenge_not_found", challenge_id=str(challenge_id))
            return None
        if challenge.is_expired(at):
            logger.warning("challenge_expired", challenge_id=str(challenge_id))
            raise ExpiredChallenge(str(challenge_id))
        logger.info("challenge_consumed", challenge_id=str(challenge_id))
        return challenge

    async def purge_expired(self, now_ms: int | None = None) -> int:
        at = now_ms if now_ms is not None else epoch_ms()
        with self._lock:
            expired = [cid for cid, c in self._store.items() if c.is_expired(at)]
            for cid in expired:
                del self._store[cid]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


class DatabaseChallengeStore:
    """SQL-backed challenge store; consumption is a single ``DELETE ... RETURNING``."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @storage_guard("challenge_issue")
    async def issue(
        self,
        difficulty_bits: int,
        client_fingerprint: bytes,
        client_ip: str | None,
        ttl_ms: int,
        now_ms: int | None = None,
    ) -> Challenge:
        issued_at = now_ms if now_ms is not None else epoch_ms()
        challenge = new_challenge(difficulty_bits, client_fingerprint, client_ip, ttl_ms, issued_at)
        async with AsyncSession(self._engine) as session:
            session.add(
                PowChallengeRecord(
                    id=challenge.id,
                    payload=challenge.payload,
                    difficulty_bits=challenge.difficulty_bits,
                    expires_at_ms=challenge.expires_at_ms,
                    created_at_ms=challenge.created_at_ms,
                    client_fingerprint=challenge.client_fingerprint,
                    client_ip=challenge.client_ip,
                )
            )
            await session.commit()
        logger.info(
            "challenge_created",
            challenge_id=str(challenge.id),
            difficulty=difficulty_bits,
        )
        return challenge

    @storage_guard("challenge_consume")
    async def consume_if_valid(
        self, challenge_id: uuid.UUID, now_ms: int | None = None
    ) -> Challenge | None:
        at = now_ms if now_ms is not None else epoch_ms()
        table = PowChallengeRecord.__table__
        async with self._engine.begin() as conn:
            result = await conn.execute(
                delete(PowChallengeRecord)
                .where(
                    col(PowChallengeRecord.id) == challenge_id,
                    col(PowChallengeRecord.expires_at_ms) > at,
                )
                .returning(*table.columns)
            )
            row = result.first()
            expired = False
            if row is None:
                # Whatever is left under this id is past its expiry.
                leftover = await conn.execute(
                    delete(PowChallengeRecord).where(col(PowChallengeRecord.id) == challenge_id)
                )
                expired = bool(leftover.rowcount)

        if row is not None:
            logger.info("challenge_consumed", challenge_id=str(challenge_id))
            return Challenge(
                id=row.id,
                payload=row.payload,
                difficulty_bits=row.difficulty_bits,
                expires_at_ms=row.expires_at_ms,
                created_at_ms=row.created_at_ms,
                client_fingerprint=row.client_fingerprint,
                client_ip=row.client_ip,
            )
        if expired:
            logger.warning("challenge_expired", challenge_id=str(challenge_id))
            raise ExpiredChallenge(str(challenge_id))
        logger.warning("challenge_not_found", challenge_id=str(challenge_id))
        return None

    @storage_guard("challenge_purge")
    async def purge_expired(self, now_ms: int | None = None) -> int:
        at = now_ms if now_ms is not None else epoch_ms()
        async with self._engine.begin() as conn:
            result = await conn.execute(
                delete(PowChallengeRecord).where(col(PowChallengeRecord.expires_at_ms) <= at)
            )
        return result.rowcount or 0
