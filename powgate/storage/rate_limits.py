"""Fixed-window issuance counters keyed by client fingerprint.

Each request increments the counter of the window containing ``now``
(``floor(now / window) * window``). Throttled requests still increment, so a
client that keeps hammering stays throttled until the window rolls over.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from sqlalchemy import delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import col

from powgate.models.database import PowRateLimitRecord
from powgate.storage.guard import storage_guard
from powgate.types import RateDecision

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class RateLimiter(Protocol):
    async def check_and_increment(
        self, client_fingerprint: bytes, now_ms: int, limit: int, window_ms: int
    ) -> RateDecision: ...

    async def purge_before(self, cutoff_ms: int) -> int: ...


def window_start(now_ms: int, window_ms: int) -> int:
    """Return the start of the fixed window containing ``now_ms``."""
    if window_ms <= 0:
        msg = f"window size must be positive, got {window_ms}"
        raise ValueError(msg)
    return (now_ms // window_ms) * window_ms


def _decide(count: int, limit: int, client_fingerprint: bytes) -> RateDecision:
    if count > limit:
        logger.warning(
            "rate_limit_exceeded",
            fingerprint=client_fingerprint.hex()[:16],
            count=count,
            max=limit,
        )
        return RateDecision.THROTTLED
    return RateDecision.ALLOWED


class InMemoryRateLimiter:
    """Process-local window counters."""

    def __init__(self) -> None:
        self._hits: dict[tuple[bytes, int], int] = defaultdict(int)
        self._lock = threading.Lock()

    async def check_and_increment(
        self, client_fingerprint: bytes, now_ms: int, limit: int, window_ms: int
    ) -> RateDecision:
        key = (client_fingerprint, window_start(now_ms, window_ms))
        with self._lock:
            self._hits[key] += 1
            count = self._hits[key]
        return _decide(count, limit, client_fingerprint)

    async def purge_before(self, cutoff_ms: int) -> int:
        with self._lock:
            stale = [key for key in self._hits if key[1] < cutoff_ms]
            for key in stale:
                del self._hits[key]
        return len(stale)


class DatabaseRateLimiter:
    """SQL-backed window counters using a single upsert per request."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    def _upsert(self, client_fingerprint: bytes, start_ms: int) -> Any:
        dialect = self._engine.dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            msg = f"rate limiter does not support the {dialect!r} dialect"
            raise NotImplementedError(msg)

        table = PowRateLimitRecord.__table__
        stmt = insert(table).values(
            client_fingerprint=client_fingerprint,
            window_start_ms=start_ms,
            request_count=1,
        )
        return stmt.on_conflict_do_update(
            index_elements=[table.c.client_fingerprint, table.c.window_start_ms],
            set_={"request_count": table.c.request_count + 1},
        ).returning(table.c.request_count)

    @storage_guard("rate_limit_increment")
    async def check_and_increment(
        self, client_fingerprint: bytes, now_ms: int, limit: int, window_ms: int
    ) -> RateDecision:
        stmt = self._upsert(client_fingerprint, window_start(now_ms, window_ms))
        async with self._engine.begin() as conn:
            result = await conn.execute(stmt)
            count = int(result.scalar_one())
        return _decide(count, limit, client_fingerprint)

    @storage_guard("rate_limit_purge")
    async def purge_before(self, cutoff_ms: int) -> int:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                delete(PowRateLimitRecord).where(
                    col(PowRateLimitRecord.window_start_ms) < cutoff_ms
                )
            )
        return result.rowcount or 0
