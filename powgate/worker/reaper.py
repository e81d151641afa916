"""Periodic sweep of expired challenges, expired sessions and stale rate windows."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from powgate.models.domain import ReapResult, epoch_ms

if TYPE_CHECKING:
    from powgate.storage.challenges import ChallengeStore
    from powgate.storage.rate_limits import RateLimiter
    from powgate.storage.sessions import SessionStore

logger = structlog.get_logger(__name__)

# Rate windows older than this are dropped (1 hour)
DEFAULT_RETENTION_MS = 3_600_000


class Reaper:
    """Garbage collector for the three gate stores.

    Missing a sweep is harmless: expired records are also rejected at the
    point of use. The reaper only bounds storage growth.
    """

    def __init__(
        self,
        challenges: ChallengeStore,
        sessions: SessionStore,
        rate_limiter: RateLimiter,
        interval: float = 300.0,
        retention_ms: int = DEFAULT_RETENTION_MS,
    ) -> None:
        self._challenges = challenges
        self._sessions = sessions
        self._rate_limiter = rate_limiter
        self._interval = interval
        self._retention_ms = retention_ms
        self._stopped = asyncio.Event()

    async def run_once(self, now_ms: int | None = None) -> ReapResult:
        """Run one sweep and return how many records each store dropped."""
        at = now_ms if now_ms is not None else epoch_ms()
        result = ReapResult(
            challenges=await self._challenges.purge_expired(now_ms=at),
            sessions=await self._sessions.purge_expired(now_ms=at),
            rate_windows=await self._rate_limiter.purge_before(at - self._retention_ms),
        )
        logger.info(
            "reaper_sweep_completed",
            challenges=result.challenges,
            sessions=result.sessions,
            rate_limits=result.rate_windows,
        )
        return result

    async def run(self) -> None:
        """Sweep every ``interval`` seconds until ``stop()`` is called."""
        logger.info("reaper_started", interval=self._interval)
        while not self._stopped.is_set():
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("reaper_sweep_failed")
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self._interval)
            except TimeoutError:
                continue
            except asyncio.CancelledError:
                break
        logger.info("reaper_stopped")

    def stop(self) -> None:
        """Ask the loop to exit after the current sweep."""
        logger.info("reaper_shutdown_requested")
        self._stopped.set()
