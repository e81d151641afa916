"""FastAPI dependency injection and shared gate state."""

from __future__ import annotations

from functools import lru_cache
from typing import NamedTuple

import structlog

from powgate.config.settings import get_settings
from powgate.service.gate import GateConfig, GateService
from powgate.storage.challenges import ChallengeStore, InMemoryChallengeStore
from powgate.storage.rate_limits import InMemoryRateLimiter, RateLimiter
from powgate.storage.sessions import InMemorySessionStore, SessionStore
from powgate.web.auth.tokens import SessionTokenSigner
from powgate.worker.reaper import Reaper

logger = structlog.get_logger(__name__)


class GateStores(NamedTuple):
    challenges: ChallengeStore
    sessions: SessionStore
    rate_limiter: RateLimiter


@lru_cache
def get_stores() -> GateStores:
    """Create the store backends selected by settings (one set per process)."""
    settings = get_settings()
    if settings.use_database:
        from powgate.storage.challenges import DatabaseChallengeStore
        from powgate.storage.database import get_engine
        from powgate.storage.rate_limits import DatabaseRateLimiter
        from powgate.storage.sessions import DatabaseSessionStore

        engine = get_engine()
        logger.info("gate_stores_selected", backend="database")
        return GateStores(
            DatabaseChallengeStore(engine),
            DatabaseSessionStore(engine),
            DatabaseRateLimiter(engine),
        )
    logger.info("gate_stores_selected", backend="memory")
    return GateStores(InMemoryChallengeStore(), InMemorySessionStore(), InMemoryRateLimiter())


@lru_cache
def get_gate_service() -> GateService:
    stores = get_stores()
    return GateService(
        stores.challenges,
        stores.sessions,
        stores.rate_limiter,
        GateConfig.from_settings(get_settings()),
    )


@lru_cache
def get_token_signer() -> SessionTokenSigner:
    return SessionTokenSigner(get_settings().secret_key)


def build_reaper() -> Reaper:
    settings = get_settings()
    stores = get_stores()
    return Reaper(
        stores.challenges,
        stores.sessions,
        stores.rate_limiter,
        interval=settings.reaper_interval_seconds,
        retention_ms=settings.pow_rate_limit_retention_seconds * 1000,
    )
