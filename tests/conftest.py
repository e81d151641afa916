"""Shared test fixtures."""

from __future__ import annotations

import hashlib
import os

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

# Test defaults; must be set before any settings are loaded
os.environ.setdefault("USE_DATABASE", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("COOKIE_SECURE", "false")
os.environ.setdefault("POW_DIFFICULTY_BITS", "8")
os.environ.setdefault("REAPER_ENABLED", "false")

from powgate.client.search import search  # noqa: E402
from powgate.config.settings import get_settings  # noqa: E402
from powgate.models.domain import ClientFingerprint  # noqa: E402
from powgate.storage.database import init_db  # noqa: E402
from powgate.web.dependencies import get_gate_service, get_stores, get_token_signer  # noqa: E402

TEST_USER_AGENT = "pytest-agent/1.0"


def clear_caches() -> None:
    get_settings.cache_clear()
    get_stores.cache_clear()
    get_gate_service.cache_clear()
    get_token_signer.cache_clear()


@pytest.fixture(autouse=True)
def _fresh_state():
    """Every test gets freshly loaded settings and empty in-memory stores."""
    clear_caches()
    yield
    clear_caches()


def _make_fingerprint(user_agent: str = TEST_USER_AGENT, ip: str | None = "127.0.0.1"):
    return ClientFingerprint(
        hash=hashlib.sha256(user_agent.encode()).digest(),
        ip=ip,
        user_agent=user_agent,
    )


def _solve(payload: bytes, bits: int) -> int:
    found = search(payload, bits, start_nonce=0)
    assert found is not None
    return found.nonce


@pytest.fixture()
def make_fingerprint():
    """Factory for client fingerprints with a chosen User-Agent."""
    return _make_fingerprint


@pytest.fixture()
def fingerprint() -> ClientFingerprint:
    return _make_fingerprint()


@pytest.fixture()
def solve_nonce():
    """Deterministically find a nonce for a payload at a given difficulty."""
    return _solve


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with the gate tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def app():
    """Create a fresh app instance for tests."""
    from powgate.web.app import create_app

    return create_app()


@pytest.fixture()
async def client(app):
    """An AsyncClient talking to the app with a fixed User-Agent."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"User-Agent": TEST_USER_AGENT},
    ) as c:
        yield c
