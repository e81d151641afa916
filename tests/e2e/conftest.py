"""E2E test fixtures: a GateClient wired straight into the ASGI app."""

from __future__ import annotations

import pytest
from httpx import ASGITransport

from powgate.client.api import GateClient


@pytest.fixture()
async def gate_client(app):
    """The Python gate client, talking to an in-process app."""
    async with GateClient(
        "http://test", user_agent="powgate-e2e/1.0", transport=ASGITransport(app=app)
    ) as client:
        yield client
