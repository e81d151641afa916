"""E2E: issue -> search -> submit -> status -> logout through the real client."""

from __future__ import annotations

import pytest

from powgate.client.cli import solve
from powgate.core import hashing
from powgate.exceptions import GateApiError


@pytest.mark.e2e
class TestFullFlow:
    async def test_solve_in_process(self, gate_client) -> None:
        assert await gate_client.check_status() is False

        found = await solve(gate_client, in_process=True)
        assert found.total_hashes >= 1
        assert await gate_client.check_status() is True

        await gate_client.logout()
        assert await gate_client.check_status() is False

    async def test_solve_in_worker_process(self, gate_client) -> None:
        await solve(gate_client)
        assert await gate_client.check_status() is True

    async def test_resubmitting_is_rejected(self, gate_client) -> None:
        challenge = await gate_client.issue()
        nonce = next(
            n
            for n in range(hashing.NONCE_SPACE)
            if hashing.verify(challenge.payload, n, challenge.difficulty_bits)
        )
        await gate_client.submit(challenge.id, nonce)

        with pytest.raises(GateApiError) as exc_info:
            await gate_client.submit(challenge.id, nonce)
        assert exc_info.value.code == "invalid_nonce"

    async def test_each_challenge_is_fresh(self, gate_client) -> None:
        first = await gate_client.issue()
        second = await gate_client.issue()
        assert first.id != second.id
        assert first.payload != second.payload
