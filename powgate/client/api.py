"""Async HTTP client for the gate endpoints.

The session travels as an HTTP-only cookie, so one ``GateClient`` must be used
for the whole issue/submit/status sequence: its cookie jar carries the
credential between calls.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import UUID

import httpx
import structlog

from powgate.exceptions import GateApiError

if TYPE_CHECKING:
    from types import TracebackType

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_USER_AGENT = "powgate-client/0.1"

_SUBMIT_ERRORS = {
    409: ("invalid_nonce", "Invalid nonce"),
    410: ("expired", "Challenge expired"),
    429: ("rate_limit", "Rate limit exceeded"),
}


@dataclass(frozen=True)
class IssuedChallenge:
    id: UUID
    payload: bytes
    difficulty_bits: int
    expires_at_ms: int


class GateClient:
    """Thin wrapper over ``httpx.AsyncClient`` speaking the gate's JSON API."""

    def __init__(
        self,
        base_url: str,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"User-Agent": user_agent},
            transport=transport,
        )

    async def issue(self) -> IssuedChallenge:
        """GET /api/pow/challenge."""
        response = await self._send("GET", "/api/pow/challenge")
        if response.status_code == 429:
            raise GateApiError("rate_limit", "Rate limit exceeded", status=429)
        if not response.is_success:
            raise GateApiError(
                "network",
                f"Failed to issue challenge: {response.status_code}",
                status=response.status_code,
            )

        try:
            data = response.json()
            challenge = IssuedChallenge(
                id=UUID(data["powChallengeId"]),
                payload=base64.b64decode(data["powChallengeB64"]),
                difficulty_bits=int(data["powDifficultyBits"]),
                expires_at_ms=int(data["powExpiresAtMs"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise GateApiError("network", f"Malformed challenge response: {exc}") from exc
        logger.debug("challenge_received", difficulty=challenge.difficulty_bits)
        return challenge

    async def submit(
        self,
        challenge_id: UUID,
        nonce: int,
        *,
        elapsed_ms: int | None = None,
        total_hashes: int | None = None,
    ) -> None:
        """POST /api/pow/submit; on success the session cookie is stored in the jar."""
        body: dict[str, Any] = {"challengeId": str(challenge_id), "nonceU32": nonce}
        # Telemetry only
        if elapsed_ms is not None:
            body["elapsedMs"] = elapsed_ms
        if total_hashes is not None:
            body["totalHashes"] = total_hashes

        response = await self._send("POST", "/api/pow/submit", json=body)
        if response.status_code == 204:
            return
        code, message = _SUBMIT_ERRORS.get(
            response.status_code, ("network", f"Submit failed: {response.status_code}")
        )
        raise GateApiError(code, message, status=response.status_code)

    async def check_status(self) -> bool:
        """GET /api/pow/status; anything but an explicit pass is False."""
        try:
            response = await self._send("GET", "/api/pow/status")
        except GateApiError:
            return False
        if not response.is_success:
            return False
        try:
            return response.json().get("passed") is True
        except ValueError:
            return False

    async def logout(self) -> None:
        """POST /api/pow/logout."""
        await self._send("POST", "/api/pow/logout")

    async def close(self) -> None:
        await self._client.aclose()

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("gate_request_error", method=method, url=url, error=str(exc))
            raise GateApiError("network", str(exc)) from exc

    async def __aenter__(self) -> GateClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
