"""Gate protocol orchestration: issue, submit, status, logout.

Per challenge: Issued -> Consumed on a verified solution, or Expired/Discarded.
A submission consumes its challenge before the nonce is checked, so one
issued challenge gets exactly one verification attempt.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from powgate.core import hashing
from powgate.exceptions import InvalidNonce, RateLimited
from powgate.models.domain import Challenge, ClientFingerprint, Session, epoch_ms
from powgate.types import RateDecision

if TYPE_CHECKING:
    from powgate.config.settings import Settings
    from powgate.storage.challenges import ChallengeStore
    from powgate.storage.rate_limits import RateLimiter
    from powgate.storage.sessions import SessionStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GateConfig:
    """Protocol knobs; all durations in milliseconds."""

    difficulty_bits: int = 18
    challenge_ttl_ms: int = 120_000
    session_ttl_ms: int = 3_600_000
    rate_limit_max_requests: int = 10
    rate_limit_window_ms: int = 60_000

    def __post_init__(self) -> None:
        hashing.validate_difficulty(self.difficulty_bits)
        if self.challenge_ttl_ms <= 0 or self.session_ttl_ms <= 0:
            msg = "challenge and session TTLs must be positive"
            raise ValueError(msg)

    @classmethod
    def from_settings(cls, settings: Settings) -> GateConfig:
        return cls(
            difficulty_bits=settings.pow_difficulty_bits,
            challenge_ttl_ms=settings.pow_challenge_ttl_seconds * 1000,
            session_ttl_ms=settings.pow_session_ttl_seconds * 1000,
            rate_limit_max_requests=settings.pow_rate_limit_max_requests,
            rate_limit_window_ms=settings.pow_rate_limit_window_seconds * 1000,
        )


class GateService:
    """The only component the transport layer talks to."""

    def __init__(
        self,
        challenges: ChallengeStore,
        sessions: SessionStore,
        rate_limiter: RateLimiter,
        config: GateConfig | None = None,
    ) -> None:
        self._challenges = challenges
        self._sessions = sessions
        self._rate_limiter = rate_limiter
        self._config = config or GateConfig()

    @property
    def config(self) -> GateConfig:
        return self._config

    async def issue_challenge(
        self, fingerprint: ClientFingerprint, now_ms: int | None = None
    ) -> Challenge:
        """Issue a new challenge unless the client is over its issuance budget."""
        at = now_ms if now_ms is not None else epoch_ms()
        decision = await self._rate_limiter.check_and_increment(
            fingerprint.hash,
            at,
            self._config.rate_limit_max_requests,
            self._config.rate_limit_window_ms,
        )
        if decision is RateDecision.THROTTLED:
            raise RateLimited

        challenge = await self._challenges.issue(
            self._config.difficulty_bits,
            fingerprint.hash,
            fingerprint.ip,
            self._config.challenge_ttl_ms,
            now_ms=at,
        )
        logger.info(
            "challenge_issued",
            challenge_id=str(challenge.id),
            difficulty=challenge.difficulty_bits,
            expires_at_ms=challenge.expires_at_ms,
        )
        return challenge

    async def submit_solution(
        self,
        challenge_id: uuid.UUID,
        nonce: int,
        fingerprint: ClientFingerprint,
        now_ms: int | None = None,
        *,
        elapsed_ms: int | None = None,
        total_hashes: int | None = None,
    ) -> Session:
        """Redeem a solved challenge for a session.

        Raises ``InvalidNonce`` for unknown/already-consumed challenges and for
        wrong nonces alike, ``ExpiredChallenge`` when the challenge outlived
        its TTL.
        """
        if elapsed_ms is not None and total_hashes is not None:
            # Client-reported telemetry, never used for verification.
            logger.info(
                "submit_telemetry",
                challenge_id=str(challenge_id),
                elapsed_ms=elapsed_ms,
                total_hashes=total_hashes,
            )

        at = now_ms if now_ms is not None else epoch_ms()
        challenge = await self._challenges.consume_if_valid(challenge_id, now_ms=at)
        if challenge is None:
            raise InvalidNonce

        try:
            solved = hashing.verify(challenge.payload, nonce, challenge.difficulty_bits)
        except ValueError:
            solved = False
        if not solved:
            logger.warning("invalid_nonce", challenge_id=str(challenge_id), nonce=nonce)
            raise InvalidNonce

        session = await self._sessions.create(
            fingerprint.hash, challenge.id, self._config.session_ttl_ms, now_ms=at
        )
        logger.info(
            "pow_verified",
            challenge_id=str(challenge_id),
            session_id=str(session.id),
        )
        return session

    async def check_status(
        self,
        session_id: uuid.UUID | None,
        fingerprint: ClientFingerprint,
        now_ms: int | None = None,
    ) -> bool:
        """Return True only if a live session bound to ``fingerprint`` exists. Never raises."""
        if session_id is None:
            return False
        try:
            return await self._sessions.is_valid(session_id, fingerprint.hash, now_ms=now_ms)
        except Exception as exc:
            logger.error("session_check_failed", session_id=str(session_id), error=str(exc))
            return False

    async def logout(self, session_id: uuid.UUID) -> None:
        await self._sessions.invalidate(session_id)
