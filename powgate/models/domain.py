"""Gate records exchanged between stores, the service and the transport layer."""

from __future__ import annotations

import time
import uuid

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from powgate.core.hashing import PAYLOAD_BYTES, validate_difficulty

FINGERPRINT_BYTES = 32


def epoch_ms() -> int:
    """Return the current wall-clock time as integer epoch milliseconds."""
    return time.time_ns() // 1_000_000


class ClientFingerprint(BaseModel):
    """Weak client identity: SHA-256 of the User-Agent plus the advisory client IP."""

    model_config = ConfigDict(frozen=True)

    hash: bytes
    ip: str | None = None
    user_agent: str | None = None

    @field_validator("hash")
    @classmethod
    def _check_hash(cls, value: bytes) -> bytes:
        if len(value) != FINGERPRINT_BYTES:
            msg = f"fingerprint hash must be {FINGERPRINT_BYTES} bytes"
            raise ValueError(msg)
        return value


class Challenge(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    payload: bytes
    difficulty_bits: int
    expires_at_ms: int
    created_at_ms: int
    client_fingerprint: bytes
    client_ip: str | None = None

    @field_validator("payload")
    @classmethod
    def _check_payload(cls, value: bytes) -> bytes:
        if len(value) != PAYLOAD_BYTES:
            msg = f"challenge payload must be exactly {PAYLOAD_BYTES} bytes"
            raise ValueError(msg)
        return value

    @field_validator("difficulty_bits")
    @classmethod
    def _check_difficulty(cls, value: int) -> int:
        return validate_difficulty(value)

    def is_expired(self, at_ms: int) -> bool:
        return self.expires_at_ms <= at_ms


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    expires_at_ms: int
    created_at_ms: int
    client_fingerprint: bytes
    challenge_id: uuid.UUID  # audit only

    @model_validator(mode="after")
    def _check_lifetime(self) -> Session:
        if self.expires_at_ms <= self.created_at_ms:
            msg = "session must expire after it is created"
            raise ValueError(msg)
        return self

    def is_expired(self, at_ms: int) -> bool:
        return self.expires_at_ms <= at_ms


class ReapResult(BaseModel):
    """Row counts removed by one reaper sweep."""

    challenges: int = 0
    sessions: int = 0
    rate_windows: int = 0

    @property
    def total(self) -> int:
        return self.challenges + self.sessions + self.rate_windows
