"""SQLModel database table models.

Timestamps are epoch milliseconds in BIGINT columns, the same clock the
domain models use.
"""

from __future__ import annotations

import uuid

from sqlalchemy import BigInteger
from sqlmodel import Field, SQLModel


class PowChallengeRecord(SQLModel, table=True):
    __tablename__ = "pow_challenges"

    id: uuid.UUID = Field(primary_key=True)
    payload: bytes
    difficulty_bits: int
    expires_at_ms: int = Field(sa_type=BigInteger, index=True)
    created_at_ms: int = Field(sa_type=BigInteger)
    client_fingerprint: bytes = Field(index=True)
    client_ip: str | None = None


class PowSessionRecord(SQLModel, table=True):
    __tablename__ = "pow_sessions"

    id: uuid.UUID = Field(primary_key=True)
    expires_at_ms: int = Field(sa_type=BigInteger, index=True)
    created_at_ms: int = Field(sa_type=BigInteger)
    client_fingerprint: bytes = Field(index=True)
    challenge_id: uuid.UUID  # originating challenge, audit only


class PowRateLimitRecord(SQLModel, table=True):
    __tablename__ = "pow_rate_limits"

    client_fingerprint: bytes = Field(primary_key=True)
    window_start_ms: int = Field(sa_type=BigInteger, primary_key=True, index=True)
    request_count: int = Field(default=1)
