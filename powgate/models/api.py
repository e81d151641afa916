"""API request/response schemas for the gate endpoints (camelCase on the wire)."""

import uuid

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from powgate.core.hashing import NONCE_SPACE


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChallengeResponse(_CamelModel):
    pow_challenge_id: uuid.UUID
    pow_challenge_b64: str
    pow_difficulty_bits: int
    pow_expires_at_ms: int


class SubmitRequest(_CamelModel):
    challenge_id: uuid.UUID
    nonce_u32: int = Field(ge=0, lt=NONCE_SPACE)
    # Telemetry only; never used for verification
    elapsed_ms: int | None = None
    total_hashes: int | None = None


class StatusResponse(BaseModel):
    passed: bool
