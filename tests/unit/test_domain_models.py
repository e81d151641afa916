"""Unit tests for gate domain records."""

from __future__ import annotations

import uuid

import pytest
from pydantic import ValidationError

from powgate.models.api import ChallengeResponse, SubmitRequest
from powgate.models.domain import Challenge, ClientFingerprint, ReapResult, Session


def _challenge(**overrides: object) -> Challenge:
    fields: dict[str, object] = {
        "id": uuid.uuid4(),
        "payload": bytes(32),
        "difficulty_bits": 18,
        "expires_at_ms": 2_000,
        "created_at_ms": 1_000,
        "client_fingerprint": bytes(32),
    }
    fields.update(overrides)
    return Challenge(**fields)


@pytest.mark.unit
class TestChallenge:
    def test_valid(self) -> None:
        challenge = _challenge()
        assert challenge.difficulty_bits == 18
        assert challenge.client_ip is None

    @pytest.mark.parametrize("size", [0, 31, 33])
    def test_payload_must_be_32_bytes(self, size: int) -> None:
        with pytest.raises(ValidationError):
            _challenge(payload=bytes(size))

    @pytest.mark.parametrize("bits", [0, 33])
    def test_difficulty_range(self, bits: int) -> None:
        with pytest.raises(ValidationError):
            _challenge(difficulty_bits=bits)

    def test_expiry_boundary(self) -> None:
        challenge = _challenge()
        assert not challenge.is_expired(1_999)
        assert challenge.is_expired(2_000)

    def test_frozen(self) -> None:
        challenge = _challenge()
        with pytest.raises(ValidationError):
            challenge.difficulty_bits = 1  # type: ignore[misc]


@pytest.mark.unit
class TestSession:
    def test_must_expire_after_creation(self) -> None:
        with pytest.raises(ValidationError):
            Session(
                id=uuid.uuid4(),
                expires_at_ms=1_000,
                created_at_ms=1_000,
                client_fingerprint=bytes(32),
                challenge_id=uuid.uuid4(),
            )

    def test_valid_until_expiry(self) -> None:
        session = Session(
            id=uuid.uuid4(),
            expires_at_ms=2_000,
            created_at_ms=1_000,
            client_fingerprint=bytes(32),
            challenge_id=uuid.uuid4(),
        )
        assert not session.is_expired(1_999)
        assert session.is_expired(2_000)


@pytest.mark.unit
class TestClientFingerprint:
    def test_hash_must_be_32_bytes(self) -> None:
        with pytest.raises(ValidationError):
            ClientFingerprint(hash=b"short")


@pytest.mark.unit
class TestReapResult:
    def test_total(self) -> None:
        assert ReapResult(challenges=2, sessions=3, rate_windows=4).total == 9


@pytest.mark.unit
class TestApiSchemas:
    def test_challenge_response_is_camel_case(self) -> None:
        body = ChallengeResponse(
            pow_challenge_id=uuid.UUID(int=1),
            pow_challenge_b64="AA==",
            pow_difficulty_bits=18,
            pow_expires_at_ms=123,
        ).model_dump(by_alias=True, mode="json")
        assert set(body) == {
            "powChallengeId",
            "powChallengeB64",
            "powDifficultyBits",
            "powExpiresAtMs",
        }

    def test_submit_request_accepts_camel_case(self) -> None:
        challenge_id = uuid.uuid4()
        req = SubmitRequest.model_validate(
            {"challengeId": str(challenge_id), "nonceU32": 7, "elapsedMs": 10}
        )
        assert req.challenge_id == challenge_id
        assert req.nonce_u32 == 7
        assert req.elapsed_ms == 10
        assert req.total_hashes is None

    @pytest.mark.parametrize("nonce", [-1, 2**32])
    def test_submit_request_rejects_nonce_outside_u32(self, nonce: int) -> None:
        with pytest.raises(ValidationError):
            SubmitRequest.model_validate({"challengeId": str(uuid.uuid4()), "nonceU32": nonce})
