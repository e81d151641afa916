"""Gate routes: challenge issuance, solution submit, status, logout."""

from __future__ import annotations

import base64

import structlog
from fastapi import APIRouter, Depends, Request, Response

from powgate.config.settings import Settings, get_settings
from powgate.exceptions import MissingClientHeader
from powgate.models.api import ChallengeResponse, StatusResponse, SubmitRequest
from powgate.service.gate import GateService
from powgate.web.auth.tokens import SessionTokenSigner
from powgate.web.client import extract_fingerprint
from powgate.web.dependencies import get_gate_service, get_token_signer

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/pow", tags=["pow"])


@router.get("/challenge", response_model=ChallengeResponse)
async def issue_challenge(
    request: Request,
    gate: GateService = Depends(get_gate_service),
) -> ChallengeResponse:
    """Issue a fresh challenge; the raw payload travels base64-encoded."""
    fingerprint = extract_fingerprint(request)
    challenge = await gate.issue_challenge(fingerprint)
    return ChallengeResponse(
        pow_challenge_id=challenge.id,
        pow_challenge_b64=base64.b64encode(challenge.payload).decode(),
        pow_difficulty_bits=challenge.difficulty_bits,
        pow_expires_at_ms=challenge.expires_at_ms,
    )


@router.post("/submit", status_code=204)
async def submit_solution(
    body: SubmitRequest,
    request: Request,
    gate: GateService = Depends(get_gate_service),
    signer: SessionTokenSigner = Depends(get_token_signer),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Verify a nonce and set the session cookie on success."""
    fingerprint = extract_fingerprint(request)
    session = await gate.submit_solution(
        body.challenge_id,
        body.nonce_u32,
        fingerprint,
        elapsed_ms=body.elapsed_ms,
        total_hashes=body.total_hashes,
    )

    response = Response(status_code=204)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=signer.sign(session.id),
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_same_site,
        max_age=settings.pow_session_ttl_seconds,
        path="/",
    )
    return response


@router.get("/status", response_model=StatusResponse)
async def check_status(
    request: Request,
    gate: GateService = Depends(get_gate_service),
    signer: SessionTokenSigner = Depends(get_token_signer),
    settings: Settings = Depends(get_settings),
) -> StatusResponse:
    """Report whether the caller holds a valid gate session. Never errors."""
    session_id = signer.verify(request.cookies.get(settings.session_cookie_name))
    if session_id is None:
        return StatusResponse(passed=False)
    try:
        fingerprint = extract_fingerprint(request)
    except MissingClientHeader:
        return StatusResponse(passed=False)
    return StatusResponse(passed=await gate.check_status(session_id, fingerprint))


@router.post("/logout", status_code=204)
async def logout(
    request: Request,
    gate: GateService = Depends(get_gate_service),
    signer: SessionTokenSigner = Depends(get_token_signer),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Invalidate the caller's session (if any) and clear the cookie."""
    session_id = signer.verify(request.cookies.get(settings.session_cookie_name))
    if session_id is not None:
        await gate.logout(session_id)

    response = Response(status_code=204)
    response.delete_cookie(key=settings.session_cookie_name, path="/", httponly=True)
    logger.info("pow_session_logged_out")
    return response
