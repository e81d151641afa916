"""Route dependency that admits only callers holding a valid gate session."""

from __future__ import annotations

import structlog
from fastapi import Depends, HTTPException, Request

from powgate.config.settings import Settings, get_settings
from powgate.exceptions import MissingClientHeader
from powgate.service.gate import GateService
from powgate.web.auth.tokens import SessionTokenSigner
from powgate.web.client import extract_fingerprint
from powgate.web.dependencies import get_gate_service, get_token_signer

logger = structlog.get_logger(__name__)


async def require_pow_session(
    request: Request,
    gate: GateService = Depends(get_gate_service),
    signer: SessionTokenSigner = Depends(get_token_signer),
    settings: Settings = Depends(get_settings),
) -> None:
    """FastAPI dependency: 401 with ``X-PoW-Required`` unless the gate was passed."""
    session_id = signer.verify(request.cookies.get(settings.session_cookie_name))
    passed = False
    if session_id is not None:
        try:
            fingerprint = extract_fingerprint(request)
        except MissingClientHeader:
            fingerprint = None
        if fingerprint is not None:
            passed = await gate.check_status(session_id, fingerprint)
    else:
        logger.debug("pow_session_cookie_missing")

    if not passed:
        raise HTTPException(
            status_code=401,
            detail="pow_required",
            headers={"X-PoW-Required": "true"},
        )
