"""Client identification from request headers."""

from __future__ import annotations

import hashlib
import ipaddress
from typing import TYPE_CHECKING

from powgate.exceptions import MissingClientHeader
from powgate.models.domain import ClientFingerprint

if TYPE_CHECKING:
    from starlette.requests import Request


def extract_client_ip(request: Request) -> str | None:
    """Return the first X-Forwarded-For address, else the socket peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",", 1)[0].strip()
        try:
            return str(ipaddress.ip_address(first))
        except ValueError:
            pass
    return request.client.host if request.client else None


def extract_fingerprint(request: Request) -> ClientFingerprint:
    """Hash the User-Agent into the weak client identity.

    Raises ``MissingClientHeader`` when the request has no User-Agent.
    """
    user_agent = request.headers.get("user-agent")
    if not user_agent:
        raise MissingClientHeader("User-Agent")
    return ClientFingerprint(
        hash=hashlib.sha256(user_agent.encode()).digest(),
        ip=extract_client_ip(request),
        user_agent=user_agent,
    )
