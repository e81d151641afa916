"""Signed, opaque session tokens carried in the gate cookie."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import uuid

_ID_BYTES = 16
_SIG_BYTES = 32


class SessionTokenSigner:
    """Encodes a session UUID with an HMAC-SHA256 tag.

    The token is ``base64url(session_id || HMAC(secret, session_id))``. The
    signature only keeps clients from guessing identifiers; validity is
    always decided by the session store.
    """

    def __init__(self, secret_key: str) -> None:
        self._secret = secret_key.encode()

    def sign(self, session_id: uuid.UUID) -> str:
        """Create the cookie value for a session."""
        raw = session_id.bytes
        return base64.urlsafe_b64encode(raw + self._sign(raw)).decode().rstrip("=")

    def verify(self, token: str | None) -> uuid.UUID | None:
        """Return the session id inside ``token``, or None if it is malformed or forged."""
        if not token:
            return None
        try:
            data = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
        except (binascii.Error, ValueError):
            return None
        if len(data) != _ID_BYTES + _SIG_BYTES:
            return None

        raw, signature = data[:_ID_BYTES], data[_ID_BYTES:]
        if not hmac.compare_digest(signature, self._sign(raw)):
            return None
        return uuid.UUID(bytes=raw)

    def _sign(self, data: bytes) -> bytes:
        """Create HMAC signature for a session id."""
        return hmac.new(self._secret, data, hashlib.sha256).digest()
