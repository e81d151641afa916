"""Proof-of-work hash primitives shared by server verification and client search.

The digest is ``SHA-256(payload || nonce_be32)`` where ``payload`` is the
32 random challenge bytes and ``nonce_be32`` is the unsigned 32-bit nonce in
big-endian order. A digest meets a difficulty of ``bits`` when its first
``bits`` bits are all zero. Both sides must agree on this bit for bit.
"""

from __future__ import annotations

import hashlib

PAYLOAD_BYTES = 32
DIGEST_BYTES = 32
NONCE_BYTES = 4
NONCE_SPACE = 2**32
MIN_DIFFICULTY_BITS = 1
MAX_DIFFICULTY_BITS = 32


def validate_difficulty(bits: int) -> int:
    """Return ``bits`` unchanged if it is a usable difficulty, else raise ``ValueError``."""
    if not MIN_DIFFICULTY_BITS <= bits <= MAX_DIFFICULTY_BITS:
        msg = (
            f"difficulty must be within [{MIN_DIFFICULTY_BITS}, {MAX_DIFFICULTY_BITS}], "
            f"got {bits}"
        )
        raise ValueError(msg)
    return bits


def encode_nonce(nonce: int) -> bytes:
    """Encode an unsigned 32-bit nonce as 4 big-endian bytes."""
    if not 0 <= nonce < NONCE_SPACE:
        msg = f"nonce must be an unsigned 32-bit integer, got {nonce}"
        raise ValueError(msg)
    return nonce.to_bytes(NONCE_BYTES, "big")


def digest(payload: bytes, nonce: int) -> bytes:
    """Compute the proof-of-work digest for a challenge payload and candidate nonce."""
    return hashlib.sha256(payload + encode_nonce(nonce)).digest()


def meets_difficulty(value: bytes, bits: int) -> bool:
    """Return True if ``value`` starts with at least ``bits`` zero bits.

    Whole bytes are compared first; when ``bits`` is not a multiple of 8 the
    top ``bits % 8`` bits of the following byte are masked and tested.
    """
    validate_difficulty(bits)
    full, rem = divmod(bits, 8)
    if any(value[:full]):
        return False
    if rem == 0:
        return True
    mask = (0xFF << (8 - rem)) & 0xFF
    return value[full] & mask == 0


def count_leading_zero_bits(value: bytes) -> int:
    """Count the leading zero bits of ``value``."""
    zeros = 0
    for byte in value:
        if byte == 0:
            zeros += 8
            continue
        zeros += 8 - byte.bit_length()
        break
    return zeros


def verify(payload: bytes, nonce: int, bits: int) -> bool:
    """Return True if ``nonce`` solves the challenge ``payload`` at ``bits`` difficulty."""
    return meets_difficulty(digest(payload, nonce), bits)
