"""Document fingerprinting.

The SHA-256 digest of the notification content is the evidentiary anchor:
any third party holding the same bytes must be able to recompute it, so the
digest is taken over the raw bytes only, with no salt and no metadata.
"""
from __future__ import annotations

import hashlib
import hmac

HASH_ALGORITHM = "sha256"
HASH_HEX_LENGTH = 64


def fingerprint(content: bytes) -> str:
    """Return the lowercase hex SHA-256 digest of *content*."""
    if not isinstance(content, (bytes, bytearray, memoryview)):
        raise TypeError(f"content must be bytes, not {type(content).__name__}")
    return hashlib.sha256(bytes(content)).hexdigest()


def fingerprint_text(text: str) -> str:
    """Fingerprint *text* as UTF-8 bytes."""
    return fingerprint(text.encode("utf-8"))


def verify(content: bytes, expected_hash: str) -> bool:
    """Return whether *content* hashes to *expected_hash*."""
    if not expected_hash or len(expected_hash) != HASH_HEX_LENGTH:
        return False
    return hmac.compare_digest(fingerprint(content), expected_hash.lower())
