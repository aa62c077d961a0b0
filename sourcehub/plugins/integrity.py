"""Artifact integrity verification (SHA-256)."""

import hashlib
import hmac


def sha256_hex(content: bytes) -> str:
    """Hex SHA-256 digest of content."""
    return hashlib.sha256(content).hexdigest()


def verify(content: bytes, expected_digest_hex: str) -> bool:
    """Check content against an expected hex SHA-256 digest.

    The comparison is case-insensitive and constant-time. An empty or missing
    expected digest never verifies.
    """
    expected = (expected_digest_hex or "").strip().lower()
    if not expected or not expected.isascii():
        return False
    return hmac.compare_digest(sha256_hex(content), expected)
