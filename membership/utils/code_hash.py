"""Keyed hashing for one-time passcodes so plaintext codes are never stored."""

import hashlib
import hmac


def hash_code(identity: str, code: str, secret: str) -> str:
    """
    Compute the stored digest of an OTP code.

    The identity is mixed into the key so the same code issued to two
    phones never produces the same digest.

    Args:
        identity: Phone number the code was issued to
        code: Plaintext numeric code
        secret: Server-side hashing secret

    Returns:
        Hex-encoded HMAC-SHA256 digest
    """
    key = f"{identity}:{secret}".encode("utf-8")
    return hmac.new(key, code.encode("utf-8"), hashlib.sha256).hexdigest()


def code_matches(identity: str, code: str, secret: str, expected_hash: str) -> bool:
    """Constant-time comparison of a submitted code against a stored digest."""
    return hmac.compare_digest(hash_code(identity, code, secret), expected_hash)
