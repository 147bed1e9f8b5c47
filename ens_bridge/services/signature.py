"""
ENS webhook signature verification.

Marketing Cloud signs each callback with HMAC-SHA256 over the raw request
body, keyed with the base64-decoded signature key of the callback, and sends
the base64 digest in the signature header.
"""
import binascii
import hashlib
import hmac
import secrets
from base64 import b64decode, b64encode
from enum import Enum

import structlog

log = structlog.get_logger()


class VerifyResult(str, Enum):
    VALID = "valid"
    MISSING_CONFIG = "missing_config"
    MISSING_SIGNATURE = "missing_signature"
    MISMATCH = "mismatch"


def decode_key(shared_key_b64: str) -> bytes:
    """
    Decode a base64 signature key the way Marketing Cloud issues it.

    Missing padding is restored and URL-safe characters are accepted.
    """
    key = shared_key_b64.strip().replace("-", "+").replace("_", "/")
    key += "=" * (-len(key) % 4)
    return b64decode(key)


def compute_signature(raw_body: bytes, shared_key_b64: str) -> str:
    """
    Compute the base64 HMAC-SHA256 signature of a request body.

    Args:
        raw_body: Exact request body bytes
        shared_key_b64: Base64-encoded signing key

    Returns:
        Base64-encoded digest

    Raises:
        binascii.Error: If the key is not valid base64
    """
    digest = hmac.new(decode_key(shared_key_b64), raw_body, hashlib.sha256).digest()
    return b64encode(digest).decode("ascii")


def verify_signature(
    raw_body: bytes,
    provided_signature: str | None,
    shared_key_b64: str | None,
) -> VerifyResult:
    """
    Check a webhook body against the signature it was delivered with.

    The body must be the bytes received on the wire; a re-serialized JSON
    document will not match.
    """
    if not shared_key_b64 or not shared_key_b64.strip():
        return VerifyResult.MISSING_CONFIG
    if not provided_signature:
        return VerifyResult.MISSING_SIGNATURE

    try:
        expected = compute_signature(raw_body, shared_key_b64)
    except binascii.Error as e:
        log.error("signature.key_invalid", error=str(e))
        return VerifyResult.MISMATCH

    if secrets.compare_digest(expected.encode("ascii"), provided_signature.encode("utf-8")):
        return VerifyResult.VALID
    return VerifyResult.MISMATCH
