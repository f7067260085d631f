import hashlib
import hmac
import json
from typing import Any, Union

SIGNATURE_PREFIX = "sha256="
SIGNATURE_HEADER = "X-Plugin-Signature"

Secret = Union[str, bytes]


def _key(secret: Secret) -> bytes:
    return secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)


def canonical_json(payload: Any) -> bytes:
    """Serialize a payload to the exact bytes that are signed and sent"""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sign(payload: bytes, secret: Secret) -> str:
    """HMAC-SHA256 over payload, formatted as "sha256=<hex>"."""
    digest = hmac.new(_key(secret), payload, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify(payload: bytes, signature: Any, secret: Secret) -> bool:
    """
    Check a candidate signature against payload.

    Returns False for malformed or mismatched signatures, never raises.
    The length check only leaks the length of the tag+hex format, which is
    fixed; the content comparison is constant-time.
    """
    if not isinstance(signature, (str, bytes)):
        return False
    try:
        expected = sign(payload, secret).encode("ascii")
        candidate = signature.encode("ascii") if isinstance(signature, str) else signature
    except (UnicodeEncodeError, TypeError, ValueError):
        return False
    if len(expected) != len(candidate):
        return False
    return hmac.compare_digest(expected, candidate)
