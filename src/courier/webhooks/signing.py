"""HMAC-SHA256 request signing for webhook payloads.

The signature covers the exact bytes of the request body and is sent as
``sha256=<hex_digest>``. Receivers recompute it with their copy of the
endpoint secret.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

from courier.exceptions import DeliveryError

SIGNATURE_PREFIX = "sha256="
SECRET_PREFIX = "whsec_"


def _as_bytes(body: bytes | str) -> bytes:
    return body.encode("utf-8") if isinstance(body, str) else body


def _require_secret(secret: str) -> bytes:
    if not secret:
        raise DeliveryError("Webhook secret is required for signing")
    return secret.encode("utf-8")


def sign(body: bytes | str, secret: str) -> str:
    """Compute the signature token for a webhook body.

    Args:
        body: Request body. Strings are signed as their UTF-8 bytes.
        secret: Endpoint secret shared with the receiver.

    Returns:
        Signature in format "sha256=<hex_digest>".

    Raises:
        DeliveryError: If the secret is missing.
    """
    digest = hmac.new(
        key=_require_secret(secret),
        msg=_as_bytes(body),
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify(body: bytes | str, signature: str, secret: str) -> bool:
    """Verify a signature token against a webhook body.

    Comparison is constant time over bytes; tokens of the wrong length or
    with non-ASCII characters are rejected without raising.

    Args:
        body: Request body that was signed.
        signature: Token to check (format "sha256=<hex_digest>").
        secret: Endpoint secret shared with the sender.

    Returns:
        True if the signature is valid, False otherwise.

    Raises:
        DeliveryError: If the secret is missing.
    """
    expected = sign(body, secret).encode("ascii")
    if not isinstance(signature, str | bytes):
        return False
    try:
        supplied = signature.encode("ascii") if isinstance(signature, str) else signature
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(expected, supplied)


def generate_secret() -> str:
    """Generate a random endpoint secret ("whsec_" + 64 hex chars)."""
    return f"{SECRET_PREFIX}{secrets.token_hex(32)}"


__all__ = ["SIGNATURE_PREFIX", "generate_secret", "sign", "verify"]
