"""HMAC-SHA256 payload signing for outbound webhooks.

The signature is the lowercase hex HMAC-SHA256 of the exact request body,
keyed by the subscription secret, and is sent in ``X-Webhook-Signature``.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"
DELIVERY_ID_HEADER = "X-Webhook-Delivery-Id"

# 32 random bytes, hex encoded
SECRET_BYTES = 32


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def sign_payload(secret: str, payload: str | bytes) -> str:
    """Compute the HMAC-SHA256 signature for a webhook payload.

    Args:
        secret: Shared subscription secret.
        payload: Exact request body that will be transmitted.

    Returns:
        Hex-encoded digest.

    Raises:
        ValueError: If the secret is empty.
    """
    if not secret:
        raise ValueError("Webhook secret must not be empty")
    return hmac.new(
        key=_as_bytes(secret),
        msg=_as_bytes(payload),
        digestmod=hashlib.sha256,
    ).hexdigest()


def verify_signature(secret: str, payload: str | bytes, signature: str) -> bool:
    """Check a received signature in constant time.

    Returns:
        True if ``signature`` matches the payload, False otherwise.
    """
    if not secret:
        return False
    expected = sign_payload(secret, payload)
    return hmac.compare_digest(expected, signature.strip().lower())


def generate_secret() -> str:
    """Generate a new subscription secret (256 bits, hex encoded)."""
    return secrets.token_hex(SECRET_BYTES)
