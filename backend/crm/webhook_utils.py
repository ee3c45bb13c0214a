"""Signature checks for identity-provider webhooks.

Signed content is ``"{id}.{timestamp}.{body}"``; the signature header holds
space-separated ``v1,<base64 HMAC-SHA256>`` entries, any of which may match.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import time
from typing import Mapping, Optional

SECRET_PREFIX = "whsec_"

HEADER_NAMES = {
    "id": ("webhook-id", "svix-id"),
    "timestamp": ("webhook-timestamp", "svix-timestamp"),
    "signature": ("webhook-signature", "svix-signature"),
}


class WebhookVerificationError(Exception):
    pass


def _secret_bytes(secret: str) -> bytes:
    if secret.startswith(SECRET_PREFIX):
        return base64.b64decode(secret[len(SECRET_PREFIX):])
    return secret.encode("utf-8")


def compute_signature(secret: str, msg_id: str, timestamp: str, body: bytes) -> str:
    signed = f"{msg_id}.{timestamp}.".encode("utf-8") + body
    digest = hmac.new(_secret_bytes(secret), signed, hashlib.sha256).digest()
    return "v1," + base64.b64encode(digest).decode("ascii")


def signature_headers(headers: Mapping[str, str]) -> dict:
    """Pick the three signature headers; raise if any is missing."""
    found = {}
    for key, names in HEADER_NAMES.items():
        value = next((headers.get(n) for n in names if headers.get(n)), None)
        if not value:
            raise WebhookVerificationError("Missing webhook signature headers")
        found[key] = value
    return found


def verify(
    secret: str,
    body: bytes,
    headers: Mapping[str, str],
    tolerance: int = 300,
    now: Optional[float] = None,
) -> None:
    h = signature_headers(headers)
    try:
        ts = int(h["timestamp"])
    except ValueError:
        raise WebhookVerificationError("Invalid webhook timestamp")
    now = time.time() if now is None else now
    if abs(now - ts) > tolerance:
        raise WebhookVerificationError("Webhook timestamp outside tolerance")

    expected = compute_signature(secret, h["id"], h["timestamp"], body)
    for candidate in h["signature"].split():
        if hmac.compare_digest(candidate, expected):
            return
    raise WebhookVerificationError("No matching signature")
