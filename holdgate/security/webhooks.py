from __future__ import annotations

import base64
import hashlib
import hmac


def compute_webhook_hmac(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode('utf-8'), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode('ascii')


def verify_webhook_hmac(body: bytes, received_hmac: str | None, secret: str | None) -> bool:
    if not received_hmac or not secret:
        return False
    return hmac.compare_digest(compute_webhook_hmac(body, secret), received_hmac.strip())


def normalize_topic(raw_topic: str | None) -> str:
    """``orders/create`` -> ``ORDERS_CREATE``."""
    return (raw_topic or '').strip().replace('/', '_').upper()
