"""
Webhook payload signing.

Signatures are HMAC-SHA256 over the canonical JSON of the body that is
actually sent (payload merged with event and timestamp).
"""
import json
import hmac
import hashlib
from datetime import datetime, timezone


def canonical_json(payload: dict) -> str:
    """Compact JSON with keys in insertion order, UTF-8 kept as-is."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def iso_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with second precision."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def build_body(payload: dict, event: str, timestamp: str) -> dict:
    """Payload merged with the event name and timestamp fields."""
    return {**payload, "event": event, "timestamp": timestamp}


def generate_webhook_signature(payload: str | bytes, secret: str) -> str:
    """Generate HMAC-SHA256 signature for webhook payload."""
    if isinstance(payload, str):
        payload = payload.encode()
    return hmac.new(
        secret.encode(),
        payload,
        hashlib.sha256
    ).hexdigest()


def sign_body(body: dict, secret: str) -> str:
    return generate_webhook_signature(canonical_json(body), secret)


def verify_signature(payload: str | bytes, secret: str, signature: str | None) -> bool:
    """Constant-time check of a hex signature over the raw payload."""
    if not signature:
        return False
    expected = generate_webhook_signature(payload, secret)
    return hmac.compare_digest(expected, signature.strip().lower())
