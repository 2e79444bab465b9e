"""Payload signing and verification."""
import hashlib
import hmac
from datetime import datetime, timezone

from hookline.services.signing import (
    build_body,
    canonical_json,
    iso_timestamp,
    sign_body,
    verify_signature,
)


def test_signature_matches_independent_hmac():
    body = build_body({"order_id": 42}, "payment_completed", "2026-01-01T00:00:00+00:00")
    raw = '{"order_id":42,"event":"payment_completed","timestamp":"2026-01-01T00:00:00+00:00"}'

    assert canonical_json(body) == raw
    expected = hmac.new(b"s3cr3t", raw.encode(), hashlib.sha256).hexdigest()
    assert sign_body(body, "s3cr3t") == expected
    assert verify_signature(raw, "s3cr3t", expected)


def test_any_change_breaks_signature():
    raw = canonical_json({"order_id": 42, "event": "payment_completed"})
    signature = sign_body({"order_id": 42, "event": "payment_completed"}, "s3cr3t")

    tampered = raw.replace("42", "43")
    assert not verify_signature(tampered, "s3cr3t", signature)
    assert not verify_signature(raw, "other-secret", signature)
    assert not verify_signature(raw, "s3cr3t", None)


def test_verify_accepts_bytes_and_uppercase_hex():
    raw = canonical_json({"name": "שלום"})
    signature = sign_body({"name": "שלום"}, "k")
    assert verify_signature(raw.encode("utf-8"), "k", signature.upper())


def test_iso_timestamp_is_utc_seconds():
    stamp = iso_timestamp(datetime(2026, 3, 1, 12, 30, 15, 999, tzinfo=timezone.utc))
    assert stamp == "2026-03-01T12:30:15+00:00"


def test_non_utf8_body_verifies_over_raw_bytes():
    raw = "orderid=1001&name=ש".encode("cp1255")
    signature = hmac.new(b"prov", raw, hashlib.sha256).hexdigest()

    assert verify_signature(raw, "prov", signature)
    assert not verify_signature(raw + b"x", "prov", signature)
