"""Sentry helpers are safe to call when no DSN is configured."""
from hookline.sentry_config import capture_exception, capture_message


def test_capture_helpers_are_noops_without_dsn():
    capture_message("Webhook permanently failed", level="error")
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        capture_exception()
