"""Building and dispatching outbound webhooks."""
import json

import httpx
import pytest

from hookline.config import settings
from hookline.exceptions import ConfigurationError
from hookline.models.delivery import DeliveryStatus
from hookline.services.delivery_store import DeliveryRecordStore
from hookline.services.webhook_call import WebhookCall


def test_url_and_event_are_required():
    with pytest.raises(ConfigurationError):
        WebhookCall.create().event("payment_completed").build()
    with pytest.raises(ConfigurationError):
        WebhookCall.create().url("https://example.test/hook").build()


def test_unknown_backoff_and_zero_tries_are_rejected():
    call = WebhookCall.create().event("ping").url("https://example.test/")
    with pytest.raises(ConfigurationError):
        call.use_backoff_strategy("random-walk").build()
    with pytest.raises(ConfigurationError):
        WebhookCall.create().event("ping").url("https://example.test/").maximum_tries(0).build()


def test_defaults_come_from_settings():
    request = WebhookCall.create().event("ping").url("https://example.test/").build()
    assert request.max_attempts == settings.WEBHOOK_MAX_TRIES
    assert request.timeout == settings.WEBHOOK_TIMEOUT
    assert request.backoff_strategy == settings.WEBHOOK_BACKOFF_STRATEGY
    assert request.signing_secret is None


def test_settings_for_event(monkeypatch):
    monkeypatch.setattr(settings, "WEBHOOK_EVENT_URLS", {"payment_completed": "https://crm.example.test/in"})
    monkeypatch.setattr(settings, "WEBHOOK_SIGNING_SECRET", "from-env")

    request = WebhookCall.create().use_settings_for_event("payment_completed").build()

    assert request.target_url == "https://crm.example.test/in"
    assert request.signing_secret == "from-env"
    assert request.signs_payload


async def test_dispatch_persists_pending_record_before_enqueue(db, pool):
    call = (
        WebhookCall.create()
        .event("payment_completed")
        .url("https://example.test/hook")
        .payload({"order_id": 42})
        .use_secret("s3cr3t")
        .with_headers({"X-Tenant": "acme"})
    )

    delivery_id = await call.dispatch(db, pool=pool)

    record = await DeliveryRecordStore(db).get(delivery_id)
    assert record.status == DeliveryStatus.PENDING
    assert record.attempts == 0
    assert json.loads(record.payload_json)["order_id"] == 42

    assert len(pool.jobs) == 1
    job = pool.jobs[0]
    assert job["function"] == "deliver_webhook"
    assert job["job_id"] == f"delivery:{delivery_id}"
    message = job["args"][0]
    assert message["id"] == delivery_id
    assert message["extra_headers"] == {"X-Tenant": "acme"}


async def test_dispatching_twice_keeps_one_record_and_one_job(db, pool):
    call = WebhookCall.create().event("ping").url("https://example.test/")

    first = await call.dispatch(db, pool=pool)
    second = await call.dispatch(db, pool=pool)

    assert first == second
    assert len(pool.jobs) == 1
    counts = await DeliveryRecordStore(db).count_by_status()
    assert counts == {"pending": 1, "sent": 0, "failed": 0}


async def test_dispatch_sync_returns_outcome(db):
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))) as client:
        ok = await WebhookCall.create().event("ping").url("https://example.test/").dispatch_sync(db, client=client)
    assert ok

    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))) as client:
        failed = await WebhookCall.create().event("ping").url("https://example.test/").dispatch_sync(db, client=client)
    assert not failed


async def test_conditional_dispatch(db, pool):
    call = WebhookCall.create().event("ping").url("https://example.test/")

    assert await call.dispatch_if(False, db, pool=pool) is None
    assert pool.jobs == []
    assert await call.dispatch_if(True, db, pool=pool) == call.uuid
