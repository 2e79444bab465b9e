"""ARQ task functions."""
import httpx
import pytest
from arq import Retry

from hookline import worker
from hookline.models.delivery import DeliveryStatus
from hookline.models.inbound import InboundStatus
from hookline.models.request import DeliveryRequest
from hookline.services.delivery_store import DeliveryRecordStore
from hookline.services.delivery_worker import DeliveryWorker
from hookline.services.inbound_processor import InboundProcessor
from hookline.services.inbound_receiver import BIT_IPN, InboundReceiver


@pytest.fixture
def endpoint(monkeypatch):
    """Route the task's deliveries to a scripted endpoint."""
    statuses = []

    def handler(request):
        return httpx.Response(statuses.pop(0))

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    monkeypatch.setattr(worker, "DeliveryWorker", lambda db, bus=None: DeliveryWorker(db, bus=bus, client=client))
    return statuses


async def test_failed_attempt_releases_job_with_backoff(db, endpoint):
    endpoint.extend([500, 200])
    request = DeliveryRequest(event_name="payment_completed", target_url="https://example.test/hook")

    with pytest.raises(Retry) as retry:
        await worker.deliver_webhook({"job_try": 1}, request.model_dump())
    assert retry.value.defer_score == 10_000

    result = await worker.deliver_webhook({"job_try": 2}, request.model_dump())
    assert result["succeeded"] is True
    assert result["attempt"] == 2

    record = await DeliveryRecordStore(db).get(request.id)
    assert record.status == DeliveryStatus.SENT


async def test_last_attempt_does_not_raise(db, endpoint):
    endpoint.extend([500])
    request = DeliveryRequest(event_name="ping", target_url="https://example.test/", max_attempts=1)

    result = await worker.deliver_webhook({}, request.model_dump())

    assert result["final"] is True and result["succeeded"] is False
    record = await DeliveryRecordStore(db).get(request.id)
    assert record.status == DeliveryStatus.FAILED


async def test_process_inbound_task(db, orders, handler, monkeypatch):
    async def enqueue(function, *args, job_id=None):
        return True

    receiver = InboundReceiver(db, order_directory=orders, handler=handler, process_async=True, enqueue=enqueue)
    received = await receiver.receive(
        BIT_IPN,
        {"orderid": "2002", "orderkey": "key-2002", "documentid": "D-1", "customerid": "C-1"},
    )

    monkeypatch.setattr(worker, "InboundProcessor", lambda db: InboundProcessor(db, handler))
    first = await worker.process_inbound_webhook({}, received.record_id)
    second = await worker.process_inbound_webhook({}, received.record_id)

    assert first == {"status": InboundStatus.PROCESSED.value, "record_id": received.record_id}
    assert second["status"] == InboundStatus.PROCESSED.value
    assert len(handler.calls) == 1

    assert (await worker.process_inbound_webhook({}, "missing"))["status"] == "missing"


async def test_enqueue_job_reports_duplicates_as_queued(pool):
    assert await worker.enqueue_job("deliver_webhook", {"id": "x"}, job_id="delivery:x", pool=pool)
    assert await worker.enqueue_job("deliver_webhook", {"id": "x"}, job_id="delivery:x", pool=pool)
    assert len(pool.jobs) == 1
