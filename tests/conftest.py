"""
Shared fixtures.

Tests run against a throwaway SQLite database; the URL must be set before
hookline.database creates its engine.
"""
import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.gettempdir(), f"hookline_test_{os.getpid()}.db"
)
os.environ.setdefault("SENTRY_DSN", "")

import pytest

from hookline.database import engine, AsyncSessionLocal
from hookline.models.base import Base
from hookline.models.delivery import DeliveryRecord  # noqa: F401
from hookline.models.inbound import InboundWebhookRecord  # noqa: F401
from hookline.services.collaborators import StaticOrderDirectory
from hookline.services.notifications import NotificationBus


@pytest.fixture(autouse=True)
async def tables():
    """Fresh schema for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
async def db():
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def bus():
    return NotificationBus()


class RecordingPool:
    """Stands in for an arq pool and keeps what was enqueued."""

    def __init__(self):
        self.jobs = []

    async def enqueue_job(self, function, *args, _job_id=None, _defer_by=None):
        if any(job["job_id"] == _job_id for job in self.jobs if _job_id):
            return None
        job = {"function": function, "args": args, "job_id": _job_id, "defer_by": _defer_by}
        self.jobs.append(job)
        return job

    async def close(self):
        pass


@pytest.fixture
def pool():
    return RecordingPool()


class RecordingHandler:
    """Payment event handler that remembers every call."""

    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    async def transaction_completed(self, order_id, document_id, customer_id, payload):
        self.calls.append(("transaction_completed", order_id, document_id, customer_id))
        if self.fail:
            raise RuntimeError("ledger unavailable")

    async def card_payment_returned(self, order_id, payload):
        self.calls.append(("card_payment_returned", order_id))
        if self.fail:
            raise RuntimeError("ledger unavailable")

    async def provider_trigger(self, event_type, payload):
        self.calls.append(("provider_trigger", event_type))
        if self.fail:
            raise RuntimeError("ledger unavailable")


@pytest.fixture
def handler():
    return RecordingHandler()


@pytest.fixture
def orders():
    return StaticOrderDirectory({"1001": "key-1001", "2002": "key-2002"})


@pytest.fixture
def failing_handler():
    return RecordingHandler(fail=True)
