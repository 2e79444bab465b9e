"""
Webhook Call

Fluent builder for outbound webhooks.

    await (
        WebhookCall.create()
        .event("payment_completed")
        .url("https://example.com/webhook")
        .payload({"order_id": 123})
        .use_secret("s3cr3t")
        .dispatch(db)
    )

The DeliveryRecord is persisted before the task is enqueued, so a crash
between deciding to send and the first attempt leaves a visible pending row.
"""
import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from hookline.config import settings
from hookline.exceptions import ConfigurationError
from hookline.logging_config import get_logger
from hookline.models.base import new_id
from hookline.models.request import DeliveryRequest
from hookline.services.backoff import get_backoff_strategy
from hookline.services.delivery_store import DeliveryRecordStore
from hookline.services.delivery_worker import DeliveryWorker
from hookline.services.notifications import NotificationBus
from hookline.services.signing import build_body, iso_timestamp
from hookline.worker import enqueue_job


class WebhookCall:
    """Configures one outbound delivery and dispatches it."""

    def __init__(self):
        self.uuid = new_id()
        self._event = ""
        self._url = ""
        self._payload: dict = {}
        self._headers: dict[str, str] = {}
        self._secret: str | None = None
        self._tries = settings.WEBHOOK_MAX_TRIES
        self._timeout = settings.WEBHOOK_TIMEOUT
        self._backoff_strategy = settings.WEBHOOK_BACKOFF_STRATEGY
        self._verify_tls = settings.WEBHOOK_VERIFY_SSL
        self._meta: dict = {}

    @classmethod
    def create(cls) -> "WebhookCall":
        return cls()

    def event(self, event: str) -> "WebhookCall":
        self._event = event
        return self

    def url(self, url: str) -> "WebhookCall":
        self._url = url
        return self

    def payload(self, payload: dict) -> "WebhookCall":
        self._payload = dict(payload)
        return self

    def use_secret(self, secret: str | None) -> "WebhookCall":
        self._secret = secret or None
        return self

    def with_headers(self, headers: dict[str, str]) -> "WebhookCall":
        self._headers.update(headers)
        return self

    def maximum_tries(self, tries: int) -> "WebhookCall":
        self._tries = tries
        return self

    def timeout_in_seconds(self, timeout: float) -> "WebhookCall":
        self._timeout = timeout
        return self

    def use_backoff_strategy(self, name: str) -> "WebhookCall":
        self._backoff_strategy = name
        return self

    def verify_tls(self, verify: bool = True) -> "WebhookCall":
        self._verify_tls = verify
        return self

    def meta(self, meta: dict) -> "WebhookCall":
        """Metadata carried into notifications, never sent."""
        self._meta.update(meta)
        return self

    def use_settings_for_event(self, event: str) -> "WebhookCall":
        """Take the URL and secret configured for an event."""
        self._event = event
        self._url = settings.WEBHOOK_EVENT_URLS.get(event, "")
        self._secret = settings.WEBHOOK_SIGNING_SECRET or None
        return self

    def build(self) -> DeliveryRequest:
        """Validate and produce the DeliveryRequest."""
        if not self._url:
            raise ConfigurationError("Webhook URL is required")
        if not self._event:
            raise ConfigurationError("Event name is required")
        if self._tries < 1:
            raise ConfigurationError("Webhook must allow at least one attempt")
        get_backoff_strategy(self._backoff_strategy)

        return DeliveryRequest(
            id=self.uuid,
            event_name=self._event,
            target_url=self._url,
            payload=self._payload,
            extra_headers=self._headers,
            signing_secret=self._secret,
            max_attempts=self._tries,
            timeout=self._timeout,
            backoff_strategy=self._backoff_strategy,
            verify_tls=self._verify_tls,
            meta=self._meta,
        )

    async def dispatch(self, db: AsyncSession, pool=None) -> str:
        """
        Persist the pending record and enqueue the delivery.

        Returns:
            The delivery id
        """
        request = await self._prepare(db)
        queued = await enqueue_job(
            "deliver_webhook",
            request.model_dump(),
            job_id=f"delivery:{request.id}",
            pool=pool
        )
        log = get_logger(uuid=request.id, event_name=request.event_name, url=request.target_url)
        if queued:
            log.info("webhook_dispatched")
        else:
            # The pending record stays behind for operators to redispatch
            log.error("webhook_dispatch_not_queued")
        return request.id

    async def dispatch_sync(
        self,
        db: AsyncSession,
        client: httpx.AsyncClient | None = None,
        bus: NotificationBus | None = None
    ) -> bool:
        """Perform one attempt inline. No retry is scheduled; the caller owns retries."""
        request = await self._prepare(db)
        result = await DeliveryWorker(db, bus=bus, client=client).attempt(request, schedule_retry=False)
        return result.succeeded

    async def send(self, db: AsyncSession) -> str | bool:
        """Queue or deliver inline depending on WEBHOOK_ASYNC."""
        if settings.WEBHOOK_ASYNC:
            return await self.dispatch(db)
        return await self.dispatch_sync(db)

    async def dispatch_if(self, condition: bool, db: AsyncSession, pool=None) -> str | None:
        if condition:
            return await self.dispatch(db, pool=pool)
        return None

    async def dispatch_sync_if(self, condition: bool, db: AsyncSession, client: httpx.AsyncClient | None = None) -> bool:
        if condition:
            return await self.dispatch_sync(db, client=client)
        return False

    async def _prepare(self, db: AsyncSession) -> DeliveryRequest:
        request = self.build()
        await DeliveryRecordStore(db).create_if_absent(
            request.id,
            request.event_name,
            request.target_url,
            build_body(request.payload, request.event_name, iso_timestamp()),
            request.max_attempts,
        )
        return request
