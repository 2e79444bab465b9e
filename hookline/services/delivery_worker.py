"""
Webhook Delivery Worker

Performs one HTTP attempt for a delivery and decides the next state:
sent, retry after backoff, or finally failed.
"""
from dataclasses import dataclass, asdict

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from hookline.exceptions import TransientDeliveryError, PermanentDeliveryFailure
from hookline.logging_config import get_logger
from hookline.models.request import DeliveryRequest
from hookline.routes.metrics import (
    track_webhook_sent,
    track_webhook_attempt_failed,
    track_webhook_retry,
    track_webhook_failed,
)
from hookline.sentry_config import capture_message
from hookline.services.backoff import get_backoff_strategy
from hookline.services.delivery_store import DeliveryRecordStore
from hookline.services.notifications import (
    NotificationBus,
    notification_bus,
    DeliverySucceeded,
    DeliveryAttemptFailed,
    DeliveryFinallyFailed,
)
from hookline.services.signing import build_body, canonical_json, iso_timestamp, sign_body


# Response bodies are truncated before they are stored or reported
MAX_BODY_SNAPSHOT = 500


@dataclass
class AttemptResult:
    """Outcome of one physical attempt."""
    delivery_id: str
    attempt: int
    succeeded: bool
    status_code: int | None = None
    error: str | None = None
    retry_in: int | None = None
    final: bool = False
    skipped: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


def build_headers(request: DeliveryRequest, body: dict, timestamp: str) -> dict[str, str]:
    """Standard webhook headers, extra headers, and the signature when a secret is set."""
    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Event": request.event_name,
        "X-Webhook-Timestamp": timestamp,
        "X-Webhook-UUID": request.id,
        **request.extra_headers,
    }
    if request.signs_payload:
        headers["X-Webhook-Signature"] = sign_body(body, request.signing_secret)
    return headers


class DeliveryWorker:
    """Executes delivery attempts against the record store."""

    def __init__(
        self,
        db: AsyncSession,
        bus: NotificationBus | None = None,
        client: httpx.AsyncClient | None = None
    ):
        self.store = DeliveryRecordStore(db)
        self.bus = bus or notification_bus
        self.client = client

    async def attempt(self, request: DeliveryRequest, schedule_retry: bool = True) -> AttemptResult:
        """
        Run a single attempt and persist its outcome.

        Args:
            request: The delivery to attempt
            schedule_retry: False for synchronous dispatch, where the caller owns retries

        Returns:
            AttemptResult; retry_in is set when the caller should re-enqueue
        """
        log = get_logger(uuid=request.id, event_name=request.event_name, url=request.target_url)

        record = await self.store.get(request.id)
        if record is None:
            timestamp = iso_timestamp()
            record = await self.store.create_if_absent(
                request.id,
                request.event_name,
                request.target_url,
                build_body(request.payload, request.event_name, timestamp),
                request.max_attempts,
            )
        if record.is_terminal:
            log.info("webhook_attempt_skipped", status=record.status.value, attempts=record.attempts)
            return AttemptResult(
                delivery_id=request.id,
                attempt=record.attempts,
                succeeded=record.last_status_code is not None and 200 <= record.last_status_code < 300,
                status_code=record.last_status_code,
                error=record.last_error,
                final=True,
                skipped=True,
            )

        if record.attempts >= request.max_attempts:
            # Crashed after the last attempt but before its outcome was stored
            message = record.last_error or "attempt limit reached"
            await self._handle_final_failure(request, record.attempts, {}, message, log)
            return AttemptResult(
                delivery_id=request.id,
                attempt=record.attempts,
                succeeded=False,
                status_code=record.last_status_code,
                error=message,
                final=True,
            )

        attempt = await self.store.record_attempt(request.id)
        timestamp = iso_timestamp()
        body = build_body(request.payload, request.event_name, timestamp)
        headers = build_headers(request, body, timestamp)

        try:
            response = await self._post(request, canonical_json(body), headers)
        except TransientDeliveryError as e:
            return await self._handle_failure(request, attempt, body, e, schedule_retry, log)

        snapshot = response.text[:MAX_BODY_SNAPSHOT]
        await self.store.mark_sent(request.id, response.status_code, snapshot)
        track_webhook_sent(request.event_name)
        log.info("webhook_delivered", status_code=response.status_code, attempt=attempt)
        await self.bus.emit(DeliverySucceeded(
            delivery_id=request.id,
            event=request.event_name,
            url=request.target_url,
            payload=body,
            attempt=attempt,
            meta=request.meta,
            status_code=response.status_code,
            response_body=snapshot,
        ))
        return AttemptResult(
            delivery_id=request.id,
            attempt=attempt,
            succeeded=True,
            status_code=response.status_code,
            final=True,
        )

    async def _post(self, request: DeliveryRequest, content: str, headers: dict) -> httpx.Response:
        """POST the body. Raises TransientDeliveryError for non-2xx and transport errors."""
        try:
            if self.client is not None:
                response = await self.client.post(
                    request.target_url,
                    content=content,
                    headers=headers,
                    timeout=request.timeout,
                )
            else:
                async with httpx.AsyncClient(timeout=request.timeout, verify=request.verify_tls) as client:
                    response = await client.post(request.target_url, content=content, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransientDeliveryError(str(e) or type(e).__name__) from e

        if not 200 <= response.status_code < 300:
            body = response.text[:MAX_BODY_SNAPSHOT]
            raise TransientDeliveryError(
                f"HTTP {response.status_code}: {body}",
                status_code=response.status_code,
                response_body=body,
            )
        return response

    async def _handle_failure(
        self,
        request: DeliveryRequest,
        attempt: int,
        body: dict,
        error: TransientDeliveryError,
        schedule_retry: bool,
        log
    ) -> AttemptResult:
        message = str(error)
        await self.store.mark_attempt_failed(request.id, error.status_code, message)
        track_webhook_attempt_failed(request.event_name)
        log.warning(
            "webhook_attempt_failed",
            status_code=error.status_code,
            error=message,
            attempt=attempt,
            max_tries=request.max_attempts,
        )
        await self.bus.emit(DeliveryAttemptFailed(
            delivery_id=request.id,
            event=request.event_name,
            url=request.target_url,
            payload=body,
            attempt=attempt,
            meta=request.meta,
            status_code=error.status_code,
            error=message,
        ))

        result = AttemptResult(
            delivery_id=request.id,
            attempt=attempt,
            succeeded=False,
            status_code=error.status_code,
            error=message,
        )

        if attempt >= request.max_attempts:
            await self._handle_final_failure(request, attempt, body, message, log)
            result.final = True
            return result

        if schedule_retry:
            wait_seconds = get_backoff_strategy(request.backoff_strategy)(attempt)
            await self.store.mark_retry_scheduled(request.id, wait_seconds)
            track_webhook_retry(request.event_name)
            log.info(
                "webhook_retry_scheduled",
                attempt=attempt,
                next_attempt=attempt + 1,
                wait_seconds=wait_seconds,
            )
            result.retry_in = wait_seconds
        return result

    async def _handle_final_failure(self, request: DeliveryRequest, attempt: int, body: dict, message: str, log) -> None:
        failure = PermanentDeliveryFailure(request.id, attempt, message)
        await self.store.mark_failed(request.id, message)
        track_webhook_failed(request.event_name)
        log.error("webhook_permanently_failed", total_attempts=attempt, error=message)
        capture_message(str(failure), level="error")
        await self.bus.emit(DeliveryFinallyFailed(
            delivery_id=request.id,
            event=request.event_name,
            url=request.target_url,
            payload=body,
            attempt=attempt,
            meta=request.meta,
            error=message,
        ))
