"""
Inbound Webhook Receiver

Validates and stores webhooks coming from the payment provider.

Server-to-server kinds are always acknowledged: a validation failure is
recorded on an InboundWebhookRecord and reported in the body as
{"success": false}, never as an HTTP error, so the provider does not
retry a request that cannot succeed. Browser redirects are different:
a bad security key raises InboundAuthorizationFailure and the browser
gets a normal error.
"""
import hmac
import json
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hookline.config import settings
from hookline.exceptions import InboundValidationFailure, InboundAuthorizationFailure
from hookline.logging_config import get_logger
from hookline.models.inbound import InboundWebhookRecord, InboundStatus
from hookline.routes.metrics import track_inbound
from hookline.services.collaborators import OrderDirectory, PaymentEventHandler, collaborators
from hookline.services.inbound_processor import InboundProcessor
from hookline.services.signing import canonical_json, verify_signature
from hookline.worker import enqueue_job


MAX_FIELD_LENGTH = 255
MAX_EVENT_TYPE_LENGTH = 50
MAX_DEDUPE_KEY_LENGTH = 255
MAX_SOURCE_IP_LENGTH = 64


@dataclass(frozen=True)
class WebhookKind:
    """Shape of one provider webhook flavour."""
    name: str
    event_type: str
    server_to_server: bool
    required_fields: tuple[str, ...] = ()
    optional_fields: tuple[str, ...] = ()
    order_field: str | None = None
    key_field: str | None = None
    dedupe_fields: tuple[str, ...] = ()

    @property
    def fields(self) -> tuple[str, ...]:
        return self.required_fields + self.optional_fields


BIT_IPN = WebhookKind(
    name="bit_ipn",
    event_type="bit_payment",
    server_to_server=True,
    required_fields=("orderid", "orderkey", "documentid", "customerid"),
    order_field="orderid",
    key_field="orderkey",
    dedupe_fields=("orderid", "documentid", "customerid"),
)

CARD_CALLBACK = WebhookKind(
    name="card_callback",
    event_type="card_payment",
    server_to_server=False,
    required_fields=("OG-OrderID", "OG-OrderKey"),
    optional_fields=("OG-PaymentID", "OG-DocumentID", "OG-Status"),
    order_field="OG-OrderID",
    key_field="OG-OrderKey",
    dedupe_fields=("OG-OrderID", "OG-PaymentID", "OG-DocumentID", "OG-Status"),
)

SUMIT_TRIGGER = WebhookKind(
    name="sumit_trigger",
    event_type="unknown",
    server_to_server=True,
)

WEBHOOK_KINDS = {kind.name: kind for kind in (BIT_IPN, CARD_CALLBACK, SUMIT_TRIGGER)}

TRIGGER_TYPES = ("card_created", "card_updated", "card_deleted", "card_archived")
TRIGGER_ID_FIELDS = ("webhook_id", "WebhookID", "EventID", "event_id")


@dataclass
class InboundResult:
    """What the receiver decided about one inbound call."""
    success: bool
    message: str
    record_id: str | None = None
    duplicate: bool = False
    queued: bool = False
    errors: list[str] = field(default_factory=list)

    def to_response(self) -> dict:
        body = {"success": self.success, "message": self.message}
        if self.record_id:
            body["webhook_id"] = self.record_id
        if self.duplicate:
            body["duplicate"] = True
        if self.queued:
            body["queued"] = True
        if self.errors:
            body["errors"] = self.errors
        return body


def payload_digest(payload: dict) -> str:
    return hashlib.sha256(canonical_json(dict(sorted(payload.items()))).encode()).hexdigest()


def detect_trigger_type(payload: dict) -> str:
    """Work out the trigger type from a provider payload."""
    if payload.get("Folder") and payload.get("Type") in ("Create", "CreateOrUpdate", "Delete"):
        return "crm"
    if payload.get("event_type"):
        return str(payload["event_type"])
    if payload.get("EventType"):
        return str(payload["EventType"]).lower()
    action = str(payload.get("action", "")).lower()
    return {
        "create": "card_created",
        "created": "card_created",
        "update": "card_updated",
        "updated": "card_updated",
        "delete": "card_deleted",
        "deleted": "card_deleted",
        "archive": "card_archived",
        "archived": "card_archived",
    }.get(action, "unknown")


def extract_trigger_payload(content_type: str, json_body: dict | None, form: dict) -> dict:
    """JSON body, or form data where the provider may wrap JSON in a `json` field."""
    if "application/json" in (content_type or "") and isinstance(json_body, dict):
        return json_body
    wrapped = form.get("json")
    if isinstance(wrapped, str):
        try:
            decoded = json.loads(wrapped)
        except ValueError:
            decoded = None
        if isinstance(decoded, dict):
            return decoded
    return dict(form)


def dedupe_key_for(kind: WebhookKind, fields: dict, event_type: str) -> str:
    """
    Stable key for one external event.

    Kinds with natural identifiers join them; provider triggers use an
    explicit event id when present and otherwise a digest of the payload.
    Keys longer than the column are replaced by kind:sha256:<digest>.
    """
    if kind.dedupe_fields:
        key = ":".join([kind.name] + [str(fields.get(name) or "") for name in kind.dedupe_fields])
    else:
        key = f"{kind.name}:{event_type}:{payload_digest(fields)}"
        for id_field in TRIGGER_ID_FIELDS:
            if fields.get(id_field):
                key = f"{kind.name}:{fields[id_field]}"
                break
    if len(key) > MAX_DEDUPE_KEY_LENGTH:
        key = f"{kind.name}:sha256:{hashlib.sha256(key.encode()).hexdigest()}"
    return key


Enqueue = Callable[..., Awaitable[bool]]


class InboundReceiver:
    """Service that validates, deduplicates and stores inbound webhooks."""

    def __init__(
        self,
        db: AsyncSession,
        order_directory: OrderDirectory | None = None,
        handler: PaymentEventHandler | None = None,
        process_async: bool | None = None,
        signing_secret: str | None = None,
        enqueue: Enqueue | None = None
    ):
        self.db = db
        self.order_directory = order_directory or collaborators.order_directory
        self.handler = handler
        self.process_async = settings.INBOUND_PROCESS_ASYNC if process_async is None else process_async
        self.signing_secret = signing_secret if signing_secret is not None else settings.INBOUND_SIGNING_SECRET
        self.enqueue = enqueue

    async def receive(
        self,
        kind: WebhookKind | str,
        params: dict,
        raw_body: bytes = b"",
        headers: dict | None = None,
        source_ip: str | None = None,
        event_type: str | None = None
    ) -> InboundResult:
        """
        Validate, store and hand off one inbound call.

        Raises:
            InboundAuthorizationFailure: browser-redirect kinds with missing or bad keys
        """
        if isinstance(kind, str):
            kind = WEBHOOK_KINDS[kind]
        headers = {k.lower(): v for k, v in (headers or {}).items()}
        params = {k: v for k, v in params.items() if v is not None}
        if source_ip:
            source_ip = source_ip[:MAX_SOURCE_IP_LENGTH]
        log = get_logger(kind=kind.name, source_ip=source_ip)

        try:
            self._check_trigger_type(kind, event_type)
            fields = self._validate_fields(kind, params)
            signature_valid = self._check_signature(kind, params, raw_body, headers)
            await self._check_order_key(kind, fields)
        except InboundValidationFailure as e:
            log.warning("inbound_validation_failed", errors=e.errors)
            record = await self._store_invalid(kind, params, e, source_ip, event_type)
            track_inbound(kind.name, "invalid")
            return InboundResult(
                success=False,
                message="Webhook validation failed",
                record_id=record.id,
                errors=e.errors,
            )

        event_type = event_type or (detect_trigger_type(fields) if kind is SUMIT_TRIGGER else kind.event_type)
        event_type = event_type[:MAX_EVENT_TYPE_LENGTH]
        dedupe_key = dedupe_key_for(kind, fields, event_type)
        log = log.bind(dedupe_key=dedupe_key, event_type=event_type)

        record, created = await self._upsert(
            dedupe_key,
            kind=kind.name,
            event_type=event_type,
            payload_json=json.dumps(fields, default=str),
            signature_valid=signature_valid,
            status=InboundStatus.RECEIVED,
            source_ip=source_ip,
        )

        if not created and record.processed_at is not None:
            track_inbound(kind.name, "duplicate")
            log.info("inbound_duplicate_ignored", inbound_id=record.id, receive_count=record.receive_count)
            return InboundResult(
                success=True,
                message="Webhook already processed",
                record_id=record.id,
                duplicate=True,
            )

        track_inbound(kind.name, "received")
        log.info("inbound_received", inbound_id=record.id, created=created)

        if self.process_async:
            queued = await self._enqueue_processing(record.id)
            if queued:
                return InboundResult(success=True, message="Webhook received", record_id=record.id, queued=True)
            log.warning("inbound_enqueue_failed_processing_inline", inbound_id=record.id)

        await InboundProcessor(self.db, self.handler).process(record.id)
        return InboundResult(success=True, message="Webhook processed", record_id=record.id, duplicate=not created)

    def _check_trigger_type(self, kind: WebhookKind, event_type: str | None) -> None:
        if kind is SUMIT_TRIGGER and event_type is not None and event_type not in TRIGGER_TYPES + ("crm",):
            raise InboundValidationFailure(f"Unknown trigger type '{event_type[:MAX_EVENT_TYPE_LENGTH]}'")

    def _validate_fields(self, kind: WebhookKind, params: dict) -> dict:
        if kind is SUMIT_TRIGGER:
            if not params:
                raise InboundValidationFailure("Empty webhook payload")
            return dict(params)

        errors = []
        fields = {}
        for name in kind.fields:
            value = params.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                if name in kind.required_fields:
                    errors.append(f"Missing {name} in webhook request")
                continue
            if not isinstance(value, (str, int)):
                errors.append(f"Invalid {name} format")
                continue
            value = str(value).strip()
            if len(value) > MAX_FIELD_LENGTH:
                errors.append(f"{name} too long")
                continue
            fields[name] = value

        if errors:
            if not kind.server_to_server:
                raise InboundAuthorizationFailure("; ".join(errors), status_code=400)
            raise InboundValidationFailure("Webhook validation failed", errors)
        return fields

    def _check_signature(self, kind: WebhookKind, params: dict, raw_body: bytes, headers: dict) -> bool | None:
        """None when the provider is not configured to sign."""
        if not self.signing_secret or not kind.server_to_server:
            return None
        signed = raw_body if raw_body else canonical_json(params).encode()
        if not verify_signature(signed, self.signing_secret, headers.get("x-webhook-signature")):
            raise InboundValidationFailure("Invalid webhook signature")
        return True

    async def _check_order_key(self, kind: WebhookKind, fields: dict) -> None:
        if not kind.key_field:
            return
        order_id = fields[kind.order_field]
        expected = await self.order_directory.get_order_key(order_id)
        supplied = fields[kind.key_field]
        if expected is None:
            message = f"Unknown order {order_id}"
        elif not hmac.compare_digest(str(expected), supplied):
            message = f"Invalid order key for order {order_id}"
        else:
            return
        if kind.server_to_server:
            raise InboundValidationFailure(message)
        raise InboundAuthorizationFailure(message, status_code=403)

    async def _store_invalid(
        self,
        kind: WebhookKind,
        params: dict,
        error: InboundValidationFailure,
        source_ip: str | None,
        event_type: str | None
    ) -> InboundWebhookRecord:
        record, _ = await self._upsert(
            f"invalid:{kind.name}:{payload_digest(params)}",
            kind=kind.name,
            event_type=(event_type or kind.event_type)[:MAX_EVENT_TYPE_LENGTH],
            payload_json=json.dumps(params, default=str),
            signature_valid=False,
            status=InboundStatus.INVALID,
            validation_error="; ".join(error.errors),
            source_ip=source_ip,
        )
        return record

    async def _get_by_key(self, dedupe_key: str) -> InboundWebhookRecord | None:
        stmt = (
            select(InboundWebhookRecord)
            .where(InboundWebhookRecord.dedupe_key == dedupe_key)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _upsert(self, dedupe_key: str, **values) -> tuple[InboundWebhookRecord, bool]:
        """Insert a record or refresh received_at on the existing one."""
        now = datetime.now(timezone.utc)
        existing = await self._get_by_key(dedupe_key)
        if existing is None:
            record = InboundWebhookRecord(dedupe_key=dedupe_key, received_at=now, receive_count=1, **values)
            self.db.add(record)
            try:
                await self.db.commit()
                return record, True
            except IntegrityError:
                # Lost a race with a concurrent delivery of the same event
                await self.db.rollback()
                existing = await self._get_by_key(dedupe_key)

        existing.received_at = now
        existing.receive_count = existing.receive_count + 1
        await self.db.commit()
        return existing, False

    async def _enqueue_processing(self, record_id: str) -> bool:
        enqueue = self.enqueue or enqueue_job
        return await enqueue("process_inbound_webhook", record_id, job_id=f"inbound:{record_id}")
