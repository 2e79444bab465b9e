"""
Inbound webhook processor.

Applies the effect of a stored, validated inbound webhook exactly once.
A failed handler is recorded on the row and left there: the provider
already considers the webhook delivered, so re-running it is an explicit
operator action (reprocess), never an automatic retry.
"""
import json
from datetime import datetime, timezone
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hookline.logging_config import get_logger
from hookline.models.inbound import InboundWebhookRecord, InboundStatus
from hookline.routes.metrics import track_inbound
from hookline.services.collaborators import PaymentEventHandler, collaborators


class InboundProcessor:
    """Service that hands stored inbound webhooks to the payment handler."""

    def __init__(self, db: AsyncSession, handler: PaymentEventHandler | None = None):
        self.db = db
        self.handler = handler or collaborators.payment_handler

    async def get_record(self, record_id: str) -> InboundWebhookRecord | None:
        stmt = (
            select(InboundWebhookRecord)
            .where(InboundWebhookRecord.id == record_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def process(self, record_id: str) -> InboundWebhookRecord | None:
        """
        Process a record if nobody has yet.

        Args:
            record_id: Local inbound record ID

        Returns:
            The record after processing, or None if it does not exist
        """
        record = await self.get_record(record_id)
        if record is None:
            return None

        log = get_logger(inbound_id=record.id, kind=record.kind, dedupe_key=record.dedupe_key)

        if record.status == InboundStatus.INVALID:
            log.info("inbound_processing_skipped", reason="invalid")
            return record

        if not await self._claim(record.id):
            log.info("inbound_processing_skipped", reason="already_processed")
            return await self.get_record(record_id)

        try:
            await self._dispatch(record)
        except Exception as e:
            await self._finish(record.id, InboundStatus.FAILED, f"{type(e).__name__}: {e}")
            track_inbound(record.kind, "failed")
            log.error("inbound_processing_failed", error=str(e), error_type=type(e).__name__)
        else:
            await self._finish(record.id, InboundStatus.PROCESSED, None)
            track_inbound(record.kind, "processed")
            log.info("inbound_processed", event_type=record.event_type)

        return await self.get_record(record_id)

    async def reprocess(self, record_id: str) -> InboundWebhookRecord | None:
        """Operator action: clear the processed marker and run the handler again."""
        record = await self.get_record(record_id)
        if record is None or record.status == InboundStatus.INVALID:
            return record

        await self.db.execute(
            update(InboundWebhookRecord)
            .where(InboundWebhookRecord.id == record_id)
            .values(processed_at=None, processing_error=None, status=InboundStatus.RECEIVED)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        get_logger(inbound_id=record_id).info("inbound_reprocess_requested")
        return await self.process(record_id)

    async def _claim(self, record_id: str) -> bool:
        """
        Set processed_at if still unset. Only one caller can win.

        The row stays PROCESSING until the handler returns, so a worker that
        dies mid-handler leaves a row operators can find and reprocess.
        """
        result = await self.db.execute(
            update(InboundWebhookRecord)
            .where(
                InboundWebhookRecord.id == record_id,
                InboundWebhookRecord.processed_at.is_(None)
            )
            .values(processed_at=datetime.now(timezone.utc), status=InboundStatus.PROCESSING)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def _finish(self, record_id: str, status: InboundStatus, error: str | None) -> None:
        await self.db.execute(
            update(InboundWebhookRecord)
            .where(InboundWebhookRecord.id == record_id)
            .values(status=status, processing_error=error)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def _dispatch(self, record: InboundWebhookRecord) -> None:
        payload = json.loads(record.payload_json)

        if record.kind == "bit_ipn":
            await self.handler.transaction_completed(
                payload["orderid"],
                payload["documentid"],
                payload["customerid"],
                payload
            )
        elif record.kind == "card_callback":
            await self.handler.card_payment_returned(payload["OG-OrderID"], payload)
        elif record.kind == "sumit_trigger":
            await self.handler.provider_trigger(record.event_type, payload)
        else:
            raise ValueError(f"No handler for webhook kind '{record.kind}'")
