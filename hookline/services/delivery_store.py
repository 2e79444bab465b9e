"""
Delivery record store.

Durable read/write of DeliveryRecord rows keyed by delivery id.
No business logic lives here: the worker decides, the store persists.
"""
import json
from datetime import datetime, timedelta, timezone
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from hookline.models.delivery import DeliveryRecord, DeliveryStatus


class DeliveryRecordStore:
    """Service for persisting outbound delivery state."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_if_absent(
        self,
        delivery_id: str,
        event: str,
        url: str,
        payload: dict,
        max_attempts: int
    ) -> DeliveryRecord:
        """
        Create the PENDING record for a delivery, or return the existing one.

        Args:
            delivery_id: Request UUID, stable across retries
            event: Event name
            url: Target URL
            payload: Body snapshot as sent
            max_attempts: Attempt ceiling for this delivery

        Returns:
            The persisted DeliveryRecord
        """
        existing = await self.get(delivery_id)
        if existing:
            return existing

        record = DeliveryRecord(
            id=delivery_id,
            event=event,
            url=url,
            payload_json=json.dumps(payload, default=str),
            status=DeliveryStatus.PENDING,
            attempts=0,
            max_attempts=max_attempts
        )
        self.db.add(record)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return await self.get(delivery_id)
        await self.db.refresh(record)
        return record

    async def get(self, delivery_id: str) -> DeliveryRecord | None:
        """Get delivery record by ID."""
        stmt = (
            select(DeliveryRecord)
            .where(DeliveryRecord.id == delivery_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def record_attempt(self, delivery_id: str) -> int:
        """
        Atomically increment the attempt counter.

        Returns:
            The attempt number just started (1-based)
        """
        stmt = (
            update(DeliveryRecord)
            .where(DeliveryRecord.id == delivery_id)
            .values(attempts=DeliveryRecord.attempts + 1, next_retry_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)
        await self.db.commit()
        count = await self.db.execute(
            select(DeliveryRecord.attempts).where(DeliveryRecord.id == delivery_id)
        )
        return count.scalar_one()

    async def mark_sent(self, delivery_id: str, status_code: int, response_body: str) -> None:
        """Mark a delivery as SENT (terminal)."""
        await self._update(
            delivery_id,
            status=DeliveryStatus.SENT,
            last_status_code=status_code,
            response_body=response_body,
            last_error=None,
            sent_at=datetime.now(timezone.utc)
        )

    async def mark_attempt_failed(self, delivery_id: str, status_code: int | None, error: str) -> None:
        """Store the outcome of a failed attempt without changing status."""
        await self._update(delivery_id, last_status_code=status_code, last_error=error)

    async def mark_retry_scheduled(self, delivery_id: str, delay_seconds: int) -> None:
        await self._update(
            delivery_id,
            next_retry_at=datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        )

    async def mark_failed(self, delivery_id: str, error: str) -> None:
        """Mark a delivery as FAILED (terminal)."""
        await self._update(
            delivery_id,
            status=DeliveryStatus.FAILED,
            last_error=error,
            next_retry_at=None
        )

    async def list_by_status(self, status: DeliveryStatus | None = None, limit: int = 100) -> list[DeliveryRecord]:
        """List deliveries, newest first, optionally filtered by status."""
        stmt = (
            select(DeliveryRecord)
            .order_by(DeliveryRecord.created_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        if status is not None:
            stmt = stmt.where(DeliveryRecord.status == status)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_by_status(self) -> dict[str, int]:
        stmt = select(DeliveryRecord.status, func.count()).group_by(DeliveryRecord.status)
        result = await self.db.execute(stmt)
        counts = {status.value: 0 for status in DeliveryStatus}
        for status, count in result.all():
            key = status.value if isinstance(status, DeliveryStatus) else status
            counts[key] = count
        return counts

    async def _update(self, delivery_id: str, **values) -> None:
        stmt = (
            update(DeliveryRecord)
            .where(DeliveryRecord.id == delivery_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)
        await self.db.commit()
