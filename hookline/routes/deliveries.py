"""
Operator API routes.

Read access to outbound delivery records and inbound webhook records,
plus the manual reprocess action for inbound records. Admin only.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hookline.database import get_db
from hookline.dependencies.auth import require_admin, TokenPayload
from hookline.logging_config import get_logger
from hookline.models.delivery import DeliveryRecord, DeliveryStatus
from hookline.models.inbound import InboundWebhookRecord, InboundStatus
from hookline.services.delivery_store import DeliveryRecordStore
from hookline.services.inbound_processor import InboundProcessor


router = APIRouter(prefix="/api", tags=["operator"])


class DeliveryResponse(BaseModel):
    """Response model for a delivery record."""
    id: str
    event: str
    url: str
    status: str
    attempts: int
    max_attempts: int
    last_status_code: int | None = None
    last_error: str | None = None
    response_body: str | None = None
    next_retry_at: str | None = None
    sent_at: str | None = None
    created_at: str | None = None


class InboundResponse(BaseModel):
    """Response model for an inbound webhook record."""
    id: str
    dedupe_key: str
    kind: str
    event_type: str
    status: str
    signature_valid: bool | None = None
    validation_error: str | None = None
    receive_count: int
    received_at: str | None = None
    processed_at: str | None = None
    processing_error: str | None = None


def delivery_to_response(record: DeliveryRecord) -> DeliveryResponse:
    """Convert DeliveryRecord model to DeliveryResponse."""
    return DeliveryResponse(
        id=record.id,
        event=record.event,
        url=record.url,
        status=record.status.value if isinstance(record.status, DeliveryStatus) else record.status,
        attempts=record.attempts,
        max_attempts=record.max_attempts,
        last_status_code=record.last_status_code,
        last_error=record.last_error,
        response_body=record.response_body,
        next_retry_at=record.next_retry_at.isoformat() if record.next_retry_at else None,
        sent_at=record.sent_at.isoformat() if record.sent_at else None,
        created_at=record.created_at.isoformat() if record.created_at else None,
    )


def inbound_to_response(record: InboundWebhookRecord) -> InboundResponse:
    """Convert InboundWebhookRecord model to InboundResponse."""
    return InboundResponse(
        id=record.id,
        dedupe_key=record.dedupe_key,
        kind=record.kind,
        event_type=record.event_type,
        status=record.status.value if isinstance(record.status, InboundStatus) else record.status,
        signature_valid=record.signature_valid,
        validation_error=record.validation_error,
        receive_count=record.receive_count,
        received_at=record.received_at.isoformat() if record.received_at else None,
        processed_at=record.processed_at.isoformat() if record.processed_at else None,
        processing_error=record.processing_error,
    )


def _parse_status(enum_cls, value: str | None):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status. Must be one of: {[s.value for s in enum_cls]}"
        )


@router.get("/deliveries", response_model=dict)
async def list_deliveries(
    status_filter: str | None = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=1000),
    admin: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List outbound deliveries, newest first, with per-status counts."""
    store = DeliveryRecordStore(db)
    records = await store.list_by_status(_parse_status(DeliveryStatus, status_filter), limit=limit)

    return {
        "deliveries": [delivery_to_response(r) for r in records],
        "counts": await store.count_by_status(),
    }


@router.get("/deliveries/{delivery_id}", response_model=DeliveryResponse)
async def get_delivery(
    delivery_id: str,
    admin: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Get a single delivery record."""
    record = await DeliveryRecordStore(db).get(delivery_id)

    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Delivery not found"
        )

    return delivery_to_response(record)


@router.get("/inbound", response_model=dict)
async def list_inbound(
    status_filter: str | None = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=1000),
    admin: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List inbound webhook records, newest first."""
    stmt = (
        select(InboundWebhookRecord)
        .order_by(InboundWebhookRecord.received_at.desc())
        .limit(limit)
    )
    inbound_status = _parse_status(InboundStatus, status_filter)
    if inbound_status is not None:
        stmt = stmt.where(InboundWebhookRecord.status == inbound_status)

    result = await db.execute(stmt)
    records = result.scalars().all()

    return {"records": [inbound_to_response(r) for r in records]}


@router.post("/inbound/{record_id}/reprocess", response_model=InboundResponse)
async def reprocess_inbound(
    record_id: str,
    admin: TokenPayload = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Run the handler again for an inbound record.

    Invalid records cannot be reprocessed.
    """
    processor = InboundProcessor(db)
    record = await processor.get_record(record_id)

    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Inbound webhook not found"
        )

    if record.status == InboundStatus.INVALID:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Invalid webhooks cannot be reprocessed"
        )

    get_logger(inbound_id=record_id, operator=admin.sub).info("inbound_reprocess_by_operator")
    record = await processor.reprocess(record_id)
    return inbound_to_response(record)
