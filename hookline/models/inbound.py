"""
Inbound webhook record model.

One row per external event. dedupe_key is unique so that at-least-once
delivery from the provider collapses onto a single record.
"""
import enum
from datetime import datetime
from sqlalchemy import String, Text, Integer, Boolean, DateTime, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
from hookline.models.base import Base, new_id


class InboundStatus(str, enum.Enum):
    """Inbound record status enum."""
    RECEIVED = "received"
    PROCESSING = "processing"
    INVALID = "invalid"
    PROCESSED = "processed"
    FAILED = "failed"


class InboundWebhookRecord(Base):
    """Persisted inbound webhook call."""
    __tablename__ = "inbound_webhook_records"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=new_id
    )
    dedupe_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    signature_valid: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    status: Mapped[InboundStatus] = mapped_column(
        SQLEnum(InboundStatus, native_enum=False, create_type=False),
        nullable=False,
        default=InboundStatus.RECEIVED,
        index=True
    )
    validation_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    receive_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self):
        return f"<InboundWebhookRecord(id={self.id}, key={self.dedupe_key}, status={self.status})>"
