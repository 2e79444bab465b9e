"""
Delivery record model.

One row per outbound webhook delivery, keyed by the request UUID.
Rows are never deleted by the delivery subsystem.
"""
import enum
from datetime import datetime
from sqlalchemy import String, Text, Integer, DateTime, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
from hookline.models.base import Base, TimestampMixin


class DeliveryStatus(str, enum.Enum):
    """Delivery status enum."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class DeliveryRecord(Base, TimestampMixin):
    """
    Durable per-delivery state.

    Written only by the worker handling the delivery id.
    """
    __tablename__ = "delivery_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    event: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[DeliveryStatus] = mapped_column(
        SQLEnum(DeliveryStatus, native_enum=False, create_type=False),
        nullable=False,
        default=DeliveryStatus.PENDING,
        index=True
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    last_status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_retry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in (DeliveryStatus.SENT, DeliveryStatus.FAILED)

    def __repr__(self):
        return f"<DeliveryRecord(id={self.id}, event={self.event}, status={self.status}, attempts={self.attempts})>"
