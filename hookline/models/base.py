"""
Base model classes for Hookline.

Provides the SQLAlchemy declarative base, shared mixins and id helpers.
"""
import uuid
from datetime import datetime
from sqlalchemy import DateTime, MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


# Deterministic constraint names so Alembic migrations stay reproducible
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s",
}


def new_id() -> str:
    """String UUID4 used for every primary key."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all database models."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class TimestampMixin:
    """
    created_at / updated_at maintained by the database.

    Delivery records are updated with Core UPDATE statements, which still
    fire the onupdate default.
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )
