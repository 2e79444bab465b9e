"""
Database engine and session factory.

Async SQLAlchemy engine shared by the API and the ARQ worker.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from hookline.config import settings


engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db():
    """FastAPI dependency yielding a database session."""
    async with AsyncSessionLocal() as session:
        yield session
