"""
Script to create all database tables.

This script creates all tables defined in the models.
Run this after starting PostgreSQL with Docker, or use the Alembic migration.
"""
import asyncio
from hookline.database import engine
from hookline.logging_config import configure_logging, get_logger
from hookline.models.base import Base
# Import all models to register them with Base
from hookline.models.delivery import DeliveryRecord  # noqa: F401
from hookline.models.inbound import InboundWebhookRecord  # noqa: F401

logger = get_logger(component="create_tables")


async def create_all_tables():
    """Create all tables in the database."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("tables_created", tables=sorted(Base.metadata.tables))


async def drop_all_tables():
    """Drop all tables in the database (for testing)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("tables_dropped")


async def main():
    """Main entry point."""
    configure_logging()
    await create_all_tables()


if __name__ == "__main__":
    asyncio.run(main())
