"""
Hookline - bidirectional webhook transport

FastAPI application entry point.
"""
from fastapi import FastAPI
from sqlalchemy import text

# Import observability modules
from hookline.config import settings
from hookline.database import engine
from hookline.logging_config import configure_logging, get_logger
from hookline.sentry_config import configure_sentry
from hookline.middleware.logging import LoggingMiddleware
from hookline.routes.metrics import router as metrics_router

# Import route modules
from hookline.routes.inbound import router as inbound_router
from hookline.routes.deliveries import router as deliveries_router

# Initialize logging first
configure_logging()

# Initialize Sentry (if SENTRY_DSN is set)
configure_sentry()

logger = get_logger(component="app")

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Signed outbound webhooks with retries, and exactly-once inbound payment provider webhooks",
)

# Add logging middleware FIRST (runs before other middleware)
app.add_middleware(LoggingMiddleware)

# Include metrics endpoint FIRST (so it's always available)
app.include_router(metrics_router)

# Include provider webhook endpoints
app.include_router(inbound_router)

# Include operator routes
app.include_router(deliveries_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Detailed health check."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        database = "connected"
    except Exception as e:
        logger.error("health_check_database_failed", error=str(e))
        database = "unavailable"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "database": database
    }
