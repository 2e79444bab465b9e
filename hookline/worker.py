"""
ARQ Background Worker for Hookline.

Runs outbound webhook deliveries and inbound webhook processing from the
Redis queue. A failed delivery releases itself back to the queue with a
delay (arq Retry) instead of sleeping in the worker.
"""
import asyncio

from arq import Retry, create_pool
from arq.connections import RedisSettings

from hookline.config import settings
from hookline.database import AsyncSessionLocal
from hookline.logging_config import get_logger
from hookline.models.request import DeliveryRequest
from hookline.services.delivery_worker import DeliveryWorker
from hookline.services.inbound_processor import InboundProcessor

logger = get_logger(component="worker")

# Attempt limits are enforced per delivery by DeliveryWorker; this only
# stops arq from giving up on a job before its own ceiling is reached.
QUEUE_MAX_TRIES = 50


async def deliver_webhook(ctx: dict, request_data: dict) -> dict:
    """
    Perform one delivery attempt.

    Raises arq Retry with the backoff delay when another attempt is due,
    so the same job (same delivery id) is re-run later.
    """
    request = DeliveryRequest(**request_data)
    logger.info(
        "delivery_job_started",
        uuid=request.id,
        event_name=request.event_name,
        job_try=ctx.get("job_try", 1)
    )

    async with AsyncSessionLocal() as db:
        result = await DeliveryWorker(db, bus=ctx.get("notification_bus")).attempt(request)

    if result.retry_in is not None:
        raise Retry(defer=result.retry_in)
    return result.as_dict()


async def process_inbound_webhook(ctx: dict, record_id: str) -> dict:
    """Apply a stored inbound webhook exactly once."""
    async with AsyncSessionLocal() as db:
        record = await InboundProcessor(db).process(record_id)

    if record is None:
        logger.warning("inbound_record_missing", inbound_id=record_id)
        return {"status": "missing", "record_id": record_id}
    return {"status": record.status.value, "record_id": record_id}


# Register functions for ARQ
ARQ_FUNCTIONS = [
    deliver_webhook,
    process_inbound_webhook,
]


async def enqueue_job(
    function: str,
    *args,
    job_id: str | None = None,
    defer_by: int | None = None,
    pool=None
) -> bool:
    """
    Enqueue a task for background processing using ARQ.

    job_id makes the enqueue idempotent: arq refuses a second job with the
    same id while the first is queued, running or its result is kept.
    """
    owns_pool = pool is None
    try:
        if owns_pool:
            pool = await create_pool(
                RedisSettings.from_dsn(settings.REDIS_URL),
                default_queue_name=settings.WEBHOOK_QUEUE_NAME
            )

        job = await pool.enqueue_job(function, *args, _job_id=job_id, _defer_by=defer_by)

        if job is None:
            logger.info("job_already_enqueued", function=function, job_id=job_id)
        else:
            logger.info("job_enqueued", function=function, job_id=job_id)
        return True
    except Exception as e:
        logger.error("job_enqueue_failed", function=function, job_id=job_id, error=str(e))
        return False
    finally:
        if owns_pool and pool is not None:
            await pool.close()


async def main():
    """Run the worker using arq cli."""
    logger.info("worker_usage", command="arq hookline.worker.WorkerSettings", redis=settings.REDIS_URL)


class WorkerSettings:
    """Settings for ARQ worker - use with 'arq hookline.worker.WorkerSettings'"""
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    queue_name = settings.WEBHOOK_QUEUE_NAME
    job_timeout = settings.WEBHOOK_TIMEOUT + 30
    max_tries = QUEUE_MAX_TRIES
    functions = ARQ_FUNCTIONS


if __name__ == "__main__":
    asyncio.run(main())
