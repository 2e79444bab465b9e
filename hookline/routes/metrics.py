"""
Prometheus metrics endpoint.

Exposes webhook delivery and ingestion metrics for monitoring.
"""
from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# ============================================
# HTTP Request Metrics
# ============================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================
# Outbound Webhook Metrics
# ============================================

webhooks_sent = Counter(
    'webhooks_sent_total',
    'Total webhooks delivered with a 2xx response',
    ['event']
)

webhook_attempts_failed = Counter(
    'webhook_attempts_failed_total',
    'Total failed delivery attempts (non-2xx or transport error)',
    ['event']
)

webhook_retries = Counter(
    'webhook_retries_total',
    'Total delivery retries scheduled',
    ['event']
)

webhooks_failed = Counter(
    'webhooks_failed_total',
    'Total deliveries that exhausted their attempts',
    ['event']
)

# ============================================
# Inbound Webhook Metrics
# ============================================

inbound_webhooks = Counter(
    'inbound_webhooks_total',
    'Total inbound webhook calls by outcome',
    ['kind', 'outcome']
)


# ============================================
# Metrics Helper Functions
# ============================================

def track_request(method: str, endpoint: str, status: int, duration_seconds: float):
    """
    Record HTTP request metrics.

    Call this after each request.
    """
    http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=status
    ).inc()

    http_request_duration.labels(
        method=method,
        endpoint=endpoint
    ).observe(duration_seconds)


def track_webhook_sent(event: str):
    """Record a webhook delivered successfully."""
    webhooks_sent.labels(event=event).inc()


def track_webhook_attempt_failed(event: str):
    """Record a failed delivery attempt."""
    webhook_attempts_failed.labels(event=event).inc()


def track_webhook_retry(event: str):
    """Record a retry being scheduled."""
    webhook_retries.labels(event=event).inc()


def track_webhook_failed(event: str):
    """Record a webhook permanently failing."""
    webhooks_failed.labels(event=event).inc()


def track_inbound(kind: str, outcome: str):
    """Record an inbound call (received, duplicate, invalid, processed, failed)."""
    inbound_webhooks.labels(kind=kind, outcome=outcome).inc()


# ============================================
# Prometheus Endpoint
# ============================================

@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Returns all registered metrics in Prometheus format.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
