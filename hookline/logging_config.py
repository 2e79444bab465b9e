"""
Structured logging configuration using structlog.

All logs are output as JSON with consistent context fields. Delivery logs
carry uuid/event/url, inbound logs carry kind/dedupe_key.
"""
import structlog
import logging
import sys

from hookline.config import settings


# Keys whose values must never reach the log stream
REDACTED_KEYS = frozenset({
    "secret",
    "signing_secret",
    "orderkey",
    "og-orderkey",
    "authorization",
    "x-webhook-signature",
})


def redact_secrets(logger, method_name, event_dict):
    """Mask order keys, signing secrets and signatures, including one level into dicts."""
    for key, value in list(event_dict.items()):
        if key.lower() in REDACTED_KEYS:
            event_dict[key] = "***"
        elif isinstance(value, dict):
            event_dict[key] = {
                k: "***" if str(k).lower() in REDACTED_KEYS else v
                for k, v in value.items()
            }
    return event_dict


def configure_logging():
    """Configure structlog for JSON output with context."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(service=settings.APP_NAME)


# Create logger instance
logger = configure_logging()


def get_logger(**context):
    """
    Get a logger with additional context bound.

    Usage:
        log = get_logger(uuid=request.id, event_name=request.event_name, url=request.target_url)
        log.info("webhook_delivered", status_code=200)
    """
    return logger.bind(**context)
