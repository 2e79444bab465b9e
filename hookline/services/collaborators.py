"""
Contracts for the collaborators the webhook layer talks to.

Order lookup and payment bookkeeping live outside this service. The host
application registers its implementations with configure_collaborators()
at startup; the defaults only log.
"""
from dataclasses import dataclass
from typing import Protocol

from hookline.logging_config import get_logger


class OrderDirectory(Protocol):
    """Resolves the security key stored on a local order."""

    async def get_order_key(self, order_id: str) -> str | None:
        """Return the order's key, or None when the order does not exist."""


class PaymentEventHandler(Protocol):
    """Applies the effect of a validated inbound provider event."""

    async def transaction_completed(self, order_id: str, document_id: str, customer_id: str, payload: dict) -> None:
        ...

    async def card_payment_returned(self, order_id: str, payload: dict) -> None:
        ...

    async def provider_trigger(self, event_type: str, payload: dict) -> None:
        ...


class StaticOrderDirectory:
    """In-memory order keys, for small deployments and tests."""

    def __init__(self, keys: dict[str, str] | None = None):
        self.keys = dict(keys or {})

    async def get_order_key(self, order_id: str) -> str | None:
        return self.keys.get(str(order_id))


class LoggingPaymentEventHandler:
    """Default handler: records that the event arrived and does nothing else."""

    def __init__(self):
        self.log = get_logger(component="payment_event_handler")

    async def transaction_completed(self, order_id, document_id, customer_id, payload):
        self.log.info("transaction_completed", order_id=order_id, document_id=document_id, customer_id=customer_id)

    async def card_payment_returned(self, order_id, payload):
        self.log.info("card_payment_returned", order_id=order_id)

    async def provider_trigger(self, event_type, payload):
        self.log.info("provider_trigger", event_type=event_type)


@dataclass
class Collaborators:
    order_directory: OrderDirectory
    payment_handler: PaymentEventHandler


collaborators = Collaborators(
    order_directory=StaticOrderDirectory(),
    payment_handler=LoggingPaymentEventHandler(),
)


def configure_collaborators(
    order_directory: OrderDirectory | None = None,
    payment_handler: PaymentEventHandler | None = None
) -> Collaborators:
    """Register host application implementations."""
    if order_directory is not None:
        collaborators.order_directory = order_directory
    if payment_handler is not None:
        collaborators.payment_handler = payment_handler
    return collaborators
