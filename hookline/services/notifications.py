"""
Delivery notifications.

A small in-process event bus. Collaborators subscribe to the outcome
events of outbound deliveries (success, failed attempt, final failure).
"""
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable

from hookline.logging_config import get_logger


@dataclass(frozen=True)
class DeliveryNotification:
    delivery_id: str
    event: str
    url: str
    payload: dict
    attempt: int
    meta: dict = field(default_factory=dict)


@dataclass(frozen=True)
class DeliverySucceeded(DeliveryNotification):
    status_code: int = 200
    response_body: str = ""


@dataclass(frozen=True)
class DeliveryAttemptFailed(DeliveryNotification):
    status_code: int | None = None
    error: str = ""


@dataclass(frozen=True)
class DeliveryFinallyFailed(DeliveryNotification):
    error: str = ""


Listener = Callable[[DeliveryNotification], Any]


class NotificationBus:
    """
    Dispatches notifications to listeners registered per event class.

    Listeners may be plain functions or coroutines. A listener that raises
    is logged and skipped so that delivery bookkeeping is never interrupted.
    """

    def __init__(self):
        self._listeners: dict[type, list[Listener]] = {}

    def subscribe(self, event_class: type, listener: Listener) -> None:
        self._listeners.setdefault(event_class, []).append(listener)

    def unsubscribe(self, event_class: type, listener: Listener) -> None:
        listeners = self._listeners.get(event_class, [])
        if listener in listeners:
            listeners.remove(listener)

    def clear(self) -> None:
        self._listeners.clear()

    async def emit(self, notification: DeliveryNotification) -> None:
        for event_class, listeners in list(self._listeners.items()):
            if not isinstance(notification, event_class):
                continue
            for listener in list(listeners):
                try:
                    result = listener(notification)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    get_logger(uuid=notification.delivery_id).error(
                        "notification_listener_failed",
                        notification=type(notification).__name__,
                        listener=getattr(listener, "__name__", repr(listener)),
                        error=str(e),
                    )


# Default bus used by the API process and the ARQ worker
notification_bus = NotificationBus()
