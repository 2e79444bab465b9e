"""
Exception taxonomy for webhook delivery and ingestion.

Delivery errors are turned into terminal record states by the worker and
never escape a queued task. Inbound validation errors are recorded and
acknowledged; only redirect authorization failures reach the caller.
"""


class HooklineError(Exception):
    """Base class for all Hookline errors."""


class ConfigurationError(HooklineError):
    """A delivery was dispatched without a URL or event name, or with bad settings."""


class TransientDeliveryError(HooklineError):
    """A single attempt failed (non-2xx or transport error) and may be retried."""

    def __init__(self, message: str, status_code: int | None = None, response_body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class PermanentDeliveryFailure(HooklineError):
    """All attempts of a delivery were used up."""

    def __init__(self, delivery_id: str, attempts: int, last_error: str | None):
        super().__init__(f"Webhook {delivery_id} failed after {attempts} attempts: {last_error}")
        self.delivery_id = delivery_id
        self.attempts = attempts
        self.last_error = last_error


class InboundValidationFailure(HooklineError):
    """A server-to-server webhook failed validation. Recorded, never surfaced to the sender."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or [message]


class InboundAuthorizationFailure(HooklineError):
    """A browser redirect carried a bad or missing security key."""

    def __init__(self, message: str, status_code: int = 403):
        super().__init__(message)
        self.status_code = status_code
