"""
Delivery request model.

Transient description of one logical outbound delivery. It travels as the
queue message payload, so it must round-trip through model_dump().
"""
from pydantic import BaseModel, Field

from hookline.models.base import new_id


class DeliveryRequest(BaseModel):
    """One outbound webhook delivery. The id never changes across retries."""
    id: str = Field(default_factory=new_id)
    event_name: str
    target_url: str
    payload: dict = Field(default_factory=dict)
    extra_headers: dict[str, str] = Field(default_factory=dict)
    signing_secret: str | None = None
    max_attempts: int = Field(default=3, ge=1)
    timeout: float = Field(default=30, gt=0)
    backoff_strategy: str = "exponential"
    verify_tls: bool = True
    meta: dict = Field(default_factory=dict)

    @property
    def signs_payload(self) -> bool:
        return bool(self.signing_secret)
