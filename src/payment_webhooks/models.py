import json
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from payment_webhooks.errors import MalformedPayload


class EventType(StrEnum):
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_REFUNDED = "payment.refunded"
    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_UPDATED = "subscription.updated"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"
    SUBSCRIPTION_PAYMENT_FAILED = "subscription.payment_failed"


class WebhookEvent(BaseModel):
    id: str
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None

    @field_validator("id", "type")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @property
    def event_type(self) -> EventType | None:
        """The known event type, or None for a well-formed event of unknown type."""
        try:
            return EventType(self.type)
        except ValueError:
            return None


class ProcessedWebhookRecord(BaseModel):
    webhook_id: str
    event_type: str | None
    processed_at: str


class ReceivedResponse(BaseModel):
    received: bool = True
    duplicate: bool | None = None


def parse_event(raw_body: bytes) -> WebhookEvent:
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedPayload(f"Body is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedPayload("Body must be a JSON object")
    try:
        return WebhookEvent.model_validate(payload)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise MalformedPayload(f"Invalid webhook event fields: {', '.join(fields)}") from e
